"""Message normalization and model-input assembly.

Stored rows, inbound request messages and already-normalized messages are
all reduced to ``CanonicalMessage``. Before a model call, every file part is
fetched so the model receives bytes instead of URLs; a file that cannot be
fetched is dropped and the rest of the turn proceeds.
"""

import asyncio
import base64
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from app.schemas.message_parts import (
    MODEL_VISIBLE_TYPES,
    FilePart,
    ImagePart,
    Part,
    TextPart,
    to_canonical_parts,
)

logger = structlog.get_logger()

TEXTUAL_MEDIA_TYPES = frozenset({"application/json", "application/xml"})


@dataclass(frozen=True)
class CanonicalMessage:
    """A message whose parts all belong to the canonical union."""

    id: str
    role: str
    parts: tuple[Part, ...]


@dataclass(frozen=True)
class ResolvedFile:
    """File part with its content fetched."""

    data: bytes
    media_type: str
    filename: str | None = None


ModelContent = TextPart | ImagePart | ResolvedFile


@dataclass
class ModelMessage:
    """Message in the shape handed to the language model."""

    role: str
    content: list[ModelContent] = field(default_factory=list)


def normalize_message(raw: Any) -> CanonicalMessage:
    """Reduce a stored row, inbound message or mapping to canonical form.

    Idempotent: normalizing a CanonicalMessage returns an equal message.
    """
    if isinstance(raw, CanonicalMessage):
        return raw
    if isinstance(raw, Mapping):
        message_id = raw.get("id", "")
        role = raw.get("role", "user")
        parts = raw.get("parts") or []
    else:
        message_id, role, parts = raw.id, raw.role, raw.parts or []
    return CanonicalMessage(
        id=str(message_id),
        role=str(role),
        parts=tuple(to_canonical_parts(list(parts))),
    )


class MessageNormalizer:
    """Assemble history plus the new message into model input."""

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self._http_client = http_client

    async def build_model_messages(
        self,
        history: Sequence[CanonicalMessage],
        new_message: CanonicalMessage,
    ) -> list[ModelMessage]:
        """Resolve file parts concurrently and keep only model-visible parts.

        History keeps its order and the new message comes last. Messages left
        without content are skipped.
        """
        messages = [*history, new_message]
        resolved = await asyncio.gather(
            *(self._resolve_parts(message) for message in messages)
        )
        return [
            ModelMessage(role=message.role, content=content)
            for message, content in zip(messages, resolved, strict=True)
            if content
        ]

    async def _resolve_parts(self, message: CanonicalMessage) -> list[ModelContent]:
        visible = [part for part in message.parts if part.type in MODEL_VISIBLE_TYPES]
        resolved = await asyncio.gather(*(self._resolve_part(part) for part in visible))
        return [part for part in resolved if part is not None]

    async def _resolve_part(self, part: Part) -> ModelContent | None:
        if isinstance(part, FilePart):
            return await self.fetch_file(part)
        if isinstance(part, TextPart | ImagePart):
            return part
        return None

    async def fetch_file(self, part: FilePart) -> ResolvedFile | None:
        """Fetch the bytes behind a file part; None when the fetch fails."""
        try:
            response = await self._http_client.get(part.url)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Dropping file part", url=part.url, error=str(exc))
            return None
        logger.debug("Fetched file part", url=part.url, size=len(response.content))
        return ResolvedFile(
            data=response.content,
            media_type=part.media_type
            or response.headers.get("content-type", "application/octet-stream"),
            filename=part.filename,
        )


def _is_textual(media_type: str) -> bool:
    return media_type.startswith("text/") or media_type in TEXTUAL_MEDIA_TYPES


def _content_block(item: ModelContent) -> dict[str, Any]:
    if isinstance(item, TextPart):
        return {"type": "text", "text": item.text}
    if isinstance(item, ImagePart):
        return {"type": "image_url", "image_url": {"url": item.image}}

    encoded = base64.b64encode(item.data).decode()
    if item.media_type.startswith("image/"):
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{item.media_type};base64,{encoded}"},
        }
    if _is_textual(item.media_type):
        name = item.filename or "attachment"
        body = item.data.decode("utf-8", errors="replace")
        return {"type": "text", "text": f"<file name=\"{name}\">\n{body}\n</file>"}
    block: dict[str, Any] = {
        "type": "file",
        "source_type": "base64",
        "mime_type": item.media_type,
        "data": encoded,
    }
    if item.filename:
        block["filename"] = item.filename
    return block


def to_langchain_messages(messages: Sequence[ModelMessage]) -> list[BaseMessage]:
    """Convert model messages to LangChain messages.

    Assistant turns carry text only; user turns carry multimodal blocks.
    """
    result: list[BaseMessage] = []
    for message in messages:
        if message.role == "assistant":
            text = "".join(
                item.text for item in message.content if isinstance(item, TextPart)
            )
            if text:
                result.append(AIMessage(content=text))
        elif message.role == "system":
            text = "".join(
                item.text for item in message.content if isinstance(item, TextPart)
            )
            result.append(SystemMessage(content=text))
        else:
            result.append(
                HumanMessage(content=[_content_block(item) for item in message.content])
            )
    return result


def content_text(content: str | list[Any]) -> str:
    """Plain text of a LangChain message content (string or block list)."""
    if isinstance(content, str):
        return content
    texts: list[str] = []
    for block in content:
        if isinstance(block, str):
            texts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            texts.append(str(block.get("text", "")))
    return "".join(texts)


def message_text(message: CanonicalMessage) -> str:
    """Concatenated text parts of a canonical message."""
    return " ".join(part.text for part in message.parts if isinstance(part, TextPart))
