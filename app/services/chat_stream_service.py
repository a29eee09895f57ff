"""Streaming chat turns.

A turn runs in two phases. ``prepare_turn`` does everything that can still
fail with a structured HTTP error: authorization, quota, chat lookup or
creation, message normalization, tool selection and persistence of the user
message. ``stream_turn`` is the SSE body: it runs the model, relays its
output (plus tool and title notifications) as UI-message frames and persists
the assistant message once the model has finished.
"""

import asyncio
import json
import uuid
from collections.abc import AsyncIterator, Callable, Iterator
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, ToolMessage
from langchain_core.runnables import RunnableConfig
from langgraph.prebuilt import ToolNode, create_react_agent
from openai import AsyncOpenAI
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import SessionFactory
from app.core.exceptions import (
    ActivateGatewayError,
    AppException,
    AuthenticationError,
    AuthorizationError,
    OfflineError,
    RateLimitError,
)
from app.repositories.chat_repo import ChatRepository, NewMessage
from app.schemas.auth_schema import Principal
from app.schemas.chat_schema import PostRequestBody, RequestHints
from app.schemas.message_parts import (
    Part,
    ReasoningPart,
    TextPart,
    ToolInvocationPart,
    to_stored_parts,
)
from app.services.chat_title_task import schedule_title_generation
from app.services.message_normalizer import (
    MessageNormalizer,
    ModelMessage,
    content_text,
    message_text,
    normalize_message,
    to_langchain_messages,
)
from app.services.prompts import system_prompt
from app.services.resumable_stream import ResumableStreamRegistry
from app.services.storage_service import BlobStorage
from app.services.tool_registry import ToolSet, build_tool_set
from app.services.ui_stream import (
    DONE_MARKER,
    UIMessageStreamWriter,
    WordSmoother,
    data_frame,
    encode_sse,
    error_frame,
    finish_frame,
    finish_step_frame,
    new_part_id,
    start_frame,
    start_step_frame,
    text_frame,
    tool_error_frame,
    tool_input_frame,
    tool_output_frame,
)
from app.tools.context import ToolContext

logger = structlog.get_logger()

ModelFactory = Callable[[str, int | None], BaseChatModel]

NEW_CHAT_TITLE = "New chat"
TITLE_MODEL_ID = "title-model"
ARTIFACT_MODEL_ID = "artifact-model"
QUOTA_WINDOW_HOURS = 24
AGENT_NODE = "agent"
TOOLS_NODE = "tools"
GATEWAY_BILLING_ERROR = "AI Gateway requires a valid credit card"
# Reply the prebuilt ReAct agent substitutes for a tool call it has no steps left to run.
STEP_LIMIT_REPLY = "Sorry, need more steps to process this request."

# Strong references keep turns alive after their client disconnected.
_running_turns: set[asyncio.Task[None]] = set()


def recursion_limit(max_tool_steps: int) -> int:
    """Graph recursion limit that lets ``max_tool_steps`` model calls run their tools.

    Each tool step costs two graph steps (model, tools).
    """
    return max_tool_steps * 2 + 1


def is_step_limit_reply(message: Any) -> bool:
    return (
        isinstance(message, AIMessage)
        and not message.tool_calls
        and message.content == STEP_LIMIT_REPLY
    )


@dataclass
class PreparedTurn:
    """Everything the streaming phase needs, resolved before the stream opens."""

    chat_id: str
    principal: Principal
    selected_chat_model: str
    incognito: bool
    model_messages: list[ModelMessage]
    user_text: str
    system_prompt: str
    tool_set: ToolSet
    writer: UIMessageStreamWriter
    stream_id: str | None = None
    title_task: "asyncio.Task[str | None] | None" = None


def classify_error(exc: Exception) -> AppException:
    """Map an unexpected pre-stream failure onto a structured error."""
    if isinstance(exc, AppException):
        return exc
    if GATEWAY_BILLING_ERROR in str(exc):
        return ActivateGatewayError()
    return OfflineError()


def iter_chunk_deltas(chunk: AIMessageChunk) -> Iterator[tuple[str, str]]:
    """Yield ``("text" | "reasoning", delta)`` pairs from a model chunk.

    Providers put reasoning either in content blocks or in
    ``additional_kwargs["reasoning_content"]``.
    """
    reasoning = chunk.additional_kwargs.get("reasoning_content")
    if isinstance(reasoning, str) and reasoning:
        yield "reasoning", reasoning

    content = chunk.content
    if isinstance(content, str):
        if content:
            yield "text", content
        return
    for block in content:
        if isinstance(block, str):
            if block:
                yield "text", block
            continue
        block_type = block.get("type")
        if block_type == "text" and block.get("text"):
            yield "text", str(block["text"])
        elif block_type in ("thinking", "reasoning"):
            delta = block.get("thinking") or block.get("reasoning") or ""
            if delta:
                yield "reasoning", str(delta)


def parse_tool_output(content: Any) -> Any:
    """Tool results arrive JSON-encoded; hand structured output to clients."""
    if isinstance(content, str):
        try:
            return json.loads(content)
        except ValueError:
            return content
    return content


class AssistantMessageBuilder:
    """Turns model events into frames and accumulates the assistant parts."""

    def __init__(
        self,
        writer: UIMessageStreamWriter,
        smoother: WordSmoother | None,
    ) -> None:
        self._writer = writer
        self._smoother = smoother
        self.parts: list[Part] = []
        self._tool_parts: dict[str, int] = {}
        self._in_step = False
        self._step_has_text = False
        self._text_id: str | None = None
        self._text = ""
        self._reasoning_id: str | None = None
        self._reasoning = ""

    # --- Steps ---

    def start_step(self) -> None:
        if not self._in_step:
            self._in_step = True
            self._step_has_text = False
            self._writer.write(start_step_frame())

    async def finish_step(self) -> None:
        if self._in_step:
            await self.end_text()
            self.end_reasoning()
            self._writer.write(finish_step_frame())
            self._in_step = False

    # --- Text ---

    async def text_delta(self, delta: str) -> None:
        self.start_step()
        self.end_reasoning()
        if self._text_id is None:
            self._text_id = new_part_id()
            self._writer.write(text_frame("text-start", self._text_id))
        self._text += delta
        self._step_has_text = True
        if self._smoother is None:
            self._writer.write(text_frame("text-delta", self._text_id, delta))
            return
        for chunk in self._smoother.push(delta):
            self._writer.write(text_frame("text-delta", self._text_id, chunk))
            if self._smoother.delay_seconds:
                await asyncio.sleep(self._smoother.delay_seconds)

    async def end_text(self) -> None:
        if self._text_id is None:
            return
        if self._smoother is not None and (rest := self._smoother.flush()):
            self._writer.write(text_frame("text-delta", self._text_id, rest))
        self._writer.write(text_frame("text-end", self._text_id))
        self.parts.append(TextPart(text=self._text))
        self._text_id, self._text = None, ""

    # --- Reasoning ---

    async def reasoning_delta(self, delta: str) -> None:
        self.start_step()
        await self.end_text()
        if self._reasoning_id is None:
            self._reasoning_id = new_part_id()
            self._writer.write(text_frame("reasoning-start", self._reasoning_id))
        self._reasoning += delta
        self._writer.write(text_frame("reasoning-delta", self._reasoning_id, delta))

    def end_reasoning(self) -> None:
        if self._reasoning_id is None:
            return
        self._writer.write(text_frame("reasoning-end", self._reasoning_id))
        self.parts.append(ReasoningPart(text=self._reasoning))
        self._reasoning_id, self._reasoning = None, ""

    # --- Graph updates ---

    async def agent_message(self, message: AIMessage) -> None:
        """A model step completed; its text was streamed unless the model
        did not stream, in which case it is emitted now.
        """
        self.start_step()
        if not self._step_has_text:
            text = content_text(message.content)
            if text:
                await self.text_delta(text)
        await self.end_text()
        self.end_reasoning()
        for call in message.tool_calls:
            call_id = call.get("id") or new_part_id()
            self._writer.write(tool_input_frame(call_id, call["name"], call["args"]))
            self._tool_parts[call_id] = len(self.parts)
            self.parts.append(
                ToolInvocationPart(
                    tool_name=call["name"],
                    tool_call_id=call_id,
                    state="input-available",
                    input=call["args"],
                )
            )
        await self.finish_step()

    def tool_result(self, message: ToolMessage) -> None:
        call_id = message.tool_call_id
        index = self._tool_parts.get(call_id)
        if message.status == "error":
            error_text = str(message.content)
            self._writer.write(tool_error_frame(call_id, error_text))
            update: dict[str, Any] = {"state": "output-error", "error_text": error_text}
        else:
            output = parse_tool_output(message.content)
            self._writer.write(tool_output_frame(call_id, output))
            update = {"state": "output-available", "output": output}
        if index is not None:
            part = self.parts[index]
            self.parts[index] = part.model_copy(update=update)


class ChatStreamService:
    """Runs one chat turn per request."""

    def __init__(
        self,
        session: AsyncSession,
        session_factory: SessionFactory,
        model_factory: ModelFactory,
        http_client: httpx.AsyncClient,
        blob_storage: BlobStorage,
        openai_client: AsyncOpenAI,
        stream_registry: ResumableStreamRegistry | None = None,
    ) -> None:
        self._session = session
        self._chat_repo = ChatRepository(session)
        self._session_factory = session_factory
        self._model_factory = model_factory
        self._http_client = http_client
        self._blob_storage = blob_storage
        self._openai_client = openai_client
        self._stream_registry = stream_registry

    # --- Pre-stream phase ---

    async def prepare_turn(
        self,
        body: PostRequestBody,
        principal: Principal | None,
        request_hints: RequestHints,
    ) -> PreparedTurn:
        """Authorize, load history and persist the user message.

        Raises structured AppExceptions; nothing is mutated when the caller
        is not authenticated, is over quota or does not own the chat.
        """
        try:
            return await self._prepare_turn(body, principal, request_hints)
        except AppException:
            raise
        except Exception as exc:
            logger.exception("Unhandled error preparing chat turn", chat_id=body.id)
            raise classify_error(exc) from exc

    async def _prepare_turn(
        self,
        body: PostRequestBody,
        principal: Principal | None,
        request_hints: RequestHints,
    ) -> PreparedTurn:
        if principal is None:
            raise AuthenticationError()

        await self._check_quota(principal)

        incognito = body.incognito_mode
        chat = await self._chat_repo.get_chat_by_id(body.id)
        history_rows = []
        is_new_chat = False
        if chat is not None:
            if chat.user_id != principal.id:
                raise AuthorizationError()
            history_rows = await self._chat_repo.get_messages_by_chat_id(body.id)
        elif incognito:
            logger.info("Incognito mode, chat not created", chat_id=body.id)
        else:
            await self._chat_repo.save_chat(
                chat_id=body.id,
                user_id=principal.id,
                title=NEW_CHAT_TITLE,
                visibility=body.selected_visibility_type,
            )
            is_new_chat = True

        new_message = normalize_message(body.message)
        history = [normalize_message(row) for row in history_rows]
        normalizer = MessageNormalizer(self._http_client)
        model_messages = await normalizer.build_model_messages(history, new_message)

        stream_id = None if incognito else str(uuid.uuid4())
        sink = (
            self._stream_registry.sink(stream_id)
            if self._stream_registry is not None and stream_id is not None
            else None
        )
        writer = UIMessageStreamWriter(sink=sink)

        tool_set = build_tool_set(
            ToolContext(
                writer=writer,
                session_factory=self._session_factory,
                http_client=self._http_client,
                llm=self._model_factory(ARTIFACT_MODEL_ID, None),
                blob_storage=self._blob_storage,
                openai_client=self._openai_client,
            ),
            selected_chat_model=body.selected_chat_model,
            search_enabled=body.search_enabled,
            memory_enabled=body.memory_enabled,
            incognito_mode=incognito,
            principal=principal,
        )

        if incognito:
            logger.info("Incognito mode, skipping user message save", chat_id=body.id)
        else:
            await self._chat_repo.save_messages(
                [
                    NewMessage(
                        id=new_message.id,
                        chat_id=body.id,
                        role="user",
                        parts=to_stored_parts(list(new_message.parts)),
                    )
                ]
            )
            await self._chat_repo.create_stream_id(stream_id, body.id)  # type: ignore[arg-type]
        await self._session.commit()

        user_text = message_text(new_message)
        title_task = None
        if is_new_chat:
            title_task = schedule_title_generation(
                body.id,
                user_text,
                self._model_factory(TITLE_MODEL_ID, None),
                self._session_factory,
            )

        prompt = system_prompt(body.selected_chat_model, request_hints)
        if tool_set.memory is not None:
            prompt = await tool_set.memory.apply(prompt, user_text)

        logger.info(
            "Chat turn prepared",
            chat_id=body.id,
            new_chat=is_new_chat,
            incognito=incognito,
            active_tools=list(tool_set.active_tools),
        )
        return PreparedTurn(
            chat_id=body.id,
            principal=principal,
            selected_chat_model=body.selected_chat_model,
            incognito=incognito,
            model_messages=model_messages,
            user_text=user_text,
            system_prompt=prompt,
            tool_set=tool_set,
            writer=writer,
            stream_id=stream_id,
            title_task=title_task,
        )

    async def _check_quota(self, principal: Principal) -> None:
        """Daily quota for web sessions; bearer (mobile) callers are exempt."""
        if principal.auth_method == "bearer":
            return
        count = await self._chat_repo.get_message_count_by_user_id(
            principal.id, hours=QUOTA_WINDOW_HOURS
        )
        if count > settings.entitlements.max_messages_per_day(principal.type):
            logger.info("Message quota exceeded", user_id=principal.id, count=count)
            raise RateLimitError()

    # --- Streaming phase ---

    async def stream_turn(self, turn: PreparedTurn) -> AsyncIterator[str]:
        """SSE body of a turn. Ends with the ``[DONE]`` marker.

        If the client goes away while the turn is buffered for resumption,
        the turn runs to completion detached: the buffer receives every
        frame and the assistant message is persisted. Otherwise the model
        task is cancelled and nothing of the partial answer is persisted.
        """
        producer = asyncio.create_task(self._produce(turn), name=f"chat-turn-{turn.chat_id}")
        _running_turns.add(producer)
        producer.add_done_callback(_running_turns.discard)
        try:
            async for frame in turn.writer.frames():
                yield encode_sse(frame)
            yield encode_sse(DONE_MARKER)
        finally:
            if not producer.done():
                if turn.writer.mirrored:
                    logger.info(
                        "Client disconnected, finishing turn for resumption",
                        chat_id=turn.chat_id,
                        stream_id=turn.stream_id,
                    )
                else:
                    logger.info("Client disconnected, cancelling turn", chat_id=turn.chat_id)
                    producer.cancel()

    async def _produce(self, turn: PreparedTurn) -> None:
        writer = turn.writer
        mirror = asyncio.create_task(writer.mirror())
        relay = (
            asyncio.create_task(self._relay_title(turn))
            if turn.title_task is not None
            else None
        )
        try:
            message_id = str(uuid.uuid4())
            writer.write(start_frame(message_id))
            parts = await self._run_model(turn)
            await self._persist_assistant_message(turn, message_id, parts)
            if turn.tool_set.memory is not None:
                await turn.tool_set.memory.record(turn.user_text)
            if relay is not None:
                await relay
            writer.write(finish_frame())
        except asyncio.CancelledError:
            if relay is not None:
                relay.cancel()
            raise
        except Exception:
            logger.exception("Chat stream failed", chat_id=turn.chat_id)
            if relay is not None:
                relay.cancel()
            writer.write(error_frame())
        finally:
            writer.close()
            await mirror

    async def _relay_title(self, turn: PreparedTurn) -> None:
        """Emit the generated title if it arrives within the wait budget.

        The title task itself is never cancelled here; the title update
        still completes detached.
        """
        task = turn.title_task
        if task is None:
            return
        done, _ = await asyncio.wait({task}, timeout=settings.llm.title_wait_seconds)
        if not done:
            logger.info("Title not ready before stream end", chat_id=turn.chat_id)
            return
        title = task.result()
        if title:
            turn.writer.write(data_frame("chat-title", title))

    async def _run_model(self, turn: PreparedTurn) -> list[Part]:
        tool_set = turn.tool_set
        llm = self._model_factory(turn.selected_chat_model, tool_set.thinking_budget)
        active = tool_set.active
        agent = create_react_agent(
            model=llm,
            tools=ToolNode(active, handle_tool_errors=True) if active else [],
            prompt=turn.system_prompt,
        )
        config: RunnableConfig = {
            "recursion_limit": recursion_limit(settings.llm.max_tool_steps),
        }

        smoother = (
            WordSmoother(settings.llm.smooth_stream_delay_ms)
            if tool_set.smooth_stream
            else None
        )
        builder = AssistantMessageBuilder(turn.writer, smoother)
        inputs = {"messages": to_langchain_messages(turn.model_messages)}

        async for mode, payload in agent.astream(
            inputs, config=config, stream_mode=["messages", "updates"]
        ):
            if mode == "messages":
                chunk, metadata = payload
                if metadata.get("langgraph_node") != AGENT_NODE:
                    continue
                if not isinstance(chunk, AIMessageChunk):
                    continue
                for kind, delta in iter_chunk_deltas(chunk):
                    if kind == "text":
                        await builder.text_delta(delta)
                    else:
                        await builder.reasoning_delta(delta)
            elif mode == "updates":
                for node, update in payload.items():
                    for message in (update or {}).get("messages", []):
                        if node == AGENT_NODE and is_step_limit_reply(message):
                            logger.info("Tool step limit reached", chat_id=turn.chat_id)
                        elif node == AGENT_NODE and isinstance(message, AIMessage):
                            await builder.agent_message(message)
                        elif node == TOOLS_NODE and isinstance(message, ToolMessage):
                            builder.tool_result(message)

        await builder.finish_step()
        return builder.parts

    async def _persist_assistant_message(
        self,
        turn: PreparedTurn,
        message_id: str,
        parts: list[Part],
    ) -> None:
        if turn.incognito:
            logger.info("Incognito mode, skipping assistant message save", chat_id=turn.chat_id)
            return
        stored = to_stored_parts(parts)
        if not stored:
            return
        async with self._session_factory() as session:
            await ChatRepository(session).save_messages(
                [
                    NewMessage(
                        id=message_id,
                        chat_id=turn.chat_id,
                        role="assistant",
                        parts=stored,
                    )
                ]
            )
            await session.commit()
        logger.info("Assistant message saved", chat_id=turn.chat_id, parts=len(stored))
