"""Canonical message part union and stored-form mapping.

Parts arrive in several shapes: from clients, from rows persisted by older
releases, and from the model stream. ``to_canonical_part`` maps every known
stored shape onto one closed set of variants; ``to_stored_part`` maps back to
the shape written to the ``messages.parts`` column.
"""

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

TOOL_PREFIX = "tool-"
DATA_PREFIX = "data-"
TOOL_INVOCATION_TYPE = "tool-invocation"

# Only these kinds are ever shown to the model.
MODEL_VISIBLE_TYPES: frozenset[str] = frozenset({"text", "file", "image"})


class _PartModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def dump(self) -> dict[str, Any]:
        """Serialize with wire (camelCase) keys, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)


class TextPart(_PartModel):
    type: Literal["text"] = "text"
    text: str


class FilePart(_PartModel):
    type: Literal["file"] = "file"
    url: str
    media_type: str
    filename: str | None = Field(
        default=None, validation_alias=AliasChoices("filename", "name")
    )


class ImagePart(_PartModel):
    type: Literal["image"] = "image"
    image: str
    media_type: str | None = None


class ReasoningPart(_PartModel):
    type: Literal["reasoning"] = "reasoning"
    text: str


class ToolInvocationPart(_PartModel):
    type: Literal["tool-invocation"] = "tool-invocation"
    tool_name: str
    tool_call_id: str
    state: str
    input: Any = None
    output: Any = None
    error_text: str | None = None


class DataPart(_PartModel):
    """Transient UI-only part (``data-*``); never persisted."""

    type: str = Field(pattern=r"^data-.+")
    data: Any = None
    id: str | None = None


Part = TextPart | FilePart | ImagePart | ReasoningPart | ToolInvocationPart | DataPart

_SIMPLE_PARTS: dict[str, type[_PartModel]] = {
    "text": TextPart,
    "file": FilePart,
    "image": ImagePart,
    "reasoning": ReasoningPart,
    TOOL_INVOCATION_TYPE: ToolInvocationPart,
}


def to_canonical_part(raw: Mapping[str, Any] | _PartModel) -> Part | None:
    """Map a stored or inbound part onto the canonical union.

    Returns None for kinds with no canonical counterpart (``step-start``,
    sources, ...) and for malformed parts.
    """
    if isinstance(raw, _PartModel):
        return raw  # type: ignore[return-value]

    part_type = str(raw.get("type", ""))
    try:
        if part_type in _SIMPLE_PARTS:
            return _SIMPLE_PARTS[part_type].model_validate(raw)  # type: ignore[return-value]
        if part_type == "dynamic-tool":
            return ToolInvocationPart.model_validate(
                {**raw, "type": TOOL_INVOCATION_TYPE}
            )
        if part_type.startswith(TOOL_PREFIX):
            return ToolInvocationPart.model_validate(
                {
                    **raw,
                    "type": TOOL_INVOCATION_TYPE,
                    "toolName": part_type[len(TOOL_PREFIX) :],
                }
            )
        if part_type.startswith(DATA_PREFIX):
            return DataPart.model_validate(raw)
    except ValidationError:
        return None
    return None


def to_canonical_parts(raw_parts: list[Any]) -> list[Part]:
    """Canonicalize a list of parts, dropping unknown ones."""
    parts: list[Part] = []
    for raw in raw_parts:
        part = to_canonical_part(raw)
        if part is not None:
            parts.append(part)
    return parts


def to_stored_part(part: Part) -> dict[str, Any] | None:
    """Shape a canonical part for the ``messages.parts`` column.

    Tool invocations are stored as ``tool-<name>``; transient data parts
    are not stored at all.
    """
    if isinstance(part, DataPart):
        return None
    if isinstance(part, ToolInvocationPart):
        stored = part.dump()
        stored.pop("toolName", None)
        stored["type"] = f"{TOOL_PREFIX}{part.tool_name}"
        return stored
    return part.dump()


def to_stored_parts(parts: list[Part]) -> list[dict[str, Any]]:
    """Shape parts for persistence, dropping transient ones."""
    return [stored for part in parts if (stored := to_stored_part(part)) is not None]
