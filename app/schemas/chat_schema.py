"""Chat request and response schemas."""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.schemas.message_parts import FilePart, ImagePart, TextPart

VisibilityType = Literal["public", "private"]


class CamelModel(BaseModel):
    """Base model accepting and emitting camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InboundTextPart(TextPart):
    text: str = Field(..., min_length=1, max_length=2000)


InboundPart = Annotated[
    InboundTextPart | FilePart | ImagePart, Field(discriminator="type")
]


class InboundMessage(CamelModel):
    """New user message sent with a chat request."""

    id: str = Field(..., min_length=1, max_length=64)
    role: Literal["user"] = "user"
    parts: list[InboundPart] = Field(..., min_length=1)


class PostRequestBody(CamelModel):
    """Body of ``POST /api/chat``."""

    id: str = Field(..., min_length=1, max_length=64)
    message: InboundMessage
    selected_chat_model: str = Field(..., min_length=1, max_length=100)
    selected_visibility_type: VisibilityType = "private"
    search_enabled: bool = False
    memory_enabled: bool = False
    incognito_mode: bool = False


class RequestHints(BaseModel):
    """Geolocation hints about the origin of a request."""

    model_config = ConfigDict(frozen=True)

    latitude: str | None = None
    longitude: str | None = None
    city: str | None = None
    country: str | None = None


class ChatSummary(CamelModel):
    """Chat row as returned to clients."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: str
    title: str
    visibility: VisibilityType
    user_id: str
    created_at: datetime


class MessageResponse(CamelModel):
    """Stored message as returned to clients."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: str
    chat_id: str
    role: str
    parts: list[dict[str, Any]]
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime


class SessionUser(CamelModel):
    id: str
    email: str | None = None
    name: str | None = None


class SessionInfo(CamelModel):
    user: SessionUser | None = None


class ChatDetailResponse(CamelModel):
    """Body of ``GET /api/chat/{id}``."""

    chat: ChatSummary
    messages: list[MessageResponse]
    chat_model: str
    is_readonly: bool
    session: SessionInfo


class ChatHistoryResponse(CamelModel):
    """Body of ``GET /api/history``."""

    chats: list[ChatSummary]
    has_more: bool = False


class DeleteHistoryResponse(CamelModel):
    """Body of ``DELETE /api/history``."""

    deleted_count: int
