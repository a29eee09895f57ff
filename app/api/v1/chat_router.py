"""Chat API router: streaming turns, chat detail, resume and delete."""

from collections.abc import AsyncGenerator
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import StreamingResponse

from app.core.exceptions import AuthorizationError, BadRequestError, NotFoundError
from app.dependencies import (
    get_chat_repository,
    get_chat_stream_service,
    get_conversation_service,
    get_optional_principal,
    get_stream_registry,
    require_cookie_principal,
    require_principal,
)
from app.repositories.chat_repo import ChatRepository
from app.schemas.auth_schema import Principal
from app.schemas.chat_schema import (
    ChatDetailResponse,
    ChatSummary,
    PostRequestBody,
    RequestHints,
)
from app.services.chat_stream_service import ChatStreamService
from app.services.conversation_service import ConversationService
from app.services.resumable_stream import ResumableStreamRegistry
from app.services.ui_stream import DONE_MARKER, SSE_HEADERS, encode_sse

logger = structlog.get_logger()

router = APIRouter(prefix="/api/chat", tags=["chat"])

CHAT_MODEL_COOKIE = "chat-model"

ChatStreamServiceDep = Annotated[ChatStreamService, Depends(get_chat_stream_service)]
ConversationServiceDep = Annotated[
    ConversationService, Depends(get_conversation_service)
]
ChatRepositoryDep = Annotated[ChatRepository, Depends(get_chat_repository)]
StreamRegistryDep = Annotated[
    ResumableStreamRegistry | None, Depends(get_stream_registry)
]


def request_hints(request: Request) -> RequestHints:
    """Geolocation hints bound by the request-context middleware."""
    hints = getattr(request.state, "request_hints", None) or {}
    return RequestHints(**hints)


@router.post("")
async def post_chat(
    body: PostRequestBody,
    request: Request,
    service: ChatStreamServiceDep,
    principal: Principal | None = Depends(get_optional_principal),
) -> StreamingResponse:
    """Run one chat turn and stream it as UI-message SSE frames."""
    turn = await service.prepare_turn(body, principal, request_hints(request))
    return StreamingResponse(
        service.stream_turn(turn),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/{chat_id}", response_model=ChatDetailResponse, response_model_by_alias=True)
async def get_chat(
    chat_id: str,
    request: Request,
    service: ConversationServiceDep,
) -> ChatDetailResponse:
    """Chat with its messages, for the chat page."""
    return await service.get_chat(chat_id, request.cookies.get(CHAT_MODEL_COOKIE))


async def _resumed_frames(
    registry: ResumableStreamRegistry, stream_id: str
) -> AsyncGenerator[str, None]:
    async for frame in registry.resume(stream_id):
        yield encode_sse(frame)
    yield encode_sse(DONE_MARKER)


@router.get("/{chat_id}/stream", response_model=None)
async def resume_stream(
    chat_id: str,
    chat_repo: ChatRepositoryDep,
    registry: StreamRegistryDep,
    principal: Principal = Depends(require_principal),
) -> Response:
    """Reattach to the latest generation of a chat.

    Responds 204 when resumption is disabled or nothing is buffered.
    """
    chat = await chat_repo.get_chat_by_id(chat_id)
    if chat is None:
        raise NotFoundError()
    if chat.visibility == "private" and chat.user_id != principal.id:
        raise AuthorizationError()

    if registry is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    stream_ids = await chat_repo.get_stream_ids_by_chat_id(chat_id)
    if not stream_ids or not await registry.exists(stream_ids[-1]):
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    logger.info("Resuming stream", chat_id=chat_id, stream_id=stream_ids[-1])
    return StreamingResponse(
        _resumed_frames(registry, stream_ids[-1]),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.delete("", response_model=ChatSummary, response_model_by_alias=True)
async def delete_chat(
    chat_repo: ChatRepositoryDep,
    principal: Principal = Depends(require_cookie_principal),
    chat_id: str | None = Query(default=None, alias="id"),
) -> ChatSummary:
    """Delete one of the caller's chats (web session only)."""
    if not chat_id:
        raise BadRequestError(cause="Parameter id is required.")
    service = ConversationService(chat_repo=chat_repo, principal=principal)
    return await service.delete_chat(chat_id)
