"""Chat history API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_conversation_service
from app.schemas.chat_schema import ChatHistoryResponse, DeleteHistoryResponse
from app.services.conversation_service import ConversationService

router = APIRouter(prefix="/api/history", tags=["history"])

ConversationServiceDep = Annotated[
    ConversationService, Depends(get_conversation_service)
]


@router.get("", response_model=ChatHistoryResponse, response_model_by_alias=True)
async def list_chats(
    service: ConversationServiceDep,
    limit: int = Query(default=10, ge=1, le=100),
    starting_after: str | None = Query(default=None),
    ending_before: str | None = Query(default=None),
) -> ChatHistoryResponse:
    """List the caller's chats, newest first, with chat-id cursors."""
    return await service.list_chats(
        limit=limit,
        starting_after=starting_after,
        ending_before=ending_before,
    )


@router.delete("", response_model=DeleteHistoryResponse, response_model_by_alias=True)
async def delete_all_chats(service: ConversationServiceDep) -> DeleteHistoryResponse:
    """Delete every chat the caller owns."""
    return await service.delete_all_chats()
