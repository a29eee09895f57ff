"""Service layer for reading and deleting chats."""

import structlog

from app.core.config import settings
from app.core.exceptions import AuthorizationError, BadRequestError, NotFoundError
from app.repositories.chat_repo import ChatRepository
from app.schemas.auth_schema import Principal
from app.schemas.chat_schema import (
    ChatDetailResponse,
    ChatHistoryResponse,
    ChatSummary,
    DeleteHistoryResponse,
    MessageResponse,
    SessionInfo,
    SessionUser,
)

logger = structlog.get_logger()


class ConversationService:
    """Chat queries on behalf of one principal."""

    def __init__(self, chat_repo: ChatRepository, principal: Principal) -> None:
        self._chat_repo = chat_repo
        self._principal = principal

    async def get_chat(
        self,
        chat_id: str,
        chat_model_cookie: str | None = None,
    ) -> ChatDetailResponse:
        """Chat with its messages.

        Private chats are visible to their owner only; public chats are
        readable by anyone signed in, read-only for non-owners.
        """
        chat = await self._chat_repo.get_chat_by_id(chat_id)
        if chat is None:
            raise NotFoundError()

        is_owner = chat.user_id == self._principal.id
        if chat.visibility == "private" and not is_owner:
            raise AuthorizationError()

        messages = await self._chat_repo.get_messages_by_chat_id(chat_id)
        return ChatDetailResponse(
            chat=ChatSummary.model_validate(chat),
            messages=[MessageResponse.model_validate(msg) for msg in messages],
            chat_model=chat_model_cookie or settings.llm.default_chat_model,
            is_readonly=not is_owner,
            session=SessionInfo(
                user=SessionUser(
                    id=self._principal.id,
                    email=self._principal.email,
                    name=self._principal.name,
                )
            ),
        )

    async def list_chats(
        self,
        limit: int = 10,
        starting_after: str | None = None,
        ending_before: str | None = None,
    ) -> ChatHistoryResponse:
        """Return a page of the principal's chats, newest first."""
        if starting_after is not None and ending_before is not None:
            raise BadRequestError(
                cause="Only one of starting_after or ending_before can be provided."
            )
        page = await self._chat_repo.get_chats_by_user_id(
            user_id=self._principal.id,
            limit=limit,
            starting_after=starting_after,
            ending_before=ending_before,
        )
        return ChatHistoryResponse(
            chats=[ChatSummary.model_validate(chat) for chat in page.chats],
            has_more=page.has_more,
        )

    async def delete_chat(self, chat_id: str) -> ChatSummary:
        """Delete one of the principal's chats.

        A missing chat is reported as forbidden, same as someone else's.
        """
        chat = await self._chat_repo.get_chat_by_id(chat_id)
        if chat is None or chat.user_id != self._principal.id:
            raise AuthorizationError()
        summary = ChatSummary.model_validate(chat)
        await self._chat_repo.delete_chat_by_id(chat_id)
        logger.info("Chat deleted", chat_id=chat_id)
        return summary

    async def delete_all_chats(self) -> DeleteHistoryResponse:
        """Delete every chat the principal owns."""
        deleted = await self._chat_repo.delete_all_chats_by_user_id(self._principal.id)
        logger.info("Chat history deleted", user_id=self._principal.id, count=deleted)
        return DeleteHistoryResponse(deleted_count=deleted)
