"""Chat repository for chat, message and stream-id database operations."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models.chat import Chat
from app.models.message import Message
from app.models.stream import Stream


@dataclass(frozen=True)
class NewMessage:
    """Message to be appended to a chat."""

    id: str
    chat_id: str
    role: str
    parts: list[dict[str, Any]]


@dataclass(frozen=True)
class ChatPage:
    """Immutable result object for chat list queries."""

    chats: list[Chat]
    has_more: bool


class ChatRepository:
    """Encapsulates chat, message and stream-id queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- Chats ---

    async def get_chat_by_id(self, chat_id: str) -> Chat | None:
        """Find a chat by its caller-supplied id."""
        result = await self._session.execute(select(Chat).where(Chat.id == chat_id))
        return result.scalar_one_or_none()

    async def save_chat(
        self,
        chat_id: str,
        user_id: str,
        title: str,
        visibility: str,
    ) -> Chat:
        """Create a new chat."""
        chat = Chat(
            id=chat_id,
            user_id=user_id,
            title=title,
            visibility=visibility,
            created_at=datetime.now(UTC),
        )
        self._session.add(chat)
        await self._session.flush()
        return chat

    async def update_chat_title_by_id(self, chat_id: str, title: str) -> None:
        """Replace the title of an existing chat."""
        await self._session.execute(
            update(Chat).where(Chat.id == chat_id).values(title=title)
        )

    async def delete_chat_by_id(self, chat_id: str) -> Chat | None:
        """Delete a chat with its messages and stream ids.

        Returns the deleted chat, or None if it did not exist.
        """
        chat = await self.get_chat_by_id(chat_id)
        if chat is None:
            return None
        await self._session.execute(delete(Message).where(Message.chat_id == chat_id))
        await self._session.execute(delete(Stream).where(Stream.chat_id == chat_id))
        await self._session.delete(chat)
        await self._session.flush()
        return chat

    async def delete_all_chats_by_user_id(self, user_id: str) -> int:
        """Delete every chat owned by a user. Returns the number of chats."""
        chat_ids = select(Chat.id).where(Chat.user_id == user_id)
        await self._session.execute(
            delete(Message).where(Message.chat_id.in_(chat_ids))
        )
        await self._session.execute(delete(Stream).where(Stream.chat_id.in_(chat_ids)))
        result = await self._session.execute(
            delete(Chat).where(Chat.user_id == user_id)
        )
        return int(result.rowcount or 0)

    async def get_chats_by_user_id(
        self,
        user_id: str,
        limit: int,
        starting_after: str | None = None,
        ending_before: str | None = None,
    ) -> ChatPage:
        """Fetch a user's chats, newest first, with chat-id cursors.

        ``starting_after`` returns chats created after the cursor chat,
        ``ending_before`` chats created before it.
        """
        stmt = select(Chat).where(Chat.user_id == user_id)

        cursor_id = starting_after or ending_before
        if cursor_id is not None:
            cursor_chat = await self.get_chat_by_id(cursor_id)
            if cursor_chat is None:
                raise NotFoundError(
                    surface="database", cause=f"Chat with id {cursor_id} not found"
                )
            if starting_after is not None:
                stmt = stmt.where(Chat.created_at > cursor_chat.created_at)
            else:
                stmt = stmt.where(Chat.created_at < cursor_chat.created_at)

        stmt = stmt.order_by(Chat.created_at.desc(), Chat.id.desc()).limit(limit + 1)
        result = await self._session.execute(stmt)
        rows = list(result.scalars().all())
        return ChatPage(chats=rows[:limit], has_more=len(rows) > limit)

    # --- Messages ---

    async def get_messages_by_chat_id(self, chat_id: str) -> list[Message]:
        """Retrieve all messages for a chat in chronological order."""
        result = await self._session.execute(
            select(Message)
            .where(Message.chat_id == chat_id)
            .order_by(Message.created_at.asc())
        )
        return list(result.scalars().all())

    async def save_messages(self, messages: list[NewMessage]) -> list[Message]:
        """Append messages; batch order is preserved by strictly increasing timestamps."""
        base = datetime.now(UTC)
        records = [
            Message(
                id=msg.id,
                chat_id=msg.chat_id,
                role=msg.role,
                parts=msg.parts,
                attachments=[],
                created_at=base + timedelta(microseconds=index),
            )
            for index, msg in enumerate(messages)
        ]
        self._session.add_all(records)
        await self._session.flush()
        return records

    async def get_message_count_by_user_id(self, user_id: str, hours: int) -> int:
        """Count user-authored messages across the user's chats in the window."""
        since = datetime.now(UTC) - timedelta(hours=hours)
        result = await self._session.execute(
            select(func.count(Message.id))
            .join(Chat, Message.chat_id == Chat.id)
            .where(
                Chat.user_id == user_id,
                Message.role == "user",
                Message.created_at >= since,
            )
        )
        return int(result.scalar_one())

    # --- Stream ids ---

    async def create_stream_id(self, stream_id: str, chat_id: str) -> Stream:
        """Register a stream id for a chat, replacing older ones.

        Only the latest generation of a chat is resumable.
        """
        await self._session.execute(delete(Stream).where(Stream.chat_id == chat_id))
        stream = Stream(id=stream_id, chat_id=chat_id, created_at=datetime.now(UTC))
        self._session.add(stream)
        await self._session.flush()
        return stream

    async def get_stream_ids_by_chat_id(self, chat_id: str) -> list[str]:
        """Stream ids of a chat, oldest first."""
        result = await self._session.execute(
            select(Stream.id)
            .where(Stream.chat_id == chat_id)
            .order_by(Stream.created_at.asc())
        )
        return list(result.scalars().all())
