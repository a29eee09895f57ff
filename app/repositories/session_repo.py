"""Web session repository."""

from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.models.user_session import UserSession


class SessionRepository:
    """Encapsulates cookie-session queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, token: str, user_id: str, expires_at: datetime) -> UserSession:
        """Persist a new session token."""
        record = UserSession(token=token, user_id=user_id, expires_at=expires_at)
        self._session.add(record)
        await self._session.flush()
        return record

    async def find_active_user(self, token: str) -> User | None:
        """Return the user behind an unexpired session token."""
        result = await self._session.execute(
            select(User)
            .join(UserSession, UserSession.user_id == User.id)
            .where(
                UserSession.token == token,
                UserSession.expires_at > datetime.now(UTC),
            )
        )
        return result.scalar_one_or_none()

    async def delete(self, token: str) -> None:
        """Remove a session token."""
        await self._session.execute(
            delete(UserSession).where(UserSession.token == token)
        )
