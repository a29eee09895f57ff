"""User repository for database operations."""

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User


class UserRepository:
    """Encapsulates user-related database queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_email(self, email: str) -> User | None:
        """Find a user by email address."""
        result = await self._session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def create(
        self,
        email: str,
        hashed_password: str | None,
        name: str | None = None,
        user_type: str = "regular",
    ) -> User:
        """Create a new user record."""
        user = User(
            email=email,
            hashed_password=hashed_password,
            name=name,
            type=user_type,
            created_at=datetime.now(UTC),
        )
        self._session.add(user)
        await self._session.flush()
        return user

    async def exists_by_email(self, email: str) -> bool:
        """Check if a user with this email exists."""
        result = await self._session.execute(select(User.id).where(User.email == email))
        return result.scalar_one_or_none() is not None
