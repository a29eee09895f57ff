"""Authentication business logic."""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import InvalidCredentialsError, UserAlreadyExistsError
from app.core.security import (
    DUMMY_HASH,
    generate_session_token,
    hash_password,
    verify_password,
)
from app.models.user import User
from app.repositories.session_repo import SessionRepository
from app.repositories.user_repo import UserRepository
from app.schemas.auth_schema import (
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    SessionResponse,
    TokenResponse,
    UserResponse,
)
from app.services.token_service import TokenService

logger = structlog.get_logger()

GUEST_EMAIL_DOMAIN = "guest.local"


@dataclass(frozen=True)
class IssuedSession:
    """A freshly created web session and the cookie value backing it."""

    token: str
    response: SessionResponse


class AuthService:
    """Orchestrates registration, sign-in, guest sessions and sign-out."""

    def __init__(
        self,
        user_repo: UserRepository,
        session_repo: SessionRepository,
        token_service: TokenService,
        session: AsyncSession,
    ) -> None:
        self._user_repo = user_repo
        self._session_repo = session_repo
        self._token_service = token_service
        self._session = session

    async def register(self, request: RegisterRequest) -> IssuedSession:
        """Register a regular user and sign them in."""
        if await self._user_repo.exists_by_email(request.email):
            raise UserAlreadyExistsError

        hashed = await hash_password(request.password)
        user = await self._user_repo.create(
            email=request.email,
            hashed_password=hashed,
            name=request.name,
        )
        issued = await self._open_session(user)
        await self._session.commit()

        logger.info("User registered", email=user.email, user_id=user.id)
        return issued

    async def login(self, request: LoginRequest) -> IssuedSession:
        """Exchange credentials for a web session."""
        user = await self._authenticate(request)
        issued = await self._open_session(user)
        await self._session.commit()

        logger.info("User logged in", user_id=user.id)
        return issued

    async def guest(self) -> IssuedSession:
        """Create an anonymous guest user with its own session."""
        user = await self._user_repo.create(
            email=f"guest-{uuid.uuid4().hex}@{GUEST_EMAIL_DOMAIN}",
            hashed_password=None,
            user_type="guest",
        )
        issued = await self._open_session(user)
        await self._session.commit()

        logger.info("Guest session created", user_id=user.id)
        return issued

    async def issue_token(self, request: LoginRequest) -> TokenResponse:
        """Exchange credentials for a bearer token (mobile clients)."""
        user = await self._authenticate(request)
        logger.info("Bearer token issued", user_id=user.id)
        return TokenResponse(
            access_token=self._token_service.create_access_token(user.id, user.email),
            expires_in=self._token_service.expires_in,
        )

    async def logout(
        self,
        session_token: str | None,
        bearer_token: str | None,
    ) -> MessageResponse:
        """Drop the web session and revoke the bearer token, whichever is present."""
        if session_token:
            await self._session_repo.delete(session_token)
            await self._session.commit()
        if bearer_token:
            payload = await self._token_service.verify(bearer_token)
            if payload is not None:
                await self._token_service.blacklist_token(payload.jti, payload.exp)
        return MessageResponse(message="Successfully logged out")

    async def _authenticate(self, request: LoginRequest) -> User:
        user = await self._user_repo.find_by_email(request.email)

        if user is None or user.hashed_password is None:
            await verify_password(request.password, DUMMY_HASH)
            raise InvalidCredentialsError

        if not await verify_password(request.password, user.hashed_password):
            raise InvalidCredentialsError

        return user

    async def _open_session(self, user: User) -> IssuedSession:
        token = generate_session_token()
        expires_at = datetime.now(UTC) + timedelta(days=settings.auth.session_expire_days)
        await self._session_repo.create(token, user.id, expires_at)
        return IssuedSession(
            token=token,
            response=SessionResponse(
                user=UserResponse.model_validate(user),
                expires_at=expires_at,
            ),
        )
