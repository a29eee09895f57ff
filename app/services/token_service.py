"""Bearer token creation, validation, and blacklist management."""

import uuid
from datetime import UTC, datetime, timedelta

import jwt
import redis.asyncio as redis
import structlog

from app.core.config import settings
from app.core.exceptions import InvalidTokenError
from app.schemas.auth_schema import TokenPayload

logger = structlog.get_logger()

BLACKLIST_PREFIX = "token_blacklist:"
ACCESS_TOKEN_TYPE = "access"


class TokenService:
    """Manage bearer tokens for mobile clients.

    The Redis blacklist is optional; without Redis, revocation is a no-op
    and tokens stay valid until they expire.
    """

    def __init__(self, redis_client: redis.Redis | None) -> None:  # type: ignore[type-arg]
        self._redis = redis_client
        self._secret = settings.auth.secret_key.get_secret_value()
        self._algorithm = settings.auth.algorithm

    @property
    def expires_in(self) -> int:
        """Access token TTL in seconds."""
        return settings.auth.access_token_expire_minutes * 60

    def create_access_token(self, user_id: str, email: str | None) -> str:
        """Create a signed JWT access token."""
        now = datetime.now(UTC)
        expire = now + timedelta(seconds=self.expires_in)
        payload = {
            "sub": user_id,
            "email": email,
            "type": ACCESS_TOKEN_TYPE,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": expire,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode_token(self, token: str) -> TokenPayload:
        """Decode and validate a JWT token."""
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as e:
            raise InvalidTokenError(cause="Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(cause="Invalid token") from e

        try:
            return TokenPayload(
                sub=payload["sub"],
                email=payload.get("email"),
                type=payload["type"],
                jti=payload["jti"],
                exp=payload["exp"],
            )
        except KeyError as e:
            raise InvalidTokenError(cause=f"Missing claim {e}") from e

    async def verify(self, token: str) -> TokenPayload | None:
        """Return the payload of a valid, unrevoked access token, else None."""
        try:
            payload = self.decode_token(token)
        except InvalidTokenError:
            return None
        if payload.type != ACCESS_TOKEN_TYPE:
            return None
        if await self.is_blacklisted(payload.jti):
            logger.info("Rejected blacklisted token", user_id=payload.sub)
            return None
        return payload

    # --- Blacklist ---

    async def blacklist_token(self, jti: str, exp: int) -> None:
        """Add a token to the blacklist until it expires."""
        if self._redis is None:
            return
        ttl = exp - int(datetime.now(UTC).timestamp())
        if ttl > 0:
            await self._redis.setex(f"{BLACKLIST_PREFIX}{jti}", ttl, "1")

    async def is_blacklisted(self, jti: str) -> bool:
        """Check if a token is blacklisted."""
        if self._redis is None:
            return False
        result = await self._redis.get(f"{BLACKLIST_PREFIX}{jti}")
        return result is not None
