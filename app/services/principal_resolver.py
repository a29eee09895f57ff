"""Resolve the caller of a request to a Principal.

Two strategies share one interface and are tried in a fixed order: the
bearer token used by mobile clients first, then the web session cookie.
Mobile requests may carry stale cookies, so the token must win.
"""

from collections.abc import Sequence
from typing import Protocol

import structlog
from fastapi import Request

from app.core.config import settings
from app.core.database import SessionFactory
from app.repositories.session_repo import SessionRepository
from app.schemas.auth_schema import Principal
from app.services.token_service import TokenService

logger = structlog.get_logger()

BEARER_PREFIX = "bearer "


def extract_bearer_token(request: Request) -> str | None:
    """Return the token of an ``Authorization: Bearer`` header, if any."""
    header = request.headers.get("authorization")
    if not header or not header.lower().startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX) :].strip()
    return token or None


class PrincipalStrategy(Protocol):
    """One way of establishing who is calling."""

    name: str

    async def resolve(self, request: Request) -> Principal | None: ...


class BearerTokenStrategy:
    """Verify a signed bearer token. Token callers are always regular users."""

    name = "bearer"

    def __init__(self, token_service: TokenService) -> None:
        self._token_service = token_service

    async def resolve(self, request: Request) -> Principal | None:
        token = extract_bearer_token(request)
        if token is None:
            return None
        payload = await self._token_service.verify(token)
        if payload is None:
            return None
        return Principal(
            id=payload.sub,
            email=payload.email,
            type="regular",
            auth_method="bearer",
        )


class SessionCookieStrategy:
    """Look the session cookie up in the session store."""

    name = "session"

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def resolve(self, request: Request) -> Principal | None:
        token = request.cookies.get(settings.auth.session_cookie_name)
        if not token:
            return None
        async with self._session_factory() as session:
            user = await SessionRepository(session).find_active_user(token)
        if user is None:
            return None
        return Principal(
            id=user.id,
            email=user.email,
            name=user.name,
            type="guest" if user.type == "guest" else "regular",
            auth_method="session",
        )


class PrincipalResolver:
    """Try strategies in order; first identity wins.

    Never raises: a failing strategy is logged and counts as no identity.
    """

    def __init__(self, strategies: Sequence[PrincipalStrategy]) -> None:
        self._strategies = tuple(strategies)

    async def resolve(self, request: Request) -> Principal | None:
        for strategy in self._strategies:
            try:
                principal = await strategy.resolve(request)
            except Exception:
                logger.warning(
                    "Principal strategy failed",
                    strategy=strategy.name,
                    exc_info=True,
                )
                continue
            if principal is not None:
                return principal
        return None
