"""Authentication endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status

from app.core.config import settings
from app.core.limiter import limiter
from app.dependencies import get_auth_service
from app.schemas.auth_schema import (
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    SessionResponse,
    TokenResponse,
)
from app.services.auth_service import AuthService, IssuedSession
from app.services.principal_resolver import extract_bearer_token

router = APIRouter(prefix="/api/auth", tags=["auth"])

AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


def _set_session_cookie(response: Response, issued: IssuedSession) -> None:
    response.set_cookie(
        key=settings.auth.session_cookie_name,
        value=issued.token,
        max_age=settings.auth.session_expire_days * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=settings.app.secure_cookies,
    )


@router.post(
    "/register",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    body: RegisterRequest,
    response: Response,
    auth_service: AuthServiceDep,
) -> SessionResponse:
    """Register a new user and start a web session."""
    issued = await auth_service.register(body)
    _set_session_cookie(response, issued)
    return issued.response


@router.post("/login", response_model=SessionResponse)
@limiter.limit(settings.auth.login_rate_limit)
async def login(
    request: Request,
    body: LoginRequest,
    response: Response,
    auth_service: AuthServiceDep,
) -> SessionResponse:
    """Authenticate and start a web session."""
    issued = await auth_service.login(body)
    _set_session_cookie(response, issued)
    return issued.response


@router.post("/guest", response_model=SessionResponse)
async def guest(
    response: Response,
    auth_service: AuthServiceDep,
) -> SessionResponse:
    """Start a session for a new guest user."""
    issued = await auth_service.guest()
    _set_session_cookie(response, issued)
    return issued.response


@router.post("/token", response_model=TokenResponse)
@limiter.limit(settings.auth.login_rate_limit)
async def token(
    request: Request,
    body: LoginRequest,
    auth_service: AuthServiceDep,
) -> TokenResponse:
    """Exchange credentials for a bearer token (mobile clients)."""
    return await auth_service.issue_token(body)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    auth_service: AuthServiceDep,
) -> MessageResponse:
    """End the web session and revoke the bearer token, if present."""
    result = await auth_service.logout(
        session_token=request.cookies.get(settings.auth.session_cookie_name),
        bearer_token=extract_bearer_token(request),
    )
    response.delete_cookie(settings.auth.session_cookie_name)
    return result
