"""Application exception classes and handlers.

Error codes follow the ``<type>:<surface>`` convention (for example
``unauthorized:chat``) so clients can pick a specific message to render.
"""

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

ERROR_MESSAGES: dict[str, str] = {
    "bad_request:api": (
        "The request couldn't be processed. Please check your input and try again."
    ),
    "bad_request:activate_gateway": (
        "The model gateway requires a valid credit card on file to service "
        "requests. Please add a card to your gateway account and try again."
    ),
    "unauthorized:auth": "You need to sign in before continuing.",
    "forbidden:auth": "Your account does not have access to this feature.",
    "rate_limit:auth": "Too many attempts. Please try again later.",
    "unauthorized:chat": "You need to sign in to view this chat. Please sign in and try again.",
    "forbidden:chat": "This chat belongs to another user. Please check the chat ID and try again.",
    "not_found:chat": "The requested chat was not found. Please check the chat ID and try again.",
    "rate_limit:chat": (
        "You have exceeded your maximum number of messages for the day. "
        "Please try again later."
    ),
    "offline:chat": (
        "We're having trouble sending your message. "
        "Please check your internet connection and try again."
    ),
    "not_found:database": "The requested resource was not found.",
}

STATUS_BY_TYPE: dict[str, int] = {
    "bad_request": 400,
    "unauthorized": 401,
    "forbidden": 403,
    "not_found": 404,
    "rate_limit": 429,
    "offline": 503,
}

GENERIC_MESSAGE = "Something went wrong. Please try again later."


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        cause: str | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        self.cause = cause
        super().__init__(message)

    @classmethod
    def from_code(cls, code: str, cause: str | None = None) -> "AppException":
        """Build an error from a ``<type>:<surface>`` code."""
        error_type = code.split(":", 1)[0]
        return cls(
            message=ERROR_MESSAGES.get(code, GENERIC_MESSAGE),
            code=code,
            status_code=STATUS_BY_TYPE.get(error_type, 500),
            cause=cause,
        )


class _CodedError(AppException):
    """Error whose status is derived from its type prefix."""

    error_type: str = "bad_request"

    def __init__(self, surface: str = "api", cause: str | None = None) -> None:
        code = f"{self.error_type}:{surface}"
        super().__init__(
            message=ERROR_MESSAGES.get(code, GENERIC_MESSAGE),
            code=code,
            status_code=STATUS_BY_TYPE[self.error_type],
            cause=cause,
        )


# --- Bad request (400) ---


class BadRequestError(_CodedError):
    """Malformed input or schema violation."""

    error_type = "bad_request"


class ActivateGatewayError(AppException):
    """Upstream billing precondition failure."""

    def __init__(self) -> None:
        code = "bad_request:activate_gateway"
        super().__init__(
            message=ERROR_MESSAGES[code],
            code=code,
            status_code=400,
        )


# --- Authentication (401) ---


class AuthenticationError(_CodedError):
    """No resolvable principal."""

    error_type = "unauthorized"

    def __init__(self, surface: str = "chat", cause: str | None = None) -> None:
        super().__init__(surface=surface, cause=cause)


class InvalidTokenError(AuthenticationError):
    """Bearer token is malformed, expired or revoked."""

    def __init__(self, cause: str | None = None) -> None:
        super().__init__(surface="auth", cause=cause)


class InvalidCredentialsError(AppException):
    """Invalid email or password."""

    def __init__(self) -> None:
        super().__init__(
            message="Invalid email or password",
            code="unauthorized:credentials",
            status_code=401,
        )


# --- Authorization (403) ---


class AuthorizationError(_CodedError):
    """Principal resolved but lacks ownership or visibility rights."""

    error_type = "forbidden"

    def __init__(self, surface: str = "chat", cause: str | None = None) -> None:
        super().__init__(surface=surface, cause=cause)


# --- Not Found (404) ---


class NotFoundError(_CodedError):
    """Referenced resource is absent."""

    error_type = "not_found"

    def __init__(self, surface: str = "chat", cause: str | None = None) -> None:
        super().__init__(surface=surface, cause=cause)


# --- Conflict (409) ---


class UserAlreadyExistsError(AppException):
    """User with this email already exists."""

    def __init__(self) -> None:
        super().__init__(
            message="User with this email already exists",
            code="conflict:user",
            status_code=409,
        )


# --- Rate Limit (429) ---


class RateLimitError(_CodedError):
    """Daily message quota exceeded."""

    error_type = "rate_limit"

    def __init__(self, surface: str = "chat", cause: str | None = None) -> None:
        super().__init__(surface=surface, cause=cause)


# --- Upstream (503) ---


class OfflineError(_CodedError):
    """Model provider unreachable or failed before streaming."""

    error_type = "offline"

    def __init__(self, surface: str = "chat", cause: str | None = None) -> None:
        super().__init__(surface=surface, cause=cause)


# --- Exception Handlers ---


def error_body(exc: AppException) -> dict[str, Any]:
    """Serialize an AppException into the error response shape."""
    body: dict[str, Any] = {
        "status": exc.status_code,
        "code": exc.code,
        "message": exc.message,
    }
    if exc.cause:
        body["cause"] = exc.cause
    return body


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Central exception handler for AppException."""
    return JSONResponse(status_code=exc.status_code, content=error_body(exc))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures as ``bad_request:api``."""
    errors = exc.errors()
    cause = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in errors[:5]
    )
    return JSONResponse(
        status_code=400,
        content=error_body(BadRequestError(cause=cause or None)),
    )
