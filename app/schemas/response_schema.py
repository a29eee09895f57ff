"""Shared response schemas."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Structured error with status, machine-readable code and message."""

    status: int
    code: str
    message: str
    cause: str | None = None


class HealthResponse(BaseModel):
    """Health check payload."""

    status: str = "healthy"
