"""Authentication request/response schemas."""

import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

AuthMethod = Literal["bearer", "session"]


class RegisterRequest(BaseModel):
    """User registration request."""

    email: EmailStr = Field(description="User email address")
    password: str = Field(
        min_length=8,
        max_length=128,
        description="Password (8-128 chars, must include a letter and a digit)",
    )
    name: str | None = Field(
        default=None,
        min_length=1,
        max_length=100,
        description="Display name",
    )

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()

    @field_validator("password")
    @classmethod
    def validate_password_complexity(cls, v: str) -> str:
        if not re.search(r"[A-Za-z]", v):
            raise ValueError("Password must contain at least one letter")
        if not re.search(r"\d", v):
            raise ValueError("Password must contain at least one digit")
        return v


class LoginRequest(BaseModel):
    """Email/password credentials."""

    email: EmailStr = Field(description="User email address")
    password: str = Field(description="User password")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()


class TokenResponse(BaseModel):
    """Bearer token for mobile clients."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token TTL in seconds")


class UserResponse(BaseModel):
    """Public user representation."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    email: str
    name: str | None = None
    type: Literal["guest", "regular"]
    created_at: datetime | None = None


class SessionResponse(BaseModel):
    """Result of a cookie-session sign-in."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    expires_at: datetime


class MessageResponse(BaseModel):
    """Simple message response."""

    model_config = ConfigDict(frozen=True)

    message: str


class TokenPayload(BaseModel):
    """Decoded JWT payload."""

    model_config = ConfigDict(frozen=True)

    sub: str
    email: str | None = None
    type: str
    jti: str
    exp: int


class Principal(BaseModel):
    """Authenticated identity attached to a request."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str | None = None
    name: str | None = None
    type: Literal["guest", "regular"] = "regular"
    auth_method: AuthMethod
