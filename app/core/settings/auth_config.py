"""Authentication configuration."""

from pydantic import BaseModel, SecretStr


class AuthConfig(BaseModel, frozen=True):
    """Bearer token and cookie session settings."""

    secret_key: SecretStr
    algorithm: str
    access_token_expire_minutes: int
    session_cookie_name: str
    session_expire_days: int
    login_rate_limit: str
