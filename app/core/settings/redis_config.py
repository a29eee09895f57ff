"""Redis connection configuration."""

from pydantic import BaseModel


class RedisConfig(BaseModel, frozen=True):
    """Redis connection settings.

    Redis is optional: without a URL the token blacklist and resumable
    streams are disabled.
    """

    url: str | None
    stream_ttl_seconds: int

    @property
    def enabled(self) -> bool:
        """Check if a Redis URL is configured."""
        return bool(self.url)
