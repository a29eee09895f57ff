"""Long-term memory service configuration."""

from pydantic import BaseModel, SecretStr


class MemoryConfig(BaseModel, frozen=True):
    """Memory API settings."""

    api_key: SecretStr
    base_url: str
    search_limit: int

    @property
    def enabled(self) -> bool:
        """Check if an API key is configured."""
        return bool(self.api_key.get_secret_value())
