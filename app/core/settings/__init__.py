"""Domain-specific configuration models."""

from app.core.settings.app_config import AppConfig
from app.core.settings.auth_config import AuthConfig
from app.core.settings.database_config import DatabaseConfig
from app.core.settings.entitlements_config import EntitlementsConfig, UserType
from app.core.settings.file_upload_config import FileUploadConfig
from app.core.settings.llm_config import LLMConfig
from app.core.settings.media_config import MediaConfig
from app.core.settings.memory_config import MemoryConfig
from app.core.settings.redis_config import RedisConfig
from app.core.settings.server_config import ServerConfig
from app.core.settings.storage_config import StorageConfig

__all__ = [
    "AppConfig",
    "AuthConfig",
    "DatabaseConfig",
    "EntitlementsConfig",
    "FileUploadConfig",
    "LLMConfig",
    "MediaConfig",
    "MemoryConfig",
    "RedisConfig",
    "ServerConfig",
    "StorageConfig",
    "UserType",
]
