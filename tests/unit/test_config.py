"""Tests for Settings and the domain config groups."""

import pytest
from pydantic import SecretStr, ValidationError

from app.core.config import Settings
from app.core.settings import (
    DatabaseConfig,
    EntitlementsConfig,
    FileUploadConfig,
    LLMConfig,
    MemoryConfig,
    RedisConfig,
    ServerConfig,
)


def _settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "jwt_secret_key": "secret",
        "database_url": "mysql+aiomysql://u:p@localhost/chat",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)  # type: ignore[arg-type]


class TestSettingsGroups:
    """Grouped, frozen views over the flat settings."""

    def test_defaults(self) -> None:
        settings = _settings()
        assert settings.llm.max_tool_steps == 5
        assert settings.llm.reasoning_budget_tokens == 10_000
        assert settings.entitlements.max_messages_per_day("guest") == 20
        assert settings.entitlements.max_messages_per_day("regular") == 100
        assert settings.media.transcription_model == "whisper-1"
        assert settings.file_upload.max_file_size_bytes == 10 * 1024 * 1024

    def test_groups_are_frozen(self) -> None:
        settings = _settings()
        with pytest.raises(ValidationError):
            settings.llm.max_tool_steps = 3  # type: ignore[misc]

    def test_redis_disabled_without_url(self) -> None:
        assert _settings(redis_url=None).redis.enabled is False
        assert _settings(redis_url="redis://localhost").redis.enabled is True

    def test_memory_disabled_without_key(self) -> None:
        assert _settings(supermemory_api_key="").memory.enabled is False
        assert _settings(supermemory_api_key="sm-key").memory.enabled is True

    def test_storage_base_url_trailing_slash_stripped(self) -> None:
        settings = _settings(blob_public_base_url="http://cdn.test/blob/")
        assert settings.storage.public_base_url == "http://cdn.test/blob"

    def test_max_tool_steps_bounds(self) -> None:
        with pytest.raises(ValidationError):
            _settings(max_tool_steps=0)


class TestDomainConfigs:
    """Behaviour of individual config models."""

    def test_mysql_url_gets_charset(self) -> None:
        config = DatabaseConfig(url=SecretStr("mysql+aiomysql://u:p@h/db"))
        assert config.async_url.endswith("?charset=utf8mb4")
        assert config.is_sqlite is False

    def test_sqlite_url_untouched(self) -> None:
        config = DatabaseConfig(url=SecretStr("sqlite+aiosqlite:///x.db"))
        assert config.async_url == "sqlite+aiosqlite:///x.db"
        assert config.is_sqlite is True

    def test_reasoning_model_detection(self) -> None:
        assert LLMConfig.is_reasoning_model("chat-model-reasoning") is True
        assert LLMConfig.is_reasoning_model("chat-model") is False

    def test_allowed_content_types_list(self) -> None:
        config = FileUploadConfig(
            max_file_size_mb=1, allowed_content_types="image/png, TEXT/PLAIN,"
        )
        assert config.allowed_content_types_list == ["image/png", "text/plain"]

    def test_entitlements_by_type(self) -> None:
        config = EntitlementsConfig(
            guest_max_messages_per_day=1, regular_max_messages_per_day=2
        )
        assert config.max_messages_per_day("guest") == 1
        assert config.max_messages_per_day("regular") == 2

    def test_memory_enabled(self) -> None:
        config = MemoryConfig(api_key=SecretStr("k"), base_url="http://m", search_limit=5)
        assert config.enabled is True

    def test_redis_enabled(self) -> None:
        assert RedisConfig(url=None, stream_ttl_seconds=60).enabled is False

    def test_server_base_url(self) -> None:
        assert ServerConfig(host="0.0.0.0", port=8004).base_url == "http://localhost:8004"
