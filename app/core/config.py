"""Application configuration using Pydantic Settings V2."""

from functools import cached_property
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.settings import (
    AppConfig,
    AuthConfig,
    DatabaseConfig,
    EntitlementsConfig,
    FileUploadConfig,
    LLMConfig,
    MediaConfig,
    MemoryConfig,
    RedisConfig,
    ServerConfig,
    StorageConfig,
)

DEFAULT_UPLOAD_CONTENT_TYPES = ",".join(
    [
        "image/jpeg",
        "image/png",
        "image/heic",
        "image/heif",
        "application/pdf",
        "text/plain",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "text/csv",
        "application/json",
    ]
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Flat fields are loaded directly from environment variables.
    Domain properties provide grouped access (e.g. settings.llm.provider).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM Provider
    llm_provider: Literal["openai", "anthropic"] = Field(
        default="openai",
        description="LLM provider to use",
    )

    # OpenAI
    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="OpenAI API key (chat, images, transcription)",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model name",
    )
    openai_reasoning_model: str = Field(
        default="o4-mini",
        description="OpenAI model used for reasoning chat models",
    )

    # Anthropic
    anthropic_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Anthropic API key",
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Anthropic model name",
    )

    # Chat pipeline
    default_chat_model: str = Field(
        default="chat-model",
        description="Chat model id used when the client does not pick one",
    )
    reasoning_budget_tokens: int = Field(
        default=10_000,
        ge=1024,
        description="Extended thinking budget for reasoning models",
    )
    max_tool_steps: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum model steps per chat turn",
    )
    smooth_stream_delay_ms: int = Field(
        default=10,
        ge=0,
        le=1000,
        description="Delay between smoothed word chunks",
    )
    title_wait_seconds: float = Field(
        default=10.0,
        ge=0,
        description="How long a stream waits for the chat title before closing",
    )

    # App
    app_name: str = Field(
        default="ai-chatbot",
        description="Application name",
    )
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Debug mode",
    )

    # File Upload
    max_file_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum file size in MB",
    )
    allowed_content_types: str = Field(
        default=DEFAULT_UPLOAD_CONTENT_TYPES,
        description="Comma-separated list of accepted upload content types",
    )

    # Blob storage
    blob_storage_path: Path = Field(
        default=Path("./data/blob"),
        description="Directory where uploaded and generated files are stored",
    )
    blob_public_base_url: str = Field(
        default="http://localhost:8004/blob",
        description="Public URL prefix for stored blobs",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    port: int = Field(
        default=8004,
        ge=1,
        le=65535,
        description="Server port",
    )

    # Auth
    jwt_secret_key: SecretStr = Field(
        description="JWT secret key for bearer token signing",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )
    jwt_access_token_expire_minutes: int = Field(
        default=60 * 24 * 30,
        ge=1,
        le=60 * 24 * 90,
        description="Bearer token expiration in minutes",
    )
    session_cookie_name: str = Field(
        default="session_token",
        description="Name of the web session cookie",
    )
    session_expire_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Web session lifetime in days",
    )
    login_rate_limit: str = Field(
        default="5/minute",
        description="Login and token endpoint rate limit",
    )

    # Entitlements
    guest_max_messages_per_day: int = Field(
        default=20,
        ge=0,
        description="Daily message quota for guest users",
    )
    regular_max_messages_per_day: int = Field(
        default=100,
        ge=0,
        description="Daily message quota for regular users",
    )

    # Memory
    supermemory_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Memory service API key (empty disables memory)",
    )
    supermemory_base_url: str = Field(
        default="https://api.supermemory.ai",
        description="Memory service base URL",
    )
    memory_search_limit: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Number of memories injected into the prompt",
    )

    # Media
    image_model: str = Field(
        default="dall-e-3",
        description="Image generation model",
    )
    image_size: str = Field(
        default="1024x1024",
        description="Generated image size",
    )
    transcription_model: str = Field(
        default="whisper-1",
        description="Speech-to-text model",
    )

    # Database
    database_url: SecretStr = Field(
        description="Async database URL (mysql+aiomysql://...)",
    )

    # Redis
    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL (optional)",
    )
    stream_ttl_seconds: int = Field(
        default=60 * 60 * 24,
        ge=60,
        description="Retention of resumable stream buffers",
    )

    # --- Domain properties ---

    @cached_property
    def llm(self) -> LLMConfig:
        """LLM provider configuration."""
        return LLMConfig(
            provider=self.llm_provider,
            openai_api_key=self.openai_api_key,
            openai_model=self.openai_model,
            openai_reasoning_model=self.openai_reasoning_model,
            anthropic_api_key=self.anthropic_api_key,
            anthropic_model=self.anthropic_model,
            default_chat_model=self.default_chat_model,
            reasoning_budget_tokens=self.reasoning_budget_tokens,
            max_tool_steps=self.max_tool_steps,
            smooth_stream_delay_ms=self.smooth_stream_delay_ms,
            title_wait_seconds=self.title_wait_seconds,
        )

    @cached_property
    def app(self) -> AppConfig:
        """Application environment configuration."""
        return AppConfig(
            name=self.app_name,
            env=self.app_env,
            debug=self.debug,
        )

    @cached_property
    def file_upload(self) -> FileUploadConfig:
        """File upload configuration."""
        return FileUploadConfig(
            max_file_size_mb=self.max_file_size_mb,
            allowed_content_types=self.allowed_content_types,
        )

    @cached_property
    def storage(self) -> StorageConfig:
        """Blob storage configuration."""
        return StorageConfig(
            path=self.blob_storage_path,
            public_base_url=self.blob_public_base_url.rstrip("/"),
        )

    @cached_property
    def server(self) -> ServerConfig:
        """Server configuration."""
        return ServerConfig(
            host=self.host,
            port=self.port,
        )

    @cached_property
    def auth(self) -> AuthConfig:
        """Bearer token and session cookie configuration."""
        return AuthConfig(
            secret_key=self.jwt_secret_key,
            algorithm=self.jwt_algorithm,
            access_token_expire_minutes=self.jwt_access_token_expire_minutes,
            session_cookie_name=self.session_cookie_name,
            session_expire_days=self.session_expire_days,
            login_rate_limit=self.login_rate_limit,
        )

    @cached_property
    def entitlements(self) -> EntitlementsConfig:
        """Daily message quotas."""
        return EntitlementsConfig(
            guest_max_messages_per_day=self.guest_max_messages_per_day,
            regular_max_messages_per_day=self.regular_max_messages_per_day,
        )

    @cached_property
    def memory(self) -> MemoryConfig:
        """Memory service configuration."""
        return MemoryConfig(
            api_key=self.supermemory_api_key,
            base_url=self.supermemory_base_url.rstrip("/"),
            search_limit=self.memory_search_limit,
        )

    @cached_property
    def media(self) -> MediaConfig:
        """Image and transcription model configuration."""
        return MediaConfig(
            image_model=self.image_model,
            image_size=self.image_size,
            transcription_model=self.transcription_model,
        )

    @cached_property
    def database(self) -> DatabaseConfig:
        """Database connection configuration."""
        return DatabaseConfig(url=self.database_url)

    @cached_property
    def redis(self) -> RedisConfig:
        """Redis connection configuration."""
        return RedisConfig(
            url=self.redis_url or None,
            stream_ttl_seconds=self.stream_ttl_seconds,
        )

    # --- Convenience properties (delegate to domain configs) ---

    @property
    def max_file_size_bytes(self) -> int:
        """Get maximum file size in bytes."""
        return self.file_upload.max_file_size_bytes

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app.is_development


# Global settings instance
settings = Settings()
