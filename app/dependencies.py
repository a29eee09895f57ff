"""Global dependencies for the application."""

from functools import lru_cache

import httpx
from fastapi import Depends, Request
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI
from openai import AsyncOpenAI
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import SessionFactory, get_async_session, get_session_factory
from app.core.exceptions import AuthenticationError
from app.core.http_client import get_http_client
from app.core.redis import get_redis
from app.core.settings.llm_config import LLMConfig
from app.repositories.chat_repo import ChatRepository
from app.repositories.session_repo import SessionRepository
from app.repositories.user_repo import UserRepository
from app.schemas.auth_schema import Principal
from app.services.auth_service import AuthService
from app.services.chat_stream_service import ChatStreamService, ModelFactory
from app.services.conversation_service import ConversationService
from app.services.principal_resolver import (
    BearerTokenStrategy,
    PrincipalResolver,
    SessionCookieStrategy,
)
from app.services.resumable_stream import ResumableStreamRegistry, stream_context
from app.services.storage_service import BlobStorage, LocalBlobStorage
from app.services.token_service import TokenService
from app.services.transcription_service import TranscriptionService

# Room left for the visible answer on top of the thinking budget.
ANSWER_TOKENS = 4096


# --- Language models ---


@lru_cache
def get_language_model(model_id: str, thinking_budget: int | None = None) -> BaseChatModel:
    """Get the LLM for a chat model id based on the configured provider.

    Reasoning ids map to the provider's reasoning variant; a thinking budget
    enables Anthropic extended thinking.
    """
    llm_config = settings.llm
    reasoning = LLMConfig.is_reasoning_model(model_id)
    match llm_config.provider:
        case "openai":
            return ChatOpenAI(
                model=(
                    llm_config.openai_reasoning_model
                    if reasoning
                    else llm_config.openai_model
                ),
                api_key=llm_config.openai_api_key,
                streaming=True,
            )
        case "anthropic":
            if thinking_budget:
                return ChatAnthropic(  # type: ignore[call-arg]
                    model_name=llm_config.anthropic_model,
                    api_key=llm_config.anthropic_api_key,
                    streaming=True,
                    max_tokens=thinking_budget + ANSWER_TOKENS,
                    thinking={"type": "enabled", "budget_tokens": thinking_budget},
                )
            return ChatAnthropic(  # type: ignore[call-arg]
                model_name=llm_config.anthropic_model,
                api_key=llm_config.anthropic_api_key,
                streaming=True,
            )
        case _:
            raise ValueError(f"Unsupported LLM provider: {llm_config.provider}")


def get_model_factory() -> ModelFactory:
    """Get the callable mapping chat model ids to LLM instances."""
    return get_language_model


# --- Clients ---


@lru_cache
def get_openai_client() -> AsyncOpenAI:
    """Get the OpenAI client used for images and transcription."""
    return AsyncOpenAI(api_key=settings.llm.openai_api_key.get_secret_value())


@lru_cache
def get_blob_storage() -> BlobStorage:
    """Get the blob storage for uploads and generated images."""
    return LocalBlobStorage(settings.storage.path, settings.storage.public_base_url)


def get_stream_registry() -> ResumableStreamRegistry | None:
    """Get the resumable-stream registry; None when Redis is unavailable."""
    return stream_context.get()


# --- Auth dependencies ---


def get_token_service() -> TokenService:
    """Get TokenService backed by the active Redis client."""
    return TokenService(get_redis())


def get_principal_resolver(
    token_service: TokenService = Depends(get_token_service),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> PrincipalResolver:
    """Bearer token first, then the session cookie."""
    return PrincipalResolver(
        [
            BearerTokenStrategy(token_service),
            SessionCookieStrategy(session_factory),
        ]
    )


def get_cookie_principal_resolver(
    session_factory: SessionFactory = Depends(get_session_factory),
) -> PrincipalResolver:
    """Session cookie only, for web-only endpoints."""
    return PrincipalResolver([SessionCookieStrategy(session_factory)])


async def get_optional_principal(
    request: Request,
    resolver: PrincipalResolver = Depends(get_principal_resolver),
) -> Principal | None:
    """Resolve the caller, if any."""
    return await resolver.resolve(request)


async def require_principal(
    principal: Principal | None = Depends(get_optional_principal),
) -> Principal:
    """Resolve the caller or fail with ``unauthorized:chat``."""
    if principal is None:
        raise AuthenticationError()
    return principal


async def require_cookie_principal(
    request: Request,
    resolver: PrincipalResolver = Depends(get_cookie_principal_resolver),
) -> Principal:
    """Resolve a web-session caller or fail with ``unauthorized:chat``."""
    principal = await resolver.resolve(request)
    if principal is None:
        raise AuthenticationError()
    return principal


# --- Repositories ---


def get_user_repository(
    session: AsyncSession = Depends(get_async_session),
) -> UserRepository:
    """Get UserRepository bound to the current session."""
    return UserRepository(session)


def get_session_repository(
    session: AsyncSession = Depends(get_async_session),
) -> SessionRepository:
    """Get SessionRepository bound to the current session."""
    return SessionRepository(session)


def get_chat_repository(
    session: AsyncSession = Depends(get_async_session),
) -> ChatRepository:
    """Get ChatRepository bound to the current session."""
    return ChatRepository(session)


# --- Services ---


def get_auth_service(
    user_repo: UserRepository = Depends(get_user_repository),
    session_repo: SessionRepository = Depends(get_session_repository),
    token_service: TokenService = Depends(get_token_service),
    session: AsyncSession = Depends(get_async_session),
) -> AuthService:
    """Get AuthService with all dependencies."""
    return AuthService(
        user_repo=user_repo,
        session_repo=session_repo,
        token_service=token_service,
        session=session,
    )


def get_conversation_service(
    chat_repo: ChatRepository = Depends(get_chat_repository),
    principal: Principal = Depends(require_principal),
) -> ConversationService:
    """Get ConversationService for the authenticated caller."""
    return ConversationService(chat_repo=chat_repo, principal=principal)


def get_chat_stream_service(
    session: AsyncSession = Depends(get_async_session),
    session_factory: SessionFactory = Depends(get_session_factory),
    model_factory: ModelFactory = Depends(get_model_factory),
    http_client: httpx.AsyncClient = Depends(get_http_client),
    blob_storage: BlobStorage = Depends(get_blob_storage),
    openai_client: AsyncOpenAI = Depends(get_openai_client),
    stream_registry: ResumableStreamRegistry | None = Depends(get_stream_registry),
) -> ChatStreamService:
    """Get ChatStreamService with its collaborators."""
    return ChatStreamService(
        session=session,
        session_factory=session_factory,
        model_factory=model_factory,
        http_client=http_client,
        blob_storage=blob_storage,
        openai_client=openai_client,
        stream_registry=stream_registry,
    )


def get_transcription_service(
    openai_client: AsyncOpenAI = Depends(get_openai_client),
) -> TranscriptionService:
    """Get TranscriptionService using the configured speech model."""
    return TranscriptionService(openai_client, settings.media.transcription_model)
