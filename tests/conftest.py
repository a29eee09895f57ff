"""Pytest configuration and fixtures."""

import os
import tempfile
import uuid
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

_TEST_DB = Path(tempfile.gettempdir()) / f"chat-test-{uuid.uuid4().hex}.db"

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-jwt-signing-32b")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB}")
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("SMOOTH_STREAM_DELAY_MS", "0")
os.environ.setdefault("TITLE_WAIT_SECONDS", "5")
os.environ.setdefault("SUPERMEMORY_API_KEY", "")

import fakeredis.aioredis  # noqa: E402
import httpx  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from langchain_core.language_models import BaseChatModel  # noqa: E402
from langchain_core.messages import AIMessage  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from app.core.database import (  # noqa: E402
    Base,
    SessionFactory,
    async_session_factory,
    engine,
)
from app.core.limiter import limiter  # noqa: E402
from app.models.chat import Chat  # noqa: F401, E402
from app.models.document import Document, Suggestion  # noqa: F401, E402
from app.models.message import Message  # noqa: F401, E402
from app.models.stream import Stream  # noqa: F401, E402
from app.models.user import User  # noqa: E402
from app.models.user_session import UserSession  # noqa: F401, E402
from app.repositories.session_repo import SessionRepository  # noqa: E402
from app.repositories.user_repo import UserRepository  # noqa: E402
from app.services.resumable_stream import ResumableStreamRegistry  # noqa: E402
from app.services.storage_service import LocalBlobStorage  # noqa: E402
from app.services.token_service import TokenService  # noqa: E402
from app.services.ui_stream import UIMessageStreamWriter  # noqa: E402
from app.tools.context import ToolContext  # noqa: E402

# --- Test DB (SQLite file, shared by request and background sessions) ---


@pytest.fixture(autouse=True)
async def setup_db() -> AsyncGenerator[None, None]:
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory() -> SessionFactory:
    """Session factory bound to the test database."""
    return async_session_factory


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a raw async session for repository tests."""
    async with async_session_factory() as session:
        yield session


# --- Test Redis (fakeredis) ---


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Create a fresh fake Redis client."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis(
    fake_redis: fakeredis.aioredis.FakeRedis, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Patch the global redis_client used by get_redis()."""
    monkeypatch.setattr("app.core.redis.redis_client", fake_redis)


@pytest.fixture
def stream_registry(fake_redis: fakeredis.aioredis.FakeRedis) -> ResumableStreamRegistry:
    """Resumable-stream registry with fast polling."""
    return ResumableStreamRegistry(
        fake_redis, ttl_seconds=60, poll_interval=0.01, idle_timeout=0.5
    )


@pytest.fixture(autouse=True)
def reset_limiter() -> None:
    """Clear slowapi counters between tests."""
    limiter.reset()


# --- Users and credentials ---


async def create_user(
    session_factory: SessionFactory,
    email: str | None = None,
    user_type: str = "regular",
) -> User:
    """Insert a user row and return it."""
    async with session_factory() as session:
        user = await UserRepository(session).create(
            email=email or f"user-{uuid.uuid4().hex[:8]}@test.com",
            hashed_password=None,
            name="Test User",
            user_type=user_type,
        )
        await session.commit()
    return user


async def create_session_cookie(session_factory: SessionFactory, user_id: str) -> str:
    """Open a web session for a user and return its cookie value."""
    token = uuid.uuid4().hex
    async with session_factory() as session:
        await SessionRepository(session).create(
            token, user_id, datetime.now(UTC) + timedelta(days=1)
        )
        await session.commit()
    return token


def make_auth_headers(
    fake_redis: fakeredis.aioredis.FakeRedis,
    user_id: str,
    email: str = "test@test.com",
) -> dict[str, str]:
    """Generate Authorization headers with a valid access token."""
    token = TokenService(fake_redis).create_access_token(user_id=user_id, email=email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token_service(fake_redis: fakeredis.aioredis.FakeRedis) -> TokenService:
    """Create a TokenService backed by fake Redis."""
    return TokenService(fake_redis)


@pytest.fixture
async def regular_user(session_factory: SessionFactory) -> User:
    return await create_user(session_factory, email="owner@test.com")


@pytest.fixture
async def guest_user(session_factory: SessionFactory) -> User:
    return await create_user(session_factory, user_type="guest")


# --- Mock LLM ---


@pytest.fixture
def mock_llm() -> MagicMock:
    """Create a mock LLM for testing."""
    mock = MagicMock(spec=BaseChatModel)
    mock.ainvoke = AsyncMock(return_value=AIMessage(content="Weather in Paris"))
    mock.astream = MagicMock()
    return mock


@pytest.fixture
def model_factory(mock_llm: MagicMock) -> Callable[[str, int | None], MagicMock]:
    """Model factory returning the mock LLM for every model id."""
    calls: list[tuple[str, int | None]] = []

    def factory(model_id: str, thinking_budget: int | None = None) -> MagicMock:
        calls.append((model_id, thinking_budget))
        return mock_llm

    factory.calls = calls  # type: ignore[attr-defined]
    return factory


class FakeAgent:
    """Stand-in for a compiled LangGraph agent replaying scripted events."""

    def __init__(self, events: list[tuple[str, Any]], error: Exception | None = None):
        self.events = events
        self.error = error
        self.inputs: dict[str, Any] | None = None
        self.config: dict[str, Any] | None = None

    async def astream(
        self,
        inputs: dict[str, Any],
        config: dict[str, Any] | None = None,
        stream_mode: Any = None,
    ) -> AsyncIterator[tuple[str, Any]]:
        self.inputs = inputs
        self.config = config
        for event in self.events:
            yield event
        if self.error is not None:
            raise self.error


@pytest.fixture
def fake_agent(monkeypatch: pytest.MonkeyPatch) -> Callable[..., MagicMock]:
    """Patch agent construction; returns a function scripting the next agent.

    The returned mock records the ``create_react_agent`` call arguments.
    """

    def script(events: list[tuple[str, Any]], error: Exception | None = None) -> MagicMock:
        agent = FakeAgent(events, error)
        factory = MagicMock(return_value=agent)
        factory.agent = agent
        monkeypatch.setattr(
            "app.services.chat_stream_service.create_react_agent", factory
        )
        return factory

    return script


# --- Outbound HTTP ---


def default_http_handler(request: httpx.Request) -> httpx.Response:
    """Serve attachments under ``files.test``; everything else is 404."""
    if request.url.host == "files.test":
        return httpx.Response(
            200, content=b"file body", headers={"content-type": "text/plain"}
        )
    return httpx.Response(404)


@pytest.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(default_http_handler)
    ) as client:
        yield client


@pytest.fixture
def blob_storage(tmp_path: Path) -> LocalBlobStorage:
    return LocalBlobStorage(tmp_path / "blob", "http://test/blob")


@pytest.fixture
def openai_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def tool_context(
    session_factory: SessionFactory,
    http_client: httpx.AsyncClient,
    mock_llm: MagicMock,
    blob_storage: LocalBlobStorage,
    openai_client: MagicMock,
) -> ToolContext:
    """Tool context with a fresh writer and test collaborators."""
    return ToolContext(
        writer=UIMessageStreamWriter(),
        session_factory=session_factory,
        http_client=http_client,
        llm=mock_llm,
        blob_storage=blob_storage,
        openai_client=openai_client,
    )


def drain_writer(writer: UIMessageStreamWriter) -> list[dict[str, Any]]:
    """Frames written so far, without waiting for close."""
    frames = []
    while not writer._queue.empty():
        frame = writer._queue.get_nowait()
        if frame is not None:
            frames.append(frame)
    return frames


# --- App override & client fixtures ---


@pytest.fixture
def chat_app(
    model_factory: Callable[..., MagicMock],
    http_client: httpx.AsyncClient,
    blob_storage: LocalBlobStorage,
    openai_client: MagicMock,
    stream_registry: ResumableStreamRegistry,
) -> Any:
    """The FastAPI app with external collaborators overridden."""
    from app.core.http_client import get_http_client
    from app.dependencies import (
        get_blob_storage,
        get_model_factory,
        get_openai_client,
        get_stream_registry,
    )
    from app.main import app as application

    application.dependency_overrides[get_model_factory] = lambda: model_factory
    application.dependency_overrides[get_http_client] = lambda: http_client
    application.dependency_overrides[get_blob_storage] = lambda: blob_storage
    application.dependency_overrides[get_openai_client] = lambda: openai_client
    application.dependency_overrides[get_stream_registry] = lambda: stream_registry
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def async_client(chat_app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated async test client."""
    transport = ASGITransport(app=chat_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def cookie_client(
    chat_app: Any, session_factory: SessionFactory, regular_user: User
) -> AsyncGenerator[AsyncClient, None]:
    """Client signed in to a web session as ``regular_user``."""
    from app.core.config import settings

    token = await create_session_cookie(session_factory, regular_user.id)
    transport = ASGITransport(app=chat_app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        cookies={settings.auth.session_cookie_name: token},
    ) as ac:
        yield ac


@pytest.fixture
async def bearer_client(
    chat_app: Any, fake_redis: fakeredis.aioredis.FakeRedis, regular_user: User
) -> AsyncGenerator[AsyncClient, None]:
    """Client carrying a bearer token for ``regular_user``."""
    headers = make_auth_headers(fake_redis, regular_user.id, regular_user.email)
    transport = ASGITransport(app=chat_app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=headers
    ) as ac:
        yield ac
