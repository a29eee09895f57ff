"""Tests for ChatStreamService: turn preparation and the SSE body."""

import json
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage, ToolMessage
from langchain_core.outputs import ChatGeneration, ChatResult
from openai import AsyncOpenAI
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import SessionFactory
from app.core.exceptions import (
    ActivateGatewayError,
    AuthenticationError,
    AuthorizationError,
    BadRequestError,
    OfflineError,
    RateLimitError,
)
from app.core.settings import EntitlementsConfig
from app.models.user import User
from app.repositories.chat_repo import ChatRepository, NewMessage
from app.schemas.auth_schema import Principal
from app.schemas.chat_schema import PostRequestBody, RequestHints
from app.services.chat_stream_service import (
    ChatStreamService,
    PreparedTurn,
    classify_error,
    iter_chunk_deltas,
)
from app.services.resumable_stream import ResumableStreamRegistry
from app.services.storage_service import LocalBlobStorage

AGENT_META = {"langgraph_node": "agent"}


def make_body(chat_id: str = "chat-1", text: str = "Weather in Paris?", **flags: Any) -> PostRequestBody:
    return PostRequestBody.model_validate(
        {
            "id": chat_id,
            "message": {
                "id": f"msg-{chat_id}",
                "role": "user",
                "parts": [{"type": "text", "text": text}],
            },
            "selectedChatModel": flags.pop("selectedChatModel", "chat-model"),
            "selectedVisibilityType": "private",
            **flags,
        }
    )


def principal_for(user: User, auth_method: str = "session") -> Principal:
    return Principal(
        id=user.id, email=user.email, type=user.type, auth_method=auth_method  # type: ignore[arg-type]
    )


def text_events(*pieces: str) -> list[tuple[str, Any]]:
    events: list[tuple[str, Any]] = [
        ("messages", (AIMessageChunk(content=piece), AGENT_META)) for piece in pieces
    ]
    events.append(("updates", {"agent": {"messages": [AIMessage(content="".join(pieces))]}}))
    return events


async def collect_frames(service: ChatStreamService, turn: PreparedTurn) -> list[Any]:
    frames: list[Any] = []
    async for event in service.stream_turn(turn):
        assert event.startswith("data: ") and event.endswith("\n\n")
        payload = event[len("data: ") : -2]
        frames.append(payload if payload == "[DONE]" else json.loads(payload))
    return frames


def frame_types(frames: list[Any]) -> list[str]:
    return [f["type"] if isinstance(f, dict) else f for f in frames]


class LoopingToolModel(BaseChatModel):
    """Chat model that asks for the weather on every call."""

    calls: int = 0

    @property
    def _llm_type(self) -> str:
        return "looping-tool"

    def bind_tools(self, tools: Any, **kwargs: Any) -> "LoopingToolModel":
        return self

    def _generate(
        self,
        messages: list[BaseMessage],
        stop: list[str] | None = None,
        run_manager: Any = None,
        **kwargs: Any,
    ) -> ChatResult:
        self.calls += 1
        call = {
            "name": "getWeather",
            "args": {"latitude": 48.8, "longitude": 2.3},
            "id": f"call-{self.calls}",
        }
        return ChatResult(generations=[ChatGeneration(message=AIMessage(content="", tool_calls=[call]))])


@pytest.fixture
def make_service(
    db_session: AsyncSession,
    session_factory: SessionFactory,
    model_factory: Callable[..., MagicMock],
    http_client: httpx.AsyncClient,
    blob_storage: LocalBlobStorage,
    openai_client: AsyncOpenAI,
    stream_registry: ResumableStreamRegistry,
) -> Callable[..., ChatStreamService]:
    def build(**overrides: Any) -> ChatStreamService:
        options: dict[str, Any] = {
            "session": db_session,
            "session_factory": session_factory,
            "model_factory": model_factory,
            "http_client": http_client,
            "blob_storage": blob_storage,
            "openai_client": openai_client,
            "stream_registry": stream_registry,
        }
        options.update(overrides)
        return ChatStreamService(**options)

    return build


class TestPrepareTurn:
    """Tests for ChatStreamService.prepare_turn."""

    async def test_requires_principal(
        self, make_service: Callable[..., ChatStreamService], db_session: AsyncSession
    ) -> None:
        with pytest.raises(AuthenticationError):
            await make_service().prepare_turn(make_body(), None, RequestHints())

        assert await ChatRepository(db_session).get_chat_by_id("chat-1") is None

    async def test_new_chat_is_created_with_user_message(
        self,
        make_service: Callable[..., ChatStreamService],
        db_session: AsyncSession,
        regular_user: User,
        fake_agent: Callable[..., MagicMock],
    ) -> None:
        fake_agent(text_events("ok"))

        turn = await make_service().prepare_turn(
            make_body(), principal_for(regular_user), RequestHints(city="Paris")
        )

        repo = ChatRepository(db_session)
        chat = await repo.get_chat_by_id("chat-1")
        assert chat is not None and chat.title == "New chat"
        messages = await repo.get_messages_by_chat_id("chat-1")
        assert [m.role for m in messages] == ["user"]
        assert await repo.get_stream_ids_by_chat_id("chat-1") == [turn.stream_id]
        assert turn.title_task is not None
        assert "- city: Paris" in turn.system_prompt
        await turn.title_task

    async def test_foreign_chat_is_forbidden(
        self,
        make_service: Callable[..., ChatStreamService],
        db_session: AsyncSession,
        regular_user: User,
        guest_user: User,
    ) -> None:
        await ChatRepository(db_session).save_chat("chat-1", regular_user.id, "Mine", "private")
        await db_session.commit()

        with pytest.raises(AuthorizationError):
            await make_service().prepare_turn(
                make_body(), principal_for(guest_user), RequestHints()
            )

        assert await ChatRepository(db_session).get_messages_by_chat_id("chat-1") == []

    async def test_quota_exceeded(
        self,
        make_service: Callable[..., ChatStreamService],
        db_session: AsyncSession,
        regular_user: User,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setitem(
            settings.__dict__,
            "entitlements",
            EntitlementsConfig(guest_max_messages_per_day=0, regular_max_messages_per_day=0),
        )
        repo = ChatRepository(db_session)
        await repo.save_chat("old", regular_user.id, "Old", "private")
        await repo.save_messages(
            [NewMessage(id="m0", chat_id="old", role="user", parts=[{"type": "text", "text": "x"}])]
        )
        await db_session.commit()

        with pytest.raises(RateLimitError):
            await make_service().prepare_turn(
                make_body(), principal_for(regular_user), RequestHints()
            )
        assert await repo.get_chat_by_id("chat-1") is None

    async def test_bearer_callers_are_exempt_from_quota(
        self,
        make_service: Callable[..., ChatStreamService],
        db_session: AsyncSession,
        regular_user: User,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setitem(
            settings.__dict__,
            "entitlements",
            EntitlementsConfig(guest_max_messages_per_day=0, regular_max_messages_per_day=0),
        )
        repo = ChatRepository(db_session)
        await repo.save_chat("old", regular_user.id, "Old", "private")
        await repo.save_messages(
            [NewMessage(id="m0", chat_id="old", role="user", parts=[{"type": "text", "text": "x"}])]
        )
        await db_session.commit()

        turn = await make_service().prepare_turn(
            make_body(), principal_for(regular_user, "bearer"), RequestHints()
        )

        assert turn.chat_id == "chat-1"
        if turn.title_task is not None:
            await turn.title_task

    async def test_incognito_creates_nothing(
        self,
        make_service: Callable[..., ChatStreamService],
        db_session: AsyncSession,
        regular_user: User,
    ) -> None:
        turn = await make_service().prepare_turn(
            make_body(incognitoMode=True, memoryEnabled=True),
            principal_for(regular_user),
            RequestHints(),
        )

        assert turn.incognito is True
        assert turn.stream_id is None
        assert turn.title_task is None
        assert turn.tool_set.memory is None
        assert await ChatRepository(db_session).get_chat_by_id("chat-1") is None

    async def test_history_is_sent_to_the_model(
        self,
        make_service: Callable[..., ChatStreamService],
        db_session: AsyncSession,
        regular_user: User,
    ) -> None:
        repo = ChatRepository(db_session)
        await repo.save_chat("chat-1", regular_user.id, "Chat", "private")
        await repo.save_messages(
            [
                NewMessage(
                    id="m0", chat_id="chat-1", role="user", parts=[{"type": "text", "text": "Hi"}]
                ),
                NewMessage(
                    id="m1",
                    chat_id="chat-1",
                    role="assistant",
                    parts=[{"type": "text", "text": "Hello!"}],
                ),
            ]
        )
        await db_session.commit()

        turn = await make_service().prepare_turn(
            make_body(text="And now?"), principal_for(regular_user), RequestHints()
        )

        assert [m.role for m in turn.model_messages] == ["user", "assistant", "user"]
        assert turn.title_task is None

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("AI Gateway requires a valid credit card on file", ActivateGatewayError),
            ("connection reset", OfflineError),
        ],
    )
    async def test_unexpected_failures_are_classified(
        self,
        make_service: Callable[..., ChatStreamService],
        regular_user: User,
        message: str,
        expected: type[Exception],
    ) -> None:
        def failing_factory(model_id: str, thinking_budget: int | None = None) -> Any:
            raise RuntimeError(message)

        with pytest.raises(expected):
            await make_service(model_factory=failing_factory).prepare_turn(
                make_body(), principal_for(regular_user), RequestHints()
            )


class TestStreamTurn:
    """Tests for ChatStreamService.stream_turn."""

    async def test_text_turn(
        self,
        make_service: Callable[..., ChatStreamService],
        db_session: AsyncSession,
        session_factory: SessionFactory,
        regular_user: User,
        fake_agent: Callable[..., MagicMock],
    ) -> None:
        agent_factory = fake_agent(text_events("Hello ", "world"))
        service = make_service()
        turn = await service.prepare_turn(make_body(), principal_for(regular_user), RequestHints())

        frames = await collect_frames(service, turn)

        types = frame_types(frames)
        assert types[0] == "start"
        assert types[-2:] == ["finish", "[DONE]"]
        assert [t for t in types if t != "data-chat-title"] == [
            "start",
            "start-step",
            "text-start",
            "text-delta",
            "text-delta",
            "text-end",
            "finish-step",
            "finish",
            "[DONE]",
        ]
        deltas = [f["delta"] for f in frames if isinstance(f, dict) and f["type"] == "text-delta"]
        assert "".join(deltas) == "Hello world"

        title_frames = [f for f in frames if isinstance(f, dict) and f["type"] == "data-chat-title"]
        assert len(title_frames) == 1
        assert title_frames[0]["transient"] is True

        async with session_factory() as session:
            repo = ChatRepository(session)
            messages = await repo.get_messages_by_chat_id("chat-1")
            chat = await repo.get_chat_by_id("chat-1")
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[1].parts == [{"type": "text", "text": "Hello world"}]
        assert chat is not None and chat.title == title_frames[0]["data"]

        agent = agent_factory.agent
        assert agent.config == {"recursion_limit": settings.llm.max_tool_steps * 2 + 1}
        assert [m.type for m in agent.inputs["messages"]] == ["human"]

    async def test_tool_call_turn(
        self,
        make_service: Callable[..., ChatStreamService],
        session_factory: SessionFactory,
        db_session: AsyncSession,
        regular_user: User,
        fake_agent: Callable[..., MagicMock],
    ) -> None:
        await ChatRepository(db_session).save_chat("chat-1", regular_user.id, "Chat", "private")
        await db_session.commit()
        call = {"name": "getWeather", "args": {"latitude": 48.8, "longitude": 2.3}, "id": "call-1"}
        fake_agent(
            [
                ("updates", {"agent": {"messages": [AIMessage(content="", tool_calls=[call])]}}),
                (
                    "updates",
                    {
                        "tools": {
                            "messages": [
                                ToolMessage(
                                    content='{"temperature": 21}',
                                    tool_call_id="call-1",
                                    name="getWeather",
                                )
                            ]
                        }
                    },
                ),
                *text_events("Sunny "),
            ]
        )
        service = make_service()
        turn = await service.prepare_turn(make_body(), principal_for(regular_user), RequestHints())

        frames = await collect_frames(service, turn)

        assert frame_types(frames) == [
            "start",
            "start-step",
            "tool-input-available",
            "finish-step",
            "tool-output-available",
            "start-step",
            "text-start",
            "text-delta",
            "text-end",
            "finish-step",
            "finish",
            "[DONE]",
        ]
        assert frames[4]["output"] == {"temperature": 21}
        async with session_factory() as session:
            messages = await ChatRepository(session).get_messages_by_chat_id("chat-1")
        assert messages[-1].parts == [
            {
                "type": "tool-getWeather",
                "toolCallId": "call-1",
                "state": "output-available",
                "input": {"latitude": 48.8, "longitude": 2.3},
                "output": {"temperature": 21},
            },
            {"type": "text", "text": "Sunny "},
        ]

    async def test_tool_error_is_reported(
        self,
        make_service: Callable[..., ChatStreamService],
        db_session: AsyncSession,
        regular_user: User,
        fake_agent: Callable[..., MagicMock],
    ) -> None:
        await ChatRepository(db_session).save_chat("chat-1", regular_user.id, "Chat", "private")
        await db_session.commit()
        call = {"name": "getWeather", "args": {}, "id": "call-1"}
        fake_agent(
            [
                ("updates", {"agent": {"messages": [AIMessage(content="", tool_calls=[call])]}}),
                (
                    "updates",
                    {
                        "tools": {
                            "messages": [
                                ToolMessage(
                                    content="Error: upstream down",
                                    tool_call_id="call-1",
                                    status="error",
                                )
                            ]
                        }
                    },
                ),
            ]
        )
        service = make_service()
        turn = await service.prepare_turn(make_body(), principal_for(regular_user), RequestHints())

        frames = await collect_frames(service, turn)

        errors = [f for f in frames if isinstance(f, dict) and f["type"] == "tool-output-error"]
        assert errors == [
            {"type": "tool-output-error", "toolCallId": "call-1", "errorText": "Error: upstream down"}
        ]
        assert frame_types(frames)[-2:] == ["finish", "[DONE]"]

    async def test_model_failure_emits_error_frame(
        self,
        make_service: Callable[..., ChatStreamService],
        session_factory: SessionFactory,
        db_session: AsyncSession,
        regular_user: User,
        fake_agent: Callable[..., MagicMock],
    ) -> None:
        await ChatRepository(db_session).save_chat("chat-1", regular_user.id, "Chat", "private")
        await db_session.commit()
        fake_agent(
            [("messages", (AIMessageChunk(content="partial "), AGENT_META))],
            error=RuntimeError("provider exploded"),
        )
        service = make_service()
        turn = await service.prepare_turn(make_body(), principal_for(regular_user), RequestHints())

        frames = await collect_frames(service, turn)

        types = frame_types(frames)
        assert types[-2:] == ["error", "[DONE]"]
        assert "finish" not in types
        async with session_factory() as session:
            messages = await ChatRepository(session).get_messages_by_chat_id("chat-1")
        assert [m.role for m in messages] == ["user"]

    async def test_frames_are_buffered_for_resumption(
        self,
        make_service: Callable[..., ChatStreamService],
        db_session: AsyncSession,
        regular_user: User,
        fake_agent: Callable[..., MagicMock],
        stream_registry: ResumableStreamRegistry,
    ) -> None:
        await ChatRepository(db_session).save_chat("chat-1", regular_user.id, "Chat", "private")
        await db_session.commit()
        fake_agent(text_events("Hi "))
        service = make_service()
        turn = await service.prepare_turn(make_body(), principal_for(regular_user), RequestHints())

        frames = await collect_frames(service, turn)

        assert turn.stream_id is not None
        replayed = [frame async for frame in stream_registry.resume(turn.stream_id)]
        assert replayed == frames[:-1]

    async def test_disconnected_turn_finishes_for_resumption(
        self,
        make_service: Callable[..., ChatStreamService],
        session_factory: SessionFactory,
        db_session: AsyncSession,
        regular_user: User,
        fake_agent: Callable[..., MagicMock],
        stream_registry: ResumableStreamRegistry,
    ) -> None:
        await ChatRepository(db_session).save_chat("chat-1", regular_user.id, "Chat", "private")
        await db_session.commit()
        fake_agent(text_events("Still ", "here"))
        service = make_service()
        turn = await service.prepare_turn(make_body(), principal_for(regular_user), RequestHints())

        body = service.stream_turn(turn)
        first = await body.__anext__()
        await body.aclose()

        assert json.loads(first[len("data: ") : -2])["type"] == "start"
        assert turn.stream_id is not None
        replayed = [frame async for frame in stream_registry.resume(turn.stream_id)]
        assert frame_types(replayed)[0] == "start"
        assert frame_types(replayed)[-1] == "finish"
        deltas = [f["delta"] for f in replayed if f["type"] == "text-delta"]
        assert "".join(deltas) == "Still here"

        async with session_factory() as session:
            messages = await ChatRepository(session).get_messages_by_chat_id("chat-1")
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[1].parts == [{"type": "text", "text": "Still here"}]

    async def test_tool_steps_are_capped(
        self,
        make_service: Callable[..., ChatStreamService],
        session_factory: SessionFactory,
        db_session: AsyncSession,
        regular_user: User,
        mock_llm: MagicMock,
    ) -> None:
        await ChatRepository(db_session).save_chat("chat-1", regular_user.id, "Chat", "private")
        await db_session.commit()
        chat_model = LoopingToolModel()

        def factory(model_id: str, thinking_budget: int | None = None) -> Any:
            return chat_model if model_id == "chat-model" else mock_llm

        weather = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"current": {"temperature_2m": 20}})
            )
        )
        service = make_service(model_factory=factory, http_client=weather)
        turn = await service.prepare_turn(make_body(), principal_for(regular_user), RequestHints())

        frames = await collect_frames(service, turn)
        await weather.aclose()

        types = frame_types(frames)
        max_steps = settings.llm.max_tool_steps
        assert types.count("tool-input-available") == max_steps
        assert types.count("tool-output-available") == max_steps
        assert "text-delta" not in types
        assert types[-2:] == ["finish", "[DONE]"]

        async with session_factory() as session:
            messages = await ChatRepository(session).get_messages_by_chat_id("chat-1")
        assistant_parts = messages[-1].parts
        assert len(assistant_parts) == max_steps
        assert all(part["type"] == "tool-getWeather" for part in assistant_parts)
        assert all(part["state"] == "output-available" for part in assistant_parts)

    async def test_incognito_turn_is_not_persisted(
        self,
        make_service: Callable[..., ChatStreamService],
        session_factory: SessionFactory,
        regular_user: User,
        fake_agent: Callable[..., MagicMock],
    ) -> None:
        fake_agent(text_events("Secret "))
        service = make_service()
        turn = await service.prepare_turn(
            make_body(incognitoMode=True), principal_for(regular_user), RequestHints()
        )

        frames = await collect_frames(service, turn)

        assert "data-chat-title" not in frame_types(frames)
        async with session_factory() as session:
            assert await ChatRepository(session).get_messages_by_chat_id("chat-1") == []

    async def test_reasoning_model_runs_without_tools(
        self,
        make_service: Callable[..., ChatStreamService],
        db_session: AsyncSession,
        regular_user: User,
        fake_agent: Callable[..., MagicMock],
        model_factory: Callable[..., MagicMock],
    ) -> None:
        await ChatRepository(db_session).save_chat("chat-1", regular_user.id, "Chat", "private")
        await db_session.commit()
        reasoning_chunk = AIMessageChunk(
            content="", additional_kwargs={"reasoning_content": "Thinking"}
        )
        agent_factory = fake_agent(
            [("messages", (reasoning_chunk, AGENT_META)), *text_events("Answer")]
        )
        service = make_service()
        turn = await service.prepare_turn(
            make_body(selectedChatModel="chat-model-reasoning"),
            principal_for(regular_user),
            RequestHints(),
        )

        frames = await collect_frames(service, turn)

        assert frame_types(frames)[:6] == [
            "start",
            "start-step",
            "reasoning-start",
            "reasoning-delta",
            "reasoning-end",
            "text-start",
        ]
        assert agent_factory.call_args.kwargs["tools"] == []
        assert (
            "chat-model-reasoning",
            settings.llm.reasoning_budget_tokens,
        ) in model_factory.calls  # type: ignore[attr-defined]


class TestHelpers:
    """Tests for helpers."""

    def test_classify_error_keeps_app_exceptions(self) -> None:
        error = BadRequestError()
        assert classify_error(error) is error

    def test_iter_chunk_deltas_content_blocks(self) -> None:
        chunk = AIMessageChunk(
            content=[
                {"type": "thinking", "thinking": "hmm"},
                {"type": "text", "text": "Hi"},
                {"type": "tool_use", "id": "x"},
            ]
        )
        assert list(iter_chunk_deltas(chunk)) == [("reasoning", "hmm"), ("text", "Hi")]

    def test_iter_chunk_deltas_skips_empty(self) -> None:
        assert list(iter_chunk_deltas(AIMessageChunk(content=""))) == []
