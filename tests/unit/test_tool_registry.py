"""Tests for per-turn tool set composition."""

from unittest.mock import MagicMock, patch

import pytest
from pydantic import SecretStr

from app.core.config import settings
from app.core.settings import MemoryConfig
from app.schemas.auth_schema import Principal
from app.services.tool_registry import (
    BASELINE_TOOLS,
    build_tool_set,
    memory_allowed,
)
from app.tools.context import ToolContext

PRINCIPAL = Principal(id="u-1", email="a@b.com", type="regular", auth_method="session")


@pytest.fixture(autouse=True)
def no_network_search():
    with patch("app.tools.web_search.DuckDuckGoSearchResults") as search_class:
        search_class.return_value = MagicMock()
        yield search_class


@pytest.fixture
def memory_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(
        settings.__dict__,
        "memory",
        MemoryConfig(api_key=SecretStr("sm-key"), base_url="https://memory.test", search_limit=3),
    )


def _build(context: ToolContext, **overrides: object):
    options: dict[str, object] = {
        "selected_chat_model": "chat-model",
        "search_enabled": False,
        "memory_enabled": False,
        "incognito_mode": False,
        "principal": PRINCIPAL,
    }
    options.update(overrides)
    return build_tool_set(context, **options)  # type: ignore[arg-type]


class TestActiveTools:
    """Tests for active tools."""

    def test_baseline(self, tool_context: ToolContext) -> None:
        tool_set = _build(tool_context)
        assert tool_set.active_tools == BASELINE_TOOLS
        assert [t.name for t in tool_set.active] == list(BASELINE_TOOLS)
        assert tool_set.memory is None
        assert tool_set.smooth_stream is True
        assert tool_set.thinking_budget is None

    def test_search_adds_web_search(self, tool_context: ToolContext) -> None:
        tool_set = _build(tool_context, search_enabled=True)
        assert tool_set.active_tools == (*BASELINE_TOOLS, "web_search")

    def test_reasoning_model_has_no_tools(self, tool_context: ToolContext) -> None:
        tool_set = _build(
            tool_context, selected_chat_model="chat-model-reasoning", search_enabled=True
        )
        assert tool_set.active_tools == ()
        assert tool_set.active == []
        assert tool_set.smooth_stream is False
        assert tool_set.thinking_budget == settings.llm.reasoning_budget_tokens

    @pytest.mark.usefixtures("memory_configured")
    def test_memory_tools_when_enabled(self, tool_context: ToolContext) -> None:
        tool_set = _build(tool_context, memory_enabled=True)
        assert tool_set.active_tools[-2:] == ("searchMemories", "addMemory")
        assert tool_set.memory is not None

    @pytest.mark.usefixtures("memory_configured")
    def test_incognito_disables_memory(self, tool_context: ToolContext) -> None:
        tool_set = _build(tool_context, memory_enabled=True, incognito_mode=True)
        assert "searchMemories" not in tool_set.active_tools
        assert tool_set.memory is None

    @pytest.mark.usefixtures("memory_configured")
    def test_memory_needs_a_principal(self, tool_context: ToolContext) -> None:
        tool_set = _build(tool_context, memory_enabled=True, principal=None)
        assert "searchMemories" not in tool_set.active_tools
        assert tool_set.memory is None

    def test_memory_requires_configured_service(self, tool_context: ToolContext) -> None:
        tool_set = _build(tool_context, memory_enabled=True)
        assert "addMemory" not in tool_set.active_tools
        assert tool_set.memory is None


class TestMemoryAllowed:
    """Tests for memory_allowed."""

    @pytest.mark.parametrize(
        ("enabled", "incognito", "principal", "expected"),
        [
            (True, False, PRINCIPAL, True),
            (True, True, PRINCIPAL, False),
            (False, False, PRINCIPAL, False),
            (True, False, None, False),
        ],
    )
    def test_matrix(
        self,
        enabled: bool,
        incognito: bool,
        principal: Principal | None,
        expected: bool,
    ) -> None:
        assert memory_allowed(enabled, incognito, principal) is expected
