"""Per-turn tool set composition.

Which tools the model may call depends on the selected model and the
request flags:

- reasoning models get no tools, no word smoothing and a thinking budget;
- otherwise the baseline tools are always active;
- ``web_search`` is added when search is enabled;
- memory tools (and the memory prompt middleware) are added only when memory
  is enabled, the caller is known, the turn is not incognito and the memory
  service is configured.
"""

from dataclasses import dataclass

import structlog
from langchain_core.tools import BaseTool

from app.core.config import settings
from app.core.settings.llm_config import LLMConfig
from app.schemas.auth_schema import Principal
from app.services.memory_service import MemoryClient, MemoryPromptMiddleware
from app.tools.context import ToolContext
from app.tools.documents import build_document_tools
from app.tools.generate_image import build_generate_image_tool
from app.tools.get_weather import build_get_weather_tool
from app.tools.memory import build_memory_tools
from app.tools.request_suggestions import build_request_suggestions_tool
from app.tools.web_search import build_web_search_tool

logger = structlog.get_logger()

BASELINE_TOOLS: tuple[str, ...] = (
    "getWeather",
    "generateImage",
    "createDocument",
    "updateDocument",
    "requestSuggestions",
)
SEARCH_TOOLS: tuple[str, ...] = ("web_search",)
MEMORY_TOOLS: tuple[str, ...] = ("searchMemories", "addMemory")


@dataclass(frozen=True)
class ToolSet:
    """Tools available to one turn and the subset the model may call."""

    tools: dict[str, BaseTool]
    active_tools: tuple[str, ...]
    memory: MemoryPromptMiddleware | None = None
    smooth_stream: bool = True
    thinking_budget: int | None = None

    @property
    def active(self) -> list[BaseTool]:
        return [self.tools[name] for name in self.active_tools]


def memory_allowed(
    memory_enabled: bool,
    incognito_mode: bool,
    principal: Principal | None,
) -> bool:
    """Incognito always wins over the memory flag."""
    return memory_enabled and not incognito_mode and principal is not None


def build_tool_set(
    context: ToolContext,
    selected_chat_model: str,
    search_enabled: bool,
    memory_enabled: bool,
    incognito_mode: bool,
    principal: Principal | None,
) -> ToolSet:
    """Build the tools for a turn."""
    user_id = principal.id if principal else None

    tools: dict[str, BaseTool] = {
        "getWeather": build_get_weather_tool(context.http_client),
        "generateImage": build_generate_image_tool(context),
    }
    for document_tool in build_document_tools(context, user_id):
        tools[document_tool.name] = document_tool
    tools["requestSuggestions"] = build_request_suggestions_tool(context, user_id)

    if search_enabled:
        tools["web_search"] = build_web_search_tool()

    memory: MemoryPromptMiddleware | None = None
    if principal is not None and memory_allowed(memory_enabled, incognito_mode, principal):
        if settings.memory.enabled:
            client = MemoryClient(context.http_client, settings.memory, principal.id)
            memory = MemoryPromptMiddleware(client)
            for memory_tool in build_memory_tools(client):
                tools[memory_tool.name] = memory_tool
        else:
            logger.warning("Memory API key not configured, memory features disabled")
    elif memory_enabled and incognito_mode:
        logger.info("Incognito mode, skipping memory")

    if LLMConfig.is_reasoning_model(selected_chat_model):
        return ToolSet(
            tools=tools,
            active_tools=(),
            memory=memory,
            smooth_stream=False,
            thinking_budget=settings.llm.reasoning_budget_tokens,
        )

    active = [*BASELINE_TOOLS]
    if search_enabled:
        active.extend(SEARCH_TOOLS)
    if memory is not None:
        active.extend(MEMORY_TOOLS)
    return ToolSet(tools=tools, active_tools=tuple(active), memory=memory)
