"""Web search tool using DuckDuckGo."""

from typing import Any

from langchain_community.tools import DuckDuckGoSearchResults
from langchain_core.tools import BaseTool, tool

DEFAULT_MAX_RESULTS = 5


def build_web_search_tool(max_results: int = DEFAULT_MAX_RESULTS) -> BaseTool:
    """Create the ``web_search`` tool."""
    search = DuckDuckGoSearchResults(num_results=max_results, output_format="list")

    @tool("web_search")
    async def web_search(query: str) -> Any:
        """Search the web for current information.

        Use this tool when you need up-to-date information from the internet,
        such as current events, news or recent releases.

        Args:
            query: The search query string.

        Returns:
            Search results with snippets, titles, and links.
        """
        return await search.ainvoke(query)

    return web_search
