"""Explicit memory tools for the model."""

from typing import Any

from langchain_core.tools import BaseTool, tool

from app.services.memory_service import MemoryClient


def build_memory_tools(client: MemoryClient) -> list[BaseTool]:
    """Create the ``searchMemories`` and ``addMemory`` tools."""

    @tool("searchMemories")
    async def search_memories(information_to_get: str) -> dict[str, Any]:
        """Search the user's memories for information from earlier conversations.

        Args:
            information_to_get: Terms describing what to look for.
        """
        results = await client.search(information_to_get)
        return {"success": True, "results": results, "count": len(results)}

    @tool("addMemory")
    async def add_memory(memory: str) -> dict[str, Any]:
        """Remember a fact about the user for future conversations.

        Args:
            memory: The fact to remember, as a standalone sentence.
        """
        memory_id = await client.add(memory)
        return {"success": True, "memory": {"id": memory_id}}

    return [search_memories, add_memory]
