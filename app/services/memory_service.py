"""Per-user long-term memory backed by the Supermemory REST API.

Memories are isolated per user by using the user id as the container tag.
"""

from typing import Any

import httpx
import structlog

from app.core.settings import MemoryConfig

logger = structlog.get_logger()

SEARCH_PATH = "/v3/search"
ADD_PATH = "/v3/memories"


class MemoryServiceError(Exception):
    """The memory service failed or answered with something unreadable."""


class MemoryClient:
    """Search and add memories in one user's container."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        config: MemoryConfig,
        container_tag: str,
    ) -> None:
        self._http_client = http_client
        self._config = config
        self._container_tag = container_tag

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._config.api_key.get_secret_value()}"}

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._http_client.post(
                f"{self._config.base_url}{path}", headers=self._headers, json=payload
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise MemoryServiceError(f"{path}: {exc}") from exc
        if not isinstance(body, dict):
            raise MemoryServiceError(f"{path}: expected a JSON object")
        return body

    async def search(self, query: str, limit: int | None = None) -> list[str]:
        """Return memory snippets relevant to the query."""
        body = await self._post(
            SEARCH_PATH,
            {
                "q": query,
                "containerTags": [self._container_tag],
                "limit": limit or self._config.search_limit,
            },
        )
        return [
            snippet
            for result in body.get("results", [])
            if (snippet := _result_text(result))
        ]

    async def add(self, content: str) -> str | None:
        """Store a memory; returns its id when the service reports one."""
        body = await self._post(
            ADD_PATH, {"content": content, "containerTags": [self._container_tag]}
        )
        return body.get("id")


def _result_text(result: dict[str, Any]) -> str:
    if result.get("memory"):
        return str(result["memory"])
    chunks = [c.get("content", "") for c in result.get("chunks", []) if c.get("content")]
    if chunks:
        return "\n".join(chunks)
    return str(result.get("content") or result.get("title") or "")


class MemoryPromptMiddleware:
    """Inject the user's relevant memories into the system prompt of a turn,
    and record the user's message once the turn has completed.
    """

    def __init__(self, client: MemoryClient) -> None:
        self.client = client

    async def apply(self, system_prompt: str, query: str) -> str:
        """Append retrieved memories to the system prompt.

        Memory lookup failures leave the prompt unchanged.
        """
        if not query.strip():
            return system_prompt
        try:
            memories = await self.client.search(query)
        except MemoryServiceError as exc:
            logger.warning("Memory search failed", error=str(exc))
            return system_prompt
        if not memories:
            return system_prompt
        listed = "\n".join(f"- {memory}" for memory in memories)
        return (
            f"{system_prompt}\n\n"
            "Things you remember about this user from earlier conversations:\n"
            f"{listed}"
        )

    async def record(self, user_text: str) -> None:
        """Save the user's message as a memory."""
        if not user_text.strip():
            return
        try:
            await self.client.add(user_text)
        except MemoryServiceError as exc:
            logger.warning("Memory add failed", error=str(exc))
