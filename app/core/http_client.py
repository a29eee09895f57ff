"""Shared outbound HTTP client lifecycle management."""

import httpx

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)

http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Get the process-wide HTTP client, creating it on first use."""
    global http_client  # noqa: PLW0603
    if http_client is None or http_client.is_closed:
        http_client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, follow_redirects=True)
    return http_client


async def close_http_client() -> None:
    """Close the shared HTTP client."""
    global http_client  # noqa: PLW0603
    if http_client is not None:
        await http_client.aclose()
        http_client = None
