"""ASGI request-context middleware."""

import uuid
from typing import Any
from urllib.parse import unquote

import structlog
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = structlog.get_logger()

REQUEST_ID_HEADER = b"x-request-id"

# Edge geolocation headers (Vercel-style) forwarded by the proxy in front of us.
GEO_HEADERS: dict[str, bytes] = {
    "latitude": b"x-vercel-ip-latitude",
    "longitude": b"x-vercel-ip-longitude",
    "city": b"x-vercel-ip-city",
    "country": b"x-vercel-ip-country",
}


class RequestContextMiddleware:
    """Pure ASGI middleware binding request id and geo hints (SSE-compatible)."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = headers.get(REQUEST_ID_HEADER, b"").decode() or uuid.uuid4().hex

        scope.setdefault("state", {})
        scope["state"]["request_id"] = request_id
        scope["state"]["request_hints"] = self._extract_hints(headers)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=scope.get("path", ""),
            method=scope.get("method", ""),
        )

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = list(message.get("headers", []))
                response_headers.append([REQUEST_ID_HEADER, request_id.encode()])
                message["headers"] = response_headers
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            structlog.contextvars.clear_contextvars()

    @staticmethod
    def _extract_hints(headers: dict[bytes, bytes]) -> dict[str, Any]:
        """Read geolocation hints; missing headers become None."""
        hints: dict[str, Any] = {}
        for key, header in GEO_HEADERS.items():
            raw = headers.get(header)
            hints[key] = unquote(raw.decode()) if raw else None
        return hints
