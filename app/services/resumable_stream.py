"""Resumable streams backed by Redis streams.

Every frame of a turn is appended to a Redis stream keyed by the turn's
stream id, followed by a terminal marker. A client that lost its connection
can replay the buffered frames and follow new ones until the marker.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import redis.asyncio as redis
import structlog

from app.core.config import settings
from app.core.redis import get_redis
from app.services.ui_stream import Frame

logger = structlog.get_logger()

STREAM_KEY_PREFIX = "resumable_stream:"
FRAME_FIELD = "frame"
DONE_FIELD = "done"

POLL_INTERVAL_SECONDS = 0.2
IDLE_TIMEOUT_SECONDS = 30.0


class ResumableStreamRegistry:
    """Buffer and replay frames per stream id."""

    def __init__(
        self,
        redis_client: redis.Redis,  # type: ignore[type-arg]
        ttl_seconds: int,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        idle_timeout: float = IDLE_TIMEOUT_SECONDS,
    ) -> None:
        self._redis = redis_client
        self._ttl_seconds = ttl_seconds
        self._poll_interval = poll_interval
        self._idle_timeout = idle_timeout

    @staticmethod
    def _key(stream_id: str) -> str:
        return f"{STREAM_KEY_PREFIX}{stream_id}"

    async def _add(self, stream_id: str, fields: dict[str, Any]) -> None:
        key = self._key(stream_id)
        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.xadd(key, fields)
            pipe.expire(key, self._ttl_seconds)
            await pipe.execute()

    async def append(self, stream_id: str, frame: Frame) -> None:
        await self._add(stream_id, {FRAME_FIELD: json.dumps(frame, default=str)})

    async def complete(self, stream_id: str) -> None:
        await self._add(stream_id, {DONE_FIELD: "1"})

    async def exists(self, stream_id: str) -> bool:
        return bool(await self._redis.exists(self._key(stream_id)))

    async def resume(self, stream_id: str) -> AsyncIterator[Frame]:
        """Replay buffered frames, then follow new ones until the stream ends.

        Following stops at the terminal marker, or when nothing new arrived
        for the idle timeout (a producer that died without completing).
        """
        key = self._key(stream_id)
        last_id: str | None = None
        idle = 0.0
        while True:
            entries = await self._redis.xrange(key, min=last_id or "-", max="+")
            fresh = [entry for entry in entries if entry[0] != last_id]
            if not fresh:
                if idle >= self._idle_timeout:
                    logger.info("Resumed stream went idle", stream_id=stream_id)
                    return
                await asyncio.sleep(self._poll_interval)
                idle += self._poll_interval
                continue
            idle = 0.0
            for entry_id, fields in fresh:
                last_id = entry_id
                if DONE_FIELD in fields:
                    return
                yield json.loads(fields[FRAME_FIELD])

    def sink(self, stream_id: str) -> "StreamSink":
        """Frame sink writing one turn into this registry."""
        return StreamSink(self, stream_id)


class StreamSink:
    """Adapter binding a registry to one stream id."""

    def __init__(self, registry: ResumableStreamRegistry, stream_id: str) -> None:
        self._registry = registry
        self.stream_id = stream_id

    async def append(self, frame: Frame) -> None:
        await self._registry.append(self.stream_id, frame)

    async def complete(self) -> None:
        await self._registry.complete(self.stream_id)


RedisProvider = Callable[[], "redis.Redis | None"]  # type: ignore[type-arg]


class StreamResumptionContext:
    """Application-lifetime holder of the resumable-stream registry.

    ``get`` initializes at most once. Without Redis, resumption is disabled
    for the life of the process and that is logged once.
    """

    def __init__(
        self,
        redis_provider: RedisProvider = get_redis,
        ttl_seconds: int | None = None,
    ) -> None:
        self._redis_provider = redis_provider
        self._ttl_seconds = ttl_seconds
        self._registry: ResumableStreamRegistry | None = None
        self._initialized = False

    def get(self) -> ResumableStreamRegistry | None:
        if self._initialized:
            return self._registry
        self._initialized = True
        client = self._redis_provider()
        if client is None:
            logger.info("Resumable streams are disabled, Redis is not available")
            return None
        self._registry = ResumableStreamRegistry(
            client,
            ttl_seconds=self._ttl_seconds or settings.redis.stream_ttl_seconds,
        )
        return self._registry


stream_context = StreamResumptionContext()
