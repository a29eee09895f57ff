"""Redis client lifecycle management."""

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from app.core.config import settings

logger = structlog.get_logger()

redis_client: redis.Redis | None = None  # type: ignore[type-arg]


async def init_redis() -> redis.Redis | None:  # type: ignore[type-arg]
    """Initialize the Redis connection when a URL is configured."""
    global redis_client  # noqa: PLW0603
    if not settings.redis.enabled:
        logger.info("Redis not configured, blacklist and stream resume disabled")
        return None
    client = redis.from_url(settings.redis.url, decode_responses=True)
    try:
        await client.ping()
    except RedisError:
        logger.warning("Redis unreachable, continuing without it", exc_info=True)
        await client.aclose()
        return None
    redis_client = client
    return redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global redis_client  # noqa: PLW0603
    if redis_client:
        await redis_client.aclose()
        redis_client = None


def get_redis() -> redis.Redis | None:  # type: ignore[type-arg]
    """Get the active Redis client, if any."""
    return redis_client
