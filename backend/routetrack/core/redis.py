"""Async Redis connection kept on app.state.

Redis backs the cross-worker product locks and the rate limiter. It is
optional: when the server cannot be reached the application keeps running
with in-process locks and the in-memory limiter.
"""

import logging

import redis.asyncio as aioredis
from fastapi import Request
from redis.exceptions import RedisError

from routetrack.core.config import settings

logger = logging.getLogger(__name__)


async def init_redis(app_state: object, url: str | None = None) -> aioredis.Redis | None:
    """Connect to Redis and store the client on app.state (None when unreachable)."""
    client = aioredis.from_url(url or settings.REDIS_URL, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        logger.warning("Redis unavailable at %s (%s); using in-process fallbacks", settings.REDIS_URL, exc)
        await client.aclose()
        client = None
    app_state.redis = client  # type: ignore[attr-defined]
    return client


async def close_redis(app_state: object) -> None:
    """Close the Redis connection stored on app.state."""
    client: aioredis.Redis | None = getattr(app_state, "redis", None)
    if client is not None:
        await client.aclose()
        app_state.redis = None  # type: ignore[attr-defined]


def get_redis_from_app(request: Request) -> aioredis.Redis | None:
    """Return the Redis client from app.state, or None when not connected."""
    return getattr(request.app.state, "redis", None)
