"""Rate limiting dependencies using a Redis sliding window counter.

Limits are keyed per acting user when the actor header is present and per
client IP otherwise. An in-memory token bucket takes over when Redis is not
connected.
"""

import logging
import threading
import time
from dataclasses import dataclass, field

from fastapi import HTTPException, Request, status
from redis.exceptions import RedisError

from routetrack.core.config import settings
from routetrack.core.redis import get_redis_from_app

logger = logging.getLogger(__name__)

# Default rate limits (requests per window)
DEFAULT_RATE_LIMIT = 120
DEFAULT_WINDOW_SECONDS = 60

# Bulk endpoints touch many products per request
BULK_RATE_LIMIT = 10
BULK_WINDOW_SECONDS = 60


@dataclass
class _TokenBucket:
    """Token bucket for one client key."""

    tokens: float
    last_refill: float
    limit: int
    window: int

    def consume(self, now: float) -> tuple[bool, int]:
        """Try to consume a token. Returns (allowed, retry_after_seconds)."""
        refill_rate = self.limit / self.window
        self.tokens = min(self.limit, self.tokens + (now - self.last_refill) * refill_rate)
        self.last_refill = now

        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True, 0

        return False, max(1, int((1.0 - self.tokens) / refill_rate))


@dataclass
class _InMemoryLimiter:
    _buckets: dict[str, _TokenBucket] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def check(self, key: str, limit: int, window: int) -> tuple[bool, int]:
        now = time.time()
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or bucket.limit != limit or bucket.window != window:
                bucket = _TokenBucket(tokens=float(limit), last_refill=now, limit=limit, window=window)
                self._buckets[key] = bucket
            return bucket.consume(now)


_memory_limiter = _InMemoryLimiter()


def _client_key(request: Request) -> str:
    """Prefer the acting user; fall back to the client IP behind a proxy."""
    actor = request.headers.get(settings.ACTOR_ID_HEADER)
    if actor:
        return f"actor:{actor}"
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    client = request.client
    return f"ip:{client.host if client else 'unknown'}"


def _reject(retry_after: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=f"Rate limit exceeded. Try again in {retry_after}s.",
        headers={"Retry-After": str(retry_after)},
    )


async def _check_rate_limit(request: Request, limit: int, window: int, prefix: str) -> None:
    key = f"ratelimit:{prefix}:{_client_key(request)}"
    redis = get_redis_from_app(request)

    if redis is not None:
        now = time.time()
        try:
            pipe = redis.pipeline()
            pipe.zremrangebyscore(key, 0, now - window)
            pipe.zadd(key, {str(now): now})
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.expire(key, window)
            results = await pipe.execute()
        except RedisError:
            logger.warning("Redis rate limiter failed, using in-memory limiter", exc_info=True)
        else:
            if results[2] > limit:
                oldest = results[3]
                retry_after = max(1, int(oldest[0][1] + window - now)) if oldest else window
                raise _reject(retry_after)
            return

    allowed, retry_after = _memory_limiter.check(key, limit, window)
    if not allowed:
        raise _reject(retry_after)


async def rate_limit_default(request: Request) -> None:
    """Standard rate limit applied to every authenticated endpoint."""
    await _check_rate_limit(request, DEFAULT_RATE_LIMIT, DEFAULT_WINDOW_SECONDS, "default")


async def rate_limit_bulk(request: Request) -> None:
    """Stricter limit for bulk product operations."""
    await _check_rate_limit(request, BULK_RATE_LIMIT, BULK_WINDOW_SECONDS, "bulk")
