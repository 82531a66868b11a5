"""Per-product mutual exclusion for engine writes.

Two registries share one interface, ``async with registry.hold(product_id)``:

* :class:`ProductLockRegistry` keeps an ``asyncio.Lock`` per product inside
  the current process.
* :class:`RedisProductLockRegistry` uses a Redis lock so several API workers
  serialize on the same product.

Both bound the wait and raise :class:`ConcurrencyConflict` on timeout.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from redis.exceptions import LockError, RedisError

from routetrack.core.errors import ConcurrencyConflict, PersistenceFailure

logger = logging.getLogger(__name__)


class _LockSlot:
    __slots__ = ("lock", "waiters")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.waiters = 0


class ProductLockRegistry:
    """In-process lock per product id, dropped again once nobody holds or waits on it."""

    def __init__(self, timeout: float = 5.0) -> None:
        self.timeout = timeout
        self._slots: dict[uuid.UUID, _LockSlot] = {}

    def __len__(self) -> int:
        return len(self._slots)

    @asynccontextmanager
    async def hold(self, product_id: uuid.UUID) -> AsyncIterator[None]:
        slot = self._slots.get(product_id)
        if slot is None:
            slot = self._slots[product_id] = _LockSlot()
        slot.waiters += 1
        try:
            try:
                await asyncio.wait_for(slot.lock.acquire(), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning("Timed out after %.1fs waiting for product %s", self.timeout, product_id)
                raise ConcurrencyConflict(
                    f"Product {product_id} is being modified by another request",
                    code="lock_timeout",
                ) from None
            try:
                yield
            finally:
                slot.lock.release()
        finally:
            slot.waiters -= 1
            if slot.waiters == 0 and self._slots.get(product_id) is slot:
                del self._slots[product_id]


class RedisProductLockRegistry:
    """Cross-process product locks backed by Redis."""

    KEY_PREFIX = "routetrack:lock:product:"

    def __init__(self, client: aioredis.Redis, timeout: float = 5.0, lease_seconds: float = 30.0) -> None:
        self.client = client
        self.timeout = timeout
        self.lease_seconds = lease_seconds

    @asynccontextmanager
    async def hold(self, product_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self.client.lock(
            f"{self.KEY_PREFIX}{product_id}",
            timeout=self.lease_seconds,
            blocking_timeout=self.timeout,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as exc:
            logger.exception("Redis lock for product %s failed", product_id)
            raise PersistenceFailure(f"Lock service unavailable: {exc}") from exc
        if not acquired:
            logger.warning("Timed out after %.1fs waiting for product %s", self.timeout, product_id)
            raise ConcurrencyConflict(
                f"Product {product_id} is being modified by another request",
                code="lock_timeout",
            )
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Lease expired while held; the next writer already owns the key.
                logger.warning("Lock lease for product %s expired before release", product_id)


def build_lock_registry(client: aioredis.Redis | None, timeout: float) -> ProductLockRegistry | RedisProductLockRegistry:
    """Redis-backed locks when a client is connected, in-process ones otherwise."""
    if client is not None:
        return RedisProductLockRegistry(client, timeout=timeout)
    return ProductLockRegistry(timeout=timeout)
