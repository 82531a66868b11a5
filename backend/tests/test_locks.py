"""Tests for per-product lock registries."""

import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockError

from routetrack.core.errors import ConcurrencyConflict, PersistenceFailure
from routetrack.services.locks import ProductLockRegistry, RedisProductLockRegistry, build_lock_registry


def _redis_with_lock(acquire_result=True, acquire_side_effect=None, release_side_effect=None):
    lock = MagicMock()
    lock.acquire = AsyncMock(return_value=acquire_result, side_effect=acquire_side_effect)
    lock.release = AsyncMock(side_effect=release_side_effect)
    client = MagicMock()
    client.lock.return_value = lock
    return client, lock


class TestProductLockRegistry:
    @pytest.mark.asyncio
    async def test_serializes_same_product(self):
        registry = ProductLockRegistry(timeout=1.0)
        product_id = uuid.uuid4()
        order = []

        async def worker(name):
            async with registry.hold(product_id):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_products_do_not_block(self):
        registry = ProductLockRegistry(timeout=0.05)
        first, second = uuid.uuid4(), uuid.uuid4()

        async with registry.hold(first):
            async with registry.hold(second):
                assert len(registry) == 2

    @pytest.mark.asyncio
    async def test_times_out_with_conflict(self):
        registry = ProductLockRegistry(timeout=0.05)
        product_id = uuid.uuid4()

        async with registry.hold(product_id):
            with pytest.raises(ConcurrencyConflict) as exc_info:
                async with registry.hold(product_id):
                    pass
        assert exc_info.value.code == "lock_timeout"
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_slots_are_released(self):
        registry = ProductLockRegistry(timeout=1.0)
        product_id = uuid.uuid4()

        with pytest.raises(RuntimeError):
            async with registry.hold(product_id):
                raise RuntimeError("boom")

        assert len(registry) == 0
        async with registry.hold(product_id):
            assert len(registry) == 1
        assert len(registry) == 0


class TestRedisProductLockRegistry:
    @pytest.mark.asyncio
    async def test_acquires_and_releases(self):
        client, lock = _redis_with_lock()
        registry = RedisProductLockRegistry(client, timeout=2.0, lease_seconds=10.0)
        product_id = uuid.uuid4()

        async with registry.hold(product_id):
            lock.release.assert_not_awaited()

        client.lock.assert_called_once_with(
            f"routetrack:lock:product:{product_id}", timeout=10.0, blocking_timeout=2.0
        )
        lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_not_acquired_is_conflict(self):
        client, lock = _redis_with_lock(acquire_result=False)

        with pytest.raises(ConcurrencyConflict) as exc_info:
            async with RedisProductLockRegistry(client).hold(uuid.uuid4()):
                pass
        assert exc_info.value.code == "lock_timeout"
        lock.release.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redis_error_is_persistence_failure(self):
        client, _ = _redis_with_lock(acquire_side_effect=RedisConnectionError("down"))

        with pytest.raises(PersistenceFailure):
            async with RedisProductLockRegistry(client).hold(uuid.uuid4()):
                pass

    @pytest.mark.asyncio
    async def test_expired_lease_on_release_is_tolerated(self):
        client, lock = _redis_with_lock(release_side_effect=LockError("expired"))

        async with RedisProductLockRegistry(client).hold(uuid.uuid4()):
            pass
        lock.release.assert_awaited_once()


class TestBuildLockRegistry:
    def test_falls_back_without_client(self):
        registry = build_lock_registry(None, timeout=3.0)
        assert isinstance(registry, ProductLockRegistry)
        assert registry.timeout == 3.0

    def test_uses_redis_when_connected(self):
        client = MagicMock()
        registry = build_lock_registry(client, timeout=3.0)
        assert isinstance(registry, RedisProductLockRegistry)
        assert registry.client is client
