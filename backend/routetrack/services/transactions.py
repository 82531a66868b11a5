"""Shared transaction plumbing for services that write products.

Every write runs under the product's lock, in its own session and
transaction, bounded by a timeout. Storage errors are translated into the
engine's error taxonomy before they leave this module.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from routetrack.core.database import utcnow
from routetrack.core.errors import (
    ConcurrencyConflict,
    ItemError,
    PersistenceFailure,
    TrackingError,
    ValidationFailedError,
)
from routetrack.services.locks import ProductLockRegistry, RedisProductLockRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BulkOutcome:
    """Partial-success summary; one failing product never aborts the rest."""

    updated_count: int = 0
    failed_count: int = 0
    errors: list[ItemError] = field(default_factory=list)


def parse_product_ids(raw_ids: list[str]) -> tuple[list[uuid.UUID], list[ItemError]]:
    """Split raw ids into unique parsed UUIDs (input order kept) and per-item errors."""
    parsed: list[uuid.UUID] = []
    errors: list[ItemError] = []
    seen: set[uuid.UUID] = set()
    for raw in raw_ids:
        try:
            product_id = uuid.UUID(str(raw))
        except ValueError:
            errors.append(
                ItemError.from_exception(raw, ValidationFailedError(f"Malformed product id: {raw!r}"))
            )
            continue
        if product_id not in seen:
            seen.add(product_id)
            parsed.append(product_id)
    return parsed, errors


class ProductUnitOfWork:
    """Base for services that mutate products through a session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        locks: ProductLockRegistry | RedisProductLockRegistry | None = None,
        lock_timeout: float = 5.0,
        persistence_timeout: float = 10.0,
        bulk_max_concurrency: int = 8,
        overdue_policy: str = "derived",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.locks = locks or ProductLockRegistry(timeout=lock_timeout)
        self.persistence_timeout = persistence_timeout
        self.bulk_max_concurrency = max(1, bulk_max_concurrency)
        self.overdue_policy = overdue_policy
        self.clock = clock

    async def _in_transaction(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.session_factory() as session:
            async with session.begin():
                return await operation(session)

    async def _guarded(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(self._in_transaction(operation), timeout=self.persistence_timeout)
        except asyncio.TimeoutError:
            logger.error("Store did not answer within %.1fs", self.persistence_timeout)
            raise PersistenceFailure(
                f"Store did not answer within {self.persistence_timeout:g}s", code="timeout"
            ) from None
        except StaleDataError as exc:
            raise ConcurrencyConflict("Product was modified concurrently", code="stale_version") from exc
        except IntegrityError as exc:
            # Lost a race on a unique constraint, e.g. two writers opening a visit.
            logger.warning("Integrity conflict: %s", exc.orig)
            raise ConcurrencyConflict("Concurrent write rejected by the store", code="integrity") from exc
        except SQLAlchemyError as exc:
            logger.exception("Persistence failure")
            raise PersistenceFailure(f"Persistence failure: {exc.__class__.__name__}") from exc

    async def run(
        self,
        product_id: uuid.UUID | None,
        operation: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """Run ``operation`` in one transaction, under the product lock when an id is given."""
        if product_id is None:
            return await self._guarded(operation)
        async with self.locks.hold(product_id):
            return await self._guarded(operation)

    async def read(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Lock-free read in a throwaway transaction."""
        return await self._guarded(operation)

    async def run_bulk(
        self,
        raw_ids: list[str],
        apply: Callable[[uuid.UUID], Awaitable[object]],
    ) -> BulkOutcome:
        """Apply ``apply`` to every product independently with bounded concurrency."""
        product_ids, parse_errors = parse_product_ids(raw_ids)
        semaphore = asyncio.Semaphore(self.bulk_max_concurrency)

        async def _one(product_id: uuid.UUID) -> ItemError | None:
            async with semaphore:
                try:
                    await apply(product_id)
                except TrackingError as exc:
                    return ItemError.from_exception(product_id, exc)
                return None

        results = await asyncio.gather(*(_one(pid) for pid in product_ids))
        item_errors = [r for r in results if r is not None]
        outcome = BulkOutcome(
            updated_count=len(product_ids) - len(item_errors),
            failed_count=len(parse_errors) + len(item_errors),
            errors=parse_errors + item_errors,
        )
        logger.info(
            "Bulk operation over %d ids: %d updated, %d failed",
            len(raw_ids),
            outcome.updated_count,
            outcome.failed_count,
        )
        return outcome
