"""Progression engine: walks products along their route.

A product is ``not_started`` until its first visit opens, ``at_station``
while one visit is open, and ``completed`` once the last position closes.
``terminated`` is absorbing. Each transition (close the open visit, open the
next one, recompute progress and deadline) commits as one transaction under
the product's lock; a rejected submission rolls everything back.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.core.auth import SYSTEM_ACTOR, Actor
from routetrack.core.errors import ConflictInvariantViolation, FieldError, NotFoundError, ValidationFailedError
from routetrack.models.product import Product
from routetrack.models.station_history import StationHistoryEntry
from routetrack.schemas.history import HistoryEntryResponse
from routetrack.schemas.product import ProductCreate, ProductDetailResponse, ProductResponse
from routetrack.schemas.station import StationResponse
from routetrack.services.audit import record_audit
from routetrack.services.field_validation import apply_defaults, check_types, validate_submission
from routetrack.services.history_ledger import HistoryLedger
from routetrack.services.product_state import compute_progress, describe_product, due_at
from routetrack.services.route_service import RouteService, RouteSnapshot
from routetrack.services.transactions import BulkOutcome, ProductUnitOfWork

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class AdvanceResult:
    """Outcome of one advance attempt. ``ok=False`` means nothing was written."""

    ok: bool
    product: ProductResponse
    closed_entry: HistoryEntryResponse | None = None
    opened_entry: HistoryEntryResponse | None = None
    errors: list[FieldError] = field(default_factory=list)


class _RejectedSubmission(Exception):
    """Raised inside the transaction so a failed validation rolls it back."""

    def __init__(self, errors: list[FieldError]) -> None:
        super().__init__(f"{len(errors)} field errors")
        self.errors = errors


def normalize_field_keys(field_data: dict[str, Any] | None) -> dict[str, Any]:
    """Canonical lower-case UUID keys; unparseable keys pass through to fail validation."""
    normalized: dict[str, Any] = {}
    for key, value in (field_data or {}).items():
        try:
            normalized[str(uuid.UUID(str(key)))] = value
        except ValueError:
            normalized[str(key)] = value
    return normalized


def _confirmation_error(station: StationResponse) -> FieldError:
    return FieldError(
        field_id=None,
        reason="completion_requires_confirmation",
        message=f"Station {station.name} is completed by an explicit mark-complete",
    )


class ProgressionEngine(ProductUnitOfWork):
    """Creates products and moves them through their route's stations."""

    def __init__(self, session_factory, *, auto_start: bool = True, **kwargs: Any) -> None:
        super().__init__(session_factory, **kwargs)
        self.auto_start = auto_start

    # -------------------------------------------------------------------
    # Helpers running inside a transaction
    # -------------------------------------------------------------------

    async def _load_product(self, session: AsyncSession, product_id: uuid.UUID, for_update: bool = False) -> Product:
        query = select(Product).where(Product.id == product_id)
        if for_update:
            query = query.with_for_update()
        result = await session.execute(query)
        product = result.scalar_one_or_none()
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    async def _open_at(
        self,
        ledger: HistoryLedger,
        product: Product,
        snapshot: RouteSnapshot,
        sequence_order: int,
        actor: Actor,
        notes: str | None = None,
    ) -> StationHistoryEntry:
        stop = snapshot.station_at(sequence_order)
        if stop is None:
            raise ConflictInvariantViolation(
                f"Route {snapshot.route_id} has no position {sequence_order}", code="route_position_mismatch"
            )
        entry = await ledger.open_entry(product.id, stop.station, sequence_order, actor.id, notes)
        product.current_station_id = stop.station.id
        product.current_due_at = due_at(entry.start_time, stop.station.estimated_duration_minutes)
        return entry

    async def _resolve_open_entry(
        self,
        ledger: HistoryLedger,
        product: Product,
        snapshot: RouteSnapshot,
        actor: Actor,
    ) -> StationHistoryEntry:
        """The open visit, opening the first one lazily for a product not yet started."""
        if product.terminated_at is not None:
            raise ConflictInvariantViolation(
                f"Product {product.id} is terminated", code="no_open_station"
            )
        entry = await ledger.get_open_entry(product.id)
        if entry is not None:
            return entry

        closed = await ledger.count_closed(product.id)
        if closed >= snapshot.total_stations:
            raise ConflictInvariantViolation(
                f"Product {product.id} has completed its route", code="no_open_station"
            )
        if closed > 0:
            raise ConflictInvariantViolation(
                f"Product {product.id} has closed visits but no open one", code="ledger_inconsistent"
            )
        logger.info("Starting product %s at position 1 of route %s", product.id, snapshot.route_id)
        return await self._open_at(ledger, product, snapshot, 1, actor)

    def _station_for(self, snapshot: RouteSnapshot, entry: StationHistoryEntry) -> StationResponse:
        stop = snapshot.station_at(entry.sequence_order)
        if stop is None or stop.station.id != entry.station_id:
            raise ConflictInvariantViolation(
                f"Open visit {entry.id} does not match route {snapshot.route_id}",
                code="route_position_mismatch",
            )
        return stop.station

    async def _describe(self, session: AsyncSession, product: Product) -> ProductResponse:
        return await describe_product(session, product, self.overdue_policy, self.clock())

    # -------------------------------------------------------------------
    # Product creation and state
    # -------------------------------------------------------------------

    async def create_product(self, payload: ProductCreate, actor: Actor = SYSTEM_ACTOR) -> ProductResponse:
        """Create a product on an active route; opens the first visit when auto-start is on."""

        async def _create(session: AsyncSession) -> ProductResponse:
            routes = RouteService(session, actor.id)
            snapshot = await routes.load_snapshot(payload.route_id)
            route = await routes.get_route(payload.route_id)
            if not route.is_active:
                raise ValidationFailedError(
                    f"Route {route.name} v{route.version} is inactive; use its latest version"
                )

            product = Product(
                name=payload.name,
                model=payload.model,
                route_id=snapshot.route_id,
                priority=payload.priority,
                progress_percent=0,
                created_by=actor.id,
            )
            session.add(product)
            await session.flush()

            if self.auto_start:
                await self._open_at(HistoryLedger(session), product, snapshot, 1, actor, payload.notes)
                await session.flush()

            await record_audit(
                session, "products", product.id, "create", None, payload.model_dump(mode="json"), actor.id
            )
            logger.info("Created product %s (%s) on route %s", product.name, product.id, snapshot.name)
            return await self._describe(session, product)

        return await self.run(None, _create)

    async def get_state(self, product_id: uuid.UUID) -> ProductResponse:
        async def _get(session: AsyncSession) -> ProductResponse:
            return await self._describe(session, await self._load_product(session, product_id))

        return await self.read(_get)

    async def history(self, product_id: uuid.UUID) -> list[HistoryEntryResponse]:
        async def _history(session: AsyncSession) -> list[HistoryEntryResponse]:
            await self._load_product(session, product_id)
            return await HistoryLedger(session).history_for(product_id)

        return await self.read(_history)

    async def detail(self, product_id: uuid.UUID) -> ProductDetailResponse:
        """State and full history read in one transaction."""

        async def _detail(session: AsyncSession) -> ProductDetailResponse:
            state = await self._describe(session, await self._load_product(session, product_id))
            history = await HistoryLedger(session).history_for(product_id)
            return ProductDetailResponse(**state.model_dump(), history=history)

        return await self.read(_detail)

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------

    async def advance(
        self,
        product_id: uuid.UUID,
        field_data: dict[str, Any] | None = None,
        notes: str | None = None,
        *,
        force_complete: bool = False,
        outcome: str = "completed",
        actor: Actor = SYSTEM_ACTOR,
    ) -> AdvanceResult:
        """Submit data for the open visit and try to close it.

        ``outcome="skipped"`` closes the visit without validation and
        without recording the submitted values. ``force_complete`` is the
        explicit mark-complete of ``custom`` stations; values are still
        type-checked.
        """
        submitted = normalize_field_keys(field_data)

        async def _advance(session: AsyncSession) -> AdvanceResult:
            product = await self._load_product(session, product_id, for_update=True)
            snapshot = await RouteService(session, actor.id).load_snapshot(product.route_id)
            ledger = HistoryLedger(session)

            entry = await self._resolve_open_entry(ledger, product, snapshot, actor)
            station = self._station_for(snapshot, entry)

            if outcome != "skipped":
                previous = (await ledger.captured_data([entry.id]))[entry.id]
                captured = apply_defaults(station, {**previous, **submitted})

                if station.completion_rule == "custom":
                    errors = check_types(station, captured)
                    if not force_complete:
                        errors.append(_confirmation_error(station))
                else:
                    errors = validate_submission(station, captured).errors
                if errors:
                    raise _RejectedSubmission(errors)

                changed = {k: v for k, v in captured.items() if previous.get(k, _MISSING) != v}
                await ledger.record_field_values(entry.id, changed)

            closed = await ledger.close_entry(entry.id, outcome, notes)
            closed_view = await ledger.describe(closed)

            next_stop = snapshot.next_after(entry.station_id, entry.sequence_order)
            opened_view = None
            if next_stop is not None:
                opened = await self._open_at(ledger, product, snapshot, next_stop.sequence_order, actor)
                opened_view = await ledger.describe(opened)
            else:
                product.current_station_id = None
                product.current_due_at = None

            product.progress_percent = max(
                product.progress_percent,
                compute_progress(await ledger.count_closed(product.id), snapshot.total_stations),
            )
            await session.flush()

            logger.info(
                "Product %s %s position %d (%s); now %s",
                product.id,
                outcome,
                entry.sequence_order,
                entry.station_name,
                f"at position {next_stop.sequence_order}" if next_stop else "route complete",
            )
            return AdvanceResult(
                ok=True,
                product=await self._describe(session, product),
                closed_entry=closed_view,
                opened_entry=opened_view,
            )

        try:
            return await self.run(product_id, _advance)
        except _RejectedSubmission as rejected:
            logger.warning(
                "Rejected advance of product %s: %s",
                product_id,
                ", ".join(f"{e.field_name or e.field_id}={e.reason}" for e in rejected.errors),
            )
            return AdvanceResult(ok=False, product=await self.get_state(product_id), errors=rejected.errors)

    async def skip(
        self, product_id: uuid.UUID, notes: str | None = None, actor: Actor = SYSTEM_ACTOR
    ) -> AdvanceResult:
        return await self.advance(product_id, notes=notes, outcome="skipped", actor=actor)

    async def save_field_data(
        self,
        product_id: uuid.UUID,
        field_data: dict[str, Any],
        notes: str | None = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> HistoryEntryResponse:
        """Draft capture on the open visit. Type errors reject the draft; completeness is not checked."""
        submitted = normalize_field_keys(field_data)

        async def _save(session: AsyncSession) -> HistoryEntryResponse:
            product = await self._load_product(session, product_id, for_update=True)
            snapshot = await RouteService(session, actor.id).load_snapshot(product.route_id)
            ledger = HistoryLedger(session)

            entry = await self._resolve_open_entry(ledger, product, snapshot, actor)
            station = self._station_for(snapshot, entry)
            errors = check_types(station, submitted)
            if errors:
                raise ValidationFailedError("Submitted field data is invalid", errors)

            await ledger.record_field_values(entry.id, submitted)
            if notes is not None:
                entry.notes = notes
            await session.flush()
            return await ledger.describe(entry)

        return await self.run(product_id, _save)

    async def terminate(
        self, product_id: uuid.UUID, reason: str | None = None, actor: Actor = SYSTEM_ACTOR
    ) -> ProductResponse:
        """Stop a product for good. The open visit is closed as skipped."""

        async def _terminate(session: AsyncSession) -> ProductResponse:
            product = await self._load_product(session, product_id, for_update=True)
            if product.terminated_at is not None:
                raise ConflictInvariantViolation(f"Product {product_id} is already terminated", code="terminated")
            snapshot = await RouteService(session, actor.id).load_snapshot(product.route_id)
            ledger = HistoryLedger(session)

            entry = await ledger.get_open_entry(product.id)
            if entry is not None:
                await ledger.close_entry(entry.id, "skipped", reason)
            elif product.current_station_id is None and product.progress_percent >= 100:
                raise ConflictInvariantViolation(
                    f"Product {product_id} has completed its route", code="completed"
                )

            product.terminated_at = self.clock()
            product.current_station_id = None
            product.current_due_at = None
            product.progress_percent = max(
                product.progress_percent,
                compute_progress(await ledger.count_closed(product.id), snapshot.total_stations),
            )
            await session.flush()
            await record_audit(
                session, "products", product.id, "update", None, {"terminated": True, "reason": reason}, actor.id
            )
            logger.info("Terminated product %s by %s", product.id, actor.id)
            return await self._describe(session, product)

        return await self.run(product_id, _terminate)

    # -------------------------------------------------------------------
    # Bulk
    # -------------------------------------------------------------------

    async def bulk_advance(
        self,
        product_ids: list[str],
        field_data: dict[str, Any] | None = None,
        notes: str | None = None,
        *,
        force_complete: bool = False,
        outcome: str = "completed",
        actor: Actor = SYSTEM_ACTOR,
    ) -> BulkOutcome:
        """Advance many products with the same submission, each on its own."""

        async def _apply(product_id: uuid.UUID) -> None:
            result = await self.advance(
                product_id, field_data, notes, force_complete=force_complete, outcome=outcome, actor=actor
            )
            if not result.ok:
                raise ValidationFailedError("Submission rejected", result.errors)

        return await self.run_bulk(product_ids, _apply)
