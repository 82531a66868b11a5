"""Append-mostly ledger of station visits.

Entries are only ever opened, filled and closed; a closed entry is never
reopened or edited. The ledger does not touch the Product row, keeping the
station pointer consistent with it is the progression engine's job.
"""

import logging
import uuid
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.core.database import utcnow
from routetrack.core.errors import ConflictInvariantViolation, FieldError, NotFoundError, ValidationFailedError
from routetrack.models.field_definition import FieldDefinition
from routetrack.models.station_history import OPEN_STATUSES, StationFieldValue, StationHistoryEntry
from routetrack.schemas.history import HistoryEntryResponse
from routetrack.schemas.station import StationResponse

logger = logging.getLogger(__name__)


def _ledger_order():
    return (StationHistoryEntry.start_time, StationHistoryEntry.sequence_order, StationHistoryEntry.created_at)


class HistoryLedger:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------

    async def get_entry(self, entry_id: uuid.UUID) -> StationHistoryEntry:
        result = await self.db.execute(select(StationHistoryEntry).where(StationHistoryEntry.id == entry_id))
        entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundError("History entry", entry_id)
        return entry

    async def get_open_entry(self, product_id: uuid.UUID) -> StationHistoryEntry | None:
        result = await self.db.execute(
            select(StationHistoryEntry).where(
                StationHistoryEntry.product_id == product_id,
                StationHistoryEntry.status.in_(OPEN_STATUSES),
            )
        )
        return result.scalar_one_or_none()

    async def count_closed(self, product_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(StationHistoryEntry)
            .where(
                StationHistoryEntry.product_id == product_id,
                StationHistoryEntry.status.not_in(OPEN_STATUSES),
            )
        )
        return result.scalar() or 0

    async def captured_data(self, entry_ids: list[uuid.UUID]) -> dict[uuid.UUID, dict[str, Any]]:
        """Captured values per entry as ``{field_id: value}``."""
        captured: dict[uuid.UUID, dict[str, Any]] = {entry_id: {} for entry_id in entry_ids}
        if not entry_ids:
            return captured
        result = await self.db.execute(
            select(StationFieldValue)
            .where(StationFieldValue.entry_id.in_(entry_ids))
            .order_by(StationFieldValue.created_at)
        )
        for row in result.scalars().all():
            captured[row.entry_id][str(row.field_id)] = row.value
        return captured

    def to_response(self, entry: StationHistoryEntry, captured: dict[str, Any] | None = None) -> HistoryEntryResponse:
        return HistoryEntryResponse(
            id=entry.id,
            product_id=entry.product_id,
            station_id=entry.station_id,
            sequence_order=entry.sequence_order,
            station_name=entry.station_name,
            owner=entry.owner,
            start_time=entry.start_time,
            end_time=entry.end_time,
            status=entry.status,
            captured_field_data=captured or {},
            notes=entry.notes,
            created_by=entry.created_by,
        )

    async def describe(self, entry: StationHistoryEntry) -> HistoryEntryResponse:
        captured = await self.captured_data([entry.id])
        return self.to_response(entry, captured[entry.id])

    async def history_for(self, product_id: uuid.UUID) -> list[HistoryEntryResponse]:
        """All visits of a product, oldest first."""
        result = await self.db.execute(
            select(StationHistoryEntry).where(StationHistoryEntry.product_id == product_id).order_by(*_ledger_order())
        )
        entries = list(result.scalars().all())
        captured = await self.captured_data([e.id for e in entries])
        return [self.to_response(e, captured[e.id]) for e in entries]

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------

    async def open_entry(
        self,
        product_id: uuid.UUID,
        station: StationResponse,
        sequence_order: int,
        actor_id: str = "system",
        notes: str | None = None,
    ) -> StationHistoryEntry:
        """Start a visit. Name and owner are snapshotted from ``station``."""
        if await self.get_open_entry(product_id) is not None:
            raise ConflictInvariantViolation(
                f"Product {product_id} already has an open station visit",
                code="open_entry_exists",
            )
        entry = StationHistoryEntry(
            product_id=product_id,
            station_id=station.id,
            sequence_order=sequence_order,
            station_name=station.name,
            owner=station.owner,
            start_time=utcnow(),
            status="pending",
            notes=notes,
            created_by=actor_id,
        )
        self.db.add(entry)
        await self.db.flush()
        logger.debug("Opened entry %s for product %s at position %d", entry.id, product_id, sequence_order)
        return entry

    async def record_field_values(self, entry_id: uuid.UUID, values: dict[str, Any]) -> StationHistoryEntry:
        """Upsert several captured values on an open entry.

        The first write moves the entry from ``pending`` to ``in_progress``.
        Never closes the entry.
        """
        entry = await self.get_entry(entry_id)
        if entry.status not in OPEN_STATUSES:
            raise ConflictInvariantViolation(
                f"History entry {entry_id} is {entry.status} and cannot take new data",
                code="entry_closed",
            )
        if not values:
            return entry

        result = await self.db.execute(select(FieldDefinition).where(FieldDefinition.station_id == entry.station_id))
        fields = {str(f.id): f for f in result.scalars().all()}
        unknown = [key for key in values if str(key) not in fields]
        if unknown:
            raise ValidationFailedError(
                "Submitted data contains fields of another station",
                [
                    FieldError(
                        field_id=str(key),
                        reason="unknown_field",
                        message=f"Field {key} does not belong to station {entry.station_name}",
                    )
                    for key in unknown
                ],
            )

        existing_result = await self.db.execute(
            select(StationFieldValue).where(StationFieldValue.entry_id == entry.id)
        )
        existing = {str(row.field_id): row for row in existing_result.scalars().all()}

        for key, value in values.items():
            field_def = fields[str(key)]
            stored = jsonable_encoder(value)
            row = existing.get(str(key))
            if row is None:
                self.db.add(
                    StationFieldValue(entry_id=entry.id, field_id=field_def.id, field_name=field_def.name, value=stored)
                )
            else:
                row.value = stored

        if entry.status == "pending":
            entry.status = "in_progress"
        await self.db.flush()
        return entry

    async def record_field_data(self, entry_id: uuid.UUID, field_id: uuid.UUID | str, value: Any) -> StationHistoryEntry:
        return await self.record_field_values(entry_id, {str(field_id): value})

    async def close_entry(
        self, entry_id: uuid.UUID, outcome: str, notes: str | None = None
    ) -> StationHistoryEntry:
        if outcome not in ("completed", "skipped"):
            raise ValueError(f"Unsupported close outcome: {outcome}")
        entry = await self.get_entry(entry_id)
        if entry.status not in OPEN_STATUSES:
            raise ConflictInvariantViolation(
                f"History entry {entry_id} is already {entry.status}",
                code="entry_closed",
            )
        entry.status = outcome
        entry.end_time = utcnow()
        if notes is not None:
            entry.notes = notes
        # Flushed now so the partial unique index sees the entry closed
        # before the next one is inserted.
        await self.db.flush()
        logger.debug("Closed entry %s as %s", entry.id, outcome)
        return entry
