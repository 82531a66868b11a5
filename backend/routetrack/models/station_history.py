"""Station history ledger SQLAlchemy models."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from routetrack.core.database import Base, JSONType, UTCDateTime, utcnow

OPEN_STATUSES = ("pending", "in_progress")
CLOSED_STATUSES = ("completed", "skipped")


class StationHistoryEntry(Base):
    """One visit of a product to one sequence position of its route."""

    __tablename__ = "station_history"
    __table_args__ = (
        Index("ix_station_history_product_start", "product_id", "start_time"),
        # At most one open visit per product, enforced by the database too.
        Index(
            "uq_station_history_open_entry",
            "product_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'in_progress')"),
            sqlite_where=text("status IN ('pending', 'in_progress')"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    station_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("stations.id"), nullable=False, index=True
    )
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)
    station_name: Mapped[str] = mapped_column(
        String(100), nullable=False, comment="Snapshot at visit time"
    )
    owner: Mapped[str] = mapped_column(
        String(100), nullable=False, index=True, comment="Snapshot at visit time"
    )
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        comment="pending | in_progress | completed | skipped",
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)


class StationFieldValue(Base):
    """A captured value for one field of one history entry."""

    __tablename__ = "station_field_values"
    __table_args__ = (
        UniqueConstraint("entry_id", "field_id", name="uq_station_field_values_entry_field"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    entry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("station_history.id", ondelete="CASCADE"), nullable=False, index=True
    )
    field_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("field_definitions.id"), nullable=False, index=True
    )
    field_name: Mapped[str] = mapped_column(
        String(100), nullable=False, comment="Snapshot at capture time"
    )
    value: Mapped[Any] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
