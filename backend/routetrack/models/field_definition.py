"""FieldDefinition SQLAlchemy model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from routetrack.core.database import Base, JSONType, UTCDateTime, utcnow


class FieldDefinition(Base):
    """One capturable datum on a station."""

    __tablename__ = "field_definitions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    station_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("stations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    field_type: Mapped[str] = mapped_column(
        "type",
        String(20),
        nullable=False,
        comment="text | number | date | select | checkbox | textarea",
    )
    required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    options: Mapped[list | None] = mapped_column(
        JSONType, nullable=True, comment="Ordered option labels for select fields"
    )
    default_value: Mapped[str | None] = mapped_column(String(255), nullable=True)
    validation_rules: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment='{"min": 0, "max": 10, "pattern": "..."}'
    )
    position: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Display order within the station"
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
