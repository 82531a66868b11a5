"""Product SQLAlchemy model."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from routetrack.core.database import Base, UTCDateTime, utcnow


class Product(Base):
    """Physical item travelling along a route.

    ``current_station_id``, ``progress_percent`` and ``current_due_at`` are
    owned by the progression engine. ``version_id`` is bumped on every
    UPDATE so concurrent writers lose with a StaleDataError.
    """

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    route_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("routes.id"), nullable=False, index=True
    )
    current_station_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("stations.id"), nullable=True, index=True
    )
    progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status_override: Mapped[str | None] = mapped_column(
        String(20), nullable=True, comment="Explicit override; wins over the derived status"
    )
    current_due_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, comment="Deadline of the open station visit"
    )
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")
    terminated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}
