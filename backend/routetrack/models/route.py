"""Route and RouteStation SQLAlchemy models."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from routetrack.core.database import Base, UTCDateTime, utcnow


class Route(Base):
    """Ordered template of stations a product passes through.

    Station topology is frozen once created; revising the stations creates a
    new row with ``version + 1`` pointing back through ``supersedes_id``.
    """

    __tablename__ = "routes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    supersedes_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("routes.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class RouteStation(Base):
    """One sequence position of a route. A station may occupy several."""

    __tablename__ = "route_stations"
    __table_args__ = (
        UniqueConstraint("route_id", "sequence_order", name="uq_route_stations_route_sequence"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    route_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("routes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    station_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("stations.id"), nullable=False, index=True
    )
    sequence_order: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="1-based, dense, unique per route"
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
