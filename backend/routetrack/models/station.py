"""Station SQLAlchemy model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from routetrack.core.database import Base, UTCDateTime, utcnow


class Station(Base):
    """A named processing step with an owner and a completion rule."""

    __tablename__ = "stations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    owner: Mapped[str] = mapped_column(
        String(100), nullable=False, comment="Responsible party label, not a user account"
    )
    completion_rule: Mapped[str] = mapped_column(
        String(20), nullable=False, default="all_filled", comment="all_filled | custom"
    )
    estimated_duration_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="0 means no estimate"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
