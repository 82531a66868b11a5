"""Route Pydantic schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class RouteCreate(BaseModel):
    """Schema for creating a route. Station order follows list order."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    station_ids: list[uuid.UUID] = Field(
        ..., min_length=1, description="Ordered stations; repeats are distinct positions"
    )


class RouteUpdate(BaseModel):
    """In-place edit of route metadata. Topology changes go through a revision."""

    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None


class RouteRevision(BaseModel):
    """New station sequence; creates the next route version."""

    station_ids: list[uuid.UUID] = Field(..., min_length=1)
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None


class RouteStopResponse(BaseModel):
    sequence_order: int
    station_id: uuid.UUID
    station_name: str
    owner: str
    completion_rule: str
    estimated_duration_minutes: int


class RouteResponse(BaseModel):
    """Route with its ordered stops."""

    id: uuid.UUID
    name: str
    description: str
    version: int
    is_active: bool
    supersedes_id: uuid.UUID | None = None
    stations: list[RouteStopResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
