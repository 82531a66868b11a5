"""Station Pydantic schemas."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from routetrack.schemas.field import FieldDefinitionCreate, FieldDefinitionResponse

CompletionRule = Literal["all_filled", "custom"]


class StationCreate(BaseModel):
    """Schema for creating a station together with its fields."""

    name: str = Field(..., min_length=1, max_length=100)
    owner: str = Field(..., min_length=1, max_length=100)
    completion_rule: CompletionRule = "all_filled"
    estimated_duration_minutes: int = Field(default=0, ge=0)
    fields: list[FieldDefinitionCreate] = Field(default_factory=list)


class StationUpdate(BaseModel):
    """Partial update of station attributes. Fields are managed separately."""

    name: str | None = Field(None, min_length=1, max_length=100)
    owner: str | None = Field(None, min_length=1, max_length=100)
    completion_rule: CompletionRule | None = None
    estimated_duration_minutes: int | None = Field(None, ge=0)


class StationResponse(BaseModel):
    """Station definition with its ordered fields."""

    id: uuid.UUID
    name: str
    owner: str
    completion_rule: CompletionRule
    estimated_duration_minutes: int
    is_active: bool = True
    fields: list[FieldDefinitionResponse] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, station, fields) -> "StationResponse":
        return cls(
            id=station.id,
            name=station.name,
            owner=station.owner,
            completion_rule=station.completion_rule,
            estimated_duration_minutes=station.estimated_duration_minutes,
            is_active=station.is_active,
            fields=[FieldDefinitionResponse.from_model(f) for f in fields],
            created_at=station.created_at,
            updated_at=station.updated_at,
        )

    def field_by_id(self, field_id: str | uuid.UUID) -> FieldDefinitionResponse | None:
        key = str(field_id)
        return next((f for f in self.fields if str(f.id) == key), None)
