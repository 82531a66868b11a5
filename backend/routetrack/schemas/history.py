"""Station history Pydantic schemas."""

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

EntryStatus = Literal["pending", "in_progress", "completed", "skipped"]


class HistoryEntryResponse(BaseModel):
    """One ledger row with the values captured during the visit."""

    id: uuid.UUID
    product_id: uuid.UUID
    station_id: uuid.UUID
    sequence_order: int
    station_name: str
    owner: str
    start_time: datetime
    end_time: datetime | None
    status: EntryStatus
    captured_field_data: dict[str, Any] = Field(default_factory=dict)
    notes: str | None = None
    created_by: str

    @property
    def is_open(self) -> bool:
        return self.status in ("pending", "in_progress")
