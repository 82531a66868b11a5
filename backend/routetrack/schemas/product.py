"""Product Pydantic schemas."""

import uuid
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, model_validator

from routetrack.schemas.history import HistoryEntryResponse

Priority = Literal["low", "medium", "high"]
ProductStatus = Literal["normal", "overdue"]
Lifecycle = Literal["not_started", "at_station", "completed", "terminated"]
CloseOutcome = Literal["completed", "skipped"]


class ProductCreate(BaseModel):
    """Schema for creating a product against a route."""

    name: str = Field(..., min_length=1, max_length=200)
    model: str = Field(..., min_length=1, max_length=100)
    route_id: uuid.UUID
    priority: Priority = "medium"
    notes: str | None = Field(None, description="Recorded on the first station visit")


# ---------------------------------------------------------------------------
# Administrative update commands (closed set; no free-form column updates)
# ---------------------------------------------------------------------------


class RenameCommand(BaseModel):
    op: Literal["rename"] = "rename"
    name: str | None = Field(None, min_length=1, max_length=200)
    model: str | None = Field(None, min_length=1, max_length=100)

    @model_validator(mode="after")
    def _something_to_rename(self) -> "RenameCommand":
        if self.name is None and self.model is None:
            raise ValueError("rename needs a name or a model")
        return self


class SetPriorityCommand(BaseModel):
    op: Literal["set_priority"] = "set_priority"
    priority: Priority


class SetStatusOverrideCommand(BaseModel):
    """Pin the status; ``None`` clears the override."""

    op: Literal["set_status_override"] = "set_status_override"
    status: ProductStatus | None


ProductCommand = Annotated[
    RenameCommand | SetPriorityCommand | SetStatusOverrideCommand,
    Field(discriminator="op"),
]


class ProductUpdateRequest(BaseModel):
    command: ProductCommand


class BulkUpdateRequest(BaseModel):
    """One command applied to many products, each independently."""

    product_ids: list[str] = Field(..., min_length=1, max_length=500)
    command: ProductCommand


class AdvanceRequest(BaseModel):
    """Submit station data and try to close the current visit."""

    field_data: dict[str, Any] = Field(default_factory=dict)
    notes: str | None = None
    force_complete: bool = False
    outcome: CloseOutcome = "completed"


class FieldDataRequest(BaseModel):
    """Draft capture of station data without closing the visit."""

    field_data: dict[str, Any] = Field(..., min_length=1)
    notes: str | None = None


class SkipRequest(BaseModel):
    notes: str | None = Field(None, max_length=500)


class TerminateRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class BulkAdvanceRequest(AdvanceRequest):
    product_ids: list[str] = Field(..., min_length=1, max_length=500)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ProductResponse(BaseModel):
    """Product state including derived lifecycle and status."""

    id: uuid.UUID
    name: str
    model: str
    route_id: uuid.UUID
    route_name: str | None = None
    current_station_id: uuid.UUID | None
    current_station_name: str | None = None
    current_owner: str | None = None
    current_sequence: int | None = None
    total_stations: int = 0
    progress_percent: int
    status: ProductStatus
    status_override: ProductStatus | None = None
    lifecycle: Lifecycle
    priority: Priority
    current_due_at: datetime | None = None
    estimated_completion: datetime | None = None
    terminated_at: datetime | None = None
    created_by: str
    created_at: datetime
    updated_at: datetime


class ProductDetailResponse(ProductResponse):
    history: list[HistoryEntryResponse] = Field(default_factory=list)


class ItemErrorResponse(BaseModel):
    product_id: str
    kind: str
    detail: str
    errors: list[dict[str, Any]] = Field(default_factory=list)


class BulkResult(BaseModel):
    """Mixed success/failure summary of a bulk operation."""

    updated_count: int
    failed_count: int
    errors: list[ItemErrorResponse] = Field(default_factory=list)


class AdvanceResponse(BaseModel):
    ok: bool
    product: ProductResponse
    closed_entry: HistoryEntryResponse | None = None
    opened_entry: HistoryEntryResponse | None = None
    errors: list[dict[str, Any]] = Field(default_factory=list)


class ProductPage(BaseModel):
    """One page of products plus enough metadata to fetch the next."""

    items: list[ProductResponse]
    total: int
    page: int
    limit: int
    pages: int
    has_next: bool
    has_prev: bool
    next_cursor: str | None = None
