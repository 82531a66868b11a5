"""Pydantic v2 schemas for request/response validation."""

from routetrack.schemas.analytics import DashboardAnalytics
from routetrack.schemas.field import FieldDefinitionCreate, FieldDefinitionResponse, FieldValidationRules
from routetrack.schemas.history import HistoryEntryResponse
from routetrack.schemas.product import (
    AdvanceRequest,
    AdvanceResponse,
    BulkAdvanceRequest,
    BulkResult,
    BulkUpdateRequest,
    FieldDataRequest,
    ProductCreate,
    ProductDetailResponse,
    ProductPage,
    ProductResponse,
    ProductUpdateRequest,
    RenameCommand,
    SetPriorityCommand,
    SetStatusOverrideCommand,
    TerminateRequest,
)
from routetrack.schemas.route import RouteCreate, RouteResponse, RouteRevision, RouteUpdate
from routetrack.schemas.station import StationCreate, StationResponse, StationUpdate

__all__ = [
    "AdvanceRequest",
    "AdvanceResponse",
    "BulkAdvanceRequest",
    "BulkResult",
    "BulkUpdateRequest",
    "DashboardAnalytics",
    "FieldDataRequest",
    "FieldDefinitionCreate",
    "FieldDefinitionResponse",
    "FieldValidationRules",
    "HistoryEntryResponse",
    "ProductCreate",
    "ProductDetailResponse",
    "ProductPage",
    "ProductResponse",
    "ProductUpdateRequest",
    "RenameCommand",
    "RouteCreate",
    "RouteResponse",
    "RouteRevision",
    "RouteUpdate",
    "SetPriorityCommand",
    "SetStatusOverrideCommand",
    "StationCreate",
    "StationResponse",
    "StationUpdate",
    "TerminateRequest",
]
