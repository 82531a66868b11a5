"""SQLAlchemy ORM models."""

from routetrack.models.audit_log import AuditLog
from routetrack.models.field_definition import FieldDefinition
from routetrack.models.product import Product
from routetrack.models.route import Route, RouteStation
from routetrack.models.station import Station
from routetrack.models.station_history import StationFieldValue, StationHistoryEntry

__all__ = [
    "AuditLog",
    "FieldDefinition",
    "Product",
    "Route",
    "RouteStation",
    "Station",
    "StationFieldValue",
    "StationHistoryEntry",
]
