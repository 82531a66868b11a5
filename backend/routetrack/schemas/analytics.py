"""Dashboard analytics Pydantic schemas."""

import uuid

from pydantic import BaseModel, Field


class StationUtilization(BaseModel):
    station_id: uuid.UUID
    station_name: str
    owner: str
    current_products: int
    completed_today: int
    average_duration_minutes: float


class RouteUsage(BaseModel):
    route_id: uuid.UUID
    route_name: str
    total_products: int
    completed_products: int
    completion_rate: float


class OwnerPerformance(BaseModel):
    owner: str
    total_assigned: int
    completed: int
    overdue: int
    completion_rate: float


class DashboardAnalytics(BaseModel):
    """Aggregate view over all products and their ledgers."""

    total_products: int
    normal_products: int
    overdue_products: int
    completed_products: int
    in_progress_products: int
    terminated_products: int
    average_progress: float
    average_completion_hours: float
    station_utilization: list[StationUtilization] = Field(default_factory=list)
    route_usage: list[RouteUsage] = Field(default_factory=list)
    owner_performance: list[OwnerPerformance] = Field(default_factory=list)
