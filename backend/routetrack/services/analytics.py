"""Dashboard analytics computed from product state and the history ledger."""

import logging
import uuid
from collections import defaultdict
from datetime import datetime, time, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.core.database import utcnow
from routetrack.models.product import Product
from routetrack.models.route import Route
from routetrack.models.station import Station
from routetrack.models.station_history import OPEN_STATUSES, StationHistoryEntry
from routetrack.schemas.analytics import DashboardAnalytics, OwnerPerformance, RouteUsage, StationUtilization
from routetrack.services.product_state import effective_status, lifecycle_of

logger = logging.getLogger(__name__)


def _rate(part: int, whole: int) -> float:
    return round(100.0 * part / whole, 1) if whole else 0.0


class AnalyticsService:
    def __init__(self, db: AsyncSession, overdue_policy: str = "derived") -> None:
        self.db = db
        self.overdue_policy = overdue_policy

    async def dashboard(self, now: datetime | None = None) -> DashboardAnalytics:
        now = now or utcnow()
        today_start = datetime.combine(now.astimezone(timezone.utc).date(), time.min, tzinfo=timezone.utc)

        products = list((await self.db.execute(select(Product))).scalars().all())
        entries = list(
            (
                await self.db.execute(
                    select(StationHistoryEntry).order_by(
                        StationHistoryEntry.product_id, StationHistoryEntry.start_time
                    )
                )
            ).scalars().all()
        )
        stations = {s.id: s for s in (await self.db.execute(select(Station))).scalars().all()}
        routes = {r.id: r for r in (await self.db.execute(select(Route))).scalars().all()}

        statuses = {
            p.id: effective_status(p.status_override, p.current_due_at, self.overdue_policy, now) for p in products
        }
        lifecycles = {p.id: lifecycle_of(p) for p in products}

        # Wall-clock time from first visit start to last visit end, completed products only
        spans: dict[uuid.UUID, list[datetime]] = {}
        for entry in entries:
            if lifecycles.get(entry.product_id) != "completed":
                continue
            span = spans.setdefault(entry.product_id, [entry.start_time, entry.end_time or entry.start_time])
            span[0] = min(span[0], entry.start_time)
            span[1] = max(span[1], entry.end_time or entry.start_time)
        completion_hours = [(end - start).total_seconds() / 3600 for start, end in spans.values()]

        station_current: dict[uuid.UUID, int] = defaultdict(int)
        station_completed_today: dict[uuid.UUID, int] = defaultdict(int)
        station_durations: dict[uuid.UUID, list[float]] = defaultdict(list)
        owner_stats: dict[str, dict[str, int]] = defaultdict(lambda: {"total": 0, "completed": 0, "overdue": 0})

        for entry in entries:
            stats = owner_stats[entry.owner]
            stats["total"] += 1
            if entry.status in OPEN_STATUSES:
                station_current[entry.station_id] += 1
                if statuses.get(entry.product_id) == "overdue":
                    stats["overdue"] += 1
            elif entry.status == "completed":
                stats["completed"] += 1
                if entry.end_time is not None:
                    station_durations[entry.station_id].append(
                        (entry.end_time - entry.start_time).total_seconds() / 60
                    )
                    if entry.end_time >= today_start:
                        station_completed_today[entry.station_id] += 1

        route_totals: dict[uuid.UUID, int] = defaultdict(int)
        route_completed: dict[uuid.UUID, int] = defaultdict(int)
        for product in products:
            route_totals[product.route_id] += 1
            if lifecycles[product.id] == "completed":
                route_completed[product.route_id] += 1

        logger.debug("Dashboard over %d products and %d visits", len(products), len(entries))
        lifecycle_values = list(lifecycles.values())
        return DashboardAnalytics(
            total_products=len(products),
            normal_products=sum(1 for s in statuses.values() if s == "normal"),
            overdue_products=sum(1 for s in statuses.values() if s == "overdue"),
            completed_products=lifecycle_values.count("completed"),
            in_progress_products=lifecycle_values.count("at_station"),
            terminated_products=lifecycle_values.count("terminated"),
            average_progress=(
                round(sum(p.progress_percent for p in products) / len(products), 1) if products else 0.0
            ),
            average_completion_hours=(
                round(sum(completion_hours) / len(completion_hours), 2) if completion_hours else 0.0
            ),
            station_utilization=[
                StationUtilization(
                    station_id=station.id,
                    station_name=station.name,
                    owner=station.owner,
                    current_products=station_current[station.id],
                    completed_today=station_completed_today[station.id],
                    average_duration_minutes=(
                        round(sum(station_durations[station.id]) / len(station_durations[station.id]), 1)
                        if station_durations[station.id]
                        else 0.0
                    ),
                )
                for station in sorted(stations.values(), key=lambda s: s.name)
                if station.is_active or station_current[station.id]
            ],
            route_usage=[
                RouteUsage(
                    route_id=route_id,
                    route_name=routes[route_id].name if route_id in routes else str(route_id),
                    total_products=total,
                    completed_products=route_completed[route_id],
                    completion_rate=_rate(route_completed[route_id], total),
                )
                for route_id, total in sorted(route_totals.items(), key=lambda item: -item[1])
            ],
            owner_performance=[
                OwnerPerformance(
                    owner=owner,
                    total_assigned=stats["total"],
                    completed=stats["completed"],
                    overdue=stats["overdue"],
                    completion_rate=_rate(stats["completed"], stats["total"]),
                )
                for owner, stats in sorted(owner_stats.items())
            ],
        )
