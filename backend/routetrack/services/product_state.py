"""Derived product state: lifecycle, progress, effective status, ETA.

These rules are shared by the progression engine, the admin service, the
listing queries and analytics, so a product reads the same everywhere.
"""

import uuid
from datetime import datetime, timedelta

from sqlalchemy import and_, case, literal, select
from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.models.product import Product
from routetrack.models.route import Route, RouteStation
from routetrack.models.station import Station
from routetrack.models.station_history import OPEN_STATUSES, StationHistoryEntry
from routetrack.schemas.product import ProductResponse


def compute_progress(closed: int, total: int) -> int:
    """``round(100 * closed / total)`` with halves rounded up.

    Only a fully walked route reports 100, so 99.5% on a long route stays
    at 99 until the last station closes.
    """
    if total <= 0:
        return 0
    closed = max(0, min(closed, total))
    if closed == total:
        return 100
    return min(99, (200 * closed + total) // (2 * total))


def due_at(start_time: datetime, estimated_duration_minutes: int) -> datetime | None:
    """Deadline of a visit; stations without an estimate never run late."""
    if estimated_duration_minutes <= 0:
        return None
    return start_time + timedelta(minutes=estimated_duration_minutes)


def lifecycle_of(product: Product) -> str:
    if product.terminated_at is not None:
        return "terminated"
    if product.current_station_id is not None:
        return "at_station"
    if product.progress_percent >= 100:
        return "completed"
    return "not_started"


def effective_status(
    status_override: str | None,
    current_due_at: datetime | None,
    policy: str,
    now: datetime,
) -> str:
    """Explicit override first, then the overdue policy."""
    if status_override is not None:
        return status_override
    if policy == "derived" and current_due_at is not None and now > current_due_at:
        return "overdue"
    return "normal"


def effective_status_expr(policy: str, now: datetime):
    """SQL twin of :func:`effective_status` for list filters."""
    whens = [(Product.status_override.is_not(None), Product.status_override)]
    if policy == "derived":
        whens.append(
            (and_(Product.current_due_at.is_not(None), Product.current_due_at < now), literal("overdue"))
        )
    return case(*whens, else_=literal("normal"))


async def describe_products(
    db: AsyncSession,
    products: list[Product],
    policy: str,
    now: datetime,
) -> list[ProductResponse]:
    """Build API views for many products with a fixed number of queries."""
    if not products:
        return []

    route_ids = list({p.route_id for p in products})
    product_ids = [p.id for p in products]

    route_names = dict(
        (await db.execute(select(Route.id, Route.name).where(Route.id.in_(route_ids)))).all()
    )

    durations: dict[uuid.UUID, list[int]] = {route_id: [] for route_id in route_ids}
    stop_rows = await db.execute(
        select(RouteStation.route_id, Station.estimated_duration_minutes)
        .join(Station, Station.id == RouteStation.station_id)
        .where(RouteStation.route_id.in_(route_ids))
        .order_by(RouteStation.route_id, RouteStation.sequence_order)
    )
    for route_id, minutes in stop_rows.all():
        durations[route_id].append(minutes)

    open_rows = await db.execute(
        select(StationHistoryEntry).where(
            StationHistoryEntry.product_id.in_(product_ids),
            StationHistoryEntry.status.in_(OPEN_STATUSES),
        )
    )
    open_entries = {entry.product_id: entry for entry in open_rows.scalars().all()}

    views = []
    for product in products:
        entry = open_entries.get(product.id)
        route_durations = durations.get(product.route_id, [])
        lifecycle = lifecycle_of(product)

        estimated_completion = None
        if lifecycle == "not_started":
            estimated_completion = now + timedelta(minutes=sum(route_durations))
        elif lifecycle == "at_station" and entry is not None:
            base = max(now, product.current_due_at) if product.current_due_at else now
            estimated_completion = base + timedelta(minutes=sum(route_durations[entry.sequence_order:]))

        views.append(
            ProductResponse(
                id=product.id,
                name=product.name,
                model=product.model,
                route_id=product.route_id,
                route_name=route_names.get(product.route_id),
                current_station_id=product.current_station_id,
                current_station_name=entry.station_name if entry else None,
                current_owner=entry.owner if entry else None,
                current_sequence=entry.sequence_order if entry else None,
                total_stations=len(route_durations),
                progress_percent=product.progress_percent,
                status=effective_status(product.status_override, product.current_due_at, policy, now),
                status_override=product.status_override,
                lifecycle=lifecycle,
                priority=product.priority,
                current_due_at=product.current_due_at,
                estimated_completion=estimated_completion,
                terminated_at=product.terminated_at,
                created_by=product.created_by,
                created_at=product.created_at,
                updated_at=product.updated_at,
            )
        )
    return views


async def describe_product(db: AsyncSession, product: Product, policy: str, now: datetime) -> ProductResponse:
    views = await describe_products(db, [product], policy, now)
    return views[0]
