"""Filtered, paginated product listing.

Results are ordered by ``(created_at desc, id desc)``. Clients either page
with ``page``/``limit`` or follow the opaque ``next_cursor``; the cursor is a
keyset position, so rows inserted while paging never shift later pages.
"""

import base64
import binascii
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.core.database import utcnow
from routetrack.core.errors import ValidationFailedError
from routetrack.models.product import Product
from routetrack.models.station_history import OPEN_STATUSES, StationHistoryEntry
from routetrack.schemas.product import ProductPage
from routetrack.services.product_state import describe_products, effective_status_expr

logger = logging.getLogger(__name__)


@dataclass
class ProductFilters:
    status: str | None = None
    route_id: uuid.UUID | None = None
    owner: str | None = None
    priority: str | None = None
    lifecycle: str | None = None
    created_from: date | None = None
    created_to: date | None = None
    search: str | None = None


def encode_cursor(created_at: datetime, product_id: uuid.UUID) -> str:
    raw = f"{created_at.isoformat()}|{product_id}".encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, uuid.UUID]:
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        created_raw, id_raw = base64.urlsafe_b64decode(padded).decode().split("|", 1)
        created_at = datetime.fromisoformat(created_raw)
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return created_at, uuid.UUID(id_raw)
    except (ValueError, UnicodeDecodeError, binascii.Error) as exc:
        raise ValidationFailedError("Invalid pagination cursor") from exc


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def build_conditions(filters: ProductFilters, policy: str, now: datetime) -> list:
    """WHERE clauses for ``filters``; shared by the page query and the count."""
    conditions = []
    if filters.status:
        conditions.append(effective_status_expr(policy, now) == filters.status)
    if filters.route_id:
        conditions.append(Product.route_id == filters.route_id)
    if filters.priority:
        conditions.append(Product.priority == filters.priority)
    if filters.owner:
        conditions.append(
            exists().where(
                StationHistoryEntry.product_id == Product.id,
                StationHistoryEntry.status.in_(OPEN_STATUSES),
                StationHistoryEntry.owner == filters.owner,
            )
        )
    if filters.lifecycle == "terminated":
        conditions.append(Product.terminated_at.is_not(None))
    elif filters.lifecycle == "at_station":
        conditions.append(Product.current_station_id.is_not(None))
    elif filters.lifecycle == "completed":
        conditions.extend(
            [Product.terminated_at.is_(None), Product.current_station_id.is_(None), Product.progress_percent >= 100]
        )
    elif filters.lifecycle == "not_started":
        conditions.extend(
            [Product.terminated_at.is_(None), Product.current_station_id.is_(None), Product.progress_percent < 100]
        )
    if filters.created_from:
        conditions.append(Product.created_at >= _day_start(filters.created_from))
    if filters.created_to:
        conditions.append(Product.created_at < _day_start(filters.created_to + timedelta(days=1)))
    if filters.search:
        term = filters.search.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{term}%"
        conditions.append(
            or_(
                func.lower(Product.name).like(pattern, escape="\\"),
                func.lower(Product.model).like(pattern, escape="\\"),
            )
        )
    return conditions


async def list_products(
    db: AsyncSession,
    filters: ProductFilters,
    *,
    page: int = 1,
    limit: int = 20,
    cursor: str | None = None,
    policy: str = "derived",
    now: datetime | None = None,
) -> ProductPage:
    """One page of products matching ``filters``.

    With a cursor, ``page`` is only echoed back and the page starts right
    after the cursor position.
    """
    now = now or utcnow()
    page = max(1, page)
    conditions = build_conditions(filters, policy, now)

    count_query = select(func.count()).select_from(Product)
    if conditions:
        count_query = count_query.where(*conditions)
    total = (await db.execute(count_query)).scalar() or 0

    query = select(Product)
    if conditions:
        query = query.where(*conditions)
    if cursor:
        created_at, last_id = decode_cursor(cursor)
        query = query.where(
            or_(
                Product.created_at < created_at,
                and_(Product.created_at == created_at, Product.id < last_id),
            )
        )
    else:
        query = query.offset((page - 1) * limit)
    query = query.order_by(Product.created_at.desc(), Product.id.desc()).limit(limit + 1)

    rows = list((await db.execute(query)).scalars().all())
    has_next = len(rows) > limit
    rows = rows[:limit]
    items = await describe_products(db, rows, policy, now)

    next_cursor = encode_cursor(rows[-1].created_at, rows[-1].id) if has_next and rows else None
    return ProductPage(
        items=items,
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit) if total else 0,
        has_next=has_next,
        has_prev=page > 1 or cursor is not None,
        next_cursor=next_cursor,
    )
