"""Seed script with a demo manufacturing floor.

Scenarios covered:
1. Standard route walked part-way by several products
2. Express route for urgent products
3. Custom route visiting the same station twice
4. A completed product and an overdue one
"""

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.db.init_db import table_has_data
from routetrack.models.field_definition import FieldDefinition
from routetrack.models.product import Product
from routetrack.models.route import Route, RouteStation
from routetrack.models.station import Station
from routetrack.models.station_history import StationHistoryEntry
from routetrack.services.product_state import compute_progress, due_at

# Fixed UUIDs for deterministic seeding
STATION_IDS = {
    "Material Preparation": uuid.UUID("a0000000-0000-0000-0000-000000000001"),
    "Assembly": uuid.UUID("a0000000-0000-0000-0000-000000000002"),
    "Quality Control": uuid.UUID("a0000000-0000-0000-0000-000000000003"),
    "Packaging": uuid.UUID("a0000000-0000-0000-0000-000000000004"),
    "Final Inspection": uuid.UUID("a0000000-0000-0000-0000-000000000005"),
}

ROUTE_IDS = {
    "Standard Manufacturing": uuid.UUID("b0000000-0000-0000-0000-000000000001"),
    "Express Manufacturing": uuid.UUID("b0000000-0000-0000-0000-000000000002"),
    "Custom Manufacturing": uuid.UUID("b0000000-0000-0000-0000-000000000003"),
}

PRODUCT_IDS = {
    "WA100": uuid.UUID("c0000000-0000-0000-0000-000000000001"),
    "GB200": uuid.UUID("c0000000-0000-0000-0000-000000000002"),
    "CC300": uuid.UUID("c0000000-0000-0000-0000-000000000003"),
    "DD400": uuid.UUID("c0000000-0000-0000-0000-000000000004"),
    "AE500": uuid.UUID("c0000000-0000-0000-0000-000000000005"),
}

SEED_ACTOR = "seed"

# (name, owner, completion_rule, estimated minutes)
_STATIONS = [
    ("Material Preparation", "John Smith", "all_filled", 30),
    ("Assembly", "Jane Doe", "all_filled", 120),
    ("Quality Control", "Jane Doe", "custom", 45),
    ("Packaging", "John Smith", "all_filled", 20),
    ("Final Inspection", "Production Manager", "custom", 15),
]

# station -> [(name, type, required, options)]
_FIELDS = {
    "Material Preparation": [
        ("Material Type", "select", True, ["Steel", "Aluminum", "Plastic", "Composite"]),
        ("Quantity", "number", True, None),
        ("Batch Number", "text", True, None),
        ("Quality Check", "checkbox", True, None),
    ],
    "Assembly": [
        ("Assembly Instructions", "textarea", True, None),
        ("Tools Used", "text", True, None),
        ("Assembly Time", "number", True, None),
        ("Torque Settings", "text", False, None),
    ],
    "Quality Control": [
        ("Pass/Fail", "select", True, ["Pass", "Fail", "Conditional Pass"]),
        ("Defects Found", "textarea", False, None),
        ("Inspector ID", "text", True, None),
        ("Test Results", "textarea", False, None),
    ],
    "Packaging": [
        ("Package Type", "select", True, ["Standard", "Custom", "Export"]),
        ("Weight", "number", True, None),
        ("Dimensions", "text", True, None),
        ("Special Instructions", "textarea", False, None),
    ],
    "Final Inspection": [
        ("Overall Quality", "select", True, ["Excellent", "Good", "Acceptable", "Poor"]),
        ("Ready for Shipment", "checkbox", True, None),
        ("Inspector Notes", "textarea", False, None),
    ],
}

_ROUTES = [
    (
        "Standard Manufacturing",
        "Standard production route for regular products",
        ["Material Preparation", "Assembly", "Quality Control", "Packaging", "Final Inspection"],
    ),
    (
        "Express Manufacturing",
        "Fast-track production for urgent orders",
        ["Material Preparation", "Assembly", "Final Inspection"],
    ),
    (
        "Custom Manufacturing",
        "Custom production route with additional quality checks",
        ["Material Preparation", "Assembly", "Quality Control", "Quality Control", "Packaging", "Final Inspection"],
    ),
]

# (name, model, route, priority, closed visits)
_PRODUCTS = [
    ("Widget A-100", "WA100", "Standard Manufacturing", "medium", 3),
    ("Gadget B-200", "GB200", "Express Manufacturing", "high", 1),
    ("Component C-300", "CC300", "Custom Manufacturing", "low", 1),
    ("Device D-400", "DD400", "Standard Manufacturing", "medium", 5),
    ("Assembly E-500", "AE500", "Standard Manufacturing", "high", 4),
]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _create_stations() -> list[Station]:
    """Create the five demo stations."""
    return [
        Station(
            id=STATION_IDS[name],
            name=name,
            owner=owner,
            completion_rule=rule,
            estimated_duration_minutes=minutes,
        )
        for name, owner, rule, minutes in _STATIONS
    ]


def _create_fields() -> list[FieldDefinition]:
    fields = []
    for station_name, definitions in _FIELDS.items():
        for position, (name, field_type, required, options) in enumerate(definitions):
            fields.append(
                FieldDefinition(
                    station_id=STATION_IDS[station_name],
                    name=name,
                    field_type=field_type,
                    required=required,
                    options=options,
                    position=position,
                )
            )
    return fields


def _create_routes() -> tuple[list[Route], list[RouteStation]]:
    routes: list[Route] = []
    stops: list[RouteStation] = []
    for name, description, sequence in _ROUTES:
        routes.append(Route(id=ROUTE_IDS[name], name=name, description=description))
        stops.extend(
            RouteStation(route_id=ROUTE_IDS[name], station_id=STATION_IDS[station], sequence_order=order)
            for order, station in enumerate(sequence, start=1)
        )
    return routes, stops


def _create_products() -> tuple[list[Product], list[StationHistoryEntry]]:
    """Products part-way along their routes, with a consistent ledger.

    Every closed visit took exactly its station's estimate and the open one
    started a few minutes ago, except Component C-300, which has been sitting
    at Assembly for a day and shows up as overdue.
    """
    durations = {name: minutes for name, _, _, minutes in _STATIONS}
    sequences = {name: sequence for name, _, sequence in _ROUTES}
    owners = {name: owner for name, owner, _, _ in _STATIONS}
    now = _now()

    products: list[Product] = []
    entries: list[StationHistoryEntry] = []
    for index, (name, model, route_name, priority, closed) in enumerate(_PRODUCTS):
        sequence = sequences[route_name]
        product_id = PRODUCT_IDS[model]
        elapsed = sum(durations[station] for station in sequence[:closed])
        clock = now - timedelta(minutes=elapsed + 5 + index)
        if model == "CC300":
            clock -= timedelta(days=1)
        created_at = clock

        for order, station in enumerate(sequence[:closed], start=1):
            end = clock + timedelta(minutes=durations[station])
            entries.append(
                StationHistoryEntry(
                    product_id=product_id,
                    station_id=STATION_IDS[station],
                    sequence_order=order,
                    station_name=station,
                    owner=owners[station],
                    start_time=clock,
                    end_time=end,
                    status="completed",
                    created_by=SEED_ACTOR,
                )
            )
            clock = end

        current_station_id = None
        current_due_at = None
        if closed < len(sequence):
            station = sequence[closed]
            current_station_id = STATION_IDS[station]
            current_due_at = due_at(clock, durations[station])
            entries.append(
                StationHistoryEntry(
                    product_id=product_id,
                    station_id=current_station_id,
                    sequence_order=closed + 1,
                    station_name=station,
                    owner=owners[station],
                    start_time=clock,
                    status="in_progress" if model == "CC300" else "pending",
                    created_by=SEED_ACTOR,
                )
            )

        products.append(
            Product(
                id=product_id,
                name=name,
                model=model,
                route_id=ROUTE_IDS[route_name],
                current_station_id=current_station_id,
                current_due_at=current_due_at,
                progress_percent=compute_progress(closed, len(sequence)),
                priority=priority,
                created_by=SEED_ACTOR,
                created_at=created_at,
                updated_at=clock,
            )
        )
    return products, entries


async def seed_demo_data(session: AsyncSession) -> dict[str, int]:
    """Seed the database with the demo floor.

    Args:
        session: An async SQLAlchemy session.

    Returns:
        Dictionary with counts of created entities.
    """
    stations = _create_stations()
    fields = _create_fields()
    routes, stops = _create_routes()

    session.add_all(stations)
    session.add_all(routes)
    await session.flush()

    session.add_all(fields)
    session.add_all(stops)
    await session.flush()

    products, entries = _create_products()
    session.add_all(products)
    await session.flush()

    session.add_all(entries)
    await session.flush()

    return {
        "stations": len(stations),
        "fields": len(fields),
        "routes": len(routes),
        "route_stations": len(stops),
        "products": len(products),
        "history_entries": len(entries),
    }


async def seed_if_empty(session: AsyncSession) -> dict[str, int] | None:
    """Seed demo data only if the database is empty.

    Returns:
        Seed counts if data was seeded, None if database already has data.
    """
    if await table_has_data(session, "stations"):
        return None

    return await seed_demo_data(session)
