"""Pytest configuration with fixtures for async testing."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from routetrack.core.auth import Actor
from routetrack.core.database import build_engine, build_session_factory
from routetrack.db.init_db import create_tables, drop_tables
from routetrack.schemas.field import FieldDefinitionCreate
from routetrack.schemas.route import RouteCreate, RouteResponse
from routetrack.schemas.station import StationCreate, StationResponse
from routetrack.services.product_admin import ProductAdminService
from routetrack.services.progression import ProgressionEngine
from routetrack.services.route_service import RouteService
from routetrack.services.station_service import StationService


# ---------------------------------------------------------------------------
# Test Data Factories (using MagicMock for SQLAlchemy 2.0 compatibility)
# ---------------------------------------------------------------------------


def _make_mock(defaults: dict[str, Any], overrides: dict[str, Any]) -> MagicMock:
    """Create a MagicMock with given attributes."""
    merged = {**defaults, **overrides}
    mock = MagicMock()
    for k, v in merged.items():
        setattr(mock, k, v)
    return mock


class StationFactory:
    """Factory for creating Station mock instances."""

    _counter = 0

    @classmethod
    def create(cls, **overrides: Any) -> MagicMock:
        cls._counter += 1
        now = datetime.now(timezone.utc)
        defaults = {
            "id": uuid.uuid4(),
            "name": f"Station-{cls._counter}",
            "owner": "Jane Doe",
            "completion_rule": "all_filled",
            "estimated_duration_minutes": 30,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        return _make_mock(defaults, overrides)


class ProductFactory:
    """Factory for creating Product mock instances."""

    _counter = 0

    @classmethod
    def create(cls, **overrides: Any) -> MagicMock:
        cls._counter += 1
        now = datetime.now(timezone.utc)
        defaults = {
            "id": uuid.uuid4(),
            "name": f"Test Product {cls._counter}",
            "model": f"TP{cls._counter:03d}",
            "route_id": uuid.uuid4(),
            "current_station_id": None,
            "progress_percent": 0,
            "status_override": None,
            "current_due_at": None,
            "priority": "medium",
            "terminated_at": None,
            "created_by": "tester",
            "created_at": now,
            "updated_at": now,
            "version_id": 1,
        }
        return _make_mock(defaults, overrides)


@pytest.fixture
def station_factory():
    """Provide StationFactory for tests."""
    StationFactory._counter = 0
    return StationFactory


@pytest.fixture
def product_factory():
    """Provide ProductFactory for tests."""
    ProductFactory._counter = 0
    return ProductFactory


@pytest.fixture
def mock_db():
    """Provide a mock AsyncSession for unit tests."""
    session = AsyncMock(spec=AsyncSession)
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.refresh = AsyncMock()
    session.delete = AsyncMock()
    return session


@pytest.fixture
def actor():
    return Actor(id="operator-1", role="operator")


@pytest.fixture
def manager():
    return Actor(id="manager-1", role="manager")


# ---------------------------------------------------------------------------
# SQLite-backed store for engine tests
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """A fresh file-backed SQLite database per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await create_tables(bind=engine)
    yield engine
    await drop_tables(bind=engine)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


async def create_station(
    session_factory: async_sessionmaker[AsyncSession], payload: StationCreate
) -> StationResponse:
    async with session_factory() as session:
        async with session.begin():
            return await StationService(session, "tester").create_station(payload)


async def create_route(
    session_factory: async_sessionmaker[AsyncSession], name: str, station_ids: list[uuid.UUID]
) -> RouteResponse:
    async with session_factory() as session:
        async with session.begin():
            return await RouteService(session, "tester").create_route(
                RouteCreate(name=name, station_ids=station_ids)
            )


@dataclass
class Floor:
    """Station A (all_filled, two required fields), station B (custom) and route A -> B."""

    station_a: StationResponse
    station_b: StationResponse
    route: RouteResponse

    def field_id(self, station: StationResponse, name: str) -> str:
        return next(str(f.id) for f in station.fields if f.name == name)

    @property
    def quantity(self) -> str:
        return self.field_id(self.station_a, "Quantity")

    @property
    def batch(self) -> str:
        return self.field_id(self.station_a, "Batch Number")

    @property
    def inspector(self) -> str:
        return self.field_id(self.station_b, "Inspector ID")

    @property
    def passed(self) -> str:
        return self.field_id(self.station_b, "Passed")

    def valid_a(self) -> dict[str, Any]:
        return {self.quantity: 10, self.batch: "B-42"}


@pytest_asyncio.fixture
async def floor(session_factory) -> Floor:
    station_a = await create_station(
        session_factory,
        StationCreate(
            name="Material Preparation",
            owner="John Smith",
            completion_rule="all_filled",
            estimated_duration_minutes=30,
            fields=[
                FieldDefinitionCreate(name="Quantity", type="number", required=True),
                FieldDefinitionCreate(name="Batch Number", type="text", required=True),
                FieldDefinitionCreate(
                    name="Material Type",
                    type="select",
                    options=["Steel", "Aluminum"],
                    default_value="Steel",
                ),
            ],
        ),
    )
    station_b = await create_station(
        session_factory,
        StationCreate(
            name="Quality Control",
            owner="Jane Doe",
            completion_rule="custom",
            estimated_duration_minutes=0,
            fields=[
                FieldDefinitionCreate(name="Inspector ID", type="text", required=True),
                FieldDefinitionCreate(name="Passed", type="checkbox"),
            ],
        ),
    )
    route = await create_route(session_factory, "Standard", [station_a.id, station_b.id])
    return Floor(station_a=station_a, station_b=station_b, route=route)


@pytest.fixture
def engine(session_factory):
    """Progression engine; bulk work runs one product at a time on SQLite."""
    return ProgressionEngine(session_factory, bulk_max_concurrency=1, lock_timeout=2.0)


@pytest.fixture
def admin(session_factory):
    return ProductAdminService(session_factory, bulk_max_concurrency=1, lock_timeout=2.0)


@pytest.fixture
def make_station(session_factory):
    """Create a station through the service in its own transaction."""

    async def _make(payload: StationCreate) -> StationResponse:
        return await create_station(session_factory, payload)

    return _make


@pytest.fixture
def make_route(session_factory):
    async def _make(name: str, station_ids: list[uuid.UUID]) -> RouteResponse:
        return await create_route(session_factory, name, station_ids)

    return _make
