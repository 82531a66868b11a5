"""Route definitions and the immutable snapshots the engine walks."""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.core.errors import ConflictInvariantViolation, NotFoundError, ValidationFailedError
from routetrack.models.route import Route, RouteStation
from routetrack.schemas.route import RouteCreate, RouteResponse, RouteRevision, RouteStopResponse, RouteUpdate
from routetrack.schemas.station import StationResponse
from routetrack.services.audit import record_audit
from routetrack.services.station_service import StationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteStop:
    sequence_order: int
    station: StationResponse


@dataclass(frozen=True)
class RouteSnapshot:
    """Ordered stops of one route version, navigated by sequence position."""

    route_id: uuid.UUID
    name: str
    version: int
    stops: tuple[RouteStop, ...]

    @property
    def total_stations(self) -> int:
        return len(self.stops)

    def station_at(self, sequence_order: int) -> RouteStop | None:
        if 1 <= sequence_order <= len(self.stops):
            return self.stops[sequence_order - 1]
        return None

    def next_after(self, station_id: uuid.UUID, from_sequence_order: int) -> RouteStop | None:
        """Stop following ``from_sequence_order``; ``None`` at the end of the route.

        The station id only cross-checks the position, since a station can
        appear more than once on a route.
        """
        current = self.station_at(from_sequence_order)
        if current is None or current.station.id != station_id:
            raise ConflictInvariantViolation(
                f"Station {station_id} is not at position {from_sequence_order} of route {self.route_id}",
                code="route_position_mismatch",
            )
        return self.station_at(from_sequence_order + 1)


class RouteService:
    """Route CRUD and versioning inside the caller's session."""

    def __init__(self, db: AsyncSession, actor_id: str = "system") -> None:
        self.db = db
        self.actor_id = actor_id

    async def _get_model(self, route_id: uuid.UUID) -> Route:
        result = await self.db.execute(select(Route).where(Route.id == route_id))
        route = result.scalar_one_or_none()
        if route is None:
            raise NotFoundError("Route", route_id)
        return route

    async def _station_rows(self, route_id: uuid.UUID) -> list[RouteStation]:
        result = await self.db.execute(
            select(RouteStation).where(RouteStation.route_id == route_id).order_by(RouteStation.sequence_order)
        )
        return list(result.scalars().all())

    async def _check_stations(self, station_ids: list[uuid.UUID]) -> dict[uuid.UUID, StationResponse]:
        try:
            definitions = await StationService(self.db).load_definitions(station_ids)
        except NotFoundError as exc:
            raise ValidationFailedError(f"Unknown station {exc.resource_id} in route") from exc
        inactive = [d.name for d in definitions.values() if not d.is_active]
        if inactive:
            raise ValidationFailedError(f"Inactive stations cannot be routed: {', '.join(inactive)}")
        return definitions

    def _add_stops(self, route_id: uuid.UUID, station_ids: list[uuid.UUID]) -> None:
        for sequence_order, station_id in enumerate(station_ids, start=1):
            self.db.add(RouteStation(route_id=route_id, station_id=station_id, sequence_order=sequence_order))

    async def _to_response(self, route: Route) -> RouteResponse:
        rows = await self._station_rows(route.id)
        definitions = await StationService(self.db).load_definitions([r.station_id for r in rows]) if rows else {}
        return RouteResponse(
            id=route.id,
            name=route.name,
            description=route.description,
            version=route.version,
            is_active=route.is_active,
            supersedes_id=route.supersedes_id,
            stations=[
                RouteStopResponse(
                    sequence_order=row.sequence_order,
                    station_id=row.station_id,
                    station_name=definitions[row.station_id].name,
                    owner=definitions[row.station_id].owner,
                    completion_rule=definitions[row.station_id].completion_rule,
                    estimated_duration_minutes=definitions[row.station_id].estimated_duration_minutes,
                )
                for row in rows
            ],
            created_at=route.created_at,
            updated_at=route.updated_at,
        )

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------

    async def create_route(self, payload: RouteCreate) -> RouteResponse:
        await self._check_stations(payload.station_ids)
        route = Route(name=payload.name, description=payload.description)
        self.db.add(route)
        await self.db.flush()
        self._add_stops(route.id, payload.station_ids)
        await self.db.flush()
        await record_audit(self.db, "routes", route.id, "create", None, payload.model_dump(mode="json"), self.actor_id)
        logger.info("Created route %s (%s) with %d stations", route.name, route.id, len(payload.station_ids))
        return await self._to_response(route)

    async def get_route(self, route_id: uuid.UUID) -> RouteResponse:
        return await self._to_response(await self._get_model(route_id))

    async def list_routes(self, active_only: bool = True, skip: int = 0, limit: int = 50) -> list[RouteResponse]:
        query = select(Route)
        if active_only:
            query = query.where(Route.is_active.is_(True))
        query = query.order_by(Route.name, Route.version.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return [await self._to_response(route) for route in result.scalars().all()]

    async def update_route(self, route_id: uuid.UUID, payload: RouteUpdate) -> RouteResponse:
        route = await self._get_model(route_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        old = {key: getattr(route, key) for key in changes}
        for key, value in changes.items():
            setattr(route, key, value)
        await self.db.flush()
        if changes:
            await record_audit(self.db, "routes", route.id, "update", old, changes, self.actor_id)
        return await self._to_response(route)

    async def revise_route(self, route_id: uuid.UUID, payload: RouteRevision) -> RouteResponse:
        """Publish a new version with a different station sequence.

        Products already on the old version keep walking it; the old version
        is only deactivated for new products.
        """
        previous = await self._get_model(route_id)
        if not previous.is_active:
            raise ConflictInvariantViolation(
                f"Route {route_id} is inactive and cannot be revised", code="route_inactive"
            )
        await self._check_stations(payload.station_ids)

        revision = Route(
            name=payload.name or previous.name,
            description=payload.description if payload.description is not None else previous.description,
            version=previous.version + 1,
            supersedes_id=previous.id,
        )
        self.db.add(revision)
        previous.is_active = False
        await self.db.flush()
        self._add_stops(revision.id, payload.station_ids)
        await self.db.flush()

        await record_audit(
            self.db,
            "routes",
            revision.id,
            "create",
            {"supersedes_id": previous.id, "version": previous.version},
            payload.model_dump(mode="json"),
            self.actor_id,
        )
        logger.info("Route %s revised to version %d (%s)", previous.name, revision.version, revision.id)
        return await self._to_response(revision)

    async def deactivate_route(self, route_id: uuid.UUID) -> None:
        route = await self._get_model(route_id)
        route.is_active = False
        await self.db.flush()
        await record_audit(
            self.db, "routes", route.id, "update", {"is_active": True}, {"is_active": False}, self.actor_id
        )

    async def load_snapshot(self, route_id: uuid.UUID) -> RouteSnapshot:
        """Resolve a route and all station definitions on it, fields included."""
        route = await self._get_model(route_id)
        rows = await self._station_rows(route.id)
        if not rows:
            raise ConflictInvariantViolation(f"Route {route_id} has no stations", code="empty_route")
        definitions = await StationService(self.db).load_definitions([r.station_id for r in rows])
        return RouteSnapshot(
            route_id=route.id,
            name=route.name,
            version=route.version,
            stops=tuple(RouteStop(sequence_order=r.sequence_order, station=definitions[r.station_id]) for r in rows),
        )
