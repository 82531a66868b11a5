"""Station and field definition management."""

import logging
import uuid

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.core.errors import ConflictInvariantViolation, NotFoundError
from routetrack.models.field_definition import FieldDefinition
from routetrack.models.route import RouteStation
from routetrack.models.station import Station
from routetrack.models.station_history import StationFieldValue
from routetrack.schemas.field import FieldDefinitionCreate
from routetrack.schemas.station import StationCreate, StationResponse, StationUpdate
from routetrack.services.audit import record_audit

logger = logging.getLogger(__name__)


def _field_from_payload(station_id: uuid.UUID, payload: FieldDefinitionCreate, position: int) -> FieldDefinition:
    return FieldDefinition(
        station_id=station_id,
        name=payload.name,
        field_type=payload.type,
        required=payload.required,
        options=list(payload.options) if payload.options else None,
        default_value=payload.default_value,
        validation_rules=(
            payload.validation_rules.model_dump(exclude_none=True) if payload.validation_rules else None
        ),
        position=position,
    )


def _field_values(field_def: FieldDefinition) -> dict:
    return {
        "station_id": str(field_def.station_id),
        "name": field_def.name,
        "type": field_def.field_type,
        "required": field_def.required,
        "options": field_def.options,
        "default_value": field_def.default_value,
        "validation_rules": field_def.validation_rules,
    }


class StationService:
    """CRUD for stations and their fields, operating inside the caller's session."""

    def __init__(self, db: AsyncSession, actor_id: str = "system") -> None:
        self.db = db
        self.actor_id = actor_id

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    async def _get_model(self, station_id: uuid.UUID) -> Station:
        result = await self.db.execute(select(Station).where(Station.id == station_id))
        station = result.scalar_one_or_none()
        if station is None:
            raise NotFoundError("Station", station_id)
        return station

    async def _fields_for(self, station_ids: list[uuid.UUID]) -> dict[uuid.UUID, list[FieldDefinition]]:
        grouped: dict[uuid.UUID, list[FieldDefinition]] = {sid: [] for sid in station_ids}
        if not station_ids:
            return grouped
        result = await self.db.execute(
            select(FieldDefinition)
            .where(FieldDefinition.station_id.in_(station_ids))
            .order_by(FieldDefinition.position, FieldDefinition.created_at)
        )
        for field_def in result.scalars().all():
            grouped[field_def.station_id].append(field_def)
        return grouped

    async def get_station(self, station_id: uuid.UUID) -> StationResponse:
        station = await self._get_model(station_id)
        fields = await self._fields_for([station.id])
        return StationResponse.from_model(station, fields[station.id])

    async def load_definitions(self, station_ids: list[uuid.UUID]) -> dict[uuid.UUID, StationResponse]:
        """Typed definitions for many stations at once, keyed by id."""
        unique_ids = list(dict.fromkeys(station_ids))
        result = await self.db.execute(select(Station).where(Station.id.in_(unique_ids)))
        stations = {s.id: s for s in result.scalars().all()}
        missing = [sid for sid in unique_ids if sid not in stations]
        if missing:
            raise NotFoundError("Station", missing[0])
        fields = await self._fields_for(unique_ids)
        return {sid: StationResponse.from_model(stations[sid], fields[sid]) for sid in unique_ids}

    async def list_stations(self, active_only: bool = True, skip: int = 0, limit: int = 50) -> list[StationResponse]:
        query = select(Station)
        if active_only:
            query = query.where(Station.is_active.is_(True))
        query = query.order_by(Station.name, Station.id).offset(skip).limit(limit)
        result = await self.db.execute(query)
        stations = list(result.scalars().all())
        fields = await self._fields_for([s.id for s in stations])
        return [StationResponse.from_model(s, fields[s.id]) for s in stations]

    async def is_field_referenced(self, field_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(func.count()).select_from(StationFieldValue).where(StationFieldValue.field_id == field_id)
        )
        return (result.scalar() or 0) > 0

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------

    async def create_station(self, payload: StationCreate) -> StationResponse:
        station = Station(
            name=payload.name,
            owner=payload.owner,
            completion_rule=payload.completion_rule,
            estimated_duration_minutes=payload.estimated_duration_minutes,
        )
        self.db.add(station)
        await self.db.flush()

        for position, field_payload in enumerate(payload.fields):
            self.db.add(_field_from_payload(station.id, field_payload, position))
        await self.db.flush()

        await record_audit(
            self.db, "stations", station.id, "create", None, payload.model_dump(mode="json"), self.actor_id
        )
        logger.info("Created station %s (%s) with %d fields", station.name, station.id, len(payload.fields))
        return await self.get_station(station.id)

    async def update_station(self, station_id: uuid.UUID, payload: StationUpdate) -> StationResponse:
        """Edit station attributes in place. History keeps its own name/owner snapshot."""
        station = await self._get_model(station_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        old = {key: getattr(station, key) for key in changes}
        for key, value in changes.items():
            setattr(station, key, value)
        await self.db.flush()
        if changes:
            await record_audit(self.db, "stations", station.id, "update", old, changes, self.actor_id)
        return await self.get_station(station.id)

    async def deactivate_station(self, station_id: uuid.UUID) -> None:
        station = await self._get_model(station_id)
        station.is_active = False
        await self.db.flush()
        await record_audit(
            self.db, "stations", station.id, "update", {"is_active": True}, {"is_active": False}, self.actor_id
        )

    async def delete_station(self, station_id: uuid.UUID) -> None:
        """Hard delete, only for stations no route has ever used."""
        station = await self._get_model(station_id)
        result = await self.db.execute(
            select(func.count()).select_from(RouteStation).where(RouteStation.station_id == station_id)
        )
        if (result.scalar() or 0) > 0:
            raise ConflictInvariantViolation(
                f"Station {station_id} is part of a route; deactivate it instead",
                code="station_in_use",
            )
        await self.db.execute(
            delete(FieldDefinition)
            .where(FieldDefinition.station_id == station_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.delete(station)
        await self.db.flush()
        await record_audit(self.db, "stations", station_id, "delete", {"name": station.name}, None, self.actor_id)

    async def add_field(self, station_id: uuid.UUID, payload: FieldDefinitionCreate) -> StationResponse:
        await self._get_model(station_id)
        result = await self.db.execute(
            select(func.max(FieldDefinition.position)).where(FieldDefinition.station_id == station_id)
        )
        last_position = result.scalar()
        position = 0 if last_position is None else last_position + 1
        field_def = _field_from_payload(station_id, payload, position)
        self.db.add(field_def)
        await self.db.flush()
        await record_audit(
            self.db, "field_definitions", field_def.id, "create", None, _field_values(field_def), self.actor_id
        )
        return await self.get_station(station_id)

    async def _get_field(self, station_id: uuid.UUID, field_id: uuid.UUID) -> FieldDefinition:
        result = await self.db.execute(
            select(FieldDefinition).where(
                FieldDefinition.id == field_id, FieldDefinition.station_id == station_id
            )
        )
        field_def = result.scalar_one_or_none()
        if field_def is None:
            raise NotFoundError("Field", field_id)
        return field_def

    async def update_field(
        self, station_id: uuid.UUID, field_id: uuid.UUID, payload: FieldDefinitionCreate
    ) -> StationResponse:
        """Replace a field definition. Refused once any visit captured a value for it."""
        field_def = await self._get_field(station_id, field_id)
        if await self.is_field_referenced(field_id):
            raise ConflictInvariantViolation(
                f"Field {field_id} already holds captured data and is immutable",
                code="field_referenced",
            )
        old = _field_values(field_def)
        replacement = _field_from_payload(station_id, payload, field_def.position)
        field_def.name = replacement.name
        field_def.field_type = replacement.field_type
        field_def.required = replacement.required
        field_def.options = replacement.options
        field_def.default_value = replacement.default_value
        field_def.validation_rules = replacement.validation_rules
        await self.db.flush()
        await record_audit(
            self.db, "field_definitions", field_id, "update", old, _field_values(field_def), self.actor_id
        )
        return await self.get_station(station_id)

    async def remove_field(self, station_id: uuid.UUID, field_id: uuid.UUID) -> StationResponse:
        field_def = await self._get_field(station_id, field_id)
        if await self.is_field_referenced(field_id):
            raise ConflictInvariantViolation(
                f"Field {field_id} already holds captured data and cannot be removed",
                code="field_referenced",
            )
        old = _field_values(field_def)
        await self.db.delete(field_def)
        await self.db.flush()
        await record_audit(self.db, "field_definitions", field_id, "delete", old, None, self.actor_id)
        return await self.get_station(station_id)
