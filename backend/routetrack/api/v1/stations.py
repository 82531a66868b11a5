"""Stations and field definitions API endpoints."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.core.auth import ManagerActor
from routetrack.core.database import get_db
from routetrack.schemas.field import FieldDefinitionCreate
from routetrack.schemas.station import StationCreate, StationResponse, StationUpdate
from routetrack.services.station_service import StationService

router = APIRouter(prefix="/stations", tags=["stations"])


@router.get("", response_model=list[StationResponse])
async def list_stations(
    include_inactive: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> list[StationResponse]:
    """List stations with their fields. Inactive stations are hidden by default."""
    return await StationService(db).list_stations(active_only=not include_inactive, skip=skip, limit=limit)


@router.post("", response_model=StationResponse, status_code=status.HTTP_201_CREATED)
async def create_station(
    payload: StationCreate,
    actor: ManagerActor,
    db: AsyncSession = Depends(get_db),
) -> StationResponse:
    """Create a station together with its field definitions."""
    return await StationService(db, actor.id).create_station(payload)


@router.get("/{station_id}", response_model=StationResponse)
async def get_station(
    station_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> StationResponse:
    return await StationService(db).get_station(station_id)


@router.patch("/{station_id}", response_model=StationResponse)
async def update_station(
    station_id: uuid.UUID,
    payload: StationUpdate,
    actor: ManagerActor,
    db: AsyncSession = Depends(get_db),
) -> StationResponse:
    """Edit name, owner, completion rule or duration estimate in place."""
    return await StationService(db, actor.id).update_station(station_id, payload)


@router.delete("/{station_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_station(
    station_id: uuid.UUID,
    actor: ManagerActor,
    hard: bool = Query(False, description="Remove the row instead of deactivating it"),
    db: AsyncSession = Depends(get_db),
) -> None:
    """Deactivate a station, or delete it outright when no route uses it."""
    service = StationService(db, actor.id)
    if hard:
        await service.delete_station(station_id)
    else:
        await service.deactivate_station(station_id)


@router.post("/{station_id}/fields", response_model=StationResponse, status_code=status.HTTP_201_CREATED)
async def add_field(
    station_id: uuid.UUID,
    payload: FieldDefinitionCreate,
    actor: ManagerActor,
    db: AsyncSession = Depends(get_db),
) -> StationResponse:
    return await StationService(db, actor.id).add_field(station_id, payload)


@router.put("/{station_id}/fields/{field_id}", response_model=StationResponse)
async def update_field(
    station_id: uuid.UUID,
    field_id: uuid.UUID,
    payload: FieldDefinitionCreate,
    actor: ManagerActor,
    db: AsyncSession = Depends(get_db),
) -> StationResponse:
    """Replace a field definition; refused once data was captured for it."""
    return await StationService(db, actor.id).update_field(station_id, field_id, payload)


@router.delete("/{station_id}/fields/{field_id}", response_model=StationResponse)
async def remove_field(
    station_id: uuid.UUID,
    field_id: uuid.UUID,
    actor: ManagerActor,
    db: AsyncSession = Depends(get_db),
) -> StationResponse:
    return await StationService(db, actor.id).remove_field(station_id, field_id)
