"""Routes API endpoints."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.core.auth import ManagerActor
from routetrack.core.database import get_db
from routetrack.schemas.route import RouteCreate, RouteResponse, RouteRevision, RouteUpdate
from routetrack.services.route_service import RouteService

router = APIRouter(prefix="/routes", tags=["routes"])


@router.get("", response_model=list[RouteResponse])
async def list_routes(
    include_inactive: bool = Query(False, description="Include superseded and retired versions"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> list[RouteResponse]:
    """List routes with their ordered stations."""
    return await RouteService(db).list_routes(active_only=not include_inactive, skip=skip, limit=limit)


@router.post("", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
async def create_route(
    payload: RouteCreate,
    actor: ManagerActor,
    db: AsyncSession = Depends(get_db),
) -> RouteResponse:
    """Create a route; stations are visited in list order."""
    return await RouteService(db, actor.id).create_route(payload)


@router.get("/{route_id}", response_model=RouteResponse)
async def get_route(
    route_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> RouteResponse:
    return await RouteService(db).get_route(route_id)


@router.patch("/{route_id}", response_model=RouteResponse)
async def update_route(
    route_id: uuid.UUID,
    payload: RouteUpdate,
    actor: ManagerActor,
    db: AsyncSession = Depends(get_db),
) -> RouteResponse:
    """Rename or re-describe a route without touching its stations."""
    return await RouteService(db, actor.id).update_route(route_id, payload)


@router.post("/{route_id}/revisions", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
async def revise_route(
    route_id: uuid.UUID,
    payload: RouteRevision,
    actor: ManagerActor,
    db: AsyncSession = Depends(get_db),
) -> RouteResponse:
    """Publish the next version of a route with a new station sequence.

    Products already on the current version finish on it.
    """
    return await RouteService(db, actor.id).revise_route(route_id, payload)


@router.delete("/{route_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_route(
    route_id: uuid.UUID,
    actor: ManagerActor,
    db: AsyncSession = Depends(get_db),
) -> None:
    """Retire a route for new products."""
    await RouteService(db, actor.id).deactivate_route(route_id)
