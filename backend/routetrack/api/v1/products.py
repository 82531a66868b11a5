"""Products API endpoints: listing, lifecycle transitions and admin edits."""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.core.auth import AdminActor, ManagerActor, OperatorActor
from routetrack.core.config import settings
from routetrack.core.database import get_db
from routetrack.core.engine import get_product_admin, get_progression_engine
from routetrack.core.rate_limit import rate_limit_bulk
from routetrack.schemas.history import HistoryEntryResponse
from routetrack.schemas.product import (
    AdvanceRequest,
    AdvanceResponse,
    BulkAdvanceRequest,
    BulkResult,
    BulkUpdateRequest,
    FieldDataRequest,
    ItemErrorResponse,
    Lifecycle,
    Priority,
    ProductCreate,
    ProductDetailResponse,
    ProductPage,
    ProductResponse,
    ProductStatus,
    ProductUpdateRequest,
    SkipRequest,
    TerminateRequest,
)
from routetrack.services.product_admin import ProductAdminService
from routetrack.services.product_queries import ProductFilters, list_products
from routetrack.services.progression import AdvanceResult, ProgressionEngine
from routetrack.services.transactions import BulkOutcome

router = APIRouter(prefix="/products", tags=["products"])


def _bulk_result(outcome: BulkOutcome) -> BulkResult:
    return BulkResult(
        updated_count=outcome.updated_count,
        failed_count=outcome.failed_count,
        errors=[
            ItemErrorResponse(product_id=e.product_id, kind=e.kind, detail=e.detail, errors=e.errors)
            for e in outcome.errors
        ],
    )


def _advance_response(result: AdvanceResult) -> AdvanceResponse:
    return AdvanceResponse(
        ok=result.ok,
        product=result.product,
        closed_entry=result.closed_entry,
        opened_entry=result.opened_entry,
        errors=[e.as_dict() for e in result.errors],
    )


@router.get("", response_model=ProductPage)
async def list_products_endpoint(
    status_filter: ProductStatus | None = Query(None, alias="status"),
    route_id: uuid.UUID | None = Query(None),
    owner: str | None = Query(None, description="Owner of the station the product is at"),
    priority: Priority | None = Query(None),
    lifecycle: Lifecycle | None = Query(None),
    created_from: date | None = Query(None),
    created_to: date | None = Query(None),
    search: str | None = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    cursor: str | None = Query(None, description="next_cursor of the previous page"),
    db: AsyncSession = Depends(get_db),
) -> ProductPage:
    """List products newest first, filtered and paginated.

    Supports page/limit paging as well as keyset paging through ``cursor``.
    """
    filters = ProductFilters(
        status=status_filter,
        route_id=route_id,
        owner=owner,
        priority=priority,
        lifecycle=lifecycle,
        created_from=created_from,
        created_to=created_to,
        search=search,
    )
    return await list_products(
        db, filters, page=page, limit=limit, cursor=cursor, policy=settings.OVERDUE_POLICY
    )


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    actor: ManagerActor,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> ProductResponse:
    """Create a product on a route."""
    return await engine.create_product(payload, actor)


@router.post("/bulk-update", response_model=BulkResult, dependencies=[Depends(rate_limit_bulk)])
async def bulk_update_products(
    payload: BulkUpdateRequest,
    actor: ManagerActor,
    admin: ProductAdminService = Depends(get_product_admin),
) -> BulkResult:
    """Apply one admin command to many products; failures are reported per product."""
    return _bulk_result(await admin.bulk_update(payload.product_ids, payload.command, actor))


@router.post("/bulk-advance", response_model=BulkResult, dependencies=[Depends(rate_limit_bulk)])
async def bulk_advance_products(
    payload: BulkAdvanceRequest,
    actor: OperatorActor,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> BulkResult:
    """Advance many products with the same submission."""
    outcome = await engine.bulk_advance(
        payload.product_ids,
        payload.field_data,
        payload.notes,
        force_complete=payload.force_complete,
        outcome=payload.outcome,
        actor=actor,
    )
    return _bulk_result(outcome)


@router.get("/{product_id}", response_model=ProductDetailResponse)
async def get_product(
    product_id: uuid.UUID,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> ProductDetailResponse:
    """Get a product's derived state together with its station history."""
    return await engine.detail(product_id)


@router.get("/{product_id}/history", response_model=list[HistoryEntryResponse])
async def get_product_history(
    product_id: uuid.UUID,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> list[HistoryEntryResponse]:
    return await engine.history(product_id)


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: uuid.UUID,
    payload: ProductUpdateRequest,
    actor: ManagerActor,
    admin: ProductAdminService = Depends(get_product_admin),
) -> ProductResponse:
    """Rename, reprioritise or override the status of a product."""
    return await admin.apply(product_id, payload.command, actor)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: uuid.UUID,
    actor: AdminActor,
    admin: ProductAdminService = Depends(get_product_admin),
) -> None:
    """Delete a product and its station history."""
    await admin.delete_product(product_id, actor)


@router.post("/{product_id}/advance", response_model=AdvanceResponse)
async def advance_product(
    product_id: uuid.UUID,
    payload: AdvanceRequest,
    actor: OperatorActor,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> AdvanceResponse:
    """Submit station data and move to the next station when it validates.

    A rejected submission answers ``ok: false`` with field errors and leaves
    the product untouched.
    """
    result = await engine.advance(
        product_id,
        payload.field_data,
        payload.notes,
        force_complete=payload.force_complete,
        outcome=payload.outcome,
        actor=actor,
    )
    return _advance_response(result)


@router.put("/{product_id}/field-data", response_model=HistoryEntryResponse)
async def save_field_data(
    product_id: uuid.UUID,
    payload: FieldDataRequest,
    actor: OperatorActor,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> HistoryEntryResponse:
    """Save draft values on the current station without closing it."""
    return await engine.save_field_data(product_id, payload.field_data, payload.notes, actor)


@router.post("/{product_id}/skip", response_model=AdvanceResponse)
async def skip_station(
    product_id: uuid.UUID,
    actor: OperatorActor,
    payload: SkipRequest | None = None,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> AdvanceResponse:
    """Close the current station as skipped and move on."""
    return _advance_response(await engine.skip(product_id, payload.notes if payload else None, actor))


@router.post("/{product_id}/terminate", response_model=ProductResponse)
async def terminate_product(
    product_id: uuid.UUID,
    payload: TerminateRequest,
    actor: ManagerActor,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> ProductResponse:
    """Stop a product for good."""
    return await engine.terminate(product_id, payload.reason, actor)
