"""API v1 router aggregating all sub-routers."""

from fastapi import APIRouter, Depends, HTTPException

from routetrack.api.v1.analytics import router as analytics_router
from routetrack.api.v1.products import router as products_router
from routetrack.api.v1.routes import router as routes_router
from routetrack.api.v1.stations import router as stations_router
from routetrack.core.auth import verify_api_key
from routetrack.core.rate_limit import rate_limit_default
from routetrack.db.init_db import check_db_connection

# Public router (no authentication required)
api_v1_router = APIRouter()


@api_v1_router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint returning 200 OK."""
    return {"status": "ok"}


@api_v1_router.get("/health/ready")
async def readiness_check() -> dict[str, str]:
    """Readiness probe that also checks the database connection."""
    if not await check_db_connection():
        raise HTTPException(status_code=503, detail="Database unavailable")
    return {"status": "ok", "database": "ok"}


# Authenticated router with default rate limiting (120 req/min per actor).
# Bulk product endpoints additionally enforce strict limits (10 req/min).
_authenticated = APIRouter(dependencies=[Depends(verify_api_key), Depends(rate_limit_default)])
_authenticated.include_router(stations_router)
_authenticated.include_router(routes_router)
_authenticated.include_router(products_router)
_authenticated.include_router(analytics_router)

api_v1_router.include_router(_authenticated)
