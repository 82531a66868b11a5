"""Analytics API endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.core.config import settings
from routetrack.core.database import get_db
from routetrack.schemas.analytics import DashboardAnalytics
from routetrack.services.analytics import AnalyticsService

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/dashboard", response_model=DashboardAnalytics)
async def dashboard(db: AsyncSession = Depends(get_db)) -> DashboardAnalytics:
    """Product counts, station load, route usage and owner performance."""
    return await AnalyticsService(db, settings.OVERDUE_POLICY).dashboard()
