"""FastAPI dependencies wiring the engine services to settings and app state."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from routetrack.core.config import settings
from routetrack.core.database import get_session_factory
from routetrack.services.locks import ProductLockRegistry, RedisProductLockRegistry
from routetrack.services.product_admin import ProductAdminService
from routetrack.services.progression import ProgressionEngine

# Used until the lifespan installs the configured registry on app.state
_fallback_locks = ProductLockRegistry(timeout=settings.LOCK_TIMEOUT_SECONDS)


def get_product_locks(request: Request) -> ProductLockRegistry | RedisProductLockRegistry:
    return getattr(request.app.state, "product_locks", None) or _fallback_locks


def _engine_options(request: Request) -> dict:
    return {
        "locks": get_product_locks(request),
        "persistence_timeout": settings.PERSISTENCE_TIMEOUT_SECONDS,
        "bulk_max_concurrency": settings.BULK_MAX_CONCURRENCY,
        "overdue_policy": settings.OVERDUE_POLICY,
    }


def get_progression_engine(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ProgressionEngine:
    return ProgressionEngine(
        session_factory,
        auto_start=settings.AUTO_START_ON_CREATE,
        **_engine_options(request),
    )


def get_product_admin(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ProductAdminService:
    return ProductAdminService(session_factory, **_engine_options(request))
