"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routetrack.api.v1.router import api_v1_router
from routetrack.core.config import settings
from routetrack.core.database import async_session_factory, close_db, init_db
from routetrack.core.errors import TrackingError, tracking_error_handler
from routetrack.core.redis import close_redis, init_redis
from routetrack.db.seed import seed_if_empty
from routetrack.services.locks import build_lock_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info("Starting %s ...", settings.PROJECT_NAME)

    # Startup
    await init_db()
    logger.info("Database initialized")

    if settings.SEED_DEMO_DATA:
        async with async_session_factory() as session:
            result = await seed_if_empty(session)
            if result:
                await session.commit()
                logger.info("Demo data seeded: %s", result)
            else:
                logger.info("Database already has data, skipping seed")

    redis = await init_redis(app.state)
    app.state.product_locks = build_lock_registry(redis, settings.LOCK_TIMEOUT_SECONDS)
    logger.info(
        "Product locks: %s (overdue policy: %s)",
        type(app.state.product_locks).__name__,
        settings.OVERDUE_POLICY,
    )

    yield

    # Shutdown
    await close_redis(app.state)
    logger.info("Redis disconnected")

    await close_db()
    logger.info("Database disconnected")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

app.add_exception_handler(TrackingError, tracking_error_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        settings.API_KEY_HEADER,
        settings.ACTOR_ID_HEADER,
        settings.ACTOR_ROLE_HEADER,
        "Accept",
    ],
)

# Register API v1 router
app.include_router(api_v1_router, prefix="/api/v1")
