"""FastAPI application entrypoint — lifespan, routers, middleware."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis
from sqlalchemy import text

from fertisense.config import get_settings
from fertisense.database import engine
from fertisense.middleware.logging import RequestLoggingMiddleware, configure_structured_logging
from fertisense.routes import catalog, history, recommendations, schedules
from fertisense.services.agronomy_config import get_agronomy_config

logger = logging.getLogger("fertisense")

SERVICE_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup / shutdown lifecycle.

    Startup:
      1. Initialize structured logging
      2. Load and validate the agronomy configuration
      3. Check the database connection
      4. Connect to Redis (price catalog cache)

    Shutdown:
      1. Close Redis connection pool
      2. Dispose SQLAlchemy engine
    """
    configure_structured_logging()
    settings = get_settings()
    logger.info(
        "FertiSense starting",
        extra={
            "log_level": settings.log_level,
            "threshold_profile": settings.npk_threshold_profile,
            "strategies": settings.allocation_strategies,
        },
    )

    redis: Redis | None = None
    try:
        agronomy = get_agronomy_config()
        agronomy.breakpoints(settings.npk_threshold_profile)

        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))

        if settings.connect_redis_on_startup:
            redis = Redis.from_url(settings.redis_url, decode_responses=True)
            await redis.ping()
            app.state.redis = redis
    except Exception as exc:
        logger.exception("startup failure", extra={"error": str(exc)})
        raise

    yield

    logger.info("FertiSense shutting down")
    if redis is not None:
        await redis.aclose()
    await engine.dispose()


app = FastAPI(
    title="FertiSense API",
    description=(
        "Rice fertilizer recommendation API. Rates soil NPK sensor readings, "
        "sizes a priced fertilizer plan from the current catalog, splits it "
        "into an application schedule, and re-reads stored plans of any shape."
    ),
    version=SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── Middleware ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


# ── Health check ────────────────────────────────────────────────────────────
@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Basic health check — verifies the API process is alive."""
    return {
        "status": "ok",
        "service": "fertisense",
        "version": SERVICE_VERSION,
    }


# ── Router registration ────────────────────────────────────────────────────
app.include_router(catalog.router, prefix="/api/v1")
app.include_router(recommendations.router, prefix="/api/v1")
app.include_router(schedules.router, prefix="/api/v1")
app.include_router(history.router, prefix="/api/v1")
