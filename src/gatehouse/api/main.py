"""
FastAPI application entry point.

Main API server for Gatehouse.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy import text

from gatehouse import __version__
from gatehouse.api.errors import register_exception_handlers
from gatehouse.api.routes import auth_router, users_router
from gatehouse.config import settings
from gatehouse.db import close_db, get_session_factory, init_db
from gatehouse.log import configure_logging

logger = structlog.get_logger()


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    configure_logging(settings.log_level, json=not settings.is_development)
    logger.info(
        "Starting Gatehouse",
        version=__version__,
        environment=settings.environment,
    )

    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down Gatehouse")
    await close_db()


# =============================================================================
# Application Setup
# =============================================================================

app = FastAPI(
    title="Gatehouse",
    description="Authentication and authorization for multi-tenant APIs",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(users_router)


# =============================================================================
# Health Endpoints
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    timestamp: datetime
    database: str = "unknown"


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint with database connectivity."""
    db_status = "disconnected"
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
            db_status = "connected"
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        db_status = f"error: {type(e).__name__}"

    return HealthResponse(
        status="healthy" if db_status == "connected" else "degraded",
        version=__version__,
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc),
        database=db_status,
    )


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Simple liveness probe - no DB check."""
    return {"status": "ok"}


# =============================================================================
# Run with: uvicorn gatehouse.api.main:app --reload
# =============================================================================
