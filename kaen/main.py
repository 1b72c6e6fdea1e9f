"""FastAPI application entry point.

Configures CORS, structured logging, lifespan events (including the
APScheduler used for discussion polling), and router registration.
"""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kaen.core.config import settings
from kaen.core.logging import setup_logging
from kaen.routers import comments, discussions, health, votes
from kaen.scheduler.jobs import add_idle_sweep_job, shutdown_scheduler, start_scheduler
from kaen.services.discussion import registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: startup and shutdown hooks.

    Starts the scheduler (plus the idle-discussion sweep) on startup; on exit
    closes every open discussion (removing its poll job) before shutting the
    scheduler down.
    """
    setup_logging()
    logger.info("Application starting up")
    start_scheduler()
    if settings.idle_timeout_seconds:
        add_idle_sweep_job(registry.close_idle, settings.idle_timeout_seconds)
    yield
    closed = registry.close_all()
    shutdown_scheduler()
    logger.info("Application shutting down", extra={"closed_discussions": closed})


app = FastAPI(
    title="Kaen Discussions API",
    description="Threaded comments, votes and live discussion sessions for Kaen posts",
    version="0.1.0",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# CORS Configuration
# ---------------------------------------------------------------------------
_raw_origins = settings.ALLOWED_ORIGINS.strip()
if _raw_origins == "*":
    _allowed_origins: list[str] = ["*"]
else:
    _allowed_origins = [o.strip() for o in _raw_origins.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Router Registration
# ---------------------------------------------------------------------------
app.include_router(health.router, tags=["Health"])
app.include_router(comments.router, prefix="/api/v1", tags=["Comments"])
app.include_router(votes.router, prefix="/api/v1", tags=["Votes"])
app.include_router(discussions.router, prefix="/api/v1", tags=["Discussions"])
