"""TrueLocal API -- Main Application Entry Point

Creates the FastAPI application, configures logging and CORS middleware,
registers all API route modules under the /api/v1 prefix, and mounts the
Socket.IO ASGI application for real-time updates.

Run with::

    uvicorn truelocal.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from truelocal.core.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Startup:
      - Import realtime handlers to register Socket.IO events and the
        change-feed listener that pushes new chat messages.

    Shutdown:
      - Drop every change-feed subscription and dispose the DB engine.
    """
    from truelocal.realtime import handlers  # noqa: F401

    logger.info("%s %s starting", settings.app_name, settings.app_version)
    yield

    from truelocal.api.deps import engine
    from truelocal.realtime.changeFeed import change_feed

    change_feed.clear()
    await engine.dispose()


# ---------------------------------------------------------------------------
# Application instance
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health():
    """Lightweight health check for load balancers and readiness probes."""
    return {"status": "ok", "version": settings.app_version}


# ---------------------------------------------------------------------------
# Register API route modules
# ---------------------------------------------------------------------------
# Each router defines its own prefix (e.g. /listings, /bookings) and tags.
# They are mounted under the shared /api/v1 prefix.
# ---------------------------------------------------------------------------

from truelocal.api.routes import (  # noqa: E402
    analytics,
    bookings,
    conversations,
    listings,
    profiles,
    support,
)

_prefix = settings.api_v1_prefix

app.include_router(profiles.router, prefix=_prefix)
app.include_router(listings.router, prefix=_prefix)
app.include_router(bookings.router, prefix=_prefix)
app.include_router(conversations.router, prefix=_prefix)
app.include_router(analytics.router, prefix=_prefix)
app.include_router(support.router, prefix=_prefix)


# ---------------------------------------------------------------------------
# Mount Socket.IO ASGI application
# ---------------------------------------------------------------------------

from truelocal.realtime.socketServer import socket_app  # noqa: E402

app.mount("/ws", socket_app)
