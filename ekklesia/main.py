"""FastAPI application entry point — wires everything together.

Usage:
    python -m ekklesia.main
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from ekklesia.api.routes import install_error_handlers, router
from ekklesia.config import settings
from ekklesia.db.engine import db_lifespan
from ekklesia.events import (
    emit,
    log_operation,
    queue_depth,
    start_event_system,
    stop_event_system,
    subscribe,
    unsubscribe,
)
from ekklesia.schemas.events import EventType, SystemEvent
from ekklesia.security.audit import audit_on_event

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = logging.getLogger(__name__)

# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info("Starting %s counseling API (env=%s)", settings.branding.app_name, settings.environment)

    # 1. Database
    async with db_lifespan():
        logger.info("Database initialized")

        # 2. Event system
        await start_event_system()

        # 3. Audit trail and operation log, always active
        subscribe(audit_on_event)
        subscribe(log_operation)
        logger.info("Audit logging subscriber registered")
        await emit(SystemEvent(event_type=EventType.SYSTEM_STARTUP, source_module="main"))

        try:
            yield
        finally:
            logger.info("Shutting down counseling API...")
            await emit(SystemEvent(event_type=EventType.SYSTEM_SHUTDOWN, source_module="main"))
            await stop_event_system()
            unsubscribe(audit_on_event)
            unsubscribe(log_operation)

    logger.info("Shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="Ekklesia Counseling API",
    description="Pastoral counseling appointments: requests, agenda, and lifecycle",
    version="0.1.0",
    lifespan=lifespan,
)
app.include_router(router)
install_error_handlers(app)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "app_name": settings.branding.app_name,
        "pending_events": str(queue_depth()),
    }


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "ekklesia.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
