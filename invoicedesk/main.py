"""FastAPI application entry point — wires everything together.

Usage:
    python -m invoicedesk.main

Serves the JSON API and runs the ingestion worker in the same event loop.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from invoicedesk.api.routes import register_exception_handlers, router
from invoicedesk.config import settings
from invoicedesk.db.engine import db_lifespan
from invoicedesk.llm.client import llm_client
from invoicedesk.notifications.events import start_event_system, stop_event_system, subscribe, unsubscribe
from invoicedesk.schemas.events import EventType, SystemEvent
from invoicedesk.worker import IngestionWorker

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
event_log = structlog.get_logger("invoicedesk.events")


async def log_processing_error(event: SystemEvent) -> None:
    """Surface processing errors in the application log."""
    event_log.warning(
        "processing_error",
        document_id=str(event.document_id) if event.document_id else None,
        message=event.data.get("message"),
        process_type=event.data.get("process_type"),
    )


# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info("Starting InvoiceDesk (env=%s)", settings.environment)

    # 1. Database
    async with db_lifespan():
        logger.info("Database initialized")

        # 2. Event system
        await start_event_system()
        subscribe(log_processing_error, event_types=[EventType.PROCESSING_ERROR])
        logger.info("Event system started")

        # 3. Ingestion worker
        worker = IngestionWorker()
        await worker.start()
        app.state.worker = worker

        try:
            yield
        finally:
            # Shutdown in reverse order
            logger.info("Shutting down InvoiceDesk...")

            await worker.stop()

            await llm_client.close()
            logger.info("LLM client closed")

            unsubscribe(log_processing_error)
            await stop_event_system()
            logger.info("Event system stopped")

    logger.info("InvoiceDesk shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="InvoiceDesk API",
    description="Invoice ingestion, extraction and reconciliation",
    version="0.1.0",
    lifespan=lifespan,
)
app.include_router(router)
register_exception_handlers(app)


@app.get("/health")
async def health_check() -> dict[str, object]:
    """Health check endpoint."""
    worker: IngestionWorker | None = getattr(app.state, "worker", None)
    return {
        "status": "ok",
        "environment": settings.environment,
        "worker_running": bool(worker and worker.running),
    }


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "invoicedesk.main:app",
        host="127.0.0.1",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
