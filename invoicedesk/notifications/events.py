"""Event bus for presentation-layer notifications.

Async pub/sub of SystemEvents. The core emits "document updated" after any
status or field change and "processing error" whenever an error entry is
written to the processing log. Subscribers (UI bridges, loggers) register
at startup.

Usage:
    from invoicedesk.notifications.events import subscribe

    async def refresh(event: SystemEvent) -> None: ...

    subscribe(refresh, event_types=[EventType.DOCUMENT_UPDATED])
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Coroutine
from typing import Any

from invoicedesk.errors import sanitize_message
from invoicedesk.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]

# ── Internal state ───────────────────────────────────────────────────

_subscribers: list[EventHandler] = []
_type_subscribers: dict[EventType, list[EventHandler]] = {}
_queue: asyncio.Queue[SystemEvent] | None = None
_worker_task: asyncio.Task[None] | None = None


# ── Public API ───────────────────────────────────────────────────────


def subscribe(handler: EventHandler, event_types: list[EventType] | None = None) -> None:
    """Register an event handler.

    Args:
        handler: Async function that accepts a SystemEvent.
        event_types: If provided, handler only receives these event types.
                     If None, handler receives ALL events.
    """
    if event_types is None:
        _subscribers.append(handler)
        logger.info("Registered global event subscriber: %s", handler.__name__)
    else:
        for et in event_types:
            _type_subscribers.setdefault(et, []).append(handler)
        logger.info(
            "Registered event subscriber %s for types: %s",
            handler.__name__,
            [t.value for t in event_types],
        )


def unsubscribe(handler: EventHandler) -> None:
    """Remove a previously registered handler."""
    if handler in _subscribers:
        _subscribers.remove(handler)
    for handlers in _type_subscribers.values():
        if handler in handlers:
            handlers.remove(handler)


async def emit(event: SystemEvent) -> None:
    """Publish a SystemEvent to all subscribers without waiting for them."""
    global _queue
    if _queue is None:
        _queue = asyncio.Queue()
    _ensure_worker()

    await _queue.put(event)
    logger.debug("Event emitted: %s (document=%s)", event.event_type.value, event.document_id)


async def notify_document_updated(
    document_id: uuid.UUID,
    source_module: str,
    **data: Any,
) -> None:
    """Emit DOCUMENT_UPDATED for one document."""
    await emit(SystemEvent(
        event_type=EventType.DOCUMENT_UPDATED,
        document_id=document_id,
        data=data,
        source_module=source_module,
    ))


async def notify_processing_error(
    message: str,
    source_module: str,
    document_id: uuid.UUID | None = None,
    **data: Any,
) -> None:
    """Emit PROCESSING_ERROR carrying a sanitized, display-safe message."""
    await emit(SystemEvent(
        event_type=EventType.PROCESSING_ERROR,
        document_id=document_id,
        data={"message": sanitize_message(message), **data},
        source_module=source_module,
    ))


# ── Background worker ────────────────────────────────────────────────


def _ensure_worker() -> None:
    """Start the background event worker if not already running."""
    global _worker_task
    if _worker_task is None or _worker_task.done():
        _worker_task = asyncio.create_task(_event_worker())
        logger.debug("Event worker started")


async def _event_worker() -> None:
    """Drain the event queue and dispatch to subscribers."""
    if _queue is None:
        return

    while True:
        try:
            event = await _queue.get()
        except asyncio.CancelledError:
            logger.debug("Event worker shutting down")
            break
        try:
            await _dispatch(event)
        except Exception:
            logger.exception("Error in event worker")
        finally:
            _queue.task_done()


async def _dispatch(event: SystemEvent) -> None:
    """Dispatch a single event to all matching subscribers."""
    handlers: list[EventHandler] = list(_subscribers)
    handlers.extend(_type_subscribers.get(event.event_type, []))

    if not handlers:
        return

    # Run all handlers concurrently; isolate failures
    results = await asyncio.gather(
        *[handler(event) for handler in handlers],
        return_exceptions=True,
    )
    for handler, result in zip(handlers, results, strict=True):
        if isinstance(result, Exception):
            logger.error(
                "Handler %s failed for %s: %s", handler.__name__, event.event_type.value, result
            )


# ── Lifecycle ────────────────────────────────────────────────────────


async def start_event_system() -> None:
    """Initialize the event system. Call during FastAPI lifespan startup."""
    global _queue, _worker_task
    _queue = asyncio.Queue()
    _worker_task = None
    _ensure_worker()
    logger.info(
        "Event system started with %d global + %d typed subscribers",
        len(_subscribers),
        sum(len(v) for v in _type_subscribers.values()),
    )


async def stop_event_system() -> None:
    """Drain pending events and stop the worker."""
    global _worker_task, _queue

    if _queue is not None and _worker_task is not None and not _worker_task.done():
        await _queue.join()

    if _worker_task is not None and not _worker_task.done():
        _worker_task.cancel()
        try:
            await _worker_task
        except asyncio.CancelledError:
            pass

    _worker_task = None
    _queue = None
    logger.info("Event system stopped")
