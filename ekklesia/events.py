"""In-process event bus for scheduling operations.

Every scheduling operation emits exactly one SystemEvent after its commit.
Events are queued and dispatched by a single background worker, so the
HTTP request that triggered the operation never waits on subscribers (the
audit trail, the operation log).

    from ekklesia.events import emit, subscribe

    subscribe(audit_on_event)                                  # every event
    subscribe(on_delete, [EventType.APPOINTMENT_DELETED])      # one type

    await emit(SystemEvent(event_type=EventType.APPOINTMENT_APPROVED, appointment_id=appt.id))

A subscriber that raises is logged and skipped; the others still run.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from ekklesia.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]

# Seconds to wait for queued events on shutdown before dropping them.
DRAIN_TIMEOUT = 5.0

# ── Registry ─────────────────────────────────────────────────────────

_subscribers: list[EventHandler] = []
_type_subscribers: dict[EventType, list[EventHandler]] = {}
_queue: asyncio.Queue[SystemEvent] | None = None
_worker_task: asyncio.Task[None] | None = None


def subscribe(handler: EventHandler, event_types: list[EventType] | None = None) -> None:
    """Register a handler for every event, or only for `event_types`."""
    if event_types is None:
        _subscribers.append(handler)
        logger.info("Subscribed %s to all events", handler.__name__)
        return
    for event_type in event_types:
        _type_subscribers.setdefault(event_type, []).append(handler)
    logger.info("Subscribed %s to %s", handler.__name__, ", ".join(t.value for t in event_types))


def unsubscribe(handler: EventHandler) -> None:
    """Remove a handler from every registration it holds."""
    if handler in _subscribers:
        _subscribers.remove(handler)
    for handlers in _type_subscribers.values():
        while handler in handlers:
            handlers.remove(handler)


def _handlers_for(event_type: EventType) -> list[EventHandler]:
    # A handler registered both globally and for this type runs once.
    handlers: list[EventHandler] = []
    for handler in (*_subscribers, *_type_subscribers.get(event_type, ())):
        if handler not in handlers:
            handlers.append(handler)
    return handlers


# ── Emission ─────────────────────────────────────────────────────────


async def emit(event: SystemEvent) -> None:
    """Queue an event for dispatch. Starts the worker lazily if needed."""
    global _queue
    if _queue is None:
        _queue = asyncio.Queue()
    _ensure_worker()
    await _queue.put(event)
    logger.debug("Queued %s (appointment=%s)", event.event_type.value, event.appointment_id)


def queue_depth() -> int:
    """Events waiting for dispatch."""
    return _queue.qsize() if _queue is not None else 0


# ── Dispatch ─────────────────────────────────────────────────────────


def _ensure_worker() -> None:
    global _worker_task
    if _worker_task is None or _worker_task.done():
        _worker_task = asyncio.create_task(_event_worker(), name="ekklesia-events")


async def _event_worker() -> None:
    queue = _queue
    if queue is None:
        return
    while True:
        event = await queue.get()
        try:
            await _dispatch(event)
        except Exception:
            logger.exception("Dispatch failed for %s", event.event_type.value)
        finally:
            queue.task_done()


async def _dispatch(event: SystemEvent) -> None:
    handlers = _handlers_for(event.event_type)
    if handlers:
        await asyncio.gather(*(_safe_call(handler, event) for handler in handlers))


async def _safe_call(handler: EventHandler, event: SystemEvent) -> None:
    try:
        await handler(event)
    except Exception:
        logger.exception(
            "Subscriber %s failed on %s (appointment=%s)",
            handler.__name__,
            event.event_type.value,
            event.appointment_id,
        )


async def log_operation(event: SystemEvent) -> None:
    """Operator-facing log line for every appointment event."""
    logger.info(
        "%s appointment=%s church=%s actor=%s(%s) %s",
        event.event_type.value,
        event.appointment_id,
        event.church_id,
        event.actor_id,
        event.actor_role,
        event.data,
    )


# ── Lifecycle ────────────────────────────────────────────────────────


async def start_event_system() -> None:
    """Create the queue and start the worker. Called from the FastAPI lifespan."""
    global _queue
    if _queue is None:
        _queue = asyncio.Queue()
    _ensure_worker()
    logger.info(
        "Event system started (%d global, %d typed subscribers)",
        len(_subscribers),
        sum(len(v) for v in _type_subscribers.values()),
    )


async def stop_event_system() -> None:
    """Dispatch what is already queued, then stop the worker."""
    global _worker_task, _queue

    if _queue is not None:
        try:
            await asyncio.wait_for(_queue.join(), timeout=DRAIN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Dropping %d undispatched events on shutdown", _queue.qsize())

    if _worker_task is not None and not _worker_task.done():
        _worker_task.cancel()
        try:
            await _worker_task
        except asyncio.CancelledError:
            pass

    _worker_task = None
    _queue = None
    logger.info("Event system stopped")
