"""Audit log subscriber — persists every SystemEvent to the audit_log table.

Registered as a global subscriber. Never raises: failures are logged and
never propagate to the event system.
"""

from __future__ import annotations

import logging

from ekklesia.db.engine import async_session_factory
from ekklesia.models.audit import AuditLog
from ekklesia.schemas.events import SystemEvent

logger = logging.getLogger(__name__)


async def audit_on_event(event: SystemEvent) -> None:
    """Write a SystemEvent to the audit_log table.

    Failures are logged and swallowed; the operation that emitted the event
    has already committed.
    """
    try:
        async with async_session_factory() as db:
            db.add(AuditLog(
                event_type=event.event_type.value,
                appointment_id=event.appointment_id,
                church_id=event.church_id,
                actor_id=event.actor_id,
                actor_role=event.actor_role,
                data=event.data,
            ))
            await db.commit()
    except Exception:
        logger.exception(
            "Failed to persist audit event: %s (appointment=%s)",
            event.event_type.value,
            event.appointment_id,
        )
