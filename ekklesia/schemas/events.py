"""SystemEvent schema — emitted once by every scheduling operation after its commit.

Subscribers (audit trail, logs) consume these events asynchronously.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the system."""

    # Appointment lifecycle
    APPOINTMENT_REQUESTED = "appointment.requested"
    APPOINTMENT_BOOKED = "appointment.booked"
    APPOINTMENT_APPROVED = "appointment.approved"
    APPOINTMENT_REJECTED = "appointment.rejected"
    APPOINTMENT_RESCHEDULED = "appointment.rescheduled"
    APPOINTMENT_RETURNED_TO_QUEUE = "appointment.returned_to_queue"
    APPOINTMENT_CANCELLED = "appointment.cancelled"
    APPOINTMENT_DELETED = "appointment.deleted"
    APPOINTMENT_TRANSFERRED = "appointment.transferred"
    APPOINTMENT_ASSIGNED = "appointment.assigned"
    APPOINTMENT_CLAIMED = "appointment.claimed"
    APPOINTMENT_STATUS_OVERRIDDEN = "appointment.status_overridden"

    # Session notes and contact
    MEETING_RECORDED = "meeting.recorded"
    MEETING_UPDATED = "meeting.updated"
    CONTACT_LOGGED = "contact.whatsapp_logged"

    # Roster
    COUNSELOR_REGISTERED = "counselor.registered"
    COUNSELOR_UPDATED = "counselor.updated"
    COUNSELOR_DEACTIVATED = "counselor.deactivated"

    # System
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"


class SystemEvent(BaseModel):
    """Event flowing through the in-process bus. Immutable once created."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Context (system events carry none)
    appointment_id: str | None = None
    church_id: str | None = None
    actor_id: str | None = None
    actor_role: str | None = None

    # Flexible payload
    data: dict[str, Any] = Field(default_factory=dict)

    # Metadata
    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
