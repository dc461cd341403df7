"""Appointment lifecycle: events, transition map, guards and audit actions.

The state machine in `machine.py` is the only thing that reads these tables.
A `None` target means the record is removed ("cancel definitively").
"""

from __future__ import annotations

from enum import Enum

from ekklesia.models.enums import ActivityAction, AppointmentStatus

S = AppointmentStatus


class Event(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    RESCHEDULE = "reschedule"
    RETURN_TO_QUEUE = "return_to_queue"
    CANCEL = "cancel"
    DELETE = "delete"
    TRANSFER = "transfer"
    ASSIGN = "assign"
    CLAIM = "claim"
    OVERRIDE = "override"


class ActorRule(str, Enum):
    """Who may trigger an event."""

    ASSIGNED_COUNSELOR = "assigned_counselor"
    ASSIGNED_OR_LEADERSHIP = "assigned_or_leadership"
    LEADERSHIP = "leadership"
    ANY_COUNSELOR = "any_counselor"


# Transition map: {current_status: {event: next_status}}
TRANSITIONS: dict[AppointmentStatus, dict[Event, AppointmentStatus | None]] = {
    S.PENDING: {
        Event.APPROVE: S.SCHEDULED,
        Event.REJECT: S.QUEUED,
        Event.CANCEL: S.CANCELED,
        Event.DELETE: None,
    },
    S.SCHEDULED: {
        Event.RESCHEDULE: S.SCHEDULED,
        Event.RETURN_TO_QUEUE: S.QUEUED,
        Event.TRANSFER: S.SCHEDULED,
        Event.CANCEL: S.CANCELED,
        Event.DELETE: None,
    },
    S.IN_COUNSELING: {
        Event.RESCHEDULE: S.IN_COUNSELING,
        Event.RETURN_TO_QUEUE: S.QUEUED,
        Event.CANCEL: S.CANCELED,
        Event.DELETE: None,
    },
    S.QUEUED: {
        Event.ASSIGN: S.SCHEDULED,
        Event.CLAIM: S.SCHEDULED,
        Event.CANCEL: S.CANCELED,
        Event.DELETE: None,
    },
    S.COMPLETED: {},
    S.CANCELED: {},
    S.NO_RETURN: {},
}

# Administrative override: {target_status: statuses it may be applied from}.
# Cancelado is never a source (cancellation is irreversible) and never a
# target (it goes through the cancel operation, which requires a reason).
OVERRIDE_SOURCES: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    S.IN_COUNSELING: frozenset({S.PENDING, S.SCHEDULED}),
    S.COMPLETED: frozenset({S.PENDING, S.SCHEDULED, S.IN_COUNSELING, S.QUEUED, S.NO_RETURN}),
    S.NO_RETURN: frozenset({S.PENDING, S.SCHEDULED, S.IN_COUNSELING, S.QUEUED, S.COMPLETED}),
}

GUARDS: dict[Event, ActorRule] = {
    Event.APPROVE: ActorRule.ASSIGNED_COUNSELOR,
    Event.REJECT: ActorRule.ASSIGNED_COUNSELOR,
    Event.RETURN_TO_QUEUE: ActorRule.ASSIGNED_COUNSELOR,
    Event.RESCHEDULE: ActorRule.ASSIGNED_OR_LEADERSHIP,
    Event.CANCEL: ActorRule.ASSIGNED_OR_LEADERSHIP,
    Event.DELETE: ActorRule.ASSIGNED_OR_LEADERSHIP,
    Event.TRANSFER: ActorRule.ASSIGNED_OR_LEADERSHIP,
    Event.OVERRIDE: ActorRule.ASSIGNED_OR_LEADERSHIP,
    Event.ASSIGN: ActorRule.LEADERSHIP,
    Event.CLAIM: ActorRule.ANY_COUNSELOR,
}

# Audit action appended for each event. Delete leaves no record to append to.
ACTIVITY_FOR: dict[Event, ActivityAction] = {
    Event.APPROVE: ActivityAction.STATUS_CHANGE,
    Event.REJECT: ActivityAction.STATUS_CHANGE,
    Event.RETURN_TO_QUEUE: ActivityAction.STATUS_CHANGE,
    Event.OVERRIDE: ActivityAction.STATUS_CHANGE,
    Event.RESCHEDULE: ActivityAction.RESCHEDULED,
    Event.CANCEL: ActivityAction.CANCELED,
    Event.TRANSFER: ActivityAction.TRANSFERRED,
    Event.ASSIGN: ActivityAction.ASSIGNED_COUNSELOR,
    Event.CLAIM: ActivityAction.OWNERSHIP_TAKEN,
}

TERMINAL_STATUSES: frozenset[AppointmentStatus] = frozenset(
    status for status, events in TRANSITIONS.items() if not events
)
