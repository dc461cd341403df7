"""State machine for the appointment lifecycle.

Validates an event against the current status and the acting user, then
produces the next version of the appointment with its new status and exactly
one appended Activity. It never touches the store: the caller persists the
returned copy, so a rejected event leaves nothing behind.
"""

from __future__ import annotations

import logging
from typing import Any

from ekklesia.counseling.errors import InvalidTransitionError, PermissionDeniedError
from ekklesia.counseling.states import (
    ACTIVITY_FOR,
    GUARDS,
    OVERRIDE_SOURCES,
    TRANSITIONS,
    ActorRule,
    Event,
)
from ekklesia.models.enums import ActivityAction, AppointmentStatus, UserRole
from ekklesia.schemas.counseling import Activity, Actor, Appointment

logger = logging.getLogger(__name__)


class AppointmentStateMachine:
    """Stateless validator/applier for appointment transitions."""

    def target(
        self,
        status: AppointmentStatus,
        event: Event,
        override_target: AppointmentStatus | None = None,
    ) -> AppointmentStatus | None:
        """Resolve the next status.

        Raises:
            InvalidTransitionError: If the event is not legal from `status`.
        """
        if event is Event.OVERRIDE:
            sources = OVERRIDE_SOURCES.get(override_target) if override_target else None
            if sources is None or status not in sources:
                label = override_target.value if override_target else "?"
                msg = f'Não é possível alterar o status de "{status.value}" para "{label}".'
                raise InvalidTransitionError(msg)
            return override_target

        transitions = TRANSITIONS.get(status, {})
        if event not in transitions:
            msg = f'A ação não é permitida para um atendimento com status "{status.value}".'
            raise InvalidTransitionError(msg)
        return transitions[event]

    def is_permitted(self, appointment: Appointment, event: Event, actor: Actor) -> bool:
        rule = GUARDS[event]
        is_assigned = appointment.counselor_id is not None and appointment.counselor_id == actor.id
        if rule is ActorRule.ASSIGNED_COUNSELOR:
            return is_assigned
        if rule is ActorRule.ASSIGNED_OR_LEADERSHIP:
            return is_assigned or actor.is_leadership
        if rule is ActorRule.LEADERSHIP:
            return actor.is_leadership
        return actor.role is not UserRole.MEMBER

    def allowed_events(self, appointment: Appointment, actor: Actor) -> list[Event]:
        """Events the actor could trigger right now (override excluded)."""
        return [
            event
            for event in TRANSITIONS.get(appointment.status, {})
            if self.is_permitted(appointment, event, actor)
        ]

    def check(
        self,
        appointment: Appointment,
        event: Event,
        actor: Actor,
        *,
        target: AppointmentStatus | None = None,
    ) -> AppointmentStatus | None:
        """Validate an event without applying it.

        Returns:
            The next status, or None when the event removes the record.

        Raises:
            InvalidTransitionError: If the event is not legal from the current status.
            PermissionDeniedError: If the actor may not trigger it.
        """
        next_status = self.target(appointment.status, event, target)
        if not self.is_permitted(appointment, event, actor):
            logger.warning(
                "Denied %s on appointment %s for %s (%s)",
                event.value,
                appointment.id,
                actor.id,
                actor.role.value,
            )
            msg = "Você não tem permissão para executar esta ação neste atendimento."
            raise PermissionDeniedError(msg)
        return next_status

    def apply(
        self,
        appointment: Appointment,
        event: Event,
        actor: Actor,
        *,
        details: str | None = None,
        changes: dict[str, Any] | None = None,
        target: AppointmentStatus | None = None,
    ) -> Appointment:
        """Produce the next version of `appointment`.

        Args:
            appointment: Current decoded appointment.
            event: Lifecycle event to apply. Delete is not applicable here.
            actor: Acting user.
            details: Activity text. Defaults to a status-change sentence.
            changes: Extra field updates (date, counselor snapshot, reasons).
            target: Target status for Event.OVERRIDE.

        Returns:
            A new Appointment with the next status and one appended Activity.
        """
        next_status = self.check(appointment, event, actor, target=target)
        if next_status is None:
            msg = f"{event.value} removes the record and has no next version"
            raise ValueError(msg)

        if details is None:
            details = f'Status alterado de "{appointment.status.value}" para "{next_status.value}".'
        activity = Activity(user=actor.name, action=ACTIVITY_FOR[event].value, details=details)

        updated = appointment.model_copy(update={
            **(changes or {}),
            "status": next_status,
            "activities": [*appointment.activities, activity],
        })

        logger.info(
            "Appointment transition: %s --%s--> %s (appointment=%s actor=%s)",
            appointment.status.value,
            event.value,
            next_status.value,
            appointment.id,
            actor.id,
        )
        return updated

    def annotate(
        self,
        appointment: Appointment,
        action: ActivityAction,
        user: str,
        *,
        details: str | None = None,
        changes: dict[str, Any] | None = None,
    ) -> Appointment:
        """Append one Activity that does not change the status (session notes, contacts)."""
        activity = Activity(user=user, action=action.value, details=details)
        return appointment.model_copy(update={
            **(changes or {}),
            "activities": [*appointment.activities, activity],
        })


appointment_machine = AppointmentStateMachine()
