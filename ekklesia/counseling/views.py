"""Read models for appointment screens: history decoration, list filtering, agenda split.

History is always computed over the church's full appointment set, whatever
subset is being displayed, so the attendance number is the same on every
screen.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, Field

from ekklesia.counseling.history import (
    AttendanceTier,
    HistoryEntry,
    attendance_label,
    attendance_number,
    attendance_tier,
    build_histories,
    history_for,
)
from ekklesia.counseling.machine import appointment_machine
from ekklesia.counseling.visibility import present_meetings
from ekklesia.models.enums import AppointmentStatus
from ekklesia.schemas.counseling import Activity, Actor, Appointment

S = AppointmentStatus

UPCOMING_STATUSES = frozenset({S.SCHEDULED, S.IN_COUNSELING})


class AppointmentView(BaseModel):
    """An appointment as shown to one viewer."""

    appointment: Appointment
    timeline: list[Activity] = Field(default_factory=list)
    history: list[HistoryEntry] = Field(default_factory=list)
    attendance_number: int | None = None
    attendance_tier: AttendanceTier | None = None
    attendance_label: str | None = None
    allowed_actions: list[str] = Field(default_factory=list)


class CounselorAgenda(BaseModel):
    pending: list[AppointmentView] = Field(default_factory=list)
    upcoming: list[AppointmentView] = Field(default_factory=list)
    past: list[AppointmentView] = Field(default_factory=list)


def decorate(
    appointments: Iterable[Appointment],
    church_appointments: Iterable[Appointment],
    viewer: Actor,
) -> list[AppointmentView]:
    """Attach history, attendance number and masked meetings to each appointment."""
    histories = build_histories(church_appointments)
    views: list[AppointmentView] = []
    for appointment in appointments:
        number = attendance_number(appointment, histories)
        masked = appointment.model_copy(update={"meetings": present_meetings(appointment.meetings, viewer)})
        views.append(AppointmentView(
            appointment=masked,
            timeline=appointment.timeline(),
            history=history_for(appointment, histories),
            attendance_number=number,
            attendance_tier=attendance_tier(number) if number else None,
            attendance_label=attendance_label(number) if number else None,
            allowed_actions=[e.value for e in appointment_machine.allowed_events(appointment, viewer)],
        ))
    return views


def _newest_first(appointments: Iterable[Appointment]) -> list[Appointment]:
    """Latest date first; undated appointments sink to the end."""
    items = list(appointments)
    dated = sorted((a for a in items if a.date is not None), key=lambda a: (a.date, a.id), reverse=True)
    return dated + [a for a in items if a.date is None]


def filter_appointments(
    appointments: Iterable[Appointment],
    *,
    counselor_id: str | None = None,
    search: str | None = None,
    statuses: Iterable[AppointmentStatus] | None = None,
) -> list[Appointment]:
    """List-screen filter, sorted newest first."""
    wanted = set(statuses) if statuses else None
    term = (search or "").strip().lower()

    selected = []
    for appointment in appointments:
        if counselor_id and appointment.counselor_id != counselor_id:
            continue
        if wanted is not None and appointment.status not in wanted:
            continue
        if term:
            haystack = " ".join(
                value or ""
                for value in (
                    appointment.member_name,
                    appointment.member_email,
                    appointment.member_phone,
                    appointment.counselor_name,
                    appointment.topic,
                )
            ).lower()
            if term not in haystack:
                continue
        selected.append(appointment)
    return _newest_first(selected)


def split_agenda(
    appointments: Iterable[Appointment],
    now: datetime,
) -> tuple[list[Appointment], list[Appointment], list[Appointment]]:
    """Split a counselor's appointments into (pending, upcoming, past).

    Pending requests always land in `pending`. Live appointments from now on
    are upcoming (soonest first); everything else is past (latest first).
    """
    pending: list[Appointment] = []
    upcoming: list[Appointment] = []
    past: list[Appointment] = []
    for appointment in appointments:
        if appointment.status is S.PENDING:
            pending.append(appointment)
        elif appointment.status in UPCOMING_STATUSES and appointment.date is not None and appointment.date >= now:
            upcoming.append(appointment)
        else:
            past.append(appointment)

    pending.sort(key=lambda a: (a.date is None, a.date or datetime.min))
    upcoming.sort(key=lambda a: (a.date, a.id))
    return pending, upcoming, _newest_first(past)


# ── Statistics ───────────────────────────────────────────────────────

UNASSIGNED_LABEL = "Não atribuído"
NO_TOPIC_LABEL = "Sem tema"


class CounselingStats(BaseModel):
    """Counts for the statistics screen, optionally limited to one month."""

    total_appointments: int = 0
    in_waiting_list: int = 0
    pending_approval: int = 0
    scheduled: int = 0
    completed: int = 0
    canceled: int = 0
    by_counselor: dict[str, int] = Field(default_factory=dict)
    by_topic: dict[str, int] = Field(default_factory=dict)


def parse_month(month: str) -> tuple[int, int]:
    """Parse 'YYYY-MM' into (year, month); raises ValueError otherwise."""
    parsed = datetime.strptime(month, "%Y-%m")
    return parsed.year, parsed.month


def compute_stats(appointments: Iterable[Appointment], month: str | None = None) -> CounselingStats:
    """Count appointments per status group, counselor and topic.

    With `month`, only appointments dated in that month are counted;
    undated ones (the waiting list, usually) fall outside any month.
    """
    period = parse_month(month) if month else None
    stats = CounselingStats()
    for appointment in appointments:
        if period is not None:
            if appointment.date is None or (appointment.date.year, appointment.date.month) != period:
                continue
        stats.total_appointments += 1
        status = appointment.status
        if status is S.QUEUED:
            stats.in_waiting_list += 1
        elif status is S.PENDING:
            stats.pending_approval += 1
        elif status in UPCOMING_STATUSES:
            stats.scheduled += 1
        elif status is S.COMPLETED:
            stats.completed += 1
        elif status is S.CANCELED:
            stats.canceled += 1

        counselor = (appointment.counselor_name or "").strip() or UNASSIGNED_LABEL
        stats.by_counselor[counselor] = stats.by_counselor.get(counselor, 0) + 1
        topic = (appointment.topic or "").strip() or NO_TOPIC_LABEL
        stats.by_topic[topic] = stats.by_topic.get(topic, 0) + 1
    return stats
