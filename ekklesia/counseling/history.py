"""Per-person appointment history, reconstructed from denormalized identity.

Members have no stable id across appointments, so appointments are grouped
by `identity_key`. Every screen that shows history must go through this
module so the groupings never diverge.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ekklesia.schemas.counseling import Appointment

UNASSIGNED_COUNSELOR = "Não atribuído"


class AttendanceTier(str, Enum):
    NEUTRAL = "neutral"
    CAUTION = "caution"
    WARNING = "warning"


@dataclass(frozen=True)
class HistoryEntry:
    id: str
    date: datetime
    counselor: str


def identity_key(appointment: Appointment) -> str:
    """`name-(lowercased email | phone | appointment id)`."""
    suffix = (appointment.member_email or "").lower() or appointment.member_phone or appointment.id
    return f"{appointment.member_name}-{suffix}"


def build_histories(appointments: Iterable[Appointment]) -> dict[str, list[Appointment]]:
    """Group appointments by identity key, each group sorted by date.

    Appointments without a usable date are excluded. Ties are broken by id so
    the ordering is deterministic.
    """
    groups: dict[str, list[Appointment]] = defaultdict(list)
    for appointment in appointments:
        if appointment.date is None:
            continue
        groups[identity_key(appointment)].append(appointment)
    for group in groups.values():
        group.sort(key=lambda a: (a.date, a.id))
    return dict(groups)


def history_for(
    appointment: Appointment,
    histories: dict[str, list[Appointment]],
) -> list[HistoryEntry]:
    return [
        HistoryEntry(id=a.id, date=a.date, counselor=a.counselor_name or UNASSIGNED_COUNSELOR)
        for a in histories.get(identity_key(appointment), [])
    ]


def attendance_number(
    appointment: Appointment,
    histories: dict[str, list[Appointment]],
) -> int | None:
    """1-based rank of the appointment in its history; None when it has no usable date."""
    for index, sibling in enumerate(histories.get(identity_key(appointment), []), start=1):
        if sibling.id == appointment.id:
            return index
    return None


def attendance_tier(number: int) -> AttendanceTier:
    if number >= 4:
        return AttendanceTier.WARNING
    if number >= 2:
        return AttendanceTier.CAUTION
    return AttendanceTier.NEUTRAL


def attendance_label(number: int) -> str:
    return f"{number}º Atendimento"
