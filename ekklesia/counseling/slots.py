"""Slot computer — bookable time slots for one counselor on one day.

Only appointments in a holding status consume a slot. Canceled, queued and
closed appointments never block a time, and appointments whose date could
not be parsed are ignored entirely.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any

from ekklesia.counseling.availability import WeeklyAvailability
from ekklesia.counseling.dates import to_hhmm
from ekklesia.models.enums import AppointmentStatus

if TYPE_CHECKING:
    from ekklesia.schemas.counseling import Appointment

logger = logging.getLogger(__name__)

HOLDING_STATUSES: frozenset[AppointmentStatus] = frozenset({
    AppointmentStatus.PENDING,
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.IN_COUNSELING,
})


@dataclass(frozen=True)
class TimeSlot:
    time: str
    is_booked: bool


def consumed_times(
    target_date: date,
    appointments: Iterable[Appointment],
    *,
    exclude_id: str | None = None,
) -> set[str]:
    """`HH:MM` values already held on `target_date`."""
    consumed: set[str] = set()
    for appointment in appointments:
        if appointment.id == exclude_id:
            continue
        if appointment.status not in HOLDING_STATUSES or appointment.date is None:
            continue
        if appointment.date.date() == target_date:
            consumed.add(to_hhmm(appointment.date))
    return consumed


def compute_slots(
    availability: Any,
    target_date: date,
    appointments: Iterable[Appointment],
    *,
    exclude_id: str | None = None,
) -> list[TimeSlot]:
    """Build the slot list for a day.

    Args:
        availability: Counselor availability in any stored shape; decoded tolerantly.
        target_date: Calendar day to compute.
        appointments: The counselor's appointments. Non-holding ones are ignored here.
        exclude_id: Appointment being moved, so it does not block its own new slot.

    Returns:
        Slots sorted ascending by time, each flagged booked or free. Empty when the
        counselor has nothing configured for that weekday.
    """
    base = WeeklyAvailability.decode(availability).for_date(target_date)
    if not base:
        return []
    consumed = consumed_times(target_date, appointments, exclude_id=exclude_id)
    return [TimeSlot(time=t, is_booked=t in consumed) for t in sorted(base)]


def find_slot(
    availability: Any,
    target_date: date,
    hhmm: str,
    appointments: Iterable[Appointment],
    *,
    exclude_id: str | None = None,
) -> TimeSlot | None:
    """The slot at `hhmm` on that day, or None when the counselor does not offer it."""
    for slot in compute_slots(availability, target_date, appointments, exclude_id=exclude_id):
        if slot.time == hhmm:
            return slot
    logger.debug("Slot %s is not offered on %s", hhmm, target_date)
    return None
