"""Instant parsing and projection onto the single local agenda zone.

Stored dates come in two shapes: legacy UTC strings produced by browsers
(`2024-03-02T13:00:00.000Z`) and naive local strings written by this
package (`2024-03-02T10:00:00`). Both are projected to naive local datetimes
so slot arithmetic never mixes zones.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from ekklesia.config import settings

logger = logging.getLogger(__name__)


def local_zone() -> ZoneInfo:
    return ZoneInfo(settings.scheduling.local_timezone)


def parse_instant(value: object) -> datetime | None:
    """Parse a stored date into a naive local datetime; None when unparsable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time())
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            logger.warning("Unparsable appointment date: %r", value)
            return None
    else:
        logger.warning("Unexpected appointment date type: %s", type(value).__name__)
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(local_zone()).replace(tzinfo=None)
    return parsed


def format_instant(value: datetime) -> str:
    """Canonical storage form. Also the text the live-slot unique index compares."""
    return value.replace(microsecond=0).isoformat(timespec="seconds")


def now_local() -> datetime:
    return datetime.now(local_zone()).replace(tzinfo=None)


def combine(day: date, hhmm: str) -> datetime:
    """Build a local datetime from a calendar day and an `HH:MM` slot.

    Raises:
        ValueError: If the slot is not a valid time of day.
    """
    return datetime.combine(day, time.fromisoformat(hhmm))


def to_hhmm(value: datetime) -> str:
    return value.strftime("%H:%M")


def display(value: datetime) -> str:
    """`dd/MM/yyyy às HH:mm`, the format used in every outbound message."""
    return value.strftime("%d/%m/%Y às %H:%M")
