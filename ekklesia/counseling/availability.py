"""Counselor weekly availability — weekday name to an ordered set of `HH:MM` slots.

Availability reaches us in whatever shape the profile row happens to hold:
a JSON object, a JSON object encoded as a string (older profiles), or junk.
`WeeklyAvailability.decode` is the single tolerant entry point; it never raises.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

logger = logging.getLogger(__name__)

# Index matches JavaScript's Date.getDay(): Sunday is 0.
WEEKDAYS: tuple[str, ...] = ("Domingo", "Segunda", "Terça", "Quarta", "Quinta", "Sexta", "Sábado")


def weekday_name(day: date) -> str:
    """Weekday literal for a calendar day."""
    return WEEKDAYS[(day.weekday() + 1) % 7]


class WeeklyAvailability:
    """Recurring weekly open slots for one counselor.

    Slot lists are deduplicated keeping first-seen order. They are not sorted
    here; the slot computer sorts at read time.
    """

    __slots__ = ("_slots",)

    def __init__(self, slots: Mapping[str, Iterable[str]] | None = None) -> None:
        self._slots: dict[str, tuple[str, ...]] = {}
        for day, times in (slots or {}).items():
            if day not in WEEKDAYS:
                logger.warning("Ignoring unknown weekday in availability: %r", day)
                continue
            self._slots[day] = tuple(dict.fromkeys(times))

    @classmethod
    def decode(cls, raw: Any) -> WeeklyAvailability:
        """Decode stored availability, degrading to empty on malformed data."""
        if isinstance(raw, WeeklyAvailability):
            return raw

        value = raw
        # Strings may be encoded more than once by older clients.
        for _ in range(2):
            if not isinstance(value, (str, bytes)):
                break
            try:
                value = json.loads(value)
            except (TypeError, ValueError):
                logger.warning("Malformed availability string; treating as empty")
                return cls()

        if value is None:
            return cls()
        if not isinstance(value, Mapping):
            logger.warning("Availability is not an object (%s); treating as empty", type(value).__name__)
            return cls()

        slots: dict[str, list[str]] = {}
        for day, times in value.items():
            if not isinstance(times, list) or not all(isinstance(t, str) for t in times):
                logger.warning("Skipping malformed availability entry for %r", day)
                continue
            slots[str(day)] = times
        return cls(slots)

    def get(self, weekday: str) -> tuple[str, ...]:
        """Open slots for a weekday literal, empty when none configured."""
        return self._slots.get(weekday, ())

    def for_date(self, day: date) -> tuple[str, ...]:
        return self.get(weekday_name(day))

    def days(self) -> list[str]:
        """Configured weekdays in week order."""
        return [day for day in WEEKDAYS if self._slots.get(day)]

    def to_dict(self) -> dict[str, list[str]]:
        return {day: list(times) for day, times in self._slots.items()}

    def __bool__(self) -> bool:
        return any(self._slots.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WeeklyAvailability):
            return NotImplemented
        return self._slots == other._slots

    def __repr__(self) -> str:
        return f"<WeeklyAvailability days={self.days()}>"
