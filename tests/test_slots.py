"""Tests for the slot computer."""

from __future__ import annotations

from datetime import date, datetime

from ekklesia.counseling.slots import TimeSlot, compute_slots, consumed_times, find_slot
from ekklesia.models.enums import AppointmentStatus
from ekklesia.schemas.counseling import Appointment

MONDAY = date(2024, 3, 4)
AVAILABILITY = {"Segunda": ["14:00", "09:00", "10:00"]}


def _make_appointment(appt_id: str, when: datetime | None, status=AppointmentStatus.SCHEDULED) -> Appointment:
    return Appointment(id=appt_id, status=status, counselor_id="c1", member_name="Ana", date=when)


class TestComputeSlots:
    def test_marks_booked_and_sorts(self):
        appointments = [_make_appointment("a1", datetime(2024, 3, 4, 10, 0))]

        slots = compute_slots(AVAILABILITY, MONDAY, appointments)

        assert slots == [
            TimeSlot("09:00", False),
            TimeSlot("10:00", True),
            TimeSlot("14:00", False),
        ]

    def test_exclude_frees_own_slot(self):
        appointments = [_make_appointment("a1", datetime(2024, 3, 4, 10, 0))]

        slots = compute_slots(AVAILABILITY, MONDAY, appointments, exclude_id="a1")

        assert all(not s.is_booked for s in slots)

    def test_no_base_slots_is_empty(self):
        assert compute_slots(AVAILABILITY, date(2024, 3, 5), []) == []

    def test_malformed_availability_is_empty(self):
        assert compute_slots("not json", MONDAY, []) == []

    def test_canceled_and_queued_never_block(self):
        appointments = [
            _make_appointment("a1", datetime(2024, 3, 4, 9, 0), AppointmentStatus.CANCELED),
            _make_appointment("a2", datetime(2024, 3, 4, 10, 0), AppointmentStatus.QUEUED),
            _make_appointment("a3", datetime(2024, 3, 4, 14, 0), AppointmentStatus.COMPLETED),
        ]

        assert all(not s.is_booked for s in compute_slots(AVAILABILITY, MONDAY, appointments))

    def test_pending_and_in_counseling_block(self):
        appointments = [
            _make_appointment("a1", datetime(2024, 3, 4, 9, 0), AppointmentStatus.PENDING),
            _make_appointment("a2", datetime(2024, 3, 4, 14, 0), AppointmentStatus.IN_COUNSELING),
        ]

        booked = {s.time for s in compute_slots(AVAILABILITY, MONDAY, appointments) if s.is_booked}

        assert booked == {"09:00", "14:00"}

    def test_other_days_and_undated_ignored(self):
        appointments = [
            _make_appointment("a1", datetime(2024, 3, 11, 9, 0)),
            _make_appointment("a2", None),
        ]

        assert all(not s.is_booked for s in compute_slots(AVAILABILITY, MONDAY, appointments))

    def test_booked_time_outside_availability_is_not_listed(self):
        appointments = [_make_appointment("a1", datetime(2024, 3, 4, 11, 0))]

        slots = compute_slots(AVAILABILITY, MONDAY, appointments)

        assert [s.time for s in slots] == ["09:00", "10:00", "14:00"]


class TestConsumedTimes:
    def test_collects_holding_times(self):
        appointments = [
            _make_appointment("a1", datetime(2024, 3, 4, 9, 0)),
            _make_appointment("a2", datetime(2024, 3, 4, 11, 30), AppointmentStatus.PENDING),
        ]
        assert consumed_times(MONDAY, appointments) == {"09:00", "11:30"}


class TestFindSlot:
    def test_free(self):
        assert find_slot(AVAILABILITY, MONDAY, "09:00", []) == TimeSlot(time="09:00", is_booked=False)

    def test_booked(self):
        appointments = [_make_appointment("a1", datetime(2024, 3, 4, 9, 0))]
        assert find_slot(AVAILABILITY, MONDAY, "09:00", appointments).is_booked

    def test_moved_appointment_frees_its_own_slot(self):
        appointments = [_make_appointment("a1", datetime(2024, 3, 4, 9, 0))]
        assert not find_slot(AVAILABILITY, MONDAY, "09:00", appointments, exclude_id="a1").is_booked

    def test_not_offered(self):
        assert find_slot(AVAILABILITY, MONDAY, "11:00", []) is None
