"""Tests for per-person history reconstruction."""

from __future__ import annotations

from datetime import datetime

from ekklesia.counseling.history import (
    UNASSIGNED_COUNSELOR,
    AttendanceTier,
    attendance_label,
    attendance_number,
    attendance_tier,
    build_histories,
    history_for,
    identity_key,
)
from ekklesia.schemas.counseling import Appointment


def _make_appointment(appt_id: str, when: datetime | None, **kwargs) -> Appointment:
    defaults = {"member_name": "Ana", "member_email": "ana@x.com"}
    defaults.update(kwargs)
    return Appointment(id=appt_id, date=when, **defaults)


class TestIdentityKey:
    def test_email_lowercased(self):
        appointment = _make_appointment("a1", None, member_email="Ana@X.com")
        assert identity_key(appointment) == "Ana-ana@x.com"

    def test_phone_when_no_email(self):
        appointment = _make_appointment("a1", None, member_email=None, member_phone="11999990000")
        assert identity_key(appointment) == "Ana-11999990000"

    def test_id_as_last_resort(self):
        appointment = _make_appointment("a1", None, member_email="", member_phone=None)
        assert identity_key(appointment) == "Ana-a1"


class TestBuildHistories:
    def test_groups_and_sorts(self):
        first = _make_appointment("a1", datetime(2024, 1, 10, 9, 0), counselor_name="Bruno")
        second = _make_appointment("a2", datetime(2024, 3, 2, 10, 0))
        other = _make_appointment("b1", datetime(2024, 2, 1, 9, 0), member_email="bia@x.com")

        histories = build_histories([second, other, first])

        assert [a.id for a in histories["Ana-ana@x.com"]] == ["a1", "a2"]
        assert [a.id for a in histories["Ana-bia@x.com"]] == ["b1"]

    def test_attendance_numbers(self):
        first = _make_appointment("a1", datetime(2024, 1, 10, 9, 0))
        second = _make_appointment("a2", datetime(2024, 3, 2, 10, 0))
        histories = build_histories([second, first])

        assert attendance_number(first, histories) == 1
        assert attendance_number(second, histories) == 2

    def test_undated_excluded(self):
        dated = _make_appointment("a1", datetime(2024, 1, 10, 9, 0))
        undated = _make_appointment("a2", None)

        histories = build_histories([dated, undated])

        assert [a.id for a in histories["Ana-ana@x.com"]] == ["a1"]
        assert attendance_number(undated, histories) is None

    def test_equal_dates_ordered_by_id(self):
        when = datetime(2024, 1, 10, 9, 0)
        histories = build_histories([_make_appointment("b", when), _make_appointment("a", when)])

        assert [a.id for a in histories["Ana-ana@x.com"]] == ["a", "b"]

    def test_deterministic_across_input_order(self):
        items = [
            _make_appointment("a3", datetime(2024, 5, 1, 9, 0)),
            _make_appointment("a1", datetime(2024, 1, 1, 9, 0)),
            _make_appointment("a2", datetime(2024, 3, 1, 9, 0)),
        ]
        forward = build_histories(items)
        backward = build_histories(list(reversed(items)))

        assert [a.id for a in forward["Ana-ana@x.com"]] == [a.id for a in backward["Ana-ana@x.com"]]


class TestHistoryFor:
    def test_entries_with_unassigned_label(self):
        first = _make_appointment("a1", datetime(2024, 1, 10, 9, 0), counselor_name="Bruno")
        second = _make_appointment("a2", datetime(2024, 3, 2, 10, 0))
        histories = build_histories([first, second])

        entries = history_for(second, histories)

        assert [(e.id, e.counselor) for e in entries] == [("a1", "Bruno"), ("a2", UNASSIGNED_COUNSELOR)]

    def test_empty_for_unknown_person(self):
        assert history_for(_make_appointment("z", None, member_name="Zé"), {}) == []


class TestAttendanceTier:
    def test_tiers(self):
        assert attendance_tier(1) is AttendanceTier.NEUTRAL
        assert attendance_tier(2) is AttendanceTier.CAUTION
        assert attendance_tier(3) is AttendanceTier.CAUTION
        assert attendance_tier(4) is AttendanceTier.WARNING
        assert attendance_tier(9) is AttendanceTier.WARNING

    def test_label(self):
        assert attendance_label(2) == "2º Atendimento"
