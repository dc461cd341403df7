"""Tests for list filtering, agenda split and view decoration."""

from __future__ import annotations

from datetime import datetime

import pytest

from ekklesia.counseling.history import AttendanceTier
from ekklesia.counseling.visibility import CONFIDENTIAL_MASK
from ekklesia.counseling.views import compute_stats, decorate, filter_appointments, parse_month, split_agenda
from ekklesia.models.enums import AppointmentStatus, UserRole
from ekklesia.schemas.counseling import Actor, Appointment, Meeting

S = AppointmentStatus
NOW = datetime(2030, 3, 4, 12, 0)


def _make_appointment(appt_id: str, status: AppointmentStatus, when: datetime | None, **kwargs) -> Appointment:
    values = {"member_name": "Ana", "member_email": "ana@x.com", "counselor_id": "c1", "counselor_name": "Bruno"}
    values.update(kwargs)
    return Appointment(id=appt_id, status=status, date=when, **values)


class TestSplitAgenda:
    def test_buckets(self):
        pending = _make_appointment("p", S.PENDING, datetime(2030, 3, 1, 9, 0))
        later = _make_appointment("u2", S.SCHEDULED, datetime(2030, 3, 11, 9, 0))
        soon = _make_appointment("u1", S.IN_COUNSELING, datetime(2030, 3, 4, 14, 0))
        missed = _make_appointment("x1", S.SCHEDULED, datetime(2030, 3, 4, 9, 0))
        done = _make_appointment("x2", S.COMPLETED, datetime(2030, 3, 10, 9, 0))
        undated = _make_appointment("x3", S.CANCELED, None)

        upcoming_pending, upcoming, past = split_agenda([pending, later, soon, missed, done, undated], NOW)

        assert [a.id for a in upcoming_pending] == ["p"]
        assert [a.id for a in upcoming] == ["u1", "u2"]
        assert [a.id for a in past] == ["x2", "x1", "x3"]


class TestFilterAppointments:
    def test_search_is_case_insensitive(self):
        items = [
            _make_appointment("a1", S.SCHEDULED, NOW, topic="Casamento"),
            _make_appointment("a2", S.SCHEDULED, NOW, member_name="Bia", member_email="bia@x.com"),
        ]

        assert [a.id for a in filter_appointments(items, search="casa")] == ["a1"]
        assert [a.id for a in filter_appointments(items, search="BIA@")] == ["a2"]

    def test_status_filter_and_order(self):
        items = [
            _make_appointment("old", S.COMPLETED, datetime(2030, 1, 1, 9, 0)),
            _make_appointment("new", S.COMPLETED, datetime(2030, 2, 1, 9, 0)),
            _make_appointment("live", S.SCHEDULED, datetime(2030, 3, 1, 9, 0)),
        ]

        selected = filter_appointments(items, statuses=[S.COMPLETED])

        assert [a.id for a in selected] == ["new", "old"]


class TestDecorate:
    def test_history_and_masking(self):
        meeting = Meeting(
            date=datetime(2030, 1, 1).date(),
            topic="Luto",
            notes="segredo",
            recorded_by="Bruno",
            recorded_by_id="c1",
            is_confidential=True,
        )
        church = [
            _make_appointment(f"a{i}", S.COMPLETED, datetime(2030, 1, i, 9, 0), meetings=[meeting])
            for i in range(1, 5)
        ]
        viewer = Actor(id="c2", role=UserRole.COUNSELOR, name="Carla")

        (view,) = decorate([church[3]], church, viewer)

        assert view.attendance_number == 4
        assert view.attendance_tier is AttendanceTier.WARNING
        assert [h.id for h in view.history] == ["a1", "a2", "a3", "a4"]
        assert view.appointment.meetings[0].notes == CONFIDENTIAL_MASK
        assert church[3].meetings[0].notes == "segredo"
        assert view.allowed_actions == []

    def test_undated_has_no_attendance(self):
        appointment = _make_appointment("a1", S.QUEUED, None, counselor_id=None)
        viewer = Actor(id="k1", role=UserRole.COORDINATOR, name="Eva")

        (view,) = decorate([appointment], [appointment], viewer)

        assert view.attendance_number is None
        assert view.attendance_label is None
        assert "assign" in view.allowed_actions


class TestComputeStats:
    def test_status_groups(self):
        items = [
            _make_appointment("q", S.QUEUED, None, counselor_id=None, counselor_name=None),
            _make_appointment("p", S.PENDING, NOW),
            _make_appointment("m", S.SCHEDULED, NOW),
            _make_appointment("e", S.IN_COUNSELING, NOW),
            _make_appointment("c", S.COMPLETED, NOW, counselor_name="Carla", topic="Luto"),
            _make_appointment("x", S.CANCELED, NOW),
            _make_appointment("n", S.NO_RETURN, NOW),
        ]

        stats = compute_stats(items)

        assert stats.total_appointments == 7
        assert (stats.in_waiting_list, stats.pending_approval, stats.scheduled) == (1, 1, 2)
        assert (stats.completed, stats.canceled) == (1, 1)
        assert stats.by_counselor == {"Não atribuído": 1, "Bruno": 5, "Carla": 1}
        assert stats.by_topic == {"Sem tema": 6, "Luto": 1}

    def test_month_excludes_undated_and_other_months(self):
        items = [
            _make_appointment("a", S.SCHEDULED, datetime(2030, 3, 31, 18, 0)),
            _make_appointment("b", S.SCHEDULED, datetime(2030, 4, 1, 9, 0)),
            _make_appointment("q", S.QUEUED, None),
        ]

        stats = compute_stats(items, "2030-03")

        assert stats.total_appointments == 1
        assert stats.scheduled == 1
        assert stats.in_waiting_list == 0

    def test_bad_month(self):
        with pytest.raises(ValueError):
            parse_month("2030-13")
