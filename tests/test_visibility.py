"""Tests for confidential session-note masking."""

from __future__ import annotations

from datetime import date

from ekklesia.counseling.visibility import (
    CONFIDENTIAL_MASK,
    can_edit_meeting,
    can_view_confidential,
    present_meeting,
    present_meetings,
)
from ekklesia.models.enums import UserRole
from ekklesia.schemas.counseling import Actor, Meeting


def _make_meeting(confidential: bool = True) -> Meeting:
    return Meeting(
        date=date(2030, 3, 4),
        topic="Luto",
        notes="Anotações sensíveis",
        next_steps="Retornar em 15 dias",
        recorded_by="Bruno",
        recorded_by_id="c1",
        is_confidential=confidential,
    )


def _make_actor(actor_id: str, role: UserRole = UserRole.COUNSELOR) -> Actor:
    return Actor(id=actor_id, role=role, name=actor_id)


class TestConfidentiality:
    def test_recorder_sees_notes(self):
        meeting = _make_meeting()
        assert present_meeting(meeting, _make_actor("c1")).notes == "Anotações sensíveis"

    def test_leadership_sees_notes(self):
        assert can_view_confidential(_make_meeting(), _make_actor("p1", UserRole.PASTOR))

    def test_other_counselor_sees_mask(self):
        presented = present_meeting(_make_meeting(), _make_actor("c2"))

        assert presented.notes == CONFIDENTIAL_MASK
        assert presented.next_steps == CONFIDENTIAL_MASK
        assert presented.topic == "Luto"

    def test_non_confidential_visible_to_all(self):
        presented = present_meeting(_make_meeting(confidential=False), _make_actor("m1", UserRole.MEMBER))
        assert presented.notes == "Anotações sensíveis"

    def test_masking_does_not_mutate(self):
        meeting = _make_meeting()
        present_meetings([meeting], _make_actor("c2"))
        assert meeting.notes == "Anotações sensíveis"


class TestEditRights:
    def test_only_recorder_edits(self):
        meeting = _make_meeting()
        assert can_edit_meeting(meeting, _make_actor("c1"))
        assert not can_edit_meeting(meeting, _make_actor("adm", UserRole.ADMINISTRATOR))


class TestMeetingSerialization:
    def test_camel_case_aliases(self):
        dumped = _make_meeting().model_dump(mode="json", by_alias=True)

        assert dumped["recordedById"] == "c1"
        assert dumped["isConfidential"] is True
        assert dumped["nextSteps"] == "Retornar em 15 dias"

    def test_full_instant_coerced_to_day(self):
        meeting = Meeting.model_validate({
            "date": "2030-03-04T13:00:00",
            "topic": "t",
            "notes": "n",
            "recordedBy": "Bruno",
            "recordedById": "c1",
            "nextSteps": None,
        })
        assert meeting.date == date(2030, 3, 4)
        assert meeting.next_steps == ""
