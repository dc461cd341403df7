"""Who may see and edit session notes.

Confidential notes are always stored and transmitted in full; masking is
applied when presenting them to a viewer who may not read them.
"""

from __future__ import annotations

from ekklesia.schemas.counseling import Actor, Meeting

CONFIDENTIAL_MASK = "Conteúdo confidencial"


def can_view_confidential(meeting: Meeting, viewer: Actor) -> bool:
    return viewer.is_leadership or meeting.recorded_by_id == viewer.id


def can_edit_meeting(meeting: Meeting, viewer: Actor) -> bool:
    """Only the counselor who recorded a session may edit it."""
    return meeting.recorded_by_id == viewer.id


def present_meeting(meeting: Meeting, viewer: Actor) -> Meeting:
    if not meeting.is_confidential or can_view_confidential(meeting, viewer):
        return meeting
    return meeting.model_copy(update={"notes": CONFIDENTIAL_MASK, "next_steps": CONFIDENTIAL_MASK})


def present_meetings(meetings: list[Meeting], viewer: Actor) -> list[Meeting]:
    return [present_meeting(m, viewer) for m in meetings]
