"""Pydantic schemas for counseling appointments and their attribute bag.

The stored record is generic: a handful of columns plus a free-form
`form_data` bag whose shape drifted over time. `Appointment.from_record`
is the one place that bag is decoded; everything downstream works on typed
fields. Unknown bag keys are carried in `extra` and written back untouched.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ekklesia.counseling.availability import WeeklyAvailability
from ekklesia.counseling.dates import format_instant, parse_instant
from ekklesia.models.enums import ActivityAction, AppointmentStatus, UserRole

logger = logging.getLogger(__name__)

LEADERSHIP_ROLES = frozenset({UserRole.ADMINISTRATOR, UserRole.PASTOR, UserRole.COORDINATOR})

# Bag keys decoded into typed fields; anything else lands in Appointment.extra.
_BAG_FIELDS = (
    "counselor_id",
    "counselor_name",
    "counselor_email",
    "counselor_phone",
    "member_name",
    "member_email",
    "member_phone",
    "member_age",
    "member_gender",
    "member_marital_status",
    "date",
    "topic",
    "details",
    "meetings",
    "activities",
    "cancellation_reason",
    "rejection_reason",
    "rejected_by",
)


# ── Acting user ──────────────────────────────────────────────────────


class Actor(BaseModel):
    """The acting user as returned by the identity provider."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: UserRole
    name: str
    church_id: str | None = None

    @property
    def is_leadership(self) -> bool:
        return self.role in LEADERSHIP_ROLES


# ── Audit trail ──────────────────────────────────────────────────────


class Activity(BaseModel):
    """Immutable audit-trail entry. Stored chronologically, shown newest first."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.UTC))
    user: str
    action: str
    details: str | None = None

    @field_validator("action")
    @classmethod
    def validate_action(cls, v: str) -> str:
        """Accept the fixed action codes plus the open `sent_to_*` family."""
        if v in {a.value for a in ActivityAction} or v.startswith("sent_to_"):
            return v
        msg = f"Unknown activity action: {v}"
        raise ValueError(msg)


# ── Session notes ────────────────────────────────────────────────────


class Meeting(BaseModel):
    """One logged counseling session. Serialized with the camelCase keys clients expect."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: f"meeting-{uuid.uuid4().hex}")
    date: dt.date
    topic: str
    notes: str
    next_steps: str = Field(default="", alias="nextSteps")
    recorded_by: str = Field(alias="recordedBy")
    recorded_by_id: str = Field(alias="recordedById")
    is_confidential: bool = Field(default=False, alias="isConfidential")

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, v: Any) -> Any:
        # Some rows carry a full ISO instant instead of a calendar day.
        if isinstance(v, str) and len(v) > 10:
            parsed = parse_instant(v)
            return parsed.date() if parsed else v
        return v

    @field_validator("next_steps", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class MeetingInput(BaseModel):
    """Fields a counselor fills in when registering or editing a session."""

    date: dt.date
    topic: str
    notes: str
    next_steps: str = ""
    is_confidential: bool = False


# ── Counselor ────────────────────────────────────────────────────────


class CounselorProfile(BaseModel):
    """Counselor row decoded for scheduling."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    church_id: str | None = None
    name: str
    email: str | None = None
    phone: str | None = None
    gender: str | None = None
    topics: list[str] = Field(default_factory=list)
    availability: WeeklyAvailability = Field(default_factory=WeeklyAvailability)
    is_active: bool = True

    @field_validator("availability", mode="before")
    @classmethod
    def decode_availability(cls, v: Any) -> WeeklyAvailability:
        return WeeklyAvailability.decode(v)

    @field_validator("topics", mode="before")
    @classmethod
    def none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("is_active", mode="before")
    @classmethod
    def none_to_active(cls, v: Any) -> Any:
        return True if v is None else v

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> CounselorProfile:
        return cls.model_validate({**record, "id": str(record["id"])})


# ── Appointment ──────────────────────────────────────────────────────


class MemberInfo(BaseModel):
    """Subject-of-counseling attributes as typed on a request form."""

    name: str
    email: str | None = None
    phone: str | None = None
    age: int | str | None = None
    gender: str | None = None
    marital_status: str | None = None


class Appointment(BaseModel):
    """A counseling appointment decoded from its generic record."""

    id: str
    church_id: str | None = None
    status: AppointmentStatus = AppointmentStatus.PENDING
    version: int = 1

    # Counselor snapshot (may be stale relative to the counselor profile)
    counselor_id: str | None = None
    counselor_name: str | None = None
    counselor_email: str | None = None
    counselor_phone: str | None = None

    # Member snapshot; there is no stable member id
    member_name: str = ""
    member_email: str | None = None
    member_phone: str | None = None
    member_age: int | str | None = None
    member_gender: str | None = None
    member_marital_status: str | None = None

    # None when the stored value is missing or unparsable
    date: dt.datetime | None = None
    topic: str | None = None
    details: str | None = None

    meetings: list[Meeting] = Field(default_factory=list)
    activities: list[Activity] = Field(default_factory=list)

    cancellation_reason: str | None = None
    rejection_reason: str | None = None
    rejected_by: str | None = None

    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, v: Any) -> Any:
        return AppointmentStatus.PENDING if v in (None, "") else v

    # ── Decoding ─────────────────────────────────────────────────────

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Appointment:
        """Decode a stored record.

        Raises:
            pydantic.ValidationError: If the record is beyond repair (e.g. unknown status).
        """
        bag = record.get("form_data") or {}
        if isinstance(bag, str):
            try:
                bag = json.loads(bag)
            except ValueError:
                logger.warning("Unreadable form_data on appointment %s", record.get("id"))
                bag = {}
        if not isinstance(bag, Mapping):
            bag = {}

        extra = {k: v for k, v in bag.items() if k not in _BAG_FIELDS}
        date_value = parse_instant(bag.get("date"))
        if date_value is None and bag.get("date") not in (None, ""):
            # Keep the corrupt value so a write does not silently erase it.
            extra["date"] = bag["date"]

        return cls.model_validate({
            "id": str(record["id"]),
            "church_id": str(record["church_id"]) if record.get("church_id") else None,
            "status": record.get("status"),
            "version": record.get("version") or 1,
            "counselor_id": bag.get("counselor_id"),
            "counselor_name": bag.get("counselor_name"),
            "counselor_email": bag.get("counselor_email"),
            "counselor_phone": bag.get("counselor_phone"),
            "member_name": bag.get("member_name") or record.get("name") or "",
            "member_email": bag.get("member_email") or record.get("email"),
            "member_phone": bag.get("member_phone"),
            "member_age": bag.get("member_age"),
            "member_gender": bag.get("member_gender"),
            "member_marital_status": bag.get("member_marital_status"),
            "date": date_value,
            "topic": bag.get("topic"),
            "details": bag.get("details"),
            "meetings": _decode_list(Meeting, bag.get("meetings"), record.get("id")),
            "activities": _decode_list(Activity, bag.get("activities"), record.get("id")),
            "cancellation_reason": bag.get("cancellation_reason"),
            "rejection_reason": bag.get("rejection_reason"),
            "rejected_by": bag.get("rejected_by"),
            "extra": extra,
        })

    # ── Encoding ─────────────────────────────────────────────────────

    def to_form_data(self) -> dict[str, Any]:
        bag: dict[str, Any] = dict(self.extra)
        if self.date is not None:
            bag["date"] = format_instant(self.date)
        bag.update({
            "counselor_id": self.counselor_id,
            "counselor_name": self.counselor_name,
            "counselor_email": self.counselor_email,
            "counselor_phone": self.counselor_phone,
            "member_name": self.member_name,
            "member_email": self.member_email,
            "member_phone": self.member_phone,
            "member_age": self.member_age,
            "member_gender": self.member_gender,
            "member_marital_status": self.member_marital_status,
            "topic": self.topic,
            "details": self.details,
            "meetings": [m.model_dump(mode="json", by_alias=True) for m in self.meetings],
            "activities": [a.model_dump(mode="json") for a in self.activities],
            "cancellation_reason": self.cancellation_reason,
            "rejection_reason": self.rejection_reason,
            "rejected_by": self.rejected_by,
        })
        return bag

    def to_record(self) -> dict[str, Any]:
        """Full record for insertion."""
        return {
            "id": self.id,
            "church_id": self.church_id,
            "name": self.member_name,
            "email": self.member_email,
            "status": self.status.value,
            "version": self.version,
            "form_data": self.to_form_data(),
        }

    def to_patch(self) -> dict[str, Any]:
        """Columns rewritten by an update. Version is set by the caller."""
        return {"status": self.status.value, "form_data": self.to_form_data()}

    def timeline(self) -> list[Activity]:
        """Activities in display order (newest first)."""
        return list(reversed(self.activities))


def _decode_list(model: type[BaseModel], raw: Any, record_id: Any) -> list[Any]:
    if not isinstance(raw, Iterable) or isinstance(raw, (str, bytes, Mapping)):
        return []
    decoded = []
    for item in raw:
        try:
            decoded.append(model.model_validate(item))
        except ValidationError:
            logger.warning("Dropping malformed %s on appointment %s", model.__name__, record_id)
    return decoded


def decode_appointments(records: Iterable[Mapping[str, Any]]) -> list[Appointment]:
    """Decode many records, skipping (and logging) rows that cannot be decoded."""
    appointments: list[Appointment] = []
    for record in records:
        try:
            appointments.append(Appointment.from_record(record))
        except (ValidationError, KeyError):
            logger.warning("Skipping undecodable appointment record %s", record.get("id"))
    return appointments


# ── Request bodies ───────────────────────────────────────────────────


class ReasonIn(BaseModel):
    reason: str = ""


class SlotIn(BaseModel):
    date: dt.date
    time: str


class TransferIn(BaseModel):
    counselor_id: str | None = None
    reason: str = ""


class AssignIn(SlotIn):
    counselor_id: str


class StatusIn(BaseModel):
    status: AppointmentStatus
    reason: str | None = None


class BookingRequestIn(BaseModel):
    """Public self-service request. No counselor/slot means the waiting list."""

    church_id: str
    member: MemberInfo
    topic: str = ""
    details: str | None = None
    counselor_id: str | None = None
    date: dt.date | None = None
    time: str | None = None


class DirectBookingIn(SlotIn):
    member: MemberInfo
    topic: str = ""
    details: str | None = None


class CounselorIn(BaseModel):
    """Counselor registration. `church_id` is only read on self-registration."""

    name: str
    email: str
    phone: str | None = None
    gender: str | None = None
    topics: list[str] = Field(default_factory=list)
    availability: Any = None
    church_id: str | None = None


class CounselorUpdateIn(BaseModel):
    """Partial profile update; fields left as None are not touched."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    gender: str | None = None
    topics: list[str] | None = None
    availability: Any = None
