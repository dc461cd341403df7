"""Counseling appointment model — a generic record with a free-form attribute bag.

Only identity, scope, and lifecycle columns are real columns. Everything else
(member snapshot, counselor snapshot, date, meetings, activities, reasons)
lives in `form_data` and is decoded by `ekklesia.schemas.counseling`.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Index, Integer, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ekklesia.models.base import Base, ChurchScopedMixin, TimestampMixin
from ekklesia.models.enums import AppointmentStatus


class CounselingAppointment(TimestampMixin, ChurchScopedMixin, Base):
    """A requested or scheduled counseling session."""

    __tablename__ = "counseling_appointments"

    # Requester as typed on the form
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(30), default=AppointmentStatus.PENDING.value, nullable=False, index=True
    )
    version: Mapped[int] = mapped_column(
        Integer, default=1, nullable=False, comment="Compare-and-swap token, bumped on every write"
    )

    # Attribute bag
    form_data: Mapped[dict[str, Any]] = mapped_column(JSONB, default=dict, nullable=False)

    __table_args__ = (
        # One live hold per counselor per instant. Queued/canceled/closed rows never collide.
        Index(
            "uq_counseling_live_slot",
            text("(form_data->>'counselor_id')"),
            text("(form_data->>'date')"),
            unique=True,
            postgresql_where=text(
                "status IN ('Pendente', 'Marcado', 'Em Aconselhamento') "
                "AND form_data->>'counselor_id' IS NOT NULL"
            ),
        ),
    )

    def __repr__(self) -> str:
        return f"<CounselingAppointment id={self.id} status={self.status} v={self.version}>"
