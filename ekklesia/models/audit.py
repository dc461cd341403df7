"""AuditLog model — operator-facing trail of every scheduling operation.

Appointment activities live inside the appointment record and disappear with
it. This table keeps a copy of every emitted SystemEvent, so even a
"cancel definitively" leaves a trace. Append-only.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from ekklesia.models.base import Base, TimestampMixin


class AuditLog(TimestampMixin, Base):
    """Immutable audit trail entry."""

    __tablename__ = "audit_log"

    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Context (nullable: system events have no appointment or actor)
    appointment_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), index=True)
    church_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), index=True)
    actor_id: Mapped[str | None] = mapped_column(String(100), comment="User id or 'system'")
    actor_role: Mapped[str | None] = mapped_column(String(50))

    data: Mapped[dict[str, Any] | None] = mapped_column(JSONB)

    def __repr__(self) -> str:
        return f"<AuditLog event={self.event_type} appointment={self.appointment_id}>"
