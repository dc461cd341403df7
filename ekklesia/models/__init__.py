"""SQLAlchemy ORM models for the counseling engine.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from ekklesia.models.appointment import CounselingAppointment
from ekklesia.models.audit import AuditLog
from ekklesia.models.base import Base
from ekklesia.models.counselor import Counselor
from ekklesia.models.enums import (
    ActivityAction,
    AppointmentStatus,
    MessageStatus,
    UserRole,
)
from ekklesia.models.leader import Leader
from ekklesia.models.message_log import MessageLog

__all__ = [
    # Base
    "Base",
    # Models
    "AuditLog",
    "CounselingAppointment",
    "Counselor",
    "Leader",
    "MessageLog",
    # Enums
    "ActivityAction",
    "AppointmentStatus",
    "MessageStatus",
    "UserRole",
]
