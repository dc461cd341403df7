"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization. Values are the literals stored
in the database and shown on screen, so they stay in Portuguese.
"""

from __future__ import annotations

from enum import Enum


class AppointmentStatus(str, Enum):
    """Counseling appointment lifecycle states."""

    PENDING = "Pendente"  # submitted, awaiting the counselor's decision
    SCHEDULED = "Marcado"
    IN_COUNSELING = "Em Aconselhamento"
    COMPLETED = "Concluído"
    CANCELED = "Cancelado"
    QUEUED = "Na Fila"  # unassigned, any counselor may claim it
    NO_RETURN = "Não houve retorno"  # bookkeeping only, set through the status override


class UserRole(str, Enum):
    """Roles returned by the identity provider."""

    ADMINISTRATOR = "Administrador"
    PASTOR = "Pastor"
    COORDINATOR = "Coordenador"
    COUNSELOR = "Conselheiro"
    MEMBER = "Membro"


class ActivityAction(str, Enum):
    """Audit-trail action codes attached to an appointment.

    The `sent_to_*` family (forwarding to another ministry pipeline) is open
    ended and validated by prefix in the schema, not listed here.
    """

    STATUS_CHANGE = "status_change"
    ADD_MEETING = "add_meeting"
    EDIT_MEETING = "edit_meeting"
    WHATSAPP_CONTACT = "whatsapp_contact"
    CREATED = "created"
    RESCHEDULED = "rescheduled"
    ASSIGNED_COUNSELOR = "assigned_counselor"
    CANCELED = "canceled"
    TRANSFERRED = "transferred"
    OWNERSHIP_TAKEN = "ownership_taken"
    CONTACT_REGISTERED = "contact_registered"
    MARKED_AS_BAPTIZED = "marked_as_baptized"


class MessageStatus(str, Enum):
    """Outbound chat message log status."""

    PENDING = "pending"
    SENT = "sent"
