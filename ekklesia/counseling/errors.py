"""Operation-level errors for the counseling engine.

Every error carries a `kind` so the caller can decide between fixing the
input (validation), refreshing (conflict), giving up (not_found/forbidden),
or retrying later (store). Messages are user-facing and stay in Portuguese;
log lines stay in English.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    STORE = "store"


class SchedulingError(Exception):
    """Base class for every error a scheduling operation can raise."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


class ValidationFailedError(SchedulingError):
    """Missing reason, no slot selected, malformed input. Nothing was written."""

    kind = ErrorKind.VALIDATION


class ConflictError(SchedulingError):
    """Someone else changed the appointment since it was read."""

    kind = ErrorKind.CONFLICT


class InvalidTransitionError(ConflictError):
    """The appointment is no longer in a state that allows the operation."""


class SlotUnavailableError(ConflictError):
    """The chosen slot was taken between display and commit."""


class NotFoundError(SchedulingError):
    kind = ErrorKind.NOT_FOUND


class PermissionDeniedError(SchedulingError):
    kind = ErrorKind.FORBIDDEN


class StoreError(SchedulingError):
    """The record store rejected or failed a write. The operation was aborted."""

    kind = ErrorKind.STORE
