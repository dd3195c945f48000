"""
Error taxonomy for the attendance core.

Business outcomes (no match, already recorded) are return values, not
exceptions. Everything here is scoped to a single call.
"""
from datetime import date
from typing import Optional


class AttendanceError(Exception):
    """Base class for every error raised by the attendance core."""


class InvalidDescriptor(AttendanceError):
    """Descriptor has the wrong dimension or contains non-finite values."""


class InvalidEnrollment(AttendanceError, ValueError):
    """Enrollment request is missing a display name or uniqueness key."""


class DuplicateIdentity(AttendanceError):
    """An identity with the same uniqueness key is already enrolled."""

    def __init__(self, uniqueness_key: str, message: Optional[str] = None):
        self.uniqueness_key = uniqueness_key
        super().__init__(message or f"Identity with key {uniqueness_key!r} already exists")


class IdentityNotFound(AttendanceError):
    def __init__(self, identity_id):
        self.identity_id = identity_id
        super().__init__(f"Identity {identity_id} not found")


class NoFaceDetected(AttendanceError):
    """Raised by the extraction collaborator; passed through unchanged."""


class InfrastructureError(AttendanceError):
    """
    Registry or ledger unavailable or timed out. Safe to retry with backoff.

    Attributes:
        operation: name of the storage operation that failed
        idempotency_key: key a retry can be correlated with, if any
    """

    retriable = True

    def __init__(self, operation: str, message: str, idempotency_key: Optional[str] = None):
        self.operation = operation
        self.idempotency_key = idempotency_key
        super().__init__(f"{operation} failed: {message}")


class RecordingFailed(InfrastructureError):
    """The probe matched an identity but writing the attendance record failed."""

    def __init__(self, identity_id, today: date, match, cause: Optional[Exception] = None):
        self.identity_id = identity_id
        self.today = today
        self.match = match
        key = attendance_key(identity_id, today)
        detail = f"matched identity {identity_id} but recording failed"
        if cause is not None:
            detail = f"{detail} ({cause})"
        super().__init__("record_presence", detail, idempotency_key=key)


def attendance_key(identity_id, today: date) -> str:
    """Idempotency key for one identity's attendance on one calendar day."""
    return f"{identity_id}:{today.isoformat()}"
