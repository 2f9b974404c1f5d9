from __future__ import annotations


class SchedulerError(Exception):
    """Base class for errors raised by the booking core.

    Each subclass maps to one error kind and the HTTP status it surfaces as.
    """

    kind = "error"
    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(SchedulerError):
    """A referenced dentist, service, patient or appointment does not resolve."""

    kind = "not_found"
    status_code = 404


class InvalidRequestError(SchedulerError):
    """Malformed or out-of-policy input: past start, outside hours, bad alignment."""

    kind = "invalid_request"
    status_code = 400


class ConflictError(SchedulerError):
    """The requested interval collides with a live booking for the dentist."""

    kind = "conflict"
    status_code = 409

    def __init__(self, message: str = "Time slot is not available", conflicting_id: int | None = None) -> None:
        self.conflicting_id = conflicting_id
        super().__init__(message)


class InvalidTransitionError(SchedulerError):
    """The requested status change is not in the lifecycle table."""

    kind = "invalid_transition"
    status_code = 400


class ForbiddenError(SchedulerError):
    """The actor's role does not permit the requested operation."""

    kind = "forbidden"
    status_code = 403


class StorageUnavailableError(SchedulerError):
    """The database could not be reached. Safe to retry with backoff."""

    kind = "storage_unavailable"
    status_code = 503

    def __init__(self, message: str = "Database temporarily unavailable. Please try again later.") -> None:
        super().__init__(message)
