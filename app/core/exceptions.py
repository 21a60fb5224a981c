"""Error taxonomy for the progression engine.

Engine operations raise one of these instead of returning partial results.
Every error carries a stable ``code`` so HTTP callers can distinguish an
idempotency conflict (already completed today, already joined) from a real
failure and render a non-destructive message.
"""


class ProgressionError(Exception):
    """Base class for all engine errors."""

    code = "progression_error"
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(ProgressionError):
    """Malformed or missing input field."""

    code = "validation_error"
    status_code = 422


class NotFoundError(ProgressionError):
    """Habit, challenge or user absent, or not owned by the caller."""

    code = "not_found"
    status_code = 404


class ConflictError(ProgressionError):
    """Request conflicts with the current state of the entity."""

    code = "conflict"
    status_code = 409


class AlreadyCompletedError(ConflictError):
    code = "already_completed"


class AlreadyJoinedError(ConflictError):
    code = "already_joined"


class NotParticipantError(ConflictError):
    code = "not_participant"


class InactiveChallengeError(ConflictError):
    code = "inactive"


class ConcurrentUpdateError(ConflictError):
    """Another writer changed the same user aggregate first."""

    code = "concurrent_update"


class StorageFailure(ProgressionError):
    """Persistence collaborator I/O error. Surfaced, never retried."""

    code = "storage_failure"
    status_code = 503
