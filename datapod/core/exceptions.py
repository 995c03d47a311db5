"""Domain error taxonomy.

Every error raised by the core derives from DataPodError and carries a
machine-readable code, the HTTP status the API layer maps it to, and whether
the dispatch layer may retry it. Domain errors are terminal; only
infrastructure failures (anything that is not a DataPodError, plus
DispatchError) are retried.
"""

from typing import Any


class DataPodError(Exception):
    """Base exception for Data Pod."""

    code = "DATAPOD_ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
        }
        if self.context:
            payload["context"] = self.context
        return payload


class ValidationError(DataPodError):
    """Raised when event construction or policy input is malformed."""

    code = "VALIDATION_ERROR"
    status_code = 400


class UnauthorizedError(DataPodError):
    """Raised when there is no valid actor identity at all."""

    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Authentication required", context: dict[str, Any] | None = None):
        super().__init__(message, context)


class ForbiddenError(DataPodError):
    """Raised when the actor is authenticated but lacks role or ownership."""

    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "Insufficient permissions", context: dict[str, Any] | None = None):
        super().__init__(message, context)


class NotFoundError(DataPodError):
    """Raised when a tenant-scoped row is absent (wrong id or wrong tenant)."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: str | None = None, context: dict[str, Any] | None = None):
        self.resource = resource
        self.resource_id = resource_id
        message = f'{resource} with id "{resource_id}" not found' if resource_id else f"{resource} not found"
        super().__init__(message, {"resource": resource, "id": resource_id, **(context or {})})


class ConflictError(DataPodError):
    """Raised when an operation conflicts with persisted state."""

    code = "CONFLICT"
    status_code = 409


class UnknownActionError(DataPodError):
    """Raised when an executor receives an action it has no branch for.

    This is a programming error (a subscription wider than the handler), so it
    is never retried.
    """

    code = "UNKNOWN_ACTION"
    status_code = 500

    def __init__(self, event_name: str, action: str):
        self.event_name = event_name
        self.action = action
        super().__init__(
            f"No handler branch for action '{action}' (event: {event_name})",
            {"event_name": event_name, "action": action},
        )


class DispatchError(DataPodError):
    """Raised when a logged event could not be handed to the dispatch queue."""

    code = "DISPATCH_FAILED"
    status_code = 503
    retryable = True

    def __init__(self, event_id: str, attempts: int, cause: str = ""):
        self.event_id = event_id
        self.attempts = attempts
        super().__init__(
            f"Dispatch failed for event '{event_id}' after {attempts} attempts",
            {"event_id": event_id, "attempts": attempts, "cause": cause},
        )


def is_retryable(exc: BaseException) -> bool:
    """Return True when the dispatch layer should retry after this failure."""
    if isinstance(exc, DataPodError):
        return exc.retryable
    return True
