"""
Error taxonomy shared by the engine and the API layer.

Every error carries a stable machine-readable ``kind`` and a
human-readable message.  ``extra`` holds observed values the client can
act on (e.g. the remaining seat count on a shortage).
"""

from __future__ import annotations

from typing import Any, Optional


class CarpoolError(Exception):
    """Base class for all expected, typed failures."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "detail": self.message, **self.extra}


class ValidationError(CarpoolError):
    """Malformed or missing input."""

    kind = "validation"
    status_code = 400


class PermissionDeniedError(CarpoolError):
    """Wrong role, or the actor does not own the ride."""

    kind = "permission"
    status_code = 403


class NotFoundError(CarpoolError):
    """Ride, booking or user absent."""

    kind = "not_found"
    status_code = 404


class StateConflictError(CarpoolError):
    """A status, time-window or seat-count precondition does not hold."""

    kind = "state_conflict"
    status_code = 409


class UpstreamDependencyError(CarpoolError):
    """Maps API or policy store unreachable, or returned an unusable result."""

    kind = "upstream"
    status_code = 502
    retryable = True


class RouteResolutionError(UpstreamDependencyError):
    """The maps service answered but could not resolve the location/route."""

    retryable = False


class WriteConflictError(CarpoolError):
    """Optimistic-concurrency retries exhausted."""

    kind = "write_conflict"
    status_code = 409

    def __init__(self, message: str = "Ride changed, please retry.", **extra: Any):
        super().__init__(message, **extra)


def seats_shortage(remaining: int, requested: Optional[int] = None) -> StateConflictError:
    return StateConflictError(
        f"Not enough seats available. Only {remaining} left.",
        seats_available=remaining,
        seats_requested=requested,
    )
