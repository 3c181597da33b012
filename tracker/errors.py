"""
Error taxonomy for the workflow core.

Every collaborator failure is mapped to exactly one of these kinds before it
reaches the caller. Only UNAVAILABLE is retryable.
"""

from typing import Any, Dict, Optional


class TrackerError(Exception):
    """Base error with structured details."""

    code = "TRACKER_ERROR"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(TrackerError):
    """Referenced application, task or plan does not exist."""
    code = "NOT_FOUND"

    def __init__(self, kind: str, key: str):
        super().__init__(
            f"{kind} '{key}' not found",
            details={"kind": kind, "key": key},
        )


class ConflictError(TrackerError):
    """Uniqueness violation."""
    code = "CONFLICT"

    def __init__(self, kind: str, key: str):
        super().__init__(
            f"{kind} '{key}' already exists",
            details={"kind": kind, "key": key},
        )


class ForbiddenError(TrackerError):
    """Principal lacks the required group, or no group is configured."""
    code = "FORBIDDEN"


class InvalidTransitionError(TrackerError):
    """Requested state is not reachable from the current state."""
    code = "INVALID_TRANSITION"

    def __init__(self, current_state: str, target_state: str, allowed: Optional[list] = None):
        allowed = allowed or []
        super().__init__(
            f"Invalid transition: {current_state} -> {target_state}. Valid targets: {allowed}",
            details={
                "current_state": current_state,
                "target_state": target_state,
                "allowed": allowed,
            },
        )


class InvalidArgumentError(TrackerError):
    """Malformed input: unknown state, empty required field, no-op update."""
    code = "INVALID_ARGUMENT"


class UnavailableError(TrackerError):
    """Transient storage failure."""
    code = "UNAVAILABLE"
    retryable = True
