"""
Exception hierarchy for the AG-UI runtime.

All exceptions inherit from AppError which provides:
- error_code: Machine-readable error code (from ErrorCode enum)
- status_code: HTTP status code used when the error crosses the API surface
- message: Human-readable error message
- details: Optional dictionary with additional context

Protocol errors (ProtocolViolation, UnknownEntity, PatchApplicationError) are
recovered locally by the run session: the offending event is rejected, the
error is logged and recorded, and processing continues with the next event.

Usage:
    from agui_runtime.domain.exceptions import UnknownEntity

    raise UnknownEntity(
        "No open message with this id",
        details={"message_id": "m1"},
    )
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """
    Standard error codes.

    Use these codes consistently so consumers can branch on them.
    """

    # ===== Generic =====
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected failure (500)"""

    # ===== Stream protocol =====
    PROTOCOL_VIOLATION = "PROTOCOL_VIOLATION"
    """Event arrived out of the start -> delta -> end order"""

    UNKNOWN_ENTITY = "UNKNOWN_ENTITY"
    """Delta or end references an id with no open start"""

    PATCH_APPLICATION_FAILED = "PATCH_APPLICATION_FAILED"
    """State delta batch could not be applied"""

    # ===== Runs =====
    RUN_ERROR = "RUN_ERROR"
    """Remote side reported a terminal error for a run"""

    RUN_CONFLICT = "RUN_CONFLICT"
    """Thread already has an active run (409)"""

    RUN_NOT_FOUND = "RUN_NOT_FOUND"
    """No run known for the thread (404)"""

    # ===== Agent resolution =====
    RESOLUTION_FAILED = "RESOLUTION_FAILED"
    """Agent configuration fetch failed (502)"""


class AppError(Exception):
    """
    Base exception for all runtime errors.

    Attributes:
        error_code: Machine-readable error code (from ErrorCode enum)
        status_code: HTTP status code (default: 500)
        message: Human-readable error message
        details: Optional dictionary with additional error context
    """

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.error_code.value}: {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code.value}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for serialization.

        Returns:
            Dictionary with error information
        """
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }

        if self.details:
            result["details"] = self.details

        return result


# ========================================
# Stream Protocol Errors
# ========================================


class ProtocolError(AppError):
    """Base class for recoverable stream protocol errors."""

    status_code = 422
    error_code = ErrorCode.PROTOCOL_VIOLATION
    default_message = "Event stream protocol error"


class ProtocolViolation(ProtocolError):
    """Event arrived out of the required start -> delta -> end order."""

    error_code = ErrorCode.PROTOCOL_VIOLATION
    default_message = "Event violates the stream protocol"


class UnknownEntity(ProtocolError):
    """A delta or end references a message or tool call that was never started."""

    error_code = ErrorCode.UNKNOWN_ENTITY
    default_message = "Event references an unknown entity"


class PatchApplicationError(ProtocolError):
    """A state delta batch could not be applied; the whole batch is rejected."""

    error_code = ErrorCode.PATCH_APPLICATION_FAILED
    default_message = "State delta could not be applied"


# ========================================
# Run Errors
# ========================================


class RunError(AppError):
    """
    Terminal error reported for a run.

    Carries the code and message exactly as the remote side reported them
    (or as synthesized locally for cancellation and transport failures).
    """

    status_code = 502
    error_code = ErrorCode.RUN_ERROR
    default_message = "Run failed"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["code"] = self.code
        return result


class RunConflict(AppError):
    """Thread already has a non-terminal run."""

    status_code = 409
    error_code = ErrorCode.RUN_CONFLICT
    default_message = "Thread already has an active run"


class RunNotFound(AppError):
    """No run is known for the requested thread."""

    status_code = 404
    error_code = ErrorCode.RUN_NOT_FOUND
    default_message = "Run not found"


# ========================================
# Agent Resolution Errors
# ========================================


class ResolutionError(AppError):
    """Agent configuration could not be fetched or normalized."""

    status_code = 502
    error_code = ErrorCode.RESOLUTION_FAILED
    default_message = "Agent configuration could not be resolved"
