"""
Typed, recoverable errors raised by the retake engine.

None of these is fatal: callers present them, and a ConflictError is safe to
retry immediately against fresh state.
"""
from typing import Optional

from retake_engine.models.enums import RetakeStatus


class RetakeError(Exception):
    """Base class for every error the engine returns to callers."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class NotFoundError(RetakeError):
    """Unknown assignment, student, exam or history id."""


class InvalidTransitionError(RetakeError):
    """
    Raised when an operation is not legal for the assignment's current status.

    This is NOT a fault - it's the state machine refusing a move it forbids.
    """

    def __init__(
        self,
        message: str,
        current_status: Optional[RetakeStatus] = None,
        action: Optional[str] = None,
    ):
        self.current_status = current_status
        self.action = action
        super().__init__(message)


class RetakeValidationError(RetakeError):
    """Missing required date, unchanged date, unknown catalog value, bad limits."""


class ConflictError(RetakeError):
    """A concurrent mutation won the race, or the assignment already exists."""


class ImmutableHistoryError(RetakeError):
    """Something tried to modify a history entry after it was written."""


class ReplayError(RetakeError):
    """A history sequence cannot be replayed (missing Assign, entries after completion)."""
