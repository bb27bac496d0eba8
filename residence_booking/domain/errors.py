"""Error taxonomy shared by every booking component.

Each error carries a human-readable message and the HTTP status the
controller layer reports it as.
"""

from __future__ import annotations


class BookingError(Exception):
    """Base class for booking domain failures."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Raised when input is missing, malformed, or out of range."""

    status_code = 400


class InvalidTransitionError(BookingError):
    """Raised when a status change is not legal from the current state."""

    status_code = 400


class AuthorizationError(BookingError):
    """Raised when the actor's role or ownership does not permit the action."""

    status_code = 403


class NotFoundError(BookingError):
    """Raised when a booking request or residency does not exist."""

    status_code = 404


class ConflictError(BookingError):
    """Raised on a duplicate active request or a lost room race."""

    status_code = 409


class ServerError(BookingError):
    """Raised when the ledger cannot complete an operation."""

    status_code = 500
