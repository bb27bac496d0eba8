"""Legal status transitions for a booking request."""

from __future__ import annotations

from residence_booking.domain.errors import InvalidTransitionError
from residence_booking.domain.models import APPROVED, CANCELLED, PAID, PENDING, REJECTED


TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({APPROVED, REJECTED, CANCELLED}),
    APPROVED: frozenset({PAID}),
    REJECTED: frozenset(),
    PAID: frozenset(),
    CANCELLED: frozenset(),
}

_REFUSALS = {
    PAID: "Booking must be approved before marking as paid.",
    CANCELLED: "Request with status '{current}' cannot be cancelled.",
    APPROVED: "Request with status '{current}' cannot be approved.",
    REJECTED: "Request with status '{current}' cannot be rejected.",
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        template = _REFUSALS.get(
            target,
            "Request with status '{current}' cannot move to '{target}'.",
        )
        raise InvalidTransitionError(template.format(current=current, target=target))


def ensure_editable(current: str) -> None:
    """Profile and notes are only mutable while the request is pending."""
    if current != PENDING:
        raise InvalidTransitionError(f"Request with status '{current}' cannot be edited.")
