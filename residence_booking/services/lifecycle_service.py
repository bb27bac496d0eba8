"""Status transitions for booking requests and their side effects."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from residence_booking.domain.constraints import (
    build_paid_record,
    validate_notes,
    validate_profile_updates,
    validate_rejection_reason,
)
from residence_booking.domain.errors import InvalidTransitionError, NotFoundError
from residence_booking.domain.lifecycle import ensure_editable, ensure_transition
from residence_booking.domain.models import (
    APPROVED,
    CANCELLED,
    PAID,
    PENDING,
    REJECTED,
    Actor,
    BookingRequest,
)
from residence_booking.repository.data_repository import DataRepository
from residence_booking.services.allocation_service import ConflictResolver
from residence_booking.services.authorization_service import (
    APPROVE,
    CANCEL,
    MARK_PAID,
    REJECT,
    UPDATE,
    AuthorizationGate,
)
from residence_booking.utils.config import Settings, get_settings
from residence_booking.utils.logger import get_logger


logger = get_logger(__name__)


class BookingLifecycleService:
    """Enforces the pending -> approved/rejected/cancelled -> paid machine.

    Every operation checks existence, then authorization, then the source
    state, and only then writes. Single-record transitions are a
    compare-and-swap on the expected status, so a concurrent writer that
    moved the record first turns this call into an `InvalidTransitionError`
    rather than an overwrite.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        resolver: Optional[ConflictResolver] = None,
        gate: Optional[AuthorizationGate] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._resolver = resolver or ConflictResolver(
            repository=self._repository,
            settings=self._settings,
        )
        self._gate = gate or AuthorizationGate(self._repository)

    def _load(self, request_id: int) -> BookingRequest:
        booking = self._repository.get_booking(request_id)
        if booking is None:
            raise NotFoundError("Booking request not found")
        return booking

    def _swap(
        self,
        booking: BookingRequest,
        new_status: str,
        **changes: Any,
    ) -> BookingRequest:
        with self._repository.transaction() as conn:
            swapped = self._repository.transition_status(
                conn,
                booking.request_id,
                expected_status=booking.status,
                new_status=new_status,
                **changes,
            )
            current = self._repository.get_booking(booking.request_id, conn=conn)
            if not swapped or current is None:
                observed = current.status if current is not None else "missing"
                raise InvalidTransitionError(
                    f"Request with status '{observed}' was modified concurrently; "
                    f"cannot move to '{new_status}'."
                )
        logger.info(
            "Request %s moved %s -> %s",
            booking.request_id,
            booking.status,
            new_status,
        )
        return current

    def approve(
        self,
        request_id: int,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> BookingRequest:
        booking = self._load(request_id)
        self._gate.authorize(actor, APPROVE, booking)
        ensure_transition(booking.status, APPROVED)
        staff_notes = validate_notes(notes) if notes is not None else None
        result = self._resolver.reserve(request_id, notes=staff_notes or None)
        return result.booking

    def reject(self, request_id: int, actor: Actor, reason: Any) -> BookingRequest:
        booking = self._load(request_id)
        self._gate.authorize(actor, REJECT, booking)
        cleaned_reason = validate_rejection_reason(reason)
        ensure_transition(booking.status, REJECTED)
        return self._swap(booking, REJECTED, rejection_reason=cleaned_reason)

    def mark_paid(
        self,
        request_id: int,
        actor: Actor,
        payment_details: Optional[Mapping[str, Any]] = None,
    ) -> BookingRequest:
        booking = self._load(request_id)
        self._gate.authorize(actor, MARK_PAID, booking)
        ensure_transition(booking.status, PAID)
        payment = build_paid_record(payment_details)
        return self._swap(booking, PAID, payment=payment)

    def cancel(self, request_id: int, actor: Actor) -> BookingRequest:
        booking = self._load(request_id)
        self._gate.authorize(actor, CANCEL, booking)
        ensure_transition(booking.status, CANCELLED)
        return self._swap(booking, CANCELLED)

    def update_while_pending(
        self,
        request_id: int,
        actor: Actor,
        fields: Mapping[str, Any],
    ) -> BookingRequest:
        booking = self._load(request_id)
        self._gate.authorize(actor, UPDATE, booking)
        ensure_editable(booking.status)
        normalized = validate_profile_updates(fields)
        with self._repository.transaction() as conn:
            updated = self._repository.update_pending_fields(conn, request_id, normalized)
            current = self._repository.get_booking(request_id, conn=conn)
            if not updated or current is None:
                observed = current.status if current is not None else "missing"
                raise InvalidTransitionError(
                    f"Request with status '{observed}' cannot be edited."
                )
        logger.info(
            "Request %s updated while %s: %s",
            request_id,
            PENDING,
            ", ".join(sorted(normalized)),
        )
        return current
