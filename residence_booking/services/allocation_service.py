"""Atomic room reservation for approved applications.

Approval must consult every other request that shares the same
`(residency_id, room_number)`, so the conflict lookup and the status change
run inside one serialized ledger transaction. Of two concurrent approvals
for the same room exactly one commits; the other observes the holder and
aborts without writing anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from residence_booking.domain.errors import ConflictError, NotFoundError, ServerError
from residence_booking.domain.lifecycle import ensure_transition
from residence_booking.domain.models import (
    APPROVED,
    PAYMENT_PENDING,
    PENDING,
    REJECTED,
    BookingRequest,
    PaymentRecord,
)
from residence_booking.repository.data_repository import DataRepository
from residence_booking.utils.config import Settings, get_settings
from residence_booking.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class ReservationResult:
    booking: BookingRequest
    auto_rejected_request_ids: list[int]


class ConflictResolver:
    """Grants a room to exactly one application."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def reserve(self, request_id: int, notes: Optional[str] = None) -> ReservationResult:
        pending_payment = PaymentRecord(status=PAYMENT_PENDING, amount=None, method=None, date=None)

        with self._repository.transaction() as conn:
            target = self._repository.get_booking(request_id, conn=conn)
            if target is None:
                raise NotFoundError("Booking request not found")
            ensure_transition(target.status, APPROVED)

            holder = self._repository.find_allocated_request(
                target.residency_id,
                target.room_number,
                conn=conn,
            )
            if holder is not None:
                logger.warning(
                    "Room %s in residency %s already held by request %s; refusing request %s",
                    target.room_number,
                    target.residency_id,
                    holder.request_id,
                    request_id,
                )
                raise ConflictError(
                    f"Room {target.room_number} in this residency is already booked."
                )

            self._repository.transition_status(
                conn,
                request_id,
                expected_status=PENDING,
                new_status=APPROVED,
                payment=pending_payment,
                notes=notes,
            )

            auto_rejected: list[int] = []
            if self._settings.auto_reject_competing_requests:
                auto_rejected = self._repository.list_competing_pending_ids(
                    conn,
                    target.residency_id,
                    target.room_number,
                    exclude_request_id=request_id,
                )
                for competing_id in auto_rejected:
                    self._repository.transition_status(
                        conn,
                        competing_id,
                        expected_status=PENDING,
                        new_status=REJECTED,
                        rejection_reason=self._settings.competing_rejection_reason,
                    )

            approved = self._repository.get_booking(request_id, conn=conn)
            if approved is None:
                raise ServerError("Failed to read back the approved booking request.")

        logger.info(
            "Room %s in residency %s allocated to request %s",
            target.room_number,
            target.residency_id,
            request_id,
        )
        if auto_rejected:
            logger.info("Auto-rejected competing requests %s", auto_rejected)
        return ReservationResult(booking=approved, auto_rejected_request_ids=auto_rejected)
