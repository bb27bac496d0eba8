"""Read-only, role-scoped views over the allocation ledger."""

from __future__ import annotations

from typing import Optional

from residence_booking.domain.errors import AuthorizationError, ValidationError
from residence_booking.domain.models import (
    APPROVED,
    BOOKING_STATUSES,
    PAID,
    PENDING,
    REJECTED,
    ROLE_SERVICE,
    ROLE_STUDENT,
    Actor,
    BookingListing,
)
from residence_booking.repository.data_repository import DataRepository
from residence_booking.services.authorization_service import LIST, ResourceContext, can_act
from residence_booking.utils.config import Settings, get_settings


STATUS_ALIASES = {
    "approved_awaiting_payment": APPROVED,
}
MY_REQUEST_STATUSES = (PENDING, APPROVED, PAID, REJECTED)


def resolve_status_filter(status: Optional[str]) -> Optional[list[str]]:
    if status is None:
        return None
    normalized = status.strip().lower()
    if not normalized or normalized == "all":
        return None
    normalized = STATUS_ALIASES.get(normalized, normalized)
    if normalized not in BOOKING_STATUSES:
        raise ValidationError(f"Unknown status filter '{status}'.")
    return [normalized]


class BookingQueryService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def list_requests(
        self,
        actor: Actor,
        *,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[BookingListing]:
        """Managers only see residencies they own; admins see everything."""
        own_scope = ResourceContext(residency_owner_id=actor.actor_id)
        if not can_act(actor, LIST, own_scope):
            raise AuthorizationError("Only residency staff may list booking requests")

        statuses = resolve_status_filter(status)
        term = search.strip() if search else None
        if term and len(term) > self._settings.search_max_length:
            raise ValidationError(
                f"Search term must be at most {self._settings.search_max_length} characters."
            )

        residency_ids: Optional[list[str]] = None
        if actor.role == ROLE_SERVICE:
            residency_ids = self._repository.list_owned_residency_ids(actor.actor_id)
            if not residency_ids:
                return []

        return self._repository.list_bookings(
            residency_ids=residency_ids,
            statuses=statuses,
            search=term or None,
        )

    def get_my_request(self, actor: Actor) -> Optional[BookingListing]:
        if actor.role != ROLE_STUDENT:
            raise AuthorizationError("Only students have a personal room request")
        return self._repository.latest_request_for_student(actor.actor_id, MY_REQUEST_STATUSES)
