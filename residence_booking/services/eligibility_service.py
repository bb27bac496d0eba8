"""Admission checks for new room applications."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from residence_booking.domain.constraints import (
    build_applicant_profile,
    parse_room_number,
    require_text,
    validate_notes,
    validate_room_within_capacity,
)
from residence_booking.domain.errors import ConflictError, NotFoundError, ServerError
from residence_booking.domain.models import RESIDENCY_APPROVED, Actor, BookingRequest
from residence_booking.repository.data_repository import DataRepository
from residence_booking.services.authorization_service import AuthorizationGate
from residence_booking.utils.config import Settings, get_settings
from residence_booking.utils.logger import get_logger


logger = get_logger(__name__)


class EligibilityService:
    """Validates a student's application and admits it as pending."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        gate: Optional[AuthorizationGate] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._gate = gate or AuthorizationGate(self._repository)

    def create_request(self, actor: Actor, payload: Mapping[str, Any]) -> BookingRequest:
        """Run every admission rule, then insert the pending record.

        The "room already allocated" lookup only spares the student a
        doomed application; exclusivity itself is enforced when a manager
        approves.
        """
        self._gate.authorize_create(actor, actor.actor_id)

        residency_id = require_text("residency_id", payload.get("residency_id"))
        residency = self._repository.get_residency(residency_id)
        if residency is None or residency.publication_status != RESIDENCY_APPROVED:
            raise NotFoundError("Residency not found.")

        room_number = parse_room_number(payload.get("room_number"))
        profile = build_applicant_profile(payload)
        notes = validate_notes(payload.get("notes"))
        validate_room_within_capacity(room_number, residency)

        with self._repository.transaction() as conn:
            existing = self._repository.find_active_request(
                actor.actor_id,
                residency_id,
                conn=conn,
            )
            if existing is not None:
                raise ConflictError(
                    f"You already have an active booking request (status: {existing.status}) "
                    "for this residency. Please wait for it to be processed or cancel it "
                    "before applying again."
                )
            holder = self._repository.find_allocated_request(residency_id, room_number, conn=conn)
            if holder is not None:
                raise ConflictError(
                    f"Room number {room_number} in this residency is already booked or reserved. "
                    "Please choose a different room."
                )
            request_id = self._repository.insert_booking(
                conn,
                student_id=actor.actor_id,
                residency_id=residency_id,
                room_number=room_number,
                profile=profile,
                notes=notes,
            )
            created = self._repository.get_booking(request_id, conn=conn)
            if created is None:
                raise ServerError("Failed to read back the created booking request.")

        logger.info(
            "Student %s applied for room %s in residency %s (request %s)",
            actor.actor_id,
            room_number,
            residency_id,
            request_id,
        )
        return created
