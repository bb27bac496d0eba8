"""Domain models for residency room applications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
PAID = "paid"
CANCELLED = "cancelled"

BOOKING_STATUSES = (PENDING, APPROVED, REJECTED, PAID, CANCELLED)
ACTIVE_STATUSES = frozenset({PENDING, APPROVED, PAID})
ALLOCATED_STATUSES = frozenset({APPROVED, PAID})

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"

ROLE_STUDENT = "student"
ROLE_SERVICE = "service"
ROLE_ADMIN = "admin"

RESIDENCY_APPROVED = "approved"

PROFILE_FIELDS = (
    "exam_record_id",
    "exam_year",
    "sex",
    "birth_date",
    "field_of_study",
    "study_year",
    "home_wilaya",
)


@dataclass(frozen=True)
class Actor:
    actor_id: str
    role: str


@dataclass(frozen=True)
class Residency:
    residency_id: str
    owner_id: str
    title: str
    wilaya: str
    total_room_count: int
    publication_status: str


@dataclass(frozen=True)
class ApplicantProfile:
    exam_record_id: str
    exam_year: str
    sex: str
    birth_date: str
    field_of_study: str
    study_year: str
    home_wilaya: str

    def to_dict(self) -> dict[str, str]:
        return {field: getattr(self, field) for field in PROFILE_FIELDS}


@dataclass(frozen=True)
class PaymentRecord:
    status: str
    amount: Optional[float]
    method: Optional[str]
    date: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "amount": self.amount,
            "method": self.method,
            "date": self.date,
        }


@dataclass(frozen=True)
class BookingRequest:
    request_id: int
    student_id: str
    residency_id: str
    room_number: int
    profile: ApplicantProfile
    notes: str
    status: str
    rejection_reason: Optional[str]
    payment: Optional[PaymentRecord]
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.request_id,
            "student_id": self.student_id,
            "residency_id": self.residency_id,
            "room_number": self.room_number,
            **self.profile.to_dict(),
            "notes": self.notes,
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "payment": self.payment.to_dict() if self.payment is not None else None,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class BookingListing:
    """Booking row enriched with non-authoritative display data."""

    booking: BookingRequest
    student_name: Optional[str]
    student_email: Optional[str]
    student_identifier: Optional[str]
    residency_title: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.booking.to_dict(),
            "student_name": self.student_name,
            "student_email": self.student_email,
            "student_identifier": self.student_identifier,
            "residency_title": self.residency_title,
        }
