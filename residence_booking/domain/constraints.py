"""Domain-level validation rules for room applications."""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional

from residence_booking.domain.errors import ValidationError
from residence_booking.domain.models import (
    PAYMENT_PAID,
    PROFILE_FIELDS,
    ApplicantProfile,
    PaymentRecord,
    Residency,
)


SEX_VALUES = frozenset({"male", "female"})
MUTABLE_FIELDS = frozenset({"notes", *PROFILE_FIELDS})

_FIELD_LABELS = {
    "residency_id": "Residency ID",
    "room_number": "Room number",
    "exam_record_id": "Exam record ID",
    "exam_year": "Exam year",
    "sex": "Sex",
    "birth_date": "Birth date",
    "field_of_study": "Field of study",
    "study_year": "Study year",
    "home_wilaya": "Home wilaya",
}


def _label(field: str) -> str:
    return _FIELD_LABELS.get(field, field)


def require_text(field: str, value: Any) -> str:
    if value is None:
        raise ValidationError(f"{_label(field)} is required.")
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValidationError(f"{_label(field)} must be a string.")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{_label(field)} is required.")
    return text


def parse_room_number(value: Any) -> int:
    """Accept a positive integer or an integer-valued string."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Room number is required.")
    if isinstance(value, bool):
        raise ValidationError("Invalid room number.")
    if isinstance(value, int):
        room_number = value
    elif isinstance(value, str) and value.strip().isdecimal():
        try:
            room_number = int(value.strip())
        except ValueError as exc:
            raise ValidationError("Invalid room number.") from exc
    else:
        raise ValidationError("Invalid room number.")
    if room_number <= 0:
        raise ValidationError("Invalid room number.")
    return room_number


def parse_birth_date(value: Any, today: Optional[date] = None) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Birth date is required.")
    if isinstance(value, datetime):
        parsed = value.date()
    elif isinstance(value, date):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.strptime(value.strip(), "%Y-%m-%d").date()
        except ValueError as exc:
            raise ValidationError("Birth date must follow YYYY-MM-DD format.") from exc
    else:
        raise ValidationError("Birth date must follow YYYY-MM-DD format.")
    reference = today or datetime.now(timezone.utc).date()
    if parsed > reference:
        raise ValidationError("Birth date cannot be in the future.")
    return parsed.isoformat()


def parse_sex(value: Any) -> str:
    text = require_text("sex", value).lower()
    if text not in SEX_VALUES:
        raise ValidationError("Sex must be one of: female, male.")
    return text


def normalize_profile_field(field: str, value: Any) -> str:
    if field == "birth_date":
        return parse_birth_date(value)
    if field == "sex":
        return parse_sex(value)
    return require_text(field, value)


def build_applicant_profile(payload: Mapping[str, Any]) -> ApplicantProfile:
    """Validate every required profile field, in declaration order."""
    values = {
        field: normalize_profile_field(field, payload.get(field))
        for field in PROFILE_FIELDS
    }
    return ApplicantProfile(**values)


def validate_notes(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError("Notes must be a string.")
    return value.strip()


def validate_room_within_capacity(room_number: int, residency: Residency) -> None:
    if room_number > residency.total_room_count:
        raise ValidationError(
            f"Room number {room_number} exceeds the total available rooms "
            f"({residency.total_room_count}) for this residency."
        )


def validate_profile_updates(updates: Mapping[str, Any]) -> dict[str, str]:
    """Normalize a pending-request edit; only whitelisted fields are accepted."""
    if not updates:
        raise ValidationError("No fields provided for update.")
    unknown = sorted(set(updates) - MUTABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}.")
    normalized: dict[str, str] = {}
    for field, value in updates.items():
        if field == "notes":
            normalized[field] = validate_notes(value)
        else:
            normalized[field] = normalize_profile_field(field, value)
    return normalized


def validate_rejection_reason(reason: Any) -> str:
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("Rejection reason is required.")
    return reason.strip()


def build_paid_record(details: Optional[Mapping[str, Any]]) -> PaymentRecord:
    details = details or {}
    amount = details.get("amount")
    if amount is not None:
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise ValidationError("Payment amount must be a number.")
        try:
            amount = float(amount)
        except OverflowError as exc:
            raise ValidationError("Payment amount must be a finite number.") from exc
        if not math.isfinite(amount):
            raise ValidationError("Payment amount must be a finite number.")
        if amount < 0:
            raise ValidationError("Payment amount cannot be negative.")
    method = details.get("method")
    if method is not None:
        method = require_text("method", method)
    paid_on = details.get("date")
    if paid_on is None:
        paid_on = datetime.now(timezone.utc).isoformat()
    elif isinstance(paid_on, (datetime, date)):
        paid_on = paid_on.isoformat()
    else:
        paid_on = require_text("date", paid_on)
        try:
            datetime.fromisoformat(paid_on)
        except ValueError as exc:
            raise ValidationError("Payment date must be an ISO-8601 date or datetime.") from exc
    return PaymentRecord(status=PAYMENT_PAID, amount=amount, method=method, date=paid_on)
