from __future__ import annotations

from dataclasses import replace

import pytest

from residence_booking.domain.errors import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from residence_booking.domain.lifecycle import TRANSITIONS, can_transition, ensure_transition
from residence_booking.domain.models import Actor, PaymentRecord
from residence_booking.repository.data_repository import DataRepository
from residence_booking.services.eligibility_service import EligibilityService
from residence_booking.services.lifecycle_service import BookingLifecycleService
from residence_booking.utils.config import get_settings


MANAGER = Actor("manager-1", "service")
OTHER_MANAGER = Actor("manager-2", "service")
ADMIN = Actor("admin-1", "admin")
STUDENT_A = Actor("student-a", "student")
STUDENT_B = Actor("student-b", "student")


def _build_test_settings(tmp_path, filename: str, **overrides):
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        seed_demo_data=False,
        **overrides,
    )


def _build_services(tmp_path, filename: str, **overrides):
    settings = _build_test_settings(tmp_path, filename, **overrides)
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.register_residency("res-r", "manager-1", "Residence R", "Constantine", 3)
    repository.register_residency("res-s", "manager-2", "Residence S", "Constantine", 10)
    repository.register_residency("res-draft", "manager-1", "Draft", "Constantine", 10, "pending")
    eligibility = EligibilityService(repository=repository, settings=settings)
    lifecycle = BookingLifecycleService(repository=repository, settings=settings)
    return repository, eligibility, lifecycle


def _application(residency_id: str = "res-r", room_number=2, **overrides) -> dict:
    payload = {
        "residency_id": residency_id,
        "room_number": room_number,
        "exam_record_id": "BAC-2022-118",
        "exam_year": "2022",
        "sex": "male",
        "birth_date": "2003-11-21",
        "field_of_study": "Mathematics",
        "study_year": "3",
        "home_wilaya": "Jijel",
    }
    payload.update(overrides)
    return payload


# --- transition table ---

def test_transition_table_matches_lifecycle() -> None:
    assert can_transition("pending", "approved")
    assert can_transition("pending", "rejected")
    assert can_transition("pending", "cancelled")
    assert can_transition("approved", "paid")
    assert not can_transition("approved", "cancelled")
    assert not can_transition("pending", "paid")
    for terminal in ("rejected", "cancelled", "paid"):
        assert not TRANSITIONS[terminal]
        assert not any(can_transition(terminal, target) for target in TRANSITIONS)


def test_mark_paid_from_pending_has_payment_specific_message() -> None:
    with pytest.raises(InvalidTransitionError, match="must be approved before marking as paid"):
        ensure_transition("pending", "paid")


# --- eligibility ---

def test_create_request_starts_pending_without_payment(tmp_path):
    _, eligibility, _ = _build_services(tmp_path, "create.db")
    booking = eligibility.create_request(STUDENT_A, _application(notes="near the library"))
    assert booking.status == "pending"
    assert booking.payment is None
    assert booking.rejection_reason is None
    assert booking.room_number == 2
    assert booking.notes == "near the library"


def test_room_beyond_capacity_is_rejected(tmp_path):
    _, eligibility, _ = _build_services(tmp_path, "capacity.db")
    with pytest.raises(ValidationError, match="exceeds the total available rooms"):
        eligibility.create_request(STUDENT_A, _application(room_number=5))


def test_unknown_or_unpublished_residency_is_not_found(tmp_path):
    _, eligibility, _ = _build_services(tmp_path, "unknown.db")
    with pytest.raises(NotFoundError):
        eligibility.create_request(STUDENT_A, _application(residency_id="res-missing"))
    with pytest.raises(NotFoundError):
        eligibility.create_request(STUDENT_A, _application(residency_id="res-draft"))


def test_second_active_request_for_same_residency_conflicts(tmp_path):
    _, eligibility, _ = _build_services(tmp_path, "duplicate.db")
    eligibility.create_request(STUDENT_A, _application(room_number=1))
    with pytest.raises(ConflictError, match="already have an active booking request"):
        eligibility.create_request(STUDENT_A, _application(room_number=3))


def test_student_may_apply_to_other_residency_while_active(tmp_path):
    _, eligibility, _ = _build_services(tmp_path, "other_residency.db")
    eligibility.create_request(STUDENT_A, _application(room_number=1))
    booking = eligibility.create_request(STUDENT_A, _application("res-s", room_number=1))
    assert booking.residency_id == "res-s"


def test_student_can_reapply_after_cancelling(tmp_path):
    _, eligibility, lifecycle = _build_services(tmp_path, "reapply.db")
    first = eligibility.create_request(STUDENT_A, _application())
    lifecycle.cancel(first.request_id, STUDENT_A)
    second = eligibility.create_request(STUDENT_A, _application(room_number=3))
    assert second.status == "pending"


def test_room_already_allocated_blocks_new_applications(tmp_path):
    _, eligibility, lifecycle = _build_services(tmp_path, "prefilter.db")
    first = eligibility.create_request(STUDENT_A, _application())
    lifecycle.approve(first.request_id, MANAGER)
    with pytest.raises(ConflictError, match="already booked or reserved"):
        eligibility.create_request(STUDENT_B, _application())


def test_staff_cannot_create_requests(tmp_path):
    _, eligibility, _ = _build_services(tmp_path, "staff_create.db")
    with pytest.raises(AuthorizationError):
        eligibility.create_request(MANAGER, _application())


# --- scenarios ---

def test_competing_pending_requests_resolve_at_approval(tmp_path):
    repository, eligibility, lifecycle = _build_services(tmp_path, "scenario_a.db")
    request_a = eligibility.create_request(STUDENT_A, _application(room_number=2))
    request_b = eligibility.create_request(STUDENT_B, _application(room_number=2))

    approved = lifecycle.approve(request_a.request_id, MANAGER)
    assert approved.status == "approved"
    assert approved.payment == PaymentRecord(status="pending", amount=None, method=None, date=None)

    with pytest.raises(ConflictError, match="already booked"):
        lifecycle.approve(request_b.request_id, MANAGER)
    assert repository.get_booking(request_b.request_id).status == "pending"


def test_cancel_twice_fails_with_invalid_transition(tmp_path):
    _, eligibility, lifecycle = _build_services(tmp_path, "scenario_b.db")
    booking = eligibility.create_request(STUDENT_A, _application())
    cancelled = lifecycle.cancel(booking.request_id, STUDENT_A)
    assert cancelled.status == "cancelled"
    with pytest.raises(InvalidTransitionError, match="cannot be cancelled"):
        lifecycle.cancel(booking.request_id, STUDENT_A)


def test_mark_paid_requires_approval(tmp_path):
    repository, eligibility, lifecycle = _build_services(tmp_path, "scenario_d.db")
    booking = eligibility.create_request(STUDENT_A, _application())
    with pytest.raises(InvalidTransitionError, match="must be approved before marking as paid"):
        lifecycle.mark_paid(booking.request_id, MANAGER, {"amount": 1200})
    assert repository.get_booking(booking.request_id).status == "pending"


def test_non_owning_manager_cannot_approve(tmp_path):
    repository, eligibility, lifecycle = _build_services(tmp_path, "scenario_e.db")
    booking = eligibility.create_request(STUDENT_A, _application())
    with pytest.raises(AuthorizationError):
        lifecycle.approve(booking.request_id, OTHER_MANAGER)
    unchanged = repository.get_booking(booking.request_id)
    assert unchanged.status == "pending"
    assert unchanged.updated_at == booking.updated_at


# --- guards and side effects ---

def test_reject_requires_reason_and_stores_it(tmp_path):
    _, eligibility, lifecycle = _build_services(tmp_path, "reject.db")
    booking = eligibility.create_request(STUDENT_A, _application())
    with pytest.raises(ValidationError):
        lifecycle.reject(booking.request_id, MANAGER, "  ")
    rejected = lifecycle.reject(booking.request_id, MANAGER, " Incomplete documents ")
    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "Incomplete documents"
    assert rejected.payment is None


def test_reject_settles_existence_and_ownership_before_reason(tmp_path):
    _, eligibility, lifecycle = _build_services(tmp_path, "reject_order.db")
    booking = eligibility.create_request(STUDENT_A, _application())
    with pytest.raises(NotFoundError):
        lifecycle.reject(9999, MANAGER, "")
    with pytest.raises(AuthorizationError):
        lifecycle.reject(booking.request_id, OTHER_MANAGER, "")


def test_mark_paid_refuses_non_finite_amount(tmp_path):
    repository, eligibility, lifecycle = _build_services(tmp_path, "paid_inf.db")
    booking = eligibility.create_request(STUDENT_A, _application())
    lifecycle.approve(booking.request_id, MANAGER)
    with pytest.raises(ValidationError):
        lifecycle.mark_paid(booking.request_id, MANAGER, {"amount": float("inf")})
    assert repository.get_booking(booking.request_id).status == "approved"


def test_reject_after_approval_is_invalid(tmp_path):
    _, eligibility, lifecycle = _build_services(tmp_path, "reject_approved.db")
    booking = eligibility.create_request(STUDENT_A, _application())
    lifecycle.approve(booking.request_id, MANAGER)
    with pytest.raises(InvalidTransitionError):
        lifecycle.reject(booking.request_id, MANAGER, "changed our mind")


def test_mark_paid_records_payment(tmp_path):
    _, eligibility, lifecycle = _build_services(tmp_path, "paid.db")
    booking = eligibility.create_request(STUDENT_A, _application())
    lifecycle.approve(booking.request_id, ADMIN, notes="keys at front desk")
    paid = lifecycle.mark_paid(
        booking.request_id,
        MANAGER,
        {"amount": 1200, "method": "ccp", "date": "2026-09-15"},
    )
    assert paid.status == "paid"
    assert paid.notes == "keys at front desk"
    assert paid.payment == PaymentRecord(status="paid", amount=1200.0, method="ccp", date="2026-09-15")
    with pytest.raises(InvalidTransitionError):
        lifecycle.mark_paid(booking.request_id, MANAGER, None)


def test_cancel_only_while_pending_and_only_by_owner(tmp_path):
    _, eligibility, lifecycle = _build_services(tmp_path, "cancel_guard.db")
    booking = eligibility.create_request(STUDENT_A, _application())
    with pytest.raises(AuthorizationError):
        lifecycle.cancel(booking.request_id, STUDENT_B)
    lifecycle.approve(booking.request_id, MANAGER)
    with pytest.raises(InvalidTransitionError):
        lifecycle.cancel(booking.request_id, STUDENT_A)


def test_update_while_pending_replaces_whitelisted_fields(tmp_path):
    _, eligibility, lifecycle = _build_services(tmp_path, "update.db")
    booking = eligibility.create_request(STUDENT_A, _application())
    updated = lifecycle.update_while_pending(
        booking.request_id,
        STUDENT_A,
        {"notes": "allergic to dust", "home_wilaya": "Skikda"},
    )
    assert updated.notes == "allergic to dust"
    assert updated.profile.home_wilaya == "Skikda"
    assert updated.room_number == booking.room_number

    with pytest.raises(ValidationError):
        lifecycle.update_while_pending(booking.request_id, STUDENT_A, {"status": "approved"})


def test_update_after_approval_is_refused(tmp_path):
    _, eligibility, lifecycle = _build_services(tmp_path, "update_frozen.db")
    booking = eligibility.create_request(STUDENT_A, _application())
    lifecycle.approve(booking.request_id, MANAGER)
    with pytest.raises(InvalidTransitionError, match="cannot be edited"):
        lifecycle.update_while_pending(booking.request_id, STUDENT_A, {"notes": "late edit"})


def test_unknown_request_is_not_found(tmp_path):
    _, _, lifecycle = _build_services(tmp_path, "missing.db")
    with pytest.raises(NotFoundError):
        lifecycle.approve(999, ADMIN)
    with pytest.raises(NotFoundError):
        lifecycle.cancel(999, STUDENT_A)


def test_competing_requests_stay_pending_by_default(tmp_path):
    repository, eligibility, lifecycle = _build_services(tmp_path, "residue.db")
    winner = eligibility.create_request(STUDENT_A, _application())
    loser = eligibility.create_request(STUDENT_B, _application())
    lifecycle.approve(winner.request_id, MANAGER)
    assert repository.get_booking(loser.request_id).status == "pending"


def test_competing_requests_auto_rejected_when_enabled(tmp_path):
    repository, eligibility, lifecycle = _build_services(
        tmp_path,
        "auto_reject.db",
        auto_reject_competing_requests=True,
        competing_rejection_reason="Room taken",
    )
    winner = eligibility.create_request(STUDENT_A, _application())
    loser = eligibility.create_request(STUDENT_B, _application())
    elsewhere = eligibility.create_request(Actor("student-c", "student"), _application(room_number=3))

    lifecycle.approve(winner.request_id, MANAGER)

    rejected = repository.get_booking(loser.request_id)
    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "Room taken"
    assert repository.get_booking(elsewhere.request_id).status == "pending"
