from __future__ import annotations

from dataclasses import replace

import pytest

from residence_booking.domain.errors import AuthorizationError, ValidationError
from residence_booking.domain.models import Actor
from residence_booking.repository.data_repository import DataRepository
from residence_booking.services.eligibility_service import EligibilityService
from residence_booking.services.lifecycle_service import BookingLifecycleService
from residence_booking.services.query_service import BookingQueryService, resolve_status_filter
from residence_booking.utils.config import get_settings


MANAGER_R = Actor("manager-1", "service")
MANAGER_S = Actor("manager-2", "service")
IDLE_MANAGER = Actor("manager-idle", "service")
ADMIN = Actor("admin-1", "admin")
AMINA = Actor("student-amina", "student")
YACINE = Actor("student-yacine", "student")
LINA = Actor("student-lina", "student")


def _application(residency_id: str, room_number: int) -> dict:
    return {
        "residency_id": residency_id,
        "room_number": room_number,
        "exam_record_id": "BAC-2023-300",
        "exam_year": "2023",
        "sex": "female",
        "birth_date": "2004-02-14",
        "field_of_study": "Pharmacy",
        "study_year": "2",
        "home_wilaya": "Guelma",
    }


@pytest.fixture
def seeded(tmp_path):
    settings = replace(get_settings(), database_path=tmp_path / "query.db", seed_demo_data=False)
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.register_user("student-amina", "Amina Bensalem", "amina@student.local", "student", "STU-1")
    repository.register_user("student-yacine", "Yacine Haddad", "yacine@student.local", "student", "STU-2")
    repository.register_residency("res-r", "manager-1", "Residence R", "Constantine", 20)
    repository.register_residency("res-s", "manager-2", "Residence S", "Constantine", 20)

    eligibility = EligibilityService(repository=repository, settings=settings)
    lifecycle = BookingLifecycleService(repository=repository, settings=settings)
    amina = eligibility.create_request(AMINA, _application("res-r", 12))
    yacine = eligibility.create_request(YACINE, _application("res-r", 4))
    lina = eligibility.create_request(LINA, _application("res-s", 7))
    lifecycle.approve(yacine.request_id, MANAGER_R)

    service = BookingQueryService(repository=repository, settings=settings)
    return {
        "service": service,
        "lifecycle": lifecycle,
        "eligibility": eligibility,
        "ids": {"amina": amina.request_id, "yacine": yacine.request_id, "lina": lina.request_id},
    }


def _ids(listings) -> list[int]:
    return [listing.booking.request_id for listing in listings]


def test_admin_sees_every_request_newest_first(seeded):
    ids = seeded["ids"]
    listings = seeded["service"].list_requests(ADMIN)
    assert _ids(listings) == [ids["lina"], ids["yacine"], ids["amina"]]


def test_manager_is_scoped_to_owned_residencies(seeded):
    ids = seeded["ids"]
    assert _ids(seeded["service"].list_requests(MANAGER_R)) == [ids["yacine"], ids["amina"]]
    assert _ids(seeded["service"].list_requests(MANAGER_S)) == [ids["lina"]]
    assert seeded["service"].list_requests(IDLE_MANAGER) == []


def test_status_filter_and_alias(seeded):
    ids = seeded["ids"]
    service = seeded["service"]
    assert _ids(service.list_requests(ADMIN, status="approved")) == [ids["yacine"]]
    assert _ids(service.list_requests(ADMIN, status="approved_awaiting_payment")) == [ids["yacine"]]
    assert len(service.list_requests(ADMIN, status="all")) == 3
    with pytest.raises(ValidationError):
        service.list_requests(ADMIN, status="archived")


def test_search_matches_applicant_name_or_room(seeded):
    ids = seeded["ids"]
    service = seeded["service"]
    assert _ids(service.list_requests(ADMIN, search="amina")) == [ids["amina"]]
    assert _ids(service.list_requests(ADMIN, search="HADDAD")) == [ids["yacine"]]
    assert _ids(service.list_requests(ADMIN, search="7")) == [ids["lina"]]
    assert service.list_requests(ADMIN, search="%") == []


def test_listing_is_enriched_with_directory_data(seeded):
    listings = {listing.booking.request_id: listing for listing in seeded["service"].list_requests(ADMIN)}
    amina = listings[seeded["ids"]["amina"]]
    assert amina.student_name == "Amina Bensalem"
    assert amina.student_email == "amina@student.local"
    assert amina.residency_title == "Residence R"
    lina = listings[seeded["ids"]["lina"]]
    assert lina.student_name is None


def test_students_cannot_list(seeded):
    with pytest.raises(AuthorizationError):
        seeded["service"].list_requests(AMINA)


def test_my_request_returns_latest_visible_request(seeded):
    service = seeded["service"]
    mine = service.get_my_request(YACINE)
    assert mine.booking.status == "approved"
    assert mine.booking.payment.status == "pending"
    assert mine.residency_title == "Residence R"


def test_my_request_skips_cancelled(seeded):
    seeded["lifecycle"].cancel(seeded["ids"]["amina"], AMINA)
    assert seeded["service"].get_my_request(AMINA) is None
    assert seeded["service"].get_my_request(Actor("student-new", "student")) is None


def test_my_request_includes_rejection_reason(seeded):
    seeded["lifecycle"].reject(seeded["ids"]["lina"], MANAGER_S, "Missing enrolment certificate")
    mine = seeded["service"].get_my_request(LINA)
    assert mine.booking.status == "rejected"
    assert mine.booking.rejection_reason == "Missing enrolment certificate"


def test_resolve_status_filter_defaults() -> None:
    assert resolve_status_filter(None) is None
    assert resolve_status_filter(" ALL ") is None
    assert resolve_status_filter("Paid") == ["paid"]
