"""HTTP controller layer for booking requests."""

from __future__ import annotations

from typing import Literal, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from residence_booking.controllers.dependencies import (
    get_eligibility_service,
    get_lifecycle_service,
    get_query_service,
    require_roles,
)
from residence_booking.domain.errors import BookingError
from residence_booking.domain.models import (
    ROLE_ADMIN,
    ROLE_SERVICE,
    ROLE_STUDENT,
    Actor,
    BookingListing,
)
from residence_booking.services.eligibility_service import EligibilityService
from residence_booking.services.lifecycle_service import BookingLifecycleService
from residence_booking.services.query_service import BookingQueryService
from residence_booking.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["booking-requests"])

student_only = require_roles(ROLE_STUDENT)
staff_only = require_roles(ROLE_SERVICE, ROLE_ADMIN)

BookingStatus = Literal["pending", "approved", "rejected", "paid", "cancelled"]


class CreateBookingRequest(BaseModel):
    """Loosely typed on purpose; admission rules live in the service."""

    residency_id: Optional[str] = None
    room_number: int | str | None = None
    exam_record_id: str | int | None = None
    exam_year: str | int | None = None
    sex: Optional[str] = None
    birth_date: Optional[str] = None
    field_of_study: Optional[str] = None
    study_year: str | int | None = None
    home_wilaya: Optional[str] = None
    notes: Optional[str] = None


class UpdateBookingRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    notes: Optional[str] = None
    exam_record_id: str | int | None = None
    exam_year: str | int | None = None
    sex: Optional[str] = None
    birth_date: Optional[str] = None
    field_of_study: Optional[str] = None
    study_year: str | int | None = None
    home_wilaya: Optional[str] = None


class ApproveBookingRequest(BaseModel):
    notes: Optional[str] = None


class RejectBookingRequest(BaseModel):
    rejection_reason: Optional[str] = None


class PaymentDetailsRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    amount: Optional[float] = None
    method: Optional[str] = None
    date: Optional[str] = None


class MarkPaidRequest(BaseModel):
    payment: Optional[PaymentDetailsRequest] = None


class PaymentResponse(BaseModel):
    status: Literal["pending", "paid"]
    amount: Optional[float] = Field(default=None, ge=0.0)
    method: Optional[str] = None
    date: Optional[str] = None


class BookingResponse(BaseModel):
    id: int = Field(gt=0)
    student_id: str
    residency_id: str
    room_number: int = Field(gt=0)
    exam_record_id: str
    exam_year: str
    sex: Literal["male", "female"]
    birth_date: str
    field_of_study: str
    study_year: str
    home_wilaya: str
    notes: str
    status: BookingStatus
    rejection_reason: Optional[str] = None
    payment: Optional[PaymentResponse] = None
    created_at: str
    updated_at: str


class BookingListingResponse(BookingResponse):
    student_name: Optional[str] = None
    student_email: Optional[str] = None
    student_identifier: Optional[str] = None
    residency_title: Optional[str] = None


class MyRequestResponse(BaseModel):
    id: int = Field(gt=0)
    residency_id: str
    residency_title: Optional[str] = None
    room_number: int = Field(gt=0)
    status: BookingStatus
    application_date: str
    notes: str
    student_name: Optional[str] = None
    rejection_reason: Optional[str] = None
    payment: Optional[PaymentResponse] = None


class CancelResponse(BaseModel):
    message: str
    request: BookingResponse


def _raise_http(exc: BookingError) -> NoReturn:
    raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


def _unexpected(exc: Exception, action: str) -> NoReturn:
    logger.exception("Unexpected failure while trying to %s", action)
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    ) from exc


def _to_my_request(listing: BookingListing) -> MyRequestResponse:
    booking = listing.booking
    return MyRequestResponse(
        id=booking.request_id,
        residency_id=booking.residency_id,
        residency_title=listing.residency_title,
        room_number=booking.room_number,
        status=booking.status,
        application_date=booking.created_at,
        notes=booking.notes,
        student_name=listing.student_name,
        rejection_reason=booking.rejection_reason,
        payment=booking.payment.to_dict() if booking.payment is not None else None,
    )


@router.post(
    "/student",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_booking_request(
    payload: CreateBookingRequest,
    actor: Actor = Depends(student_only),
    service: EligibilityService = Depends(get_eligibility_service),
) -> BookingResponse:
    """Submit an application for one room; it starts out pending."""
    try:
        booking = service.create_request(actor, payload.model_dump())
    except BookingError as exc:
        _raise_http(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        _unexpected(exc, "create booking request")
    return BookingResponse(**booking.to_dict())


@router.get(
    "/student/my-request",
    response_model=Optional[MyRequestResponse],
    status_code=status.HTTP_200_OK,
)
def get_my_request(
    actor: Actor = Depends(student_only),
    service: BookingQueryService = Depends(get_query_service),
) -> Optional[MyRequestResponse]:
    try:
        listing = service.get_my_request(actor)
    except BookingError as exc:
        _raise_http(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        _unexpected(exc, "load room request")
    if listing is None:
        return None
    return _to_my_request(listing)


@router.delete(
    "/student/my-request/{request_id}",
    response_model=CancelResponse,
    status_code=status.HTTP_200_OK,
)
def cancel_my_request(
    request_id: int,
    actor: Actor = Depends(student_only),
    service: BookingLifecycleService = Depends(get_lifecycle_service),
) -> CancelResponse:
    try:
        booking = service.cancel(request_id, actor)
    except BookingError as exc:
        _raise_http(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        _unexpected(exc, "cancel room request")
    return CancelResponse(
        message="Room request successfully cancelled.",
        request=BookingResponse(**booking.to_dict()),
    )


@router.put(
    "/student/my-request/{request_id}",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
def update_my_request(
    request_id: int,
    payload: UpdateBookingRequest,
    actor: Actor = Depends(student_only),
    service: BookingLifecycleService = Depends(get_lifecycle_service),
) -> BookingResponse:
    """Edit notes or profile fields while the request is still pending."""
    try:
        booking = service.update_while_pending(
            request_id,
            actor,
            payload.model_dump(exclude_unset=True),
        )
    except BookingError as exc:
        _raise_http(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        _unexpected(exc, "update room request")
    return BookingResponse(**booking.to_dict())


@router.get(
    "",
    response_model=list[BookingListingResponse],
    status_code=status.HTTP_200_OK,
)
def list_booking_requests(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    search: Optional[str] = Query(default=None),
    actor: Actor = Depends(staff_only),
    service: BookingQueryService = Depends(get_query_service),
) -> list[BookingListingResponse]:
    """Managers see their own residencies; admins see every request."""
    try:
        listings = service.list_requests(actor, status=status_filter, search=search)
    except BookingError as exc:
        _raise_http(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        _unexpected(exc, "list booking requests")
    return [BookingListingResponse(**listing.to_dict()) for listing in listings]


@router.put(
    "/{request_id}/approve",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
def approve_booking_request(
    request_id: int,
    payload: Optional[ApproveBookingRequest] = None,
    actor: Actor = Depends(staff_only),
    service: BookingLifecycleService = Depends(get_lifecycle_service),
) -> BookingResponse:
    """Allocate the room; 409 when another application already holds it."""
    try:
        booking = service.approve(
            request_id,
            actor,
            notes=payload.notes if payload is not None else None,
        )
    except BookingError as exc:
        _raise_http(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        _unexpected(exc, "approve booking request")
    return BookingResponse(**booking.to_dict())


@router.put(
    "/{request_id}/reject",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
def reject_booking_request(
    request_id: int,
    payload: RejectBookingRequest,
    actor: Actor = Depends(staff_only),
    service: BookingLifecycleService = Depends(get_lifecycle_service),
) -> BookingResponse:
    try:
        booking = service.reject(request_id, actor, payload.rejection_reason)
    except BookingError as exc:
        _raise_http(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        _unexpected(exc, "reject booking request")
    return BookingResponse(**booking.to_dict())


@router.put(
    "/{request_id}/mark-paid",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
def mark_booking_as_paid(
    request_id: int,
    payload: Optional[MarkPaidRequest] = None,
    actor: Actor = Depends(staff_only),
    service: BookingLifecycleService = Depends(get_lifecycle_service),
) -> BookingResponse:
    details = None
    if payload is not None and payload.payment is not None:
        details = payload.payment.model_dump(exclude_none=True)
    try:
        booking = service.mark_paid(request_id, actor, details)
    except BookingError as exc:
        _raise_http(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        _unexpected(exc, "mark booking as paid")
    return BookingResponse(**booking.to_dict())
