"""Booking lifecycle API router.

Thin layer over ``BookingService``: every state change goes through the
service so the status table, availability guard and notifications apply.
Domain errors are turned into HTTP responses by ``staybook.api.errors``.
"""

from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status

from staybook.api.deps import get_booking_service
from staybook.api.errors import HTTP_422_UNPROCESSABLE
from staybook.booking.sweeper import SweepResult
from staybook.models.booking import Booking
from staybook.schemas.booking import (
    AvailabilityResponse,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingStatsResponse,
    CalendarResponse,
    CancelRequest,
    PaymentConfirmation,
    PaymentSubmission,
    ReasonRequest,
    SweepResponse,
)
from staybook.services.booking_service import BookingService

router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"])


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.get(
    "/availability",
    response_model=AvailabilityResponse,
    summary="Check whether a property is free for a stay",
)
async def check_availability(
    property_id: uuid.UUID = Query(..., description="Property to check"),
    check_in_date: date = Query(..., description="First night of the stay"),
    check_out_date: date = Query(..., description="Departure day (exclusive)"),
    service: BookingService = Depends(get_booking_service),
) -> AvailabilityResponse:
    return await service.check_availability(property_id, check_in_date, check_out_date)


@router.get(
    "/calendar",
    response_model=CalendarResponse,
    summary="Nights of a property already held by active bookings",
)
async def property_calendar(
    property_id: uuid.UUID = Query(...),
    start: date = Query(..., description="First night shown"),
    end: date = Query(..., description="Day after the last night shown"),
    service: BookingService = Depends(get_booking_service),
) -> CalendarResponse:
    return await service.calendar(property_id, start, end)


@router.get(
    "/stats",
    response_model=BookingStatsResponse,
    summary="Booking counts per status and revenue",
)
async def booking_stats(
    property_id: uuid.UUID | None = Query(None, description="Filter by property"),
    guest_id: uuid.UUID | None = Query(None, description="Filter by guest"),
    service: BookingService = Depends(get_booking_service),
) -> BookingStatsResponse:
    return await service.stats(property_id=property_id, guest_id=guest_id)


@router.get(
    "",
    response_model=BookingListResponse,
    summary="List bookings of a guest or a property",
)
async def list_bookings(
    guest_id: uuid.UUID | None = Query(None, description="Bookings made by this guest"),
    property_id: uuid.UUID | None = Query(None, description="Bookings of this property"),
    limit: int = Query(20, ge=1, le=100, description="Maximum number of bookings"),
    service: BookingService = Depends(get_booking_service),
) -> dict:
    """Exactly one of ``guest_id`` or ``property_id`` must be given."""
    if (guest_id is None) == (property_id is None):
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE,
            detail="Provide exactly one of guest_id or property_id",
        )
    if guest_id is not None:
        items = await service.list_for_guest(guest_id, limit)
    else:
        items = await service.list_for_property(property_id, limit)
    return {"items": items, "total": len(items)}


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get a booking",
)
async def get_booking(
    booking_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return await service.get(booking_id)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a booking",
)
async def create_booking(
    body: BookingCreate,
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    """Create a ``pending`` booking after checking capacity and availability.

    Returns 409 with the conflicting bookings when the dates are taken.
    """
    return await service.create(
        body.property_id,
        body.guest_id,
        body.check_in_date,
        body.check_out_date,
        body.guests_count,
        body.special_requests,
    )


@router.post("/{booking_id}/approve", response_model=BookingResponse, summary="Host approves a request")
async def approve_booking(
    booking_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return await service.approve(booking_id)


@router.post("/{booking_id}/reject", response_model=BookingResponse, summary="Host rejects a request")
async def reject_booking(
    booking_id: uuid.UUID,
    body: ReasonRequest,
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return await service.reject(booking_id, body.reason)


@router.post("/{booking_id}/payment", response_model=BookingResponse, summary="Guest submits payment details")
async def submit_payment(
    booking_id: uuid.UUID,
    body: PaymentSubmission,
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return await service.submit_payment(
        booking_id, body.payment_method, body.payment_reference, body.payment_proof_url
    )


@router.post("/{booking_id}/confirm-payment", response_model=BookingResponse, summary="Admin confirms payment")
async def confirm_payment(
    booking_id: uuid.UUID,
    body: PaymentConfirmation,
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return await service.confirm_payment(booking_id, body.confirmed_by)


@router.post("/{booking_id}/reject-payment", response_model=BookingResponse, summary="Admin rejects payment")
async def reject_payment(
    booking_id: uuid.UUID,
    body: ReasonRequest,
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return await service.reject_payment(booking_id, body.reason)


@router.post("/{booking_id}/retry-payment", response_model=BookingResponse, summary="Reopen the payment window")
async def retry_payment(
    booking_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return await service.retry_payment(booking_id)


@router.post("/{booking_id}/cancel", response_model=BookingResponse, summary="Cancel a booking")
async def cancel_booking(
    booking_id: uuid.UUID,
    body: CancelRequest,
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return await service.cancel(booking_id, body.reason)


@router.post("/{booking_id}/complete", response_model=BookingResponse, summary="Mark a stay as completed")
async def complete_booking(
    booking_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return await service.complete(booking_id)


@router.post("/expire-overdue", response_model=SweepResponse, summary="Expire unpaid bookings past their deadline")
async def expire_overdue(
    service: BookingService = Depends(get_booking_service),
) -> SweepResult:
    return await service.expire_overdue()
