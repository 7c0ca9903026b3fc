"""Pydantic v2 request/response schemas for booking endpoints."""

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from staybook.booking.status import BookingStatus

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    """Schema for requesting a new booking."""

    property_id: uuid.UUID
    guest_id: uuid.UUID
    check_in_date: date
    check_out_date: date
    guests_count: int = Field(1, ge=1)
    special_requests: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def check_dates(self) -> "BookingCreate":
        """Validate that check_out_date is strictly after check_in_date."""
        if self.check_out_date <= self.check_in_date:
            raise ValueError("check_out_date must be after check_in_date")
        return self


class ReasonRequest(BaseModel):
    """Body for reject / cancel / reject-payment operations."""

    reason: str | None = Field(None, max_length=1000)


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class PaymentSubmission(BaseModel):
    """Guest-submitted proof of an offline payment."""

    payment_method: str = Field(..., min_length=1, max_length=50)  # mtn_momo, moov_momo, bank_transfer
    payment_reference: str = Field(..., min_length=1, max_length=255)
    payment_proof_url: str | None = None


class PaymentConfirmation(BaseModel):
    confirmed_by: str = Field(..., min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BookingResponse(BaseModel):
    """Full booking record returned from lifecycle operations."""

    id: uuid.UUID
    property_id: uuid.UUID
    guest_id: uuid.UUID
    check_in_date: date
    check_out_date: date
    total_nights: int
    guests_count: int
    base_price: int
    cleaning_fee: int
    security_deposit: int
    service_fee: int
    taxes: int
    total_amount: int
    platform_commission: int
    host_payout_amount: int | None = None
    currency: str
    status: BookingStatus
    special_requests: str | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    payment_proof_url: str | None = None
    payment_confirmed_by: str | None = None
    payment_confirmed_at: datetime | None = None
    payment_expires_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingListResponse(BaseModel):
    """List of bookings for a guest or property."""

    items: list[BookingResponse]
    total: int


class ConflictingBooking(BaseModel):
    id: uuid.UUID
    check_in_date: date
    check_out_date: date
    status: BookingStatus

    model_config = ConfigDict(from_attributes=True)


class AvailabilityResponse(BaseModel):
    """Result of an availability check for a property and stay range."""

    property_id: uuid.UUID
    check_in_date: date
    check_out_date: date
    available: bool
    conflicts: list[ConflictingBooking] = []


class CalendarResponse(BaseModel):
    property_id: uuid.UUID
    start: date
    end: date
    blocked_dates: list[date]


class BookingStatsResponse(BaseModel):
    """Counts per status and revenue from confirmed and completed bookings."""

    total: int
    by_status: dict[BookingStatus, int]
    total_revenue: int


class SweepResponse(BaseModel):
    expired: int
    failed: int
    skipped: int
