"""Booking event payload handed to notification sinks."""

import enum
import uuid
from datetime import date, datetime

from pydantic import BaseModel

from staybook.booking.status import BookingStatus


class BookingEventType(str, enum.Enum):
    CREATED = "created"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAYMENT_SUBMITTED = "payment_submitted"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_REJECTED = "payment_rejected"
    PAYMENT_REOPENED = "payment_reopened"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    EXPIRED = "expired"


class GuestContact(BaseModel):
    id: uuid.UUID
    name: str
    email: str | None = None
    phone: str | None = None


class PropertySummary(BaseModel):
    id: uuid.UUID
    title: str
    location: str | None = None


class BookingEvent(BaseModel):
    """Everything a delivery channel needs to tell guest and host what happened."""

    event: BookingEventType
    booking_id: uuid.UUID
    status: BookingStatus
    previous_status: BookingStatus | None = None
    guest: GuestContact | None = None
    property: PropertySummary | None = None
    check_in_date: date
    check_out_date: date
    guests_count: int
    total_amount: int
    currency: str
    payment_expires_at: datetime | None = None
    reason: str | None = None
    occurred_at: datetime
