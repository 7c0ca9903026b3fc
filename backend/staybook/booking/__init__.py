"""Booking lifecycle engine: status machine, pricing, availability and storage.

The HTTP layer and the lifecycle service build on the pieces exported here.
"""

from staybook.booking.errors import (
    BookingError,
    CapacityExceeded,
    ConcurrencyConflict,
    GuestNotFound,
    InvalidDateRange,
    InvalidTransition,
    NotFound,
    PaymentDeadlinePassed,
    PropertyNotFound,
    StoreUnavailable,
    Unavailable,
)
from staybook.booking.status import ACTIVE_STATUSES, TERMINAL_STATUSES, BookingStatus

__all__ = [
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "BookingError",
    "BookingStatus",
    "CapacityExceeded",
    "ConcurrencyConflict",
    "GuestNotFound",
    "InvalidDateRange",
    "InvalidTransition",
    "NotFound",
    "PaymentDeadlinePassed",
    "PropertyNotFound",
    "StoreUnavailable",
    "Unavailable",
]
