"""Domain errors raised by the booking engine.

Business-rule errors (``InvalidTransition``, ``Unavailable``,
``CapacityExceeded``, ``InvalidDateRange``) are deterministic and never
retried. ``ConcurrencyConflict`` and ``StoreUnavailable`` are transient; only
the expiration sweeper retries them automatically.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from datetime import date
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from staybook.booking.status import BookingStatus


class BookingError(Exception):
    """Base class for every booking engine error."""

    retryable: bool = False


class InvalidTransition(BookingError):
    """The requested status change is not allowed from the current status."""

    def __init__(
        self,
        current: BookingStatus | str,
        requested: BookingStatus | str,
        allowed: Iterable[BookingStatus | str],
        message: str | None = None,
    ) -> None:
        self.current = str(current)
        self.requested = str(requested)
        self.allowed = sorted(str(s) for s in allowed)
        if message is None:
            message = (
                f"Invalid status transition from '{self.current}' to '{self.requested}'. "
                f"Allowed transitions: {', '.join(self.allowed) or 'none'}"
            )
        super().__init__(message)


class PaymentDeadlinePassed(InvalidTransition):
    """Payment was submitted for a booking whose payment window has closed."""

    def __init__(self, booking_id: uuid.UUID, current: BookingStatus | str, requested: BookingStatus | str) -> None:
        self.booking_id = booking_id
        super().__init__(
            current,
            requested,
            [],
            message=f"Payment deadline for booking {booking_id} has passed",
        )


class Unavailable(BookingError):
    """The requested date range overlaps an active booking of the property."""

    def __init__(self, property_id: uuid.UUID, check_in: date, check_out: date, conflicts: Sequence[Any] = ()) -> None:
        self.property_id = property_id
        self.check_in = check_in
        self.check_out = check_out
        self.conflicts = list(conflicts)
        super().__init__(
            f"Property {property_id} is not available from {check_in.isoformat()} "
            f"to {check_out.isoformat()} ({len(self.conflicts)} conflicting booking(s))"
        )

    @property
    def conflicting_ranges(self) -> list[dict[str, str]]:
        """Conflicting bookings as ``{id, check_in_date, check_out_date}`` dicts."""
        return [
            {
                "id": str(b.id),
                "check_in_date": b.check_in_date.isoformat(),
                "check_out_date": b.check_out_date.isoformat(),
            }
            for b in self.conflicts
        ]


class NotFound(BookingError):
    """An operation referenced a booking that does not exist."""

    entity = "Booking"

    def __init__(self, entity_id: uuid.UUID) -> None:
        self.entity_id = entity_id
        super().__init__(f"{self.entity} {entity_id} not found")


class PropertyNotFound(NotFound):
    entity = "Property"


class GuestNotFound(NotFound):
    entity = "Guest"


class CapacityExceeded(BookingError):
    """Guest count exceeds the property's maximum capacity."""

    def __init__(self, requested: int, max_guests: int) -> None:
        self.requested = requested
        self.max_guests = max_guests
        super().__init__(f"Property accommodates at most {max_guests} guest(s), {requested} requested")


class InvalidDateRange(BookingError):
    """Check-out is not strictly after check-in."""

    def __init__(self, check_in: date, check_out: date) -> None:
        self.check_in = check_in
        self.check_out = check_out
        super().__init__(
            f"check_out ({check_out.isoformat()}) must be after check_in ({check_in.isoformat()})"
        )


class ConcurrencyConflict(BookingError):
    """A competing writer won the race on the same booking or date range."""

    retryable = True


class StoreUnavailable(BookingError):
    """Transient failure talking to the booking store."""

    retryable = True
