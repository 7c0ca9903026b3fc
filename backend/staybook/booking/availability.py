"""Availability checks for a property over a half-open stay range.

The checker gives callers a fast "not available" answer before a write is
attempted. It does not guarantee the write will succeed: the store's
exclusion constraint has the final word.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING

from staybook.booking.errors import InvalidDateRange

if TYPE_CHECKING:
    from staybook.booking.store import BookingStore
    from staybook.models.booking import Booking


def ranges_conflict(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """True when ``[a_start, a_end)`` and ``[b_start, b_end)`` share at least one night."""
    return a_start < b_end and b_start < a_end


def validate_date_range(check_in: date, check_out: date) -> int:
    """Return the number of nights, raising ``InvalidDateRange`` if there are none."""
    if check_out <= check_in:
        raise InvalidDateRange(check_in, check_out)
    return (check_out - check_in).days


@dataclass
class AvailabilityResult:
    """Outcome of an availability check."""

    available: bool
    conflicts: list[Booking] = field(default_factory=list)


class AvailabilityChecker:
    """Reports active bookings that overlap a requested stay."""

    def __init__(self, store: BookingStore) -> None:
        self._store = store

    async def check(
        self,
        property_id: uuid.UUID,
        check_in: date,
        check_out: date,
        exclude_booking_id: uuid.UUID | None = None,
    ) -> AvailabilityResult:
        validate_date_range(check_in, check_out)
        conflicts = await self._store.find_conflicts(property_id, check_in, check_out, exclude_booking_id)
        return AvailabilityResult(available=not conflicts, conflicts=conflicts)

    async def blocked_dates(self, property_id: uuid.UUID, start: date, end: date) -> list[date]:
        """Nights in ``[start, end)`` already held by an active booking, in order."""
        validate_date_range(start, end)
        conflicts = await self._store.find_conflicts(property_id, start, end)
        blocked: set[date] = set()
        for booking in conflicts:
            night = max(booking.check_in_date, start)
            last = min(booking.check_out_date, end)
            while night < last:
                blocked.add(night)
                night += timedelta(days=1)
        return sorted(blocked)
