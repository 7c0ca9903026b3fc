"""In-process ``BookingStore`` for local development and tests.

Mirrors the PostgreSQL guarantees with asyncio locks: inserts are serialized
so the no-overlap scan and the write are atomic, and each booking has its own
lock for read-mutate-write updates. Bookings are handed out as copies so
callers can never mutate stored state outside ``update``.
"""

import asyncio
import copy
import uuid
from collections import defaultdict
from collections.abc import Collection
from datetime import date, datetime, timezone

from staybook.booking.availability import ranges_conflict
from staybook.booking.errors import NotFound, Unavailable
from staybook.booking.status import ACTIVE_STATUSES, BookingStatus
from staybook.booking.store import BookingMutation, BookingStore, StatusSummary
from staybook.models.booking import Booking

_COPIED_FIELDS = [column.key for column in Booking.__table__.columns]


def _clone(booking: Booking) -> Booking:
    return Booking(**{field: copy.copy(getattr(booking, field)) for field in _COPIED_FIELDS})


def _newest_first(bookings: list[Booking]) -> list[Booking]:
    return sorted(bookings, key=lambda b: b.created_at, reverse=True)


class InMemoryBookingStore(BookingStore):
    """Dictionary-backed store enforcing the same invariants as the SQL schema."""

    def __init__(self) -> None:
        self._bookings: dict[uuid.UUID, Booking] = {}
        self._write_lock = asyncio.Lock()
        self._row_locks: defaultdict[uuid.UUID, asyncio.Lock] = defaultdict(asyncio.Lock)

    def __len__(self) -> int:
        return len(self._bookings)

    async def get(self, booking_id: uuid.UUID) -> Booking | None:
        booking = self._bookings.get(booking_id)
        return _clone(booking) if booking is not None else None

    async def list_by_guest(self, guest_id: uuid.UUID, limit: int = 20) -> list[Booking]:
        matches = [b for b in self._bookings.values() if b.guest_id == guest_id]
        return [_clone(b) for b in _newest_first(matches)[:limit]]

    async def list_by_property(self, property_id: uuid.UUID, limit: int = 20) -> list[Booking]:
        matches = [b for b in self._bookings.values() if b.property_id == property_id]
        return [_clone(b) for b in _newest_first(matches)[:limit]]

    def _conflicts(
        self,
        property_id: uuid.UUID,
        check_in: date,
        check_out: date,
        exclude_booking_id: uuid.UUID | None = None,
    ) -> list[Booking]:
        return sorted(
            (
                b
                for b in self._bookings.values()
                if b.property_id == property_id
                and b.id != exclude_booking_id
                and b.status in ACTIVE_STATUSES
                and ranges_conflict(b.check_in_date, b.check_out_date, check_in, check_out)
            ),
            key=lambda b: b.check_in_date,
        )

    async def find_conflicts(
        self,
        property_id: uuid.UUID,
        check_in: date,
        check_out: date,
        exclude_booking_id: uuid.UUID | None = None,
    ) -> list[Booking]:
        return [_clone(b) for b in self._conflicts(property_id, check_in, check_out, exclude_booking_id)]

    async def insert(self, booking: Booking) -> Booking:
        async with self._write_lock:
            # Yield once so concurrent inserts interleave the way they would
            # against a real database round trip.
            await asyncio.sleep(0)
            if booking.id is None:
                booking.id = uuid.uuid4()
            if booking.status in ACTIVE_STATUSES:
                conflicts = self._conflicts(booking.property_id, booking.check_in_date, booking.check_out_date)
                if conflicts:
                    raise Unavailable(
                        booking.property_id,
                        booking.check_in_date,
                        booking.check_out_date,
                        [_clone(b) for b in conflicts],
                    )
            now = datetime.now(timezone.utc)
            if booking.created_at is None:
                booking.created_at = now
            if booking.updated_at is None:
                booking.updated_at = now
            booking.version = 1
            self._bookings[booking.id] = _clone(booking)
            return _clone(booking)

    async def update(self, booking_id: uuid.UUID, mutate: BookingMutation) -> Booking:
        async with self._row_locks[booking_id]:
            await asyncio.sleep(0)
            stored = self._bookings.get(booking_id)
            if stored is None:
                raise NotFound(booking_id)
            working = _clone(stored)
            if mutate(working) is False:
                return working

            async with self._write_lock:
                # A status change back into the active set must not overlap anyone.
                if working.status in ACTIVE_STATUSES and stored.status not in ACTIVE_STATUSES:
                    conflicts = self._conflicts(
                        working.property_id, working.check_in_date, working.check_out_date, working.id
                    )
                    if conflicts:
                        raise Unavailable(
                            working.property_id,
                            working.check_in_date,
                            working.check_out_date,
                            [_clone(b) for b in conflicts],
                        )
                working.version = stored.version + 1
                self._bookings[booking_id] = working
            return _clone(working)

    async def find_overdue(
        self, now: datetime, limit: int = 100, exclude: Collection[uuid.UUID] = ()
    ) -> list[uuid.UUID]:
        overdue = sorted(
            (
                b
                for b in self._bookings.values()
                if b.status == BookingStatus.AWAITING_PAYMENT
                and b.payment_expires_at is not None
                and b.payment_expires_at < now
                and b.id not in exclude
            ),
            key=lambda b: (b.payment_expires_at, str(b.id)),
        )
        return [b.id for b in overdue[:limit]]

    async def status_summary(
        self,
        property_id: uuid.UUID | None = None,
        guest_id: uuid.UUID | None = None,
    ) -> list[StatusSummary]:
        counts: dict[BookingStatus, list[int]] = {}
        for b in self._bookings.values():
            if property_id is not None and b.property_id != property_id:
                continue
            if guest_id is not None and b.guest_id != guest_id:
                continue
            entry = counts.setdefault(BookingStatus(b.status), [0, 0])
            entry[0] += 1
            entry[1] += b.total_amount
        return [StatusSummary(status=s, count=c, total_amount=a) for s, (c, a) in counts.items()]
