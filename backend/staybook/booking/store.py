"""Booking persistence.

``BookingStore`` is the contract the lifecycle service talks to.
``SQLBookingStore`` backs it with PostgreSQL: every update runs as one
transaction with the booking row locked, and the ``bookings`` exclusion
constraint is the single source of truth for the no-overlap invariant.
"""

import abc
import logging
import uuid
from collections.abc import AsyncIterator, Callable, Collection
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from staybook.booking.errors import ConcurrencyConflict, NotFound, StoreUnavailable, Unavailable
from staybook.booking.status import ACTIVE_STATUSES, BookingStatus
from staybook.models.booking import BOOKINGS_NO_OVERLAP, Booking

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available
_CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}
_EXCLUSION_VIOLATION = "23P01"

# Mutation callback for ``BookingStore.update``. Returning False means "nothing
# to write"; raising aborts the transaction.
BookingMutation = Callable[[Booking], bool | None]


@dataclass(frozen=True)
class StatusSummary:
    """Booking count and summed total amount for one status."""

    status: BookingStatus
    count: int
    total_amount: int


class BookingStore(abc.ABC):
    """Persistence contract for booking records."""

    @abc.abstractmethod
    async def get(self, booking_id: uuid.UUID) -> Booking | None:
        """Return the booking or ``None``."""

    @abc.abstractmethod
    async def list_by_guest(self, guest_id: uuid.UUID, limit: int = 20) -> list[Booking]:
        """Most recent bookings of a guest, newest first."""

    @abc.abstractmethod
    async def list_by_property(self, property_id: uuid.UUID, limit: int = 20) -> list[Booking]:
        """Most recent bookings of a property, newest first."""

    @abc.abstractmethod
    async def find_conflicts(
        self,
        property_id: uuid.UUID,
        check_in: date,
        check_out: date,
        exclude_booking_id: uuid.UUID | None = None,
    ) -> list[Booking]:
        """Active bookings of ``property_id`` overlapping ``[check_in, check_out)``."""

    @abc.abstractmethod
    async def insert(self, booking: Booking) -> Booking:
        """Persist a new booking.

        Raises ``Unavailable`` when an active booking of the same property
        overlaps the new one.
        """

    @abc.abstractmethod
    async def update(self, booking_id: uuid.UUID, mutate: BookingMutation) -> Booking:
        """Load, mutate and persist one booking atomically.

        ``mutate`` runs against the locked current state. Raises ``NotFound``
        for unknown ids and ``ConcurrencyConflict`` when a competing writer
        got there first.
        """

    @abc.abstractmethod
    async def find_overdue(
        self, now: datetime, limit: int = 100, exclude: Collection[uuid.UUID] = ()
    ) -> list[uuid.UUID]:
        """Ids of ``awaiting_payment`` bookings whose payment deadline is before ``now``.

        Ordered by deadline. Ids in ``exclude`` never take up a slot of ``limit``.
        """

    @abc.abstractmethod
    async def status_summary(
        self,
        property_id: uuid.UUID | None = None,
        guest_id: uuid.UUID | None = None,
    ) -> list[StatusSummary]:
        """Per-status counts and amounts, optionally filtered."""


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


class SQLBookingStore(BookingStore):
    """``BookingStore`` on PostgreSQL via SQLAlchemy's async ORM."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Open a session and translate driver failures into domain errors."""
        try:
            async with self._session_factory() as session:
                yield session
        except StaleDataError as exc:
            raise ConcurrencyConflict("Booking was modified by a concurrent request") from exc
        except IntegrityError:
            raise
        except (OperationalError, InterfaceError) as exc:
            if _sqlstate(exc) in _CONFLICT_SQLSTATES:
                raise ConcurrencyConflict("Booking is locked by a concurrent request") from exc
            raise StoreUnavailable(f"Booking store unavailable: {exc.orig}") from exc
        except DBAPIError as exc:
            if _sqlstate(exc) in _CONFLICT_SQLSTATES:
                raise ConcurrencyConflict("Booking is locked by a concurrent request") from exc
            if exc.connection_invalidated:
                raise StoreUnavailable(f"Booking store connection lost: {exc.orig}") from exc
            raise
        except OSError as exc:
            raise StoreUnavailable(f"Booking store unreachable: {exc}") from exc

    async def get(self, booking_id: uuid.UUID) -> Booking | None:
        async with self._session() as session:
            return await session.get(Booking, booking_id)

    async def list_by_guest(self, guest_id: uuid.UUID, limit: int = 20) -> list[Booking]:
        async with self._session() as session:
            result = await session.execute(
                select(Booking).where(Booking.guest_id == guest_id).order_by(Booking.created_at.desc()).limit(limit)
            )
            return list(result.scalars().all())

    async def list_by_property(self, property_id: uuid.UUID, limit: int = 20) -> list[Booking]:
        async with self._session() as session:
            result = await session.execute(
                select(Booking)
                .where(Booking.property_id == property_id)
                .order_by(Booking.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def find_conflicts(
        self,
        property_id: uuid.UUID,
        check_in: date,
        check_out: date,
        exclude_booking_id: uuid.UUID | None = None,
    ) -> list[Booking]:
        async with self._session() as session:
            return await self._conflicts(session, property_id, check_in, check_out, exclude_booking_id)

    @staticmethod
    async def _conflicts(
        session: AsyncSession,
        property_id: uuid.UUID,
        check_in: date,
        check_out: date,
        exclude_booking_id: uuid.UUID | None,
    ) -> list[Booking]:
        query = select(Booking).where(
            Booking.property_id == property_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.check_in_date < check_out,
            Booking.check_out_date > check_in,
        )
        if exclude_booking_id is not None:
            query = query.where(Booking.id != exclude_booking_id)
        result = await session.execute(query.order_by(Booking.check_in_date))
        return list(result.scalars().all())

    async def insert(self, booking: Booking) -> Booking:
        try:
            async with self._session() as session:
                async with session.begin():
                    session.add(booking)
                return booking
        except IntegrityError as exc:
            if not self._is_overlap_violation(exc):
                raise
            await self._raise_unavailable(
                booking.property_id, booking.check_in_date, booking.check_out_date, exc, exclude_booking_id=booking.id
            )

    @staticmethod
    def _is_overlap_violation(exc: IntegrityError) -> bool:
        return _sqlstate(exc) == _EXCLUSION_VIOLATION or BOOKINGS_NO_OVERLAP in str(exc.orig)

    async def _raise_unavailable(
        self,
        property_id: uuid.UUID,
        check_in: date,
        check_out: date,
        exc: IntegrityError,
        exclude_booking_id: uuid.UUID | None = None,
    ) -> None:
        logger.info(
            "Exclusion constraint rejected booking for property %s (%s to %s)",
            property_id,
            check_in,
            check_out,
        )
        conflicts = await self.find_conflicts(property_id, check_in, check_out, exclude_booking_id)
        if not conflicts:
            # The winner left the active set before we could read it.
            raise ConcurrencyConflict("Dates were taken by a concurrent booking, retry") from exc
        raise Unavailable(property_id, check_in, check_out, conflicts) from exc

    async def update(self, booking_id: uuid.UUID, mutate: BookingMutation) -> Booking:
        stay = None
        try:
            async with self._session() as session:
                async with session.begin():
                    result = await session.execute(
                        select(Booking).where(Booking.id == booking_id).with_for_update()
                    )
                    booking = result.scalar_one_or_none()
                    if booking is None:
                        raise NotFound(booking_id)
                    if mutate(booking) is False:
                        return booking
                    stay = (booking.property_id, booking.check_in_date, booking.check_out_date)
                return booking
        except IntegrityError as exc:
            # payment_failed -> awaiting_payment re-enters the active set and
            # can collide with a booking made while the dates were free.
            if stay is None or not self._is_overlap_violation(exc):
                raise
            await self._raise_unavailable(*stay, exc, exclude_booking_id=booking_id)

    async def find_overdue(
        self, now: datetime, limit: int = 100, exclude: Collection[uuid.UUID] = ()
    ) -> list[uuid.UUID]:
        query = select(Booking.id).where(
            Booking.status == BookingStatus.AWAITING_PAYMENT,
            Booking.payment_expires_at.is_not(None),
            Booking.payment_expires_at < now,
        )
        if exclude:
            query = query.where(Booking.id.not_in(list(exclude)))

        async with self._session() as session:
            result = await session.execute(query.order_by(Booking.payment_expires_at, Booking.id).limit(limit))
            return list(result.scalars().all())

    async def status_summary(
        self,
        property_id: uuid.UUID | None = None,
        guest_id: uuid.UUID | None = None,
    ) -> list[StatusSummary]:
        query = select(Booking.status, func.count(), func.coalesce(func.sum(Booking.total_amount), 0)).group_by(
            Booking.status
        )
        if property_id is not None:
            query = query.where(Booking.property_id == property_id)
        if guest_id is not None:
            query = query.where(Booking.guest_id == guest_id)

        async with self._session() as session:
            result = await session.execute(query)
            return [
                StatusSummary(status=BookingStatus(status), count=count, total_amount=int(amount))
                for status, count, amount in result.all()
            ]
