"""Booking lifecycle service.

Every state change follows the same path: load the booking inside a store
transaction with the row locked, validate the transition against the status
table, apply the operation's own rules, commit, invalidate cached views, and
finally hand a notification to the sink in the background. Notification
failures are logged and never undo a committed change.
"""

import asyncio
import logging
import uuid
from collections import Counter
from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import TypeVar

from staybook.booking.availability import AvailabilityChecker, validate_date_range
from staybook.booking.cache import BookingCache
from staybook.booking.directory import PropertyDirectory
from staybook.booking.errors import (
    CapacityExceeded,
    GuestNotFound,
    InvalidTransition,
    NotFound,
    PaymentDeadlinePassed,
    PropertyNotFound,
    Unavailable,
)
from staybook.booking.notifications import LoggingNotifier, NotificationSink
from staybook.booking.pricing import (
    DEFAULT_COMMISSION_RATE,
    DEFAULT_CURRENCY,
    DEFAULT_SERVICE_FEE_RATE,
    DEFAULT_TAX_RATE,
    calculate_booking_pricing,
    split_commission,
)
from staybook.booking.status import BookingStatus, allowed_transitions, validate_transition
from staybook.booking.store import BookingStore
from staybook.booking.sweeper import ExpirationSweeper, SweepResult
from staybook.config import Settings
from staybook.models.booking import Booking
from staybook.schemas.booking import (
    AvailabilityResponse,
    BookingResponse,
    BookingStatsResponse,
    CalendarResponse,
    ConflictingBooking,
)
from staybook.schemas.notification import BookingEvent, BookingEventType, GuestContact, PropertySummary

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 20

T = TypeVar("T")
Clock = Callable[[], datetime]

# Field-level rules of one operation, run on the locked booking after the
# status check. Returning False from a ``prepare`` hook skips the write.
BookingRule = Callable[[Booking, datetime], bool | None]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LifecycleConfig:
    """Rates, deadlines and limits injected into the service at construction."""

    service_fee_rate: Decimal = DEFAULT_SERVICE_FEE_RATE
    tax_rate: Decimal = DEFAULT_TAX_RATE
    commission_rate: Decimal = DEFAULT_COMMISSION_RATE
    payment_deadline_hours: int = 2
    currency: str = DEFAULT_CURRENCY
    operation_timeout: float | None = None
    sweeper_batch_size: int = 100
    sweeper_max_attempts: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "LifecycleConfig":
        return cls(
            service_fee_rate=settings.service_fee_rate,
            tax_rate=settings.tax_rate,
            commission_rate=settings.commission_rate,
            payment_deadline_hours=settings.payment_deadline_hours,
            currency=settings.currency,
            operation_timeout=settings.operation_timeout_seconds,
            sweeper_batch_size=settings.sweeper_batch_size,
            sweeper_max_attempts=settings.sweeper_max_attempts,
        )


def _expected(sources: Collection[BookingStatus]) -> str:
    return " or ".join(f"'{s.value}'" for s in sorted(sources, key=lambda s: s.value))


class BookingService:
    """Orchestrates the booking lifecycle on top of a ``BookingStore``."""

    def __init__(
        self,
        store: BookingStore,
        directory: PropertyDirectory,
        notifier: NotificationSink | None = None,
        cache: BookingCache | None = None,
        clock: Clock = utcnow,
        config: LifecycleConfig | None = None,
    ) -> None:
        self._store = store
        self._directory = directory
        self._notifier = notifier or LoggingNotifier()
        self._cache = cache
        self._clock = clock
        self.config = config or LifecycleConfig()
        self.availability = AvailabilityChecker(store)
        self._notifications: set[asyncio.Task] = set()
        # Committed writes per property, so a slow availability read never
        # caches an answer that a newer write has already invalidated.
        self._property_writes: Counter[uuid.UUID] = Counter()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _bounded(self, operation: Awaitable[T], timeout: float | None) -> T:
        """Await ``operation`` under the caller's timeout, or the configured default.

        Expiry cancels the in-flight store call before it commits, so the
        booking keeps its prior state and ``TimeoutError`` reaches the caller.
        """
        if timeout is None:
            timeout = self.config.operation_timeout
        if timeout is None:
            return await operation
        async with asyncio.timeout(timeout):
            return await operation

    def _payment_window(self, booking: Booking, now: datetime) -> None:
        """Set commission split and a fresh payment deadline.

        Runs on every entry into ``awaiting_payment``, including the way back
        from ``payment_failed``.
        """
        split = split_commission(booking.total_amount, self.config.commission_rate)
        booking.platform_commission = split.platform_commission
        booking.host_payout_amount = split.host_payout
        booking.payment_expires_at = now + timedelta(hours=self.config.payment_deadline_hours)

    async def _transition(
        self,
        booking_id: uuid.UUID,
        target: BookingStatus,
        event: BookingEventType,
        *,
        operation: str,
        sources: Collection[BookingStatus] | None = None,
        prepare: BookingRule | None = None,
        apply: BookingRule | None = None,
        reason: str | None = None,
        timeout: float | None = None,
    ) -> Booking | None:
        now = self._clock()
        previous: list[BookingStatus] = []

        def mutate(booking: Booking) -> bool:
            current = BookingStatus(booking.status)
            if sources is not None and current not in sources:
                raise InvalidTransition(
                    current,
                    target,
                    allowed_transitions(current),
                    message=f"Cannot {operation}: booking status is '{current.value}', expected {_expected(sources)}",
                )
            if prepare is not None and prepare(booking, now) is False:
                return False
            validate_transition(booking.status, target)
            if apply is not None:
                apply(booking, now)
            previous.append(current)
            booking.status = target
            booking.updated_at = now
            return True

        booking = await self._bounded(self._store.update(booking_id, mutate), timeout)
        if not previous:
            return None

        logger.info("Booking %s: %s -> %s (%s)", booking_id, previous[0].value, target.value, operation)
        await self._invalidate(booking)
        self._notify(event, booking, previous_status=previous[0], reason=reason)
        return booking

    async def _invalidate(self, booking: Booking) -> None:
        if self._cache is not None:
            self._property_writes[booking.property_id] += 1
            await self._cache.invalidate(
                booking_id=booking.id,
                guest_id=booking.guest_id,
                property_id=booking.property_id,
            )

    def _notify(
        self,
        event: BookingEventType,
        booking: Booking,
        previous_status: BookingStatus | None = None,
        reason: str | None = None,
    ) -> None:
        task = asyncio.create_task(self._deliver(event, booking, previous_status, reason))
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

    async def _deliver(
        self,
        event: BookingEventType,
        booking: Booking,
        previous_status: BookingStatus | None,
        reason: str | None,
    ) -> None:
        try:
            guest = await self._directory.get_guest(booking.guest_id)
            prop = await self._directory.get_property(booking.property_id)
            payload = BookingEvent(
                event=event,
                booking_id=booking.id,
                status=booking.status,
                previous_status=previous_status,
                guest=GuestContact(id=guest.id, name=guest.name, email=guest.email, phone=guest.phone)
                if guest
                else None,
                property=PropertySummary(id=prop.id, title=prop.title, location=prop.location) if prop else None,
                check_in_date=booking.check_in_date,
                check_out_date=booking.check_out_date,
                guests_count=booking.guests_count,
                total_amount=booking.total_amount,
                currency=booking.currency,
                payment_expires_at=booking.payment_expires_at,
                reason=reason,
                occurred_at=self._clock(),
            )
            await self._notifier.send(payload)
        except Exception:
            logger.exception("Failed to deliver %s notification for booking %s", event.value, booking.id)

    async def drain_notifications(self) -> None:
        """Wait for in-flight notifications, e.g. on shutdown."""
        if self._notifications:
            await asyncio.gather(*list(self._notifications), return_exceptions=True)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self,
        property_id: uuid.UUID,
        guest_id: uuid.UUID,
        check_in: date,
        check_out: date,
        guests_count: int,
        special_requests: str | None = None,
        *,
        timeout: float | None = None,
    ) -> Booking:
        """Request a stay. The booking starts ``pending`` awaiting host approval.

        Raises ``Unavailable`` with the conflicting bookings when the dates
        are taken, whether the pre-flight check or the store caught it.
        """
        nights = validate_date_range(check_in, check_out)
        if guests_count <= 0:
            raise ValueError("guests_count must be positive")

        booking = await self._bounded(
            self._create(property_id, guest_id, check_in, check_out, nights, guests_count, special_requests),
            timeout,
        )
        logger.info(
            "Created booking %s for property %s (%s to %s, total=%s)",
            booking.id,
            property_id,
            check_in,
            check_out,
            booking.total_amount,
        )
        await self._invalidate(booking)
        self._notify(BookingEventType.CREATED, booking)
        return booking

    async def _create(
        self,
        property_id: uuid.UUID,
        guest_id: uuid.UUID,
        check_in: date,
        check_out: date,
        nights: int,
        guests_count: int,
        special_requests: str | None,
    ) -> Booking:
        prop = await self._directory.get_property(property_id)
        if prop is None:
            raise PropertyNotFound(property_id)
        if guests_count > prop.max_guests:
            raise CapacityExceeded(guests_count, prop.max_guests)
        if await self._directory.get_guest(guest_id) is None:
            raise GuestNotFound(guest_id)

        availability = await self.availability.check(property_id, check_in, check_out)
        if not availability.available:
            raise Unavailable(property_id, check_in, check_out, availability.conflicts)

        pricing = calculate_booking_pricing(
            prop.price_per_night,
            nights,
            cleaning_fee=prop.cleaning_fee,
            security_deposit=prop.security_deposit,
            service_fee_rate=self.config.service_fee_rate,
            tax_rate=self.config.tax_rate,
            currency=self.config.currency,
        )
        now = self._clock()
        booking = Booking(
            id=uuid.uuid4(),
            property_id=property_id,
            guest_id=guest_id,
            check_in_date=check_in,
            check_out_date=check_out,
            total_nights=nights,
            guests_count=guests_count,
            base_price=pricing.base_price,
            cleaning_fee=pricing.cleaning_fee,
            security_deposit=pricing.security_deposit,
            service_fee=pricing.service_fee,
            taxes=pricing.taxes,
            total_amount=pricing.total_amount,
            platform_commission=0,
            currency=pricing.currency,
            status=BookingStatus.PENDING,
            special_requests=special_requests,
            created_at=now,
            updated_at=now,
        )
        return await self._store.insert(booking)

    # ------------------------------------------------------------------
    # Host decision
    # ------------------------------------------------------------------

    async def approve(self, booking_id: uuid.UUID, *, timeout: float | None = None) -> Booking:
        """Host accepts the request; the guest now has a payment window."""
        return await self._transition(
            booking_id,
            BookingStatus.AWAITING_PAYMENT,
            BookingEventType.APPROVED,
            operation="approve booking",
            sources={BookingStatus.PENDING},
            apply=self._payment_window,
            timeout=timeout,
        )

    async def reject(self, booking_id: uuid.UUID, reason: str | None = None, *, timeout: float | None = None) -> Booking:
        """Host declines a pending request."""

        def record(booking: Booking, now: datetime) -> None:
            booking.cancellation_reason = reason
            booking.cancelled_at = now

        return await self._transition(
            booking_id,
            BookingStatus.CANCELLED,
            BookingEventType.REJECTED,
            operation="reject booking",
            sources={BookingStatus.PENDING},
            apply=record,
            reason=reason,
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    async def submit_payment(
        self,
        booking_id: uuid.UUID,
        payment_method: str,
        payment_reference: str,
        payment_proof_url: str | None = None,
        *,
        timeout: float | None = None,
    ) -> Booking:
        """Guest reports an offline payment; an admin must confirm it.

        Resubmitting after a rejected payment first reopens the payment
        window (``payment_failed -> awaiting_payment``) in the same
        transaction, so both hops go through the status table.
        """

        def reopen_or_check_deadline(booking: Booking, now: datetime) -> None:
            if booking.status == BookingStatus.PAYMENT_FAILED:
                booking.status = validate_transition(booking.status, BookingStatus.AWAITING_PAYMENT)
                self._payment_window(booking, now)
            elif booking.payment_expires_at is not None and booking.payment_expires_at < now:
                raise PaymentDeadlinePassed(booking.id, booking.status, BookingStatus.AWAITING_CONFIRMATION)

        def record(booking: Booking, now: datetime) -> None:
            booking.payment_method = payment_method
            booking.payment_reference = payment_reference
            if payment_proof_url:
                booking.payment_proof_url = payment_proof_url

        return await self._transition(
            booking_id,
            BookingStatus.AWAITING_CONFIRMATION,
            BookingEventType.PAYMENT_SUBMITTED,
            operation="mark payment as paid",
            sources={BookingStatus.AWAITING_PAYMENT, BookingStatus.PAYMENT_FAILED},
            prepare=reopen_or_check_deadline,
            apply=record,
            timeout=timeout,
        )

    async def confirm_payment(
        self, booking_id: uuid.UUID, confirmed_by: str, *, timeout: float | None = None
    ) -> Booking:
        """Admin confirms the payment was received; the stay is now confirmed."""

        def record(booking: Booking, now: datetime) -> None:
            booking.payment_confirmed_by = confirmed_by
            booking.payment_confirmed_at = now
            if booking.host_payout_amount is None:
                split = split_commission(booking.total_amount, self.config.commission_rate)
                booking.platform_commission = split.platform_commission
                booking.host_payout_amount = split.host_payout

        return await self._transition(
            booking_id,
            BookingStatus.CONFIRMED,
            BookingEventType.PAYMENT_CONFIRMED,
            operation="confirm payment",
            sources={BookingStatus.AWAITING_CONFIRMATION},
            apply=record,
            timeout=timeout,
        )

    async def reject_payment(
        self, booking_id: uuid.UUID, reason: str | None = None, *, timeout: float | None = None
    ) -> Booking:
        """Admin could not match the reported payment."""
        return await self._transition(
            booking_id,
            BookingStatus.PAYMENT_FAILED,
            BookingEventType.PAYMENT_REJECTED,
            operation="reject payment",
            sources={BookingStatus.AWAITING_CONFIRMATION},
            reason=reason,
            timeout=timeout,
        )

    async def retry_payment(self, booking_id: uuid.UUID, *, timeout: float | None = None) -> Booking:
        """Reopen the payment window after a rejected payment, with a new deadline."""
        return await self._transition(
            booking_id,
            BookingStatus.AWAITING_PAYMENT,
            BookingEventType.PAYMENT_REOPENED,
            operation="reopen payment",
            sources={BookingStatus.PAYMENT_FAILED},
            apply=self._payment_window,
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # Cancellation, completion, expiry
    # ------------------------------------------------------------------

    async def cancel(self, booking_id: uuid.UUID, reason: str, *, timeout: float | None = None) -> Booking:
        """Cancel from any non-terminal status."""

        def record(booking: Booking, now: datetime) -> None:
            booking.cancellation_reason = reason
            booking.cancelled_at = now

        return await self._transition(
            booking_id,
            BookingStatus.CANCELLED,
            BookingEventType.CANCELLED,
            operation="cancel booking",
            apply=record,
            reason=reason,
            timeout=timeout,
        )

    async def complete(self, booking_id: uuid.UUID, *, timeout: float | None = None) -> Booking:
        """Close a confirmed booking once the guest has checked out."""

        def stay_over(booking: Booking, now: datetime) -> None:
            if booking.check_out_date > now.date():
                raise InvalidTransition(
                    booking.status,
                    BookingStatus.COMPLETED,
                    allowed_transitions(booking.status),
                    message=f"Cannot complete booking {booking.id} before check-out on "
                    f"{booking.check_out_date.isoformat()}",
                )

        return await self._transition(
            booking_id,
            BookingStatus.COMPLETED,
            BookingEventType.COMPLETED,
            operation="complete booking",
            sources={BookingStatus.CONFIRMED},
            prepare=stay_over,
            timeout=timeout,
        )

    async def expire(self, booking_id: uuid.UUID, *, timeout: float | None = None) -> Booking | None:
        """Expire one booking whose payment deadline has passed.

        Returns ``None`` when the booking no longer qualifies (already
        expired, paid meanwhile, or deadline moved), so repeated sweeps are
        harmless.
        """

        def overdue(booking: Booking, now: datetime) -> bool:
            return (
                booking.status == BookingStatus.AWAITING_PAYMENT
                and booking.payment_expires_at is not None
                and booking.payment_expires_at < now
            )

        def record(booking: Booking, now: datetime) -> None:
            booking.cancelled_at = now

        return await self._transition(
            booking_id,
            BookingStatus.EXPIRED,
            BookingEventType.EXPIRED,
            operation="expire booking",
            prepare=overdue,
            apply=record,
            reason="Payment deadline passed",
            timeout=timeout,
        )

    async def expire_overdue(self) -> SweepResult:
        """Expire every booking whose payment window has closed."""
        sweeper = ExpirationSweeper(
            self,
            self._store,
            clock=self._clock,
            batch_size=self.config.sweeper_batch_size,
            max_attempts=self.config.sweeper_max_attempts,
        )
        return await sweeper.run_once()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, booking_id: uuid.UUID, *, timeout: float | None = None) -> BookingResponse:
        if self._cache is not None:
            cached = await self._cache.get_booking(booking_id)
            if cached is not None:
                return cached

        booking = await self._bounded(self._store.get(booking_id), timeout)
        if booking is None:
            raise NotFound(booking_id)
        view = BookingResponse.model_validate(booking)
        if self._cache is not None:
            await self._cache.set_booking(view)
        return view

    async def list_for_guest(self, guest_id: uuid.UUID, limit: int = DEFAULT_LIST_LIMIT) -> list[BookingResponse]:
        cacheable = self._cache is not None and limit == DEFAULT_LIST_LIMIT
        if cacheable:
            cached = await self._cache.get_guest_bookings(guest_id)
            if cached is not None:
                return cached

        bookings = await self._bounded(self._store.list_by_guest(guest_id, limit), None)
        views = [BookingResponse.model_validate(b) for b in bookings]
        if cacheable:
            await self._cache.set_guest_bookings(guest_id, views)
        return views

    async def list_for_property(
        self, property_id: uuid.UUID, limit: int = DEFAULT_LIST_LIMIT
    ) -> list[BookingResponse]:
        cacheable = self._cache is not None and limit == DEFAULT_LIST_LIMIT
        if cacheable:
            cached = await self._cache.get_property_bookings(property_id)
            if cached is not None:
                return cached

        bookings = await self._bounded(self._store.list_by_property(property_id, limit), None)
        views = [BookingResponse.model_validate(b) for b in bookings]
        if cacheable:
            await self._cache.set_property_bookings(property_id, views)
        return views

    async def check_availability(
        self, property_id: uuid.UUID, check_in: date, check_out: date
    ) -> AvailabilityResponse:
        """User-facing availability answer. Advisory; may be served from cache."""
        validate_date_range(check_in, check_out)
        if self._cache is not None:
            cached = await self._cache.get_availability(property_id, check_in, check_out)
            if cached is not None:
                return cached
        writes = self._property_writes[property_id]

        result = await self._bounded(self.availability.check(property_id, check_in, check_out), None)
        answer = AvailabilityResponse(
            property_id=property_id,
            check_in_date=check_in,
            check_out_date=check_out,
            available=result.available,
            conflicts=[ConflictingBooking.model_validate(b) for b in result.conflicts],
        )
        # Writes from other processes can still race this set; the entry is advisory and bounded by its TTL.
        if self._cache is not None and self._property_writes[property_id] == writes:
            await self._cache.set_availability(answer)
        return answer

    async def calendar(self, property_id: uuid.UUID, start: date, end: date) -> CalendarResponse:
        blocked = await self._bounded(self.availability.blocked_dates(property_id, start, end), None)
        return CalendarResponse(property_id=property_id, start=start, end=end, blocked_dates=blocked)

    async def stats(
        self, property_id: uuid.UUID | None = None, guest_id: uuid.UUID | None = None
    ) -> BookingStatsResponse:
        """Counts per status plus revenue from confirmed and completed bookings."""
        summary = await self._bounded(self._store.status_summary(property_id, guest_id), None)
        by_status = {status: 0 for status in BookingStatus}
        revenue = 0
        for row in summary:
            by_status[row.status] = row.count
            if row.status in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED):
                revenue += row.total_amount
        return BookingStatsResponse(total=sum(by_status.values()), by_status=by_status, total_revenue=revenue)
