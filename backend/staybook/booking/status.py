"""Booking status machine.

All transition legality lives in ``TRANSITIONS``. Cancellation is an escape
hatch available from every non-terminal status on top of the table.
"""

import enum

from staybook.booking.errors import InvalidTransition


class BookingStatus(str, enum.Enum):
    """Lifecycle status of a booking."""

    PENDING = "pending"
    AWAITING_PAYMENT = "awaiting_payment"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    PAYMENT_FAILED = "payment_failed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    EXPIRED = "expired"

    def __str__(self) -> str:
        return self.value


TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.AWAITING_PAYMENT, BookingStatus.CANCELLED}),
    BookingStatus.AWAITING_PAYMENT: frozenset(
        {BookingStatus.AWAITING_CONFIRMATION, BookingStatus.EXPIRED, BookingStatus.CANCELLED}
    ),
    BookingStatus.AWAITING_CONFIRMATION: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.PAYMENT_FAILED, BookingStatus.CANCELLED}
    ),
    BookingStatus.PAYMENT_FAILED: frozenset({BookingStatus.AWAITING_PAYMENT, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.EXPIRED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}

TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED})

# Statuses that hold the property's dates and count towards double-booking.
ACTIVE_STATUSES: frozenset[BookingStatus] = frozenset(
    {
        BookingStatus.PENDING,
        BookingStatus.AWAITING_PAYMENT,
        BookingStatus.AWAITING_CONFIRMATION,
        BookingStatus.CONFIRMED,
    }
)


def is_terminal(status: BookingStatus | str) -> bool:
    return BookingStatus(status) in TERMINAL_STATUSES


def is_active(status: BookingStatus | str) -> bool:
    return BookingStatus(status) in ACTIVE_STATUSES


def allowed_transitions(current: BookingStatus | str) -> frozenset[BookingStatus]:
    """Return every status reachable from ``current`` in one step."""
    current = BookingStatus(current)
    allowed = TRANSITIONS[current]
    if current not in TERMINAL_STATUSES:
        allowed = allowed | {BookingStatus.CANCELLED}
    return allowed


def can_transition(current: BookingStatus | str, target: BookingStatus | str) -> bool:
    return BookingStatus(target) in allowed_transitions(current)


def validate_transition(current: BookingStatus | str, target: BookingStatus | str) -> BookingStatus:
    """Return ``target`` as a ``BookingStatus`` or raise ``InvalidTransition``."""
    current = BookingStatus(current)
    target = BookingStatus(target)
    allowed = allowed_transitions(current)
    if target not in allowed:
        raise InvalidTransition(current, target, allowed)
    return target
