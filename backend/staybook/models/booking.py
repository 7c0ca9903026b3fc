"""Booking model — reservation of a property for a stay, from request to completion."""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    func,
    literal_column,
    text,
)
from sqlalchemy.dialects.postgresql import ExcludeConstraint
from sqlalchemy.orm import Mapped, mapped_column

from staybook.booking.status import ACTIVE_STATUSES, BookingStatus
from staybook.database import Base, UUIDPrimaryKeyMixin

_ACTIVE_STATUS_SQL = ", ".join(f"'{s.value}'" for s in sorted(ACTIVE_STATUSES, key=lambda s: s.value))


class Booking(UUIDPrimaryKeyMixin, Base):
    """A guest's reservation of a property over ``[check_in_date, check_out_date)``."""

    __tablename__ = "bookings"

    # Owned elsewhere; only the foreign keys live here.
    property_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    guest_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)

    check_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    check_out_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_nights: Mapped[int] = mapped_column(Integer, nullable=False)
    guests_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Money, in whole units of a zero-decimal currency.
    base_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cleaning_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    security_deposit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    service_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    taxes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    platform_commission: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    host_payout_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="XOF")

    status: Mapped[BookingStatus] = mapped_column(
        Enum(
            BookingStatus,
            name="booking_status",
            native_enum=False,
            length=32,
            values_callable=lambda statuses: [s.value for s in statuses],
            validate_strings=True,
        ),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Payment metadata, filled in as the booking moves through the payment flow.
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_proof_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_confirmed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("check_out_date > check_in_date", name="ck_bookings_date_order"),
        CheckConstraint("total_nights > 0", name="ck_bookings_total_nights"),
        CheckConstraint("guests_count > 0", name="ck_bookings_guests_count"),
        CheckConstraint(
            "base_price >= 0 AND cleaning_fee >= 0 AND security_deposit >= 0 AND service_fee >= 0 "
            "AND taxes >= 0 AND total_amount >= 0 AND platform_commission >= 0",
            name="ck_bookings_amounts_non_negative",
        ),
        Index("ix_bookings_check_in_date", "check_in_date"),
        Index(
            "ix_bookings_payment_expires_at",
            "payment_expires_at",
            postgresql_where=text("payment_expires_at IS NOT NULL"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, property_id={self.property_id}, guest_id={self.guest_id}, "
            f"status={self.status})>"
        )


# Authoritative double-booking guard: active bookings of one property may not
# overlap on [check_in_date, check_out_date).
BOOKINGS_NO_OVERLAP = "ex_bookings_active_no_overlap"

Booking.__table__.append_constraint(
    ExcludeConstraint(
        (Booking.__table__.c.property_id, "="),
        (
            func.daterange(
                Booking.__table__.c.check_in_date,
                Booking.__table__.c.check_out_date,
                literal_column("'[)'"),
            ),
            "&&",
        ),
        name=BOOKINGS_NO_OVERLAP,
        using="gist",
        where=text(f"status IN ({_ACTIVE_STATUS_SQL})"),
    )
)
