"""create_booking_lifecycle_tables

Revision ID: 7c41e0b9d2a3
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7c41e0b9d2a3'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BOOKING_STATUSES = (
    "pending",
    "awaiting_payment",
    "awaiting_confirmation",
    "payment_failed",
    "confirmed",
    "cancelled",
    "completed",
    "expired",
)


def upgrade() -> None:
    # Step 1: GiST support for UUID equality inside the exclusion constraint
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    # Step 2: Referenced entities (owned by the listing and account services)
    op.create_table(
        "properties",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("host_id", sa.UUID(), nullable=False, index=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("max_guests", sa.Integer(), nullable=False),
        sa.Column("price_per_night", sa.Integer(), nullable=False),
        sa.Column("cleaning_fee", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("security_deposit", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="XOF"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(50), server_default="active"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_table(
        "guests",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # Step 3: Bookings with the lifecycle, payment and audit columns
    op.create_table(
        "bookings",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("property_id", sa.UUID(), nullable=False, index=True),
        sa.Column("guest_id", sa.UUID(), nullable=False, index=True),
        sa.Column("check_in_date", sa.Date(), nullable=False, index=True),
        sa.Column("check_out_date", sa.Date(), nullable=False),
        sa.Column("total_nights", sa.Integer(), nullable=False),
        sa.Column("guests_count", sa.Integer(), nullable=False),
        sa.Column("base_price", sa.Integer(), nullable=False),
        sa.Column("cleaning_fee", sa.Integer(), nullable=False),
        sa.Column("security_deposit", sa.Integer(), nullable=False),
        sa.Column("service_fee", sa.Integer(), nullable=False),
        sa.Column("taxes", sa.Integer(), nullable=False),
        sa.Column("total_amount", sa.Integer(), nullable=False),
        sa.Column("platform_commission", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("host_payout_amount", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="XOF"),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending", index=True),
        sa.Column("special_requests", sa.Text(), nullable=True),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("payment_proof_url", sa.Text(), nullable=True),
        sa.Column("payment_confirmed_by", sa.String(255), nullable=True),
        sa.Column("payment_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("check_out_date > check_in_date", name="ck_bookings_date_order"),
        sa.CheckConstraint("total_nights > 0", name="ck_bookings_total_nights"),
        sa.CheckConstraint("guests_count > 0", name="ck_bookings_guests_count"),
        sa.CheckConstraint(
            "base_price >= 0 AND cleaning_fee >= 0 AND security_deposit >= 0 AND service_fee >= 0 "
            "AND taxes >= 0 AND total_amount >= 0 AND platform_commission >= 0",
            name="ck_bookings_amounts_non_negative",
        ),
        sa.CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in BOOKING_STATUSES) + ")",
            name="ck_bookings_status",
        ),
    )

    # Step 4: Sweeper lookup of unpaid bookings past their deadline
    op.create_index(
        "ix_bookings_payment_expires_at",
        "bookings",
        ["payment_expires_at"],
        postgresql_where=sa.text("payment_expires_at IS NOT NULL"),
    )

    # Step 5: No two active bookings of a property may overlap
    op.execute("""
        ALTER TABLE bookings
        ADD CONSTRAINT ex_bookings_active_no_overlap
        EXCLUDE USING gist (
            property_id WITH =,
            daterange(check_in_date, check_out_date, '[)') WITH &&
        )
        WHERE (status IN ('awaiting_confirmation', 'awaiting_payment', 'confirmed', 'pending'))
    """)


def downgrade() -> None:
    op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS ex_bookings_active_no_overlap")
    op.drop_index("ix_bookings_payment_expires_at", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("guests")
    op.drop_table("properties")
