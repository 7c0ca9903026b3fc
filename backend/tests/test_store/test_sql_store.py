"""Tests for the PostgreSQL booking store.

Runs against the `staybook_test` database on the configured PostgreSQL
instance (tables are created and dropped per test) and is skipped when the
database cannot be reached.
"""

import asyncio
import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from staybook.booking.errors import NotFound, Unavailable
from staybook.booking.status import BookingStatus
from staybook.booking.store import SQLBookingStore
from staybook.config import settings
from staybook.database import Base
from staybook.models.booking import Booking

pytestmark = pytest.mark.asyncio

_test_db_url = settings.async_database_url.rsplit("/", 1)[0] + "/staybook_test"

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(_test_db_url, pool_pre_ping=True)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
    except Exception as exc:  # asyncpg raises its own error types for a missing database
        await engine.dispose()
        pytest.skip(f"staybook_test database unavailable: {exc}")

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> SQLBookingStore:
    return SQLBookingStore(session_factory)


def _booking(property_id: uuid.UUID, start: int, end: int, **overrides) -> Booking:
    fields = dict(
        id=uuid.uuid4(),
        property_id=property_id,
        guest_id=uuid.uuid4(),
        check_in_date=date(2026, 6, start),
        check_out_date=date(2026, 6, end),
        total_nights=end - start,
        guests_count=2,
        base_price=10_000,
        cleaning_fee=0,
        security_deposit=0,
        service_fee=0,
        taxes=0,
        total_amount=10_000,
        platform_commission=0,
        currency="XOF",
        status=BookingStatus.PENDING,
        created_at=NOW,
        updated_at=NOW,
    )
    fields.update(overrides)
    return Booking(**fields)


class TestExclusionConstraint:
    async def test_overlap_is_rejected_with_conflicts(self, store):
        property_id = uuid.uuid4()
        first = await store.insert(_booking(property_id, 1, 5))

        with pytest.raises(Unavailable) as exc_info:
            await store.insert(_booking(property_id, 3, 7))

        assert [b.id for b in exc_info.value.conflicts] == [first.id]

    async def test_adjacent_and_inactive_bookings_coexist(self, store):
        property_id = uuid.uuid4()
        await store.insert(_booking(property_id, 1, 5))
        await store.insert(_booking(property_id, 5, 8))
        await store.insert(_booking(property_id, 2, 4, status=BookingStatus.CANCELLED))

        assert len(await store.list_by_property(property_id)) == 3

    async def test_concurrent_inserts_admit_exactly_one(self, store):
        property_id = uuid.uuid4()

        results = await asyncio.gather(
            *(store.insert(_booking(property_id, 10, 13)) for _ in range(4)),
            return_exceptions=True,
        )

        assert sum(isinstance(r, Booking) for r in results) == 1
        assert len(await store.find_conflicts(property_id, date(2026, 6, 1), date(2026, 6, 30))) == 1


class TestUpdate:
    async def test_update_locks_mutates_and_bumps_version(self, store):
        booking = await store.insert(_booking(uuid.uuid4(), 1, 4))

        def approve(b: Booking) -> None:
            b.status = BookingStatus.AWAITING_PAYMENT
            b.payment_expires_at = NOW + timedelta(hours=2)

        updated = await store.update(booking.id, approve)

        assert updated.status == BookingStatus.AWAITING_PAYMENT
        assert updated.version == 2
        assert (await store.get(booking.id)).payment_expires_at == NOW + timedelta(hours=2)

    async def test_update_unknown(self, store):
        with pytest.raises(NotFound):
            await store.update(uuid.uuid4(), lambda b: None)

    async def test_reactivation_collision_is_unavailable(self, store):
        property_id = uuid.uuid4()
        failed = await store.insert(_booking(property_id, 1, 5, status=BookingStatus.PAYMENT_FAILED))
        await store.insert(_booking(property_id, 2, 4))

        def reopen(b: Booking) -> None:
            b.status = BookingStatus.AWAITING_PAYMENT

        with pytest.raises(Unavailable):
            await store.update(failed.id, reopen)
        assert (await store.get(failed.id)).status == BookingStatus.PAYMENT_FAILED


class TestQueries:
    async def test_find_overdue(self, store):
        property_id = uuid.uuid4()
        late = await store.insert(
            _booking(
                property_id, 1, 3, status=BookingStatus.AWAITING_PAYMENT, payment_expires_at=NOW - timedelta(minutes=5)
            )
        )
        await store.insert(
            _booking(
                property_id, 4, 6, status=BookingStatus.AWAITING_PAYMENT, payment_expires_at=NOW + timedelta(minutes=5)
            )
        )

        assert await store.find_overdue(NOW) == [late.id]

    async def test_find_overdue_excludes_ids(self, store):
        property_id = uuid.uuid4()
        older, newer = [
            await store.insert(
                _booking(
                    property_id,
                    start,
                    start + 2,
                    status=BookingStatus.AWAITING_PAYMENT,
                    payment_expires_at=NOW - timedelta(hours=hours),
                )
            )
            for start, hours in ((1, 2), (4, 1))
        ]

        assert await store.find_overdue(NOW, limit=1) == [older.id]
        assert await store.find_overdue(NOW, limit=1, exclude={older.id}) == [newer.id]

    async def test_status_summary(self, store):
        property_id = uuid.uuid4()
        await store.insert(_booking(property_id, 1, 3, total_amount=1_000, status=BookingStatus.CONFIRMED))
        await store.insert(_booking(property_id, 3, 5, total_amount=2_000, status=BookingStatus.CONFIRMED))

        [row] = await store.status_summary(property_id=property_id)

        assert row.status == BookingStatus.CONFIRMED
        assert row.count == 2
        assert row.total_amount == 3_000
