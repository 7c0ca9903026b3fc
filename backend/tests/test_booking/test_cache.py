"""Tests for the Redis read cache, against a mocked ``redis.asyncio`` client."""

import uuid
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from staybook.booking.cache import (
    BookingCache,
    availability_key,
    booking_key,
    guest_bookings_key,
    property_bookings_key,
)
from staybook.booking.status import BookingStatus
from staybook.schemas.booking import AvailabilityResponse, BookingResponse

pytestmark = pytest.mark.asyncio

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _view(**overrides) -> BookingResponse:
    fields = dict(
        id=uuid.uuid4(),
        property_id=uuid.uuid4(),
        guest_id=uuid.uuid4(),
        check_in_date=date(2026, 6, 10),
        check_out_date=date(2026, 6, 13),
        total_nights=3,
        guests_count=2,
        base_price=30_000,
        cleaning_fee=5_000,
        security_deposit=0,
        service_fee=3_600,
        taxes=3_088,
        total_amount=41_688,
        platform_commission=0,
        currency="XOF",
        status=BookingStatus.PENDING,
        created_at=NOW,
        updated_at=NOW,
    )
    fields.update(overrides)
    return BookingResponse(**fields)


def _redis_mock() -> AsyncMock:
    client = AsyncMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[1, True])
    pipeline_cm = MagicMock()
    pipeline_cm.__aenter__ = AsyncMock(return_value=pipe)
    pipeline_cm.__aexit__ = AsyncMock(return_value=False)
    client.pipeline = MagicMock(return_value=pipeline_cm)
    client.pipe = pipe
    return client


class TestBookingEntries:
    async def test_miss(self):
        client = _redis_mock()
        client.get.return_value = None
        cache = BookingCache(client)

        assert await cache.get_booking(uuid.uuid4()) is None

    async def test_set_uses_ttl_and_get_round_trips(self):
        client = _redis_mock()
        cache = BookingCache(client, ttl_seconds=30)
        view = _view()

        await cache.set_booking(view)

        key, raw = client.set.await_args.args
        assert key == booking_key(view.id)
        assert client.set.await_args.kwargs == {"ex": 30}

        client.get.return_value = raw
        assert await cache.get_booking(view.id) == view

    async def test_unreadable_entry_is_a_miss(self):
        client = _redis_mock()
        client.get.return_value = '{"id": "not-a-booking"}'

        assert await BookingCache(client).get_booking(uuid.uuid4()) is None

    async def test_redis_errors_degrade_to_miss(self):
        client = _redis_mock()
        client.get.side_effect = RedisConnectionError("down")
        client.set.side_effect = RedisConnectionError("down")
        cache = BookingCache(client)

        assert await cache.get_booking(uuid.uuid4()) is None
        await cache.set_booking(_view())


class TestLists:
    async def test_guest_list(self):
        client = _redis_mock()
        cache = BookingCache(client)
        guest_id = uuid.uuid4()
        views = [_view(guest_id=guest_id), _view(guest_id=guest_id)]

        await cache.set_guest_bookings(guest_id, views)
        key, raw = client.set.await_args.args
        assert key == guest_bookings_key(guest_id)

        client.get.return_value = raw
        assert await cache.get_guest_bookings(guest_id) == views

    async def test_property_list_miss(self):
        client = _redis_mock()
        client.get.return_value = None
        assert await BookingCache(client).get_property_bookings(uuid.uuid4()) is None


class TestAvailability:
    async def test_set_writes_hash_field_and_expiry(self):
        client = _redis_mock()
        cache = BookingCache(client, ttl_seconds=45)
        answer = AvailabilityResponse(
            property_id=uuid.uuid4(),
            check_in_date=date(2026, 6, 10),
            check_out_date=date(2026, 6, 13),
            available=True,
        )

        await cache.set_availability(answer)

        key = availability_key(answer.property_id)
        client.pipe.hset.assert_called_once()
        assert client.pipe.hset.call_args.args[:2] == (key, "2026-06-10:2026-06-13")
        client.pipe.expire.assert_called_once_with(key, 45)
        client.pipe.execute.assert_awaited_once()

    async def test_get_reads_hash_field(self):
        client = _redis_mock()
        property_id = uuid.uuid4()
        answer = AvailabilityResponse(
            property_id=property_id,
            check_in_date=date(2026, 6, 10),
            check_out_date=date(2026, 6, 13),
            available=False,
        )
        client.hget.return_value = answer.model_dump_json()

        cached = await BookingCache(client).get_availability(property_id, date(2026, 6, 10), date(2026, 6, 13))

        client.hget.assert_awaited_once_with(availability_key(property_id), "2026-06-10:2026-06-13")
        assert cached == answer

    async def test_get_redis_error(self):
        client = _redis_mock()
        client.hget.side_effect = RedisConnectionError("down")

        assert await BookingCache(client).get_availability(uuid.uuid4(), date(2026, 6, 1), date(2026, 6, 2)) is None


class TestInvalidate:
    async def test_deletes_every_affected_key_at_once(self):
        client = _redis_mock()
        booking_id, guest_id, property_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

        await BookingCache(client).invalidate(booking_id=booking_id, guest_id=guest_id, property_id=property_id)

        client.delete.assert_awaited_once_with(
            booking_key(booking_id),
            guest_bookings_key(guest_id),
            property_bookings_key(property_id),
            availability_key(property_id),
        )

    async def test_nothing_to_invalidate(self):
        client = _redis_mock()
        await BookingCache(client).invalidate()
        client.delete.assert_not_awaited()

    async def test_redis_error_is_swallowed(self):
        client = _redis_mock()
        client.delete.side_effect = RedisConnectionError("down")

        await BookingCache(client).invalidate(booking_id=uuid.uuid4())
