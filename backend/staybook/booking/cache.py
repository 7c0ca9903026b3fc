"""Short-lived Redis read cache for booking views.

Keys are scoped per booking, guest and property and are deleted by exact key
after every successful write. The TTL is only a safety net. Nothing on a
write path reads from here, and Redis failures degrade to cache misses.
"""

import logging
import uuid
from datetime import date

import redis.asyncio as redis
from pydantic import TypeAdapter, ValidationError
from redis.exceptions import RedisError

from staybook.schemas.booking import AvailabilityResponse, BookingResponse

logger = logging.getLogger(__name__)

_booking_list = TypeAdapter(list[BookingResponse])


def booking_key(booking_id: uuid.UUID) -> str:
    return f"booking:{booking_id}"


def guest_bookings_key(guest_id: uuid.UUID) -> str:
    return f"bookings:guest:{guest_id}"


def property_bookings_key(property_id: uuid.UUID) -> str:
    return f"bookings:property:{property_id}"


def availability_key(property_id: uuid.UUID) -> str:
    """Hash of cached availability answers for one property, one field per stay range."""
    return f"availability:{property_id}"


def _range_field(check_in: date, check_out: date) -> str:
    return f"{check_in.isoformat()}:{check_out.isoformat()}"


class BookingCache:
    """Typed get/set/invalidate over a ``redis.asyncio.Redis`` client."""

    def __init__(self, client: redis.Redis, ttl_seconds: int = 60) -> None:
        self._client = client
        self._ttl = ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 60) -> "BookingCache":
        return cls(redis.from_url(url, decode_responses=True), ttl_seconds=ttl_seconds)

    async def close(self) -> None:
        await self._client.aclose()

    # -- single booking ---------------------------------------------------

    async def get_booking(self, booking_id: uuid.UUID) -> BookingResponse | None:
        raw = await self._get(booking_key(booking_id))
        if raw is None:
            return None
        try:
            return BookingResponse.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable cache entry %s", booking_key(booking_id))
            return None

    async def set_booking(self, booking: BookingResponse) -> None:
        await self._set(booking_key(booking.id), booking.model_dump_json())

    # -- lists --------------------------------------------------------------

    async def get_guest_bookings(self, guest_id: uuid.UUID) -> list[BookingResponse] | None:
        return self._load_list(await self._get(guest_bookings_key(guest_id)))

    async def set_guest_bookings(self, guest_id: uuid.UUID, bookings: list[BookingResponse]) -> None:
        await self._set(guest_bookings_key(guest_id), _booking_list.dump_json(bookings).decode())

    async def get_property_bookings(self, property_id: uuid.UUID) -> list[BookingResponse] | None:
        return self._load_list(await self._get(property_bookings_key(property_id)))

    async def set_property_bookings(self, property_id: uuid.UUID, bookings: list[BookingResponse]) -> None:
        await self._set(property_bookings_key(property_id), _booking_list.dump_json(bookings).decode())

    @staticmethod
    def _load_list(raw: str | None) -> list[BookingResponse] | None:
        if raw is None:
            return None
        try:
            return _booking_list.validate_json(raw)
        except ValidationError:
            return None

    # -- availability -------------------------------------------------------

    async def get_availability(
        self, property_id: uuid.UUID, check_in: date, check_out: date
    ) -> AvailabilityResponse | None:
        try:
            raw = await self._client.hget(availability_key(property_id), _range_field(check_in, check_out))
        except RedisError:
            logger.warning("Redis unavailable reading availability for %s", property_id, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return AvailabilityResponse.model_validate_json(raw)
        except ValidationError:
            return None

    async def set_availability(self, answer: AvailabilityResponse) -> None:
        key = availability_key(answer.property_id)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(key, _range_field(answer.check_in_date, answer.check_out_date), answer.model_dump_json())
                pipe.expire(key, self._ttl)
                await pipe.execute()
        except RedisError:
            logger.warning("Redis unavailable caching availability for %s", answer.property_id, exc_info=True)

    # -- invalidation -------------------------------------------------------

    async def invalidate(
        self,
        booking_id: uuid.UUID | None = None,
        guest_id: uuid.UUID | None = None,
        property_id: uuid.UUID | None = None,
    ) -> None:
        """Drop every cached view a write to this booking could have changed."""
        keys = []
        if booking_id is not None:
            keys.append(booking_key(booking_id))
        if guest_id is not None:
            keys.append(guest_bookings_key(guest_id))
        if property_id is not None:
            keys.extend([property_bookings_key(property_id), availability_key(property_id)])
        if not keys:
            return
        try:
            await self._client.delete(*keys)
        except RedisError:
            # Entries still age out through the TTL.
            logger.warning("Redis unavailable invalidating %s", keys, exc_info=True)

    # -- raw helpers --------------------------------------------------------

    async def _get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError:
            logger.warning("Redis unavailable reading %s", key, exc_info=True)
            return None

    async def _set(self, key: str, value: str) -> None:
        try:
            await self._client.set(key, value, ex=self._ttl)
        except RedisError:
            logger.warning("Redis unavailable writing %s", key, exc_info=True)
