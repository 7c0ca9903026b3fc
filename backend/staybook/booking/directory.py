"""Read-only lookups of the properties and guests a booking refers to.

Both entities are owned outside the booking engine; the lifecycle service
only needs capacity and rates for pricing and a contact for notifications.
"""

import uuid
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from staybook.models.guest import Guest
from staybook.models.property import Property


@dataclass(frozen=True)
class PropertySnapshot:
    id: uuid.UUID
    title: str
    max_guests: int
    price_per_night: int
    cleaning_fee: int = 0
    security_deposit: int = 0
    location: str | None = None


@dataclass(frozen=True)
class GuestSnapshot:
    id: uuid.UUID
    name: str
    email: str | None = None
    phone: str | None = None


class PropertyDirectory(Protocol):
    async def get_property(self, property_id: uuid.UUID) -> PropertySnapshot | None: ...

    async def get_guest(self, guest_id: uuid.UUID) -> GuestSnapshot | None: ...


class SQLPropertyDirectory:
    """``PropertyDirectory`` reading the ``properties`` and ``guests`` tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_property(self, property_id: uuid.UUID) -> PropertySnapshot | None:
        async with self._session_factory() as session:
            prop = await session.get(Property, property_id)
            if prop is None:
                return None
            return PropertySnapshot(
                id=prop.id,
                title=prop.title,
                max_guests=prop.max_guests,
                price_per_night=prop.price_per_night,
                cleaning_fee=prop.cleaning_fee or 0,
                security_deposit=prop.security_deposit or 0,
                location=prop.location,
            )

    async def get_guest(self, guest_id: uuid.UUID) -> GuestSnapshot | None:
        async with self._session_factory() as session:
            guest = await session.get(Guest, guest_id)
            if guest is None:
                return None
            return GuestSnapshot(id=guest.id, name=guest.full_name, email=guest.email, phone=guest.phone)
