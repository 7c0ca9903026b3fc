"""Shared test configuration and fixtures.

Lifecycle, sweeper and API tests run against ``InMemoryBookingStore`` with a
fake property directory and a controllable clock, so they need neither
PostgreSQL nor Redis. The SQL store tests in ``test_store`` bring their own
database fixtures and skip when `staybook_test` is unreachable.
"""

import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from staybook.booking.directory import GuestSnapshot, PropertySnapshot
from staybook.booking.memory_store import InMemoryBookingStore
from staybook.main import app
from staybook.schemas.notification import BookingEvent
from staybook.services.booking_service import BookingService, LifecycleConfig

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

START = datetime(2026, 6, 1, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeDirectory:
    """``PropertyDirectory`` backed by dictionaries."""

    def __init__(self) -> None:
        self.properties: dict[uuid.UUID, PropertySnapshot] = {}
        self.guests: dict[uuid.UUID, GuestSnapshot] = {}

    def add_property(self, **overrides) -> PropertySnapshot:
        fields = {
            "id": uuid.uuid4(),
            "title": "Villa Cocotiers",
            "max_guests": 4,
            "price_per_night": 10_000,
            "cleaning_fee": 5_000,
            "security_deposit": 20_000,
            "location": "Cotonou",
        }
        fields.update(overrides)
        prop = PropertySnapshot(**fields)
        self.properties[prop.id] = prop
        return prop

    def add_guest(self, **overrides) -> GuestSnapshot:
        fields = {
            "id": uuid.uuid4(),
            "name": "Awa Diallo",
            "email": f"guest-{uuid.uuid4().hex[:8]}@test.com",
            "phone": "+22990000000",
        }
        fields.update(overrides)
        guest = GuestSnapshot(**fields)
        self.guests[guest.id] = guest
        return guest

    async def get_property(self, property_id: uuid.UUID) -> PropertySnapshot | None:
        return self.properties.get(property_id)

    async def get_guest(self, guest_id: uuid.UUID) -> GuestSnapshot | None:
        return self.guests.get(guest_id)


class RecordingNotifier:
    """Collects every event; raises instead when ``fail`` is set."""

    def __init__(self, fail: bool = False) -> None:
        self.events: list[BookingEvent] = []
        self.fail = fail

    async def send(self, event: BookingEvent) -> None:
        if self.fail:
            raise RuntimeError("delivery channel down")
        self.events.append(event)

    def kinds(self) -> list[str]:
        return [e.event.value for e in self.events]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryBookingStore:
    return InMemoryBookingStore()


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def test_property(directory: FakeDirectory) -> PropertySnapshot:
    return directory.add_property()


@pytest.fixture
def test_guest(directory: FakeDirectory) -> GuestSnapshot:
    return directory.add_guest()


@pytest_asyncio.fixture
async def service(
    store: InMemoryBookingStore,
    directory: FakeDirectory,
    notifier: RecordingNotifier,
    clock: FakeClock,
) -> AsyncGenerator[BookingService, None]:
    svc = BookingService(
        store,
        directory,
        notifier=notifier,
        clock=clock,
        config=LifecycleConfig(operation_timeout=None),
    )
    yield svc
    await svc.drain_notifications()


@pytest_asyncio.fixture
async def client(service: BookingService) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient against the app with the in-memory service installed.

    ``ASGITransport`` does not run the lifespan, so nothing touches
    PostgreSQL or Redis.
    """
    app.state.booking_service = service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    del app.state.booking_service
