"""Notification sinks for booking events.

Delivery (email, SMS) happens outside this service; a sink only hands the
``BookingEvent`` payload over. The lifecycle service treats every sink as
best-effort.
"""

import logging
from typing import Protocol

import httpx

from staybook.schemas.notification import BookingEvent

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def send(self, event: BookingEvent) -> None: ...


class LoggingNotifier:
    """Writes events to the log. Used when no delivery channel is configured."""

    async def send(self, event: BookingEvent) -> None:
        logger.info(
            "Booking event %s for booking %s (status=%s, guest=%s)",
            event.event.value,
            event.booking_id,
            event.status.value,
            event.guest.email if event.guest else None,
        )


class WebhookNotifier:
    """POSTs events as JSON to the delivery service's webhook."""

    def __init__(self, url: str, timeout: float = 5.0, client: httpx.AsyncClient | None = None) -> None:
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def send(self, event: BookingEvent) -> None:
        response = await self._client.post(
            self._url,
            content=event.model_dump_json(),
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
