"""Expiration sweeper: expires bookings whose payment window has closed.

Each overdue booking goes through ``BookingService.expire`` so the status
table and the rest of the transition path apply. The pass is idempotent:
bookings already expired no longer match the selection and are skipped.
Transient store errors are retried per booking with exponential backoff;
one failing booking never stops the rest of the pass.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from staybook.booking.errors import ConcurrencyConflict, StoreUnavailable

if TYPE_CHECKING:
    from staybook.booking.store import BookingStore
    from staybook.services.booking_service import BookingService

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Outcome of one sweeper pass."""

    expired: int = 0
    failed: int = 0
    skipped: int = 0


class ExpirationSweeper:
    """Finds overdue ``awaiting_payment`` bookings and expires them."""

    def __init__(
        self,
        service: BookingService,
        store: BookingStore,
        clock: Callable[[], datetime] | None = None,
        batch_size: int = 100,
        max_attempts: int = 3,
        retry_backoff: float = 0.5,
    ) -> None:
        self._service = service
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._retry_backoff = retry_backoff

    async def run_once(self) -> SweepResult:
        """Expire everything overdue as of now.

        Cancelling the task stops between bookings; transitions that already
        committed stay committed.
        """
        now = self._clock()
        result = SweepResult()
        seen: set[uuid.UUID] = set()

        while True:
            # Bookings that failed this pass stay overdue; keep them out of later batches.
            batch = [
                i for i in await self._store.find_overdue(now, self._batch_size, exclude=seen) if i not in seen
            ]
            if not batch:
                break
            for booking_id in batch:
                seen.add(booking_id)
                try:
                    expired = await self._expire_with_retry(booking_id)
                except Exception:
                    result.failed += 1
                    logger.exception("Could not expire booking %s", booking_id)
                    continue
                if expired:
                    result.expired += 1
                else:
                    result.skipped += 1

        if result.expired or result.failed:
            logger.info(
                "Expiration sweep: %d expired, %d failed, %d skipped",
                result.expired,
                result.failed,
                result.skipped,
            )
        return result

    async def _expire_with_retry(self, booking_id: uuid.UUID) -> bool:
        attempt = 1
        while True:
            try:
                return await self._service.expire(booking_id) is not None
            except (StoreUnavailable, ConcurrencyConflict) as exc:
                if attempt >= self._max_attempts:
                    raise
                delay = self._retry_backoff * 2 ** (attempt - 1)
                logger.warning(
                    "Expiring booking %s failed (attempt %d/%d): %s; retrying in %.2fs",
                    booking_id,
                    attempt,
                    self._max_attempts,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def run_forever(self, interval_seconds: float) -> None:
        """Sweep every ``interval_seconds`` until cancelled."""
        logger.info("Expiration sweeper started (interval=%ss)", interval_seconds)
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Expiration sweep failed")
            await asyncio.sleep(interval_seconds)
