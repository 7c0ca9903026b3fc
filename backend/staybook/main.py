"""StayBook — FastAPI application entry point."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from staybook.api.errors import register_exception_handlers
from staybook.api.v1.bookings import router as bookings_router
from staybook.booking.cache import BookingCache
from staybook.booking.directory import SQLPropertyDirectory
from staybook.booking.notifications import LoggingNotifier, NotificationSink, WebhookNotifier
from staybook.booking.store import SQLBookingStore
from staybook.booking.sweeper import ExpirationSweeper
from staybook.config import settings
from staybook.services.booking_service import BookingService, LifecycleConfig

# Configure root logger so all staybook.* loggers output to stderr (captured by Docker).
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


def _build_notifier() -> NotificationSink:
    if settings.notification_webhook_url:
        return WebhookNotifier(settings.notification_webhook_url, timeout=settings.notification_timeout_seconds)
    return LoggingNotifier()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    from staybook.database import async_session_factory, engine

    # Startup
    store = SQLBookingStore(async_session_factory)
    cache = BookingCache.from_url(settings.redis_url, settings.cache_ttl_seconds) if settings.cache_enabled else None
    notifier = _build_notifier()
    service = BookingService(
        store,
        SQLPropertyDirectory(async_session_factory),
        notifier=notifier,
        cache=cache,
        config=LifecycleConfig.from_settings(settings),
    )
    app.state.booking_service = service

    sweeper_task = None
    if settings.sweeper_enabled:
        sweeper = ExpirationSweeper(
            service,
            store,
            batch_size=settings.sweeper_batch_size,
            max_attempts=settings.sweeper_max_attempts,
        )
        sweeper_task = asyncio.create_task(sweeper.run_forever(settings.sweeper_interval_seconds))

    yield

    # Shutdown: stop the sweeper before flushing notifications
    if sweeper_task is not None:
        sweeper_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper_task
    await service.drain_notifications()
    if isinstance(notifier, WebhookNotifier):
        await notifier.aclose()
    if cache is not None:
        await cache.close()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Booking lifecycle engine for short-term rentals: requests, payments, availability.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Routers
app.include_router(bookings_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
