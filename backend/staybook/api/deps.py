"""Shared API dependencies — single import point for all routers.

The lifecycle service is built once in the application lifespan and kept on
``app.state``; routers receive it through ``get_booking_service``::

    from staybook.api.deps import get_booking_service
"""

from fastapi import Request

from staybook.services.booking_service import BookingService


def get_booking_service(request: Request) -> BookingService:
    """Return the application's ``BookingService``."""
    return request.app.state.booking_service


__all__ = ["get_booking_service"]
