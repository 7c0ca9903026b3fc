"""Map booking engine errors onto HTTP responses.

Bodies keep FastAPI's ``{"detail": ...}`` shape so clients handle domain
errors and ``HTTPException`` the same way.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from staybook.booking.errors import (
    BookingError,
    CapacityExceeded,
    ConcurrencyConflict,
    InvalidDateRange,
    InvalidTransition,
    NotFound,
    StoreUnavailable,
    Unavailable,
)

logger = logging.getLogger(__name__)

# Starlette renamed the 422 constant; the literal works on every release.
HTTP_422_UNPROCESSABLE = 422

_STATUS_CODES: list[tuple[type[BookingError], int]] = [
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (Unavailable, status.HTTP_409_CONFLICT),
    (ConcurrencyConflict, status.HTTP_409_CONFLICT),
    (CapacityExceeded, HTTP_422_UNPROCESSABLE),
    (InvalidDateRange, HTTP_422_UNPROCESSABLE),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def _status_code_for(exc: BookingError) -> int:
    for error_type, code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    code = _status_code_for(exc)
    body: dict = {"detail": str(exc)}

    if isinstance(exc, InvalidTransition):
        body.update(current_status=exc.current, requested_status=exc.requested, allowed=exc.allowed)
    elif isinstance(exc, Unavailable):
        body["conflicts"] = exc.conflicting_ranges
    elif isinstance(exc, ConcurrencyConflict):
        body["retryable"] = True

    if code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content=body)


async def timeout_handler(request: Request, exc: TimeoutError) -> JSONResponse:
    logger.warning("%s %s timed out", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_504_GATEWAY_TIMEOUT,
        content={"detail": "Booking store did not answer in time"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(TimeoutError, timeout_handler)
