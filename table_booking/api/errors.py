"""
Maps domain errors onto HTTP responses.

Response bodies keep the `{success, message}` envelope the booking form
expects; validation failures also list every violation. Requests FastAPI
itself rejects (unparseable JSON, a body that is not an object, a typed
query parameter that does not parse) get the same 400 envelope.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from table_booking.core.errors import (
    BookingError,
    ConcurrentModification,
    InvalidTransition,
    NoAvailability,
    NotFound,
    StoreError,
    ValidationFailure,
)
from table_booking.core.logging import get_logger
from table_booking.services.validator import violations_from_errors

logger = get_logger(__name__)

STATUS_CODES: dict[type[BookingError], int] = {
    ValidationFailure: status.HTTP_400_BAD_REQUEST,
    NoAvailability: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    InvalidTransition: status.HTTP_409_CONFLICT,
    ConcurrentModification: status.HTTP_409_CONFLICT,
    StoreError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _status_for(exc: BookingError) -> int:
    for error_type, code in STATUS_CODES.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    status_code = _status_for(exc)
    body: dict = {"success": False, "message": str(exc)}

    if isinstance(exc, ValidationFailure):
        body["errors"] = [
            {"code": v.code.value, "field": v.field, "message": v.message} for v in exc.violations
        ]

    if status_code >= 500:
        logger.error("request_store_error", error=str(exc))
        # Do not leak storage details to clients
        body["message"] = "Internal server error"

    return JSONResponse(status_code=status_code, content=body)


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    violations = violations_from_errors(exc.errors())
    logger.info(
        "request_rejected_malformed",
        path=request.url.path,
        violations=[v.code.value for v in violations],
    )
    return await booking_error_handler(request, ValidationFailure(violations))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
