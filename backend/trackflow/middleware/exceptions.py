"""Error taxonomy and exception handlers for consistent error responses.

Every failure leaves the API in the same envelope:

    {"error": {"code": "NOT_FOUND", "message": "Assembly not found"}}

Services raise the TrackFlowError subclasses below; routers never build
error bodies themselves.
"""

import logging
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class TrackFlowError(Exception):
    """Base exception for TrackFlow application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "SERVER_ERROR",
        details: Union[dict, list, None] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class NotFoundError(TrackFlowError):
    """A referenced resource does not exist."""

    def __init__(self, resource: str, message: str | None = None):
        super().__init__(
            message=message or f"{resource} not found",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND",
        )


class ValidationFailedError(TrackFlowError):
    """Request is well-formed but violates a business rule."""

    def __init__(self, message: str, details: Union[dict, list, None] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="VALIDATION_ERROR",
            details=details,
        )


class UnauthorizedError(TrackFlowError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="UNAUTHORIZED",
        )


class ForbiddenError(TrackFlowError):
    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="FORBIDDEN",
        )


class ConflictError(TrackFlowError):
    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONFLICT",
        )


class ServerError(TrackFlowError):
    def __init__(self, message: str = "Internal server error"):
        super().__init__(message=message)


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
    headers: dict | None = None,
) -> JSONResponse:
    """Render the error envelope; `details` is omitted when empty."""
    error = {"code": error_code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error}, headers=headers)


def _where(request: Request) -> dict:
    return {"path": request.url.path, "method": request.method}


# ── Handlers ─────────────────────────────────────────────────

async def trackflow_exception_handler(request: Request, exc: TrackFlowError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "%s %s: %s", exc.error_code, request.url.path, exc.message,
        extra={"error_code": exc.error_code, **_where(request)},
    )
    return create_error_response(exc.status_code, exc.message, exc.error_code, exc.details)


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Unknown routes, wrong methods and any HTTPException raised by FastAPI itself."""
    if exc.status_code >= 500:
        logger.error("HTTP %s: %s", exc.status_code, exc.detail, extra=_where(request))
    return create_error_response(
        exc.status_code,
        str(exc.detail),
        f"HTTP_{exc.status_code}",
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Per-field request validation failures (422)."""
    logger.warning("Request validation failed on %s", request.url.path, extra=_where(request))
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "VALIDATION_ERROR",
        {"errors": errors},
    )


# Substring of the driver message → (status, code, message)
INTEGRITY_ERRORS = [
    ("unique", status.HTTP_409_CONFLICT, "DUPLICATE_RECORD",
     "A record with this value already exists"),
    ("foreign key", status.HTTP_422_UNPROCESSABLE_ENTITY, "FOREIGN_KEY_VIOLATION",
     "Referenced record does not exist"),
    ("not null", status.HTTP_422_UNPROCESSABLE_ENTITY, "NULL_VALUE_NOT_ALLOWED",
     "Required field is missing"),
]


async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Constraint violations the services did not catch first."""
    driver_message = str(getattr(exc, "orig", None) or exc).lower()
    logger.error("Integrity error on %s: %s", request.url.path, driver_message, extra=_where(request))

    for needle, status_code, error_code, message in INTEGRITY_ERRORS:
        if needle in driver_message:
            return create_error_response(status_code, message, error_code)
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "Database constraint violation", "INTEGRITY_ERROR",
    )


async def operational_exception_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Database unavailable on %s: %s", request.url.path, exc, extra=_where(request))
    return create_error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Database temporarily unavailable. Please try again.",
        "DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception on %s", request.url.path, extra=_where(request), exc_info=exc)
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        "SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Install every handler above on `app`."""
    handlers = [
        (TrackFlowError, trackflow_exception_handler),
        (HTTPException, http_exception_handler),
        (StarletteHTTPException, http_exception_handler),
        (RequestValidationError, validation_exception_handler),
        (ValidationError, validation_exception_handler),
        (IntegrityError, integrity_exception_handler),
        (OperationalError, operational_exception_handler),
        (Exception, general_exception_handler),
    ]
    for exc_class, handler in handlers:
        app.add_exception_handler(exc_class, handler)
