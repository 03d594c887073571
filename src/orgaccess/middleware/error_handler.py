"""Global error handlers: consistent JSON error responses.

Access errors carry a ``kind``; the status code is decided here and only here.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from orgaccess.access.errors import (
    AccessError,
    AlreadyMember,
    InvariantViolation,
    NotFound,
    NotMember,
    PermissionDenied,
    SeatLimitReached,
    SubscriptionExpired,
)

logger = structlog.get_logger()

# Most specific first; Forbidden is a PermissionDenied
STATUS_BY_ERROR: tuple[tuple[type[AccessError], int], ...] = (
    (PermissionDenied, 403),
    (SubscriptionExpired, 403),
    (NotFound, 404),
    (AlreadyMember, 409),
    (NotMember, 409),
    (SeatLimitReached, 409),
    (InvariantViolation, 500),
)


def status_for(exc: AccessError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(AccessError)
    async def access_error_handler(request: Request, exc: AccessError) -> JSONResponse:
        """Map an access error kind to its status code."""
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(
                "invariant_violation",
                path=request.url.path,
                method=request.method,
                error=exc.message,
                **exc.details,
            )
        else:
            logger.info("access_denied", path=request.url.path, kind=exc.kind, error=exc.message)
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(ValueError)
    async def value_error_handler(_request: Request, exc: ValueError) -> JSONResponse:
        """Input rejected by a service."""
        return JSONResponse(status_code=400, content={"detail": str(exc), "kind": "invalid_input"})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent JSON format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle validation errors with consistent JSON format."""
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions; always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
