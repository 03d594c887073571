"""Per-request log context: request id, caller and tenant.

Every log line emitted while a request is handled carries the request id, the
user id the gateway asserted and, for tenant routes, the organisation id, so
an audit row can be traced back to the request that wrote it.
"""

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

REQUEST_ID_HEADER = "X-Request-Id"

# Caller-supplied ids end up in logs verbatim; anything else is replaced.
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")
_ORGANISATION_PATH = re.compile(r"/organisations/([^/]+)")

logger = structlog.get_logger()


def request_id_from(request: Request) -> str:
    supplied = request.headers.get(REQUEST_ID_HEADER)
    if supplied and _VALID_REQUEST_ID.match(supplied):
        return supplied
    return str(uuid.uuid4())


def organisation_id_from(path: str) -> str | None:
    match = _ORGANISATION_PATH.search(path)
    return match.group(1) if match else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request context for structlog and echo the request id."""

    def __init__(self, app: ASGIApp, *, user_id_header: str) -> None:
        super().__init__(app)
        self.user_id_header = user_id_header

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request_id_from(request)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            user_id=request.headers.get(self.user_id_header),
            organisation_id=organisation_id_from(request.url.path),
        )

        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
