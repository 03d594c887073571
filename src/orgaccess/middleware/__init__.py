"""Middleware registration."""

from fastapi import FastAPI

from orgaccess.config import Settings
from orgaccess.middleware.cors import setup_cors
from orgaccess.middleware.error_handler import setup_error_handlers
from orgaccess.middleware.logging import setup_logging
from orgaccess.middleware.request_context import RequestContextMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register middleware. Starlette runs the last added outermost.

    CORS wraps everything so error responses carry CORS headers too.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestContextMiddleware, user_id_header=settings.user_id_header)
    setup_cors(app, settings)
