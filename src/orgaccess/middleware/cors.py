"""CORS for the school dashboards."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orgaccess.config import Settings
from orgaccess.middleware.request_context import REQUEST_ID_HEADER


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Allow the configured dashboard origins to call the API.

    Identity travels in the gateway header, never in cookies, so credentials
    stay disabled and only the headers the API reads are allowed.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", settings.user_id_header, REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
        max_age=settings.cors_max_age,
    )
