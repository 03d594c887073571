"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from orgaccess.admin.router import router as admin_router
from orgaccess.config import get_settings
from orgaccess.database import close_db, init_db
from orgaccess.health.router import router as health_router
from orgaccess.leaderboards.router import router as leaderboards_router
from orgaccess.middleware import setup_middleware
from orgaccess.organisations.router import router as organisations_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)

    yield

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Organisation Access API",
        description="Multi-tenant roles, memberships and leaderboard visibility",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(organisations_router)
    app.include_router(leaderboards_router)
    app.include_router(admin_router)

    return app


app = create_app()
