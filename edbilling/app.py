"""FastAPI application factory: entry point for the billing service."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from edbilling.config import get_settings
from edbilling.routers import assessments, billing, webhooks
from edbilling.services.assessment_tools import http_client_factory
from edbilling.services.stripe_gateway import StripeGateway
from edbilling.utils import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    # Auto-create tables for SQLite (dev mode); PostgreSQL uses Alembic
    from edbilling.db.session import engine
    from edbilling.models import Base

    settings = get_settings()
    if settings.database_url.startswith("sqlite"):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    if not settings.stripe_api_key:
        logger.warning("No Stripe API key configured; checkout and subscription calls will fail")

    # Shared httpx client for assessment tool calls
    from edbilling.http_client import init_http_client, close_http_client
    await init_http_client()

    yield

    await close_http_client()
    await engine.dispose()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(verbose=settings.debug)

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )

    # --- Services ---
    app.state.settings = settings
    app.state.stripe_gateway = StripeGateway.from_settings(settings)
    app.state.assessment_client_factory = http_client_factory

    # --- Routers ---
    app.include_router(billing.router)
    app.include_router(assessments.router)
    app.include_router(webhooks.router)

    @app.get("/health", include_in_schema=False)
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
