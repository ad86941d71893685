from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from rewards_api.core.settings import settings
from rewards_api.db.session import async_session
from rewards_api.services.ledger import ensure_app_settings, get_ledger_event_bus
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with async_session() as session:
        app_settings = await ensure_app_settings(session)

    event_bus = get_ledger_event_bus()
    app.state.ledger_event_bus = event_bus
    logger.info(
        "Rewards API started",
        settings_version=app_settings.version,
        refund_on_reject=settings.withdrawal_refund_on_reject,
        daily_window_hours=settings.daily_claim_window_hours,
    )

    try:
        yield
    finally:
        event_bus.reset()
        logger.info("Rewards API stopped")


def create_app() -> FastAPI:
    """Application factory for the rewards FastAPI service."""
    configure_logging(
        service_name="rewards-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Rewards API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="rewards-api",
        service_version=APP_VERSION,
        environment=settings.environment,
        enabled=settings.tracing_enabled,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
