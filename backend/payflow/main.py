# backend/payflow/main.py
"""
Payment lifecycle orchestrator API.

Creates the process-wide collaborators in the lifespan (Stripe gateway,
background dispatcher, notifier), mounts the cron, booking, professional
and metrics routers, and converts domain exceptions into HTTP responses.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.exceptions import DomainException
from .routes import bookings, cron, professionals, prometheus
from .services.background import BackgroundDispatcher
from .services.notification_service import build_notification_service
from .services.stripe_gateway import StripeGateway

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def _validate_startup_config() -> None:
    if not settings.stripe_secret_key.get_secret_value():
        logger.warning("STRIPE_SECRET_KEY is not set; processor calls will fail")
    if not settings.cron_secret.get_secret_value():
        logger.warning("CRON_SECRET is not set; every cron request will be rejected")
    if not settings.internal_api_secret.get_secret_value():
        logger.warning("INTERNAL_API_SECRET is not set; cancellation endpoints are unreachable")
    if settings.secondary_environment_url and not settings.is_production:
        logger.info("SECONDARY_ENVIRONMENT_URL set outside production; chaining stays off")


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"Payflow API starting up (environment={settings.environment})")
    _validate_startup_config()

    app.state.gateway = StripeGateway()
    app.state.dispatcher = BackgroundDispatcher(max_workers=settings.background_workers)
    app.state.notifier = build_notification_service()

    try:
        yield
    finally:
        logger.info("Payflow API shutting down...")
        app.state.dispatcher.shutdown(wait=True)


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    http_exc = exc.to_http_exception()
    if http_exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


def create_app() -> FastAPI:
    application = FastAPI(
        title="Payflow",
        description="Payment lifecycle orchestrator: pre-authorization, capture and cancellation charges",
        version="1.0.0",
        lifespan=app_lifespan,
    )
    application.add_exception_handler(DomainException, domain_exception_handler)

    application.include_router(cron.router)
    application.include_router(bookings.router)
    application.include_router(professionals.router)
    application.include_router(prometheus.router)
    return application


app = create_app()
