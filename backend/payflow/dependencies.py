# backend/payflow/dependencies.py
"""
FastAPI dependencies.

Process-wide collaborators (Stripe gateway, background dispatcher,
notifier) are created once in the app lifespan and read from
``app.state``; services are built per request around the request's
database session.
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .core.config import settings
from .core.exceptions import UnauthorizedException
from .database import get_db
from .services.background import BackgroundDispatcher
from .services.cancellation_service import CancellationService
from .services.environment_chain import EnvironmentChainer
from .services.notification_service import NotificationService
from .services.stripe_gateway import ProcessorGateway

logger = logging.getLogger(__name__)


def bearer_matches(authorization: Optional[str], secret: str) -> bool:
    """Constant-time check of an ``Authorization: Bearer <secret>`` header."""
    if not secret or not authorization:
        return False
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    return hmac.compare_digest(token.strip().encode(), secret.encode())


def is_cron_request_authorized(request: Request) -> bool:
    return bearer_matches(
        request.headers.get("authorization"), settings.cron_secret.get_secret_value()
    )


def require_internal_secret(request: Request) -> None:
    if not bearer_matches(
        request.headers.get("authorization"), settings.internal_api_secret.get_secret_value()
    ):
        logger.warning(f"Rejected unauthenticated call to {request.url.path}")
        raise UnauthorizedException("Unauthorized", code="UNAUTHORIZED")


def get_gateway(request: Request) -> ProcessorGateway:
    return request.app.state.gateway


def get_dispatcher(request: Request) -> BackgroundDispatcher:
    return request.app.state.dispatcher


def get_notifier(request: Request) -> NotificationService:
    return request.app.state.notifier


def get_environment_chainer(
    dispatcher: BackgroundDispatcher = Depends(get_dispatcher),
) -> EnvironmentChainer:
    return EnvironmentChainer(settings, dispatcher)


def get_cancellation_service(
    db: Session = Depends(get_db),
    gateway: ProcessorGateway = Depends(get_gateway),
    notifier: NotificationService = Depends(get_notifier),
    dispatcher: BackgroundDispatcher = Depends(get_dispatcher),
) -> CancellationService:
    return CancellationService(db, gateway, notifier, dispatcher)
