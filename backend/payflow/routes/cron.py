# backend/payflow/routes/cron.py
"""
Scheduled job endpoints.

An external scheduler calls these with ``Authorization: Bearer <CRON_SECRET>``.
Each call runs one batch synchronously and reports its counts. Partial
failures still return 200; only a failed candidate fetch returns 500.
"""

import logging
import time
from typing import Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..core.exceptions import FatalError
from ..database import get_db
from ..dependencies import (
    get_dispatcher,
    get_environment_chainer,
    get_gateway,
    get_notifier,
    is_cron_request_authorized,
)
from ..schemas.batch import BatchJobFailure, BatchJobResponse
from ..services.background import BackgroundDispatcher
from ..services.balance_notification_job import BalanceNotificationJob
from ..services.batch_runner import BatchJobResult
from ..services.capture_job import CaptureJob
from ..services.environment_chain import EnvironmentChainer
from ..services.notification_service import NotificationService
from ..services.pre_auth_job import PreAuthJob
from ..services.stripe_gateway import ProcessorGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


def _run_job(
    label: str,
    empty_message: str,
    run: Callable[[], BatchJobResult],
) -> JSONResponse:
    started = time.monotonic()
    try:
        result = run()
    except FatalError as exc:
        duration = int((time.monotonic() - started) * 1000)
        logger.error(f"[CRON] {label} job failed: {exc.message}")
        failure = BatchJobFailure(
            message=f"{label} job failed",
            error=exc.message,
            processed=0,
            errors=1,
            duration=duration,
        )
        return JSONResponse(status_code=500, content=failure.model_dump())

    message = empty_message if result.total == 0 else f"{label} processing completed"
    body = BatchJobResponse.from_result(result, message)
    return JSONResponse(status_code=200, content=body.model_dump(by_alias=True, exclude_none=True))


@router.get("/pre-auth-payments")
def pre_auth_payments(
    request: Request,
    db: Session = Depends(get_db),
    gateway: ProcessorGateway = Depends(get_gateway),
    notifier: NotificationService = Depends(get_notifier),
    dispatcher: BackgroundDispatcher = Depends(get_dispatcher),
    chainer: EnvironmentChainer = Depends(get_environment_chainer),
) -> JSONResponse:
    """Place holds on payments whose pre-auth time has arrived."""
    if not is_cron_request_authorized(request):
        return _unauthorized()

    chainer.chain(request.url.path)
    job = PreAuthJob(db, gateway, notifier, dispatcher)
    return _run_job("Pre-authorization", "No payments need pre-authorization", job.run)


@router.get("/capture-payments")
def capture_payments(
    request: Request,
    db: Session = Depends(get_db),
    gateway: ProcessorGateway = Depends(get_gateway),
    notifier: NotificationService = Depends(get_notifier),
    dispatcher: BackgroundDispatcher = Depends(get_dispatcher),
    chainer: EnvironmentChainer = Depends(get_environment_chainer),
) -> JSONResponse:
    """Capture held payments of appointments that have ended."""
    if not is_cron_request_authorized(request):
        return _unauthorized()

    chainer.chain(request.url.path)
    job = CaptureJob(db, gateway, notifier, dispatcher)
    return _run_job("Capture", "No payments need capturing", job.run)


@router.get("/balance-notifications")
def balance_notifications(
    request: Request,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
    chainer: EnvironmentChainer = Depends(get_environment_chainer),
) -> JSONResponse:
    """Send completion notices for appointments that ended a while ago."""
    if not is_cron_request_authorized(request):
        return _unauthorized()

    chainer.chain(request.url.path)
    job = BalanceNotificationJob(db, notifier)
    return _run_job(
        "Balance notification", "No appointments need balance notifications", job.run
    )
