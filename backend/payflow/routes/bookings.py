# backend/payflow/routes/bookings.py
"""
Cancellation and no-show endpoints.

Called by the application that authenticates end users; the caller proves
itself with ``Authorization: Bearer <INTERNAL_API_SECRET>``.
"""

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends

from ..core.exceptions import DomainException
from ..dependencies import get_cancellation_service, require_internal_secret
from ..schemas.cancellation import CancelBookingRequest, CancellationResponse, NoShowRequest
from ..services.cancellation_service import CancellationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["bookings"], dependencies=[Depends(require_internal_secret)])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    raise exc.to_http_exception()


@router.post("/bookings/{booking_id}/cancel", response_model=CancellationResponse)
def cancel_booking(
    booking_id: str,
    payload: CancelBookingRequest,
    service: CancellationService = Depends(get_cancellation_service),
) -> CancellationResponse:
    try:
        result = service.cancel_booking(
            booking_id,
            payload.reason,
            cancelled_by=payload.cancelled_by,
            force_policy=payload.force_policy,
        )
    except DomainException as exc:
        logger.info(f"Cancellation of booking {booking_id} rejected: {exc.message}")
        handle_domain_exception(exc)
    return CancellationResponse.from_result(result)


@router.post("/appointments/{appointment_id}/no-show", response_model=CancellationResponse)
def mark_no_show(
    appointment_id: str,
    payload: NoShowRequest,
    service: CancellationService = Depends(get_cancellation_service),
) -> CancellationResponse:
    try:
        result = service.mark_no_show(appointment_id, payload.charge_percentage)
    except DomainException as exc:
        logger.info(f"No-show for appointment {appointment_id} rejected: {exc.message}")
        handle_domain_exception(exc)
    return CancellationResponse.from_result(result)
