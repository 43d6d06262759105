# backend/payflow/services/capture_job.py
"""
Capture job.

Captures held payments once their appointment has ended. The amount taken
is the service portion plus tip. A zero total is recorded as captured
without calling the processor.

The hold is never asked for more than it covers. A tip added after the hold
was placed is charged on its own intent. A capture the processor rejects is
checked against the intent's state before it counts as an error, because a
timed-out or replayed capture may already have moved the money.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ConflictError, DataIntegrityAnomaly, DomainException, ProcessorError
from ..core.money import ZERO, round_money, utcnow
from ..models.payment import Payment
from ..repositories.factory import RepositoryFactory
from .background import BackgroundDispatcher
from .base import BaseService
from .batch_runner import BatchJobResult, BatchJobRunner
from .notification_service import CAPTURED, NotificationService, dispatch_notification
from .payment_router import decide_routing
from .stripe_gateway import CaptureResult, ProcessorGateway

JOB_NAME = "capture-payments"

INTENT_SUCCEEDED = "succeeded"


class CaptureJob(BaseService):
    def __init__(
        self,
        db: Session,
        gateway: ProcessorGateway,
        notifier: NotificationService,
        dispatcher: BackgroundDispatcher,
        runner: Optional[BatchJobRunner] = None,
    ):
        super().__init__(db)
        self.gateway = gateway
        self.notifier = notifier
        self.dispatcher = dispatcher
        self.runner = runner or BatchJobRunner()
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    @BaseService.measure_operation("capture_batch")
    def run(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> BatchJobResult:
        current = now or utcnow()
        batch_limit = limit or settings.batch_limit
        return self.runner.run(
            JOB_NAME,
            fetch=lambda: self.payment_repository.find_payments_needing_capture(batch_limit, current),
            handle=self.capture,
            key=lambda payment: payment.booking_id,
        )

    def capture(self, payment: Payment) -> None:
        payment_id = payment.id
        booking_id = payment.booking_id
        intent_id = payment.stripe_payment_intent_id
        total = payment.total_capture_amount

        if total <= ZERO:
            self.logger.info(f"[CRON] Booking {booking_id} has nothing to capture, closing at zero")
            with self.transaction():
                self.payment_repository.mark_captured(payment_id, ZERO)
            dispatch_notification(self.dispatcher, self.notifier, booking_id, CAPTURED)
            return

        if not intent_id:
            raise DataIntegrityAnomaly(
                "Pre-authorized payment has no payment intent",
                details={"payment_id": payment_id, "booking_id": booking_id},
            )

        if self.payment_repository.is_refunded(payment_id):
            raise ConflictError(
                "Payment was refunded before capture",
                payment_id=payment_id,
                expected_status="pre_authorized",
            )

        from_hold = min(total, payment.capturable_amount)
        remainder = round_money(total - from_hold)

        try:
            result = self.gateway.capture_intent(
                intent_id, from_hold, idempotency_key=f"capture:{payment_id}"
            )
        except ProcessorError as exc:
            result = self.reconcile_capture(intent_id, exc)

        captured = round_money(result.captured_amount)
        remainder_intent: Optional[str] = None
        remainder_error: Optional[DomainException] = None
        if remainder > ZERO:
            try:
                remainder_intent = self._charge_remainder(payment, remainder)
                captured = round_money(captured + remainder)
            except DomainException as exc:
                remainder_error = exc

        try:
            with self.transaction():
                self.payment_repository.mark_captured(payment_id, captured)
                if remainder_intent:
                    self.payment_repository.create_payment_event(
                        payment_id, "tip_charged", {"intent_id": remainder_intent, "amount": str(remainder)}
                    )
                if remainder_error is not None:
                    self.payment_repository.create_payment_event(
                        payment_id,
                        "tip_charge_failed",
                        {"amount": str(remainder), "error": remainder_error.message},
                    )
        except ConflictError:
            # Funds moved at the processor but the row moved first; needs a human
            self.logger.error(
                f"[CRON] Captured {intent_id} for booking {booking_id} but the payment "
                "was no longer pre-authorized"
            )
            raise

        self.logger.info(f"[CRON] Captured ${captured} for booking {booking_id}")
        dispatch_notification(self.dispatcher, self.notifier, booking_id, CAPTURED)

        if remainder_error is not None:
            self.logger.error(
                f"[CRON] Booking {booking_id} captured, but the ${remainder} added after the hold "
                f"could not be charged: {remainder_error.message}"
            )
            raise remainder_error

    def reconcile_capture(self, intent_id: str, error: ProcessorError) -> CaptureResult:
        """
        Recover a capture the processor already completed.

        Re-raises ``error`` unless the intent reports ``succeeded``, in which
        case the amount the processor received is what gets recorded.
        """
        try:
            snapshot = self.gateway.retrieve_intent(intent_id)
        except ProcessorError as lookup_error:
            self.logger.warning(f"[CRON] Could not check intent {intent_id} after failed capture: {lookup_error.message}")
            raise error
        if snapshot.status != INTENT_SUCCEEDED:
            raise error

        self.logger.warning(
            f"[CRON] Capture of {intent_id} failed ({error.message}) but the processor already "
            f"captured ${snapshot.amount_received}; recording it"
        )
        return CaptureResult(intent_id=intent_id, captured_amount=snapshot.amount_received)

    def _charge_remainder(self, payment: Payment, amount: Decimal) -> str:
        """Charge what the hold does not cover on a fresh intent. Returns its id."""
        booking = self.booking_repository.get_by_id(payment.booking_id)
        if booking is None or not payment.stripe_payment_method_id:
            raise DataIntegrityAnomaly(
                "Cannot charge beyond the hold without a booking and card",
                details={"payment_id": payment.id},
            )
        customer = self.payment_repository.get_customer_by_user_id(booking.client_id)
        if customer is None:
            raise DataIntegrityAnomaly(
                "Client has no Stripe customer", details={"payment_id": payment.id}
            )

        route = decide_routing(payment, booking, booking.professional)
        held = self.gateway.create_held_intent(
            amount=amount,
            customer_ref=customer.stripe_customer_id,
            route_target=route,
            metadata={"booking_id": booking.id, "payment_id": payment.id, "job": JOB_NAME, "part": "tip"},
            payment_method_ref=payment.stripe_payment_method_id,
            idempotency_key=f"tip-hold:{payment.id}",
        )
        try:
            self.gateway.capture_intent(held.intent_id, amount, idempotency_key=f"tip-capture:{payment.id}")
        except ProcessorError:
            self._release(held.intent_id)
            raise
        return held.intent_id

    def _release(self, intent_id: str) -> None:
        try:
            self.gateway.cancel_intent(intent_id)
        except ProcessorError as exc:
            self.logger.error(f"[CRON] Failed to release hold {intent_id}: {exc.message}")
