# backend/payflow/services/pre_auth_job.py
"""
Pre-authorization job.

Places manual-capture holds for pending payments whose pre-auth time has
arrived (six days before the appointment). Each payment is handled on its
own: anomalies and state races are skipped, processor failures are errors,
and nothing one payment does can stop the rest of the batch.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ConflictError, DataIntegrityAnomaly, ProcessorError
from ..core.money import ensure_utc, utcnow
from ..models.payment import Payment
from ..repositories.factory import RepositoryFactory
from .background import BackgroundDispatcher
from .base import BaseService
from .batch_runner import BatchJobResult, BatchJobRunner
from .notification_service import PRE_AUTHORIZED, NotificationService, dispatch_notification
from .payment_router import decide_routing
from .stripe_gateway import ProcessorGateway

JOB_NAME = "pre-auth-payments"

# Card networks usually hold an authorization for seven days
ESTIMATED_HOLD_WINDOW = timedelta(days=7)


class PreAuthJob(BaseService):
    """Places holds on payments that reached their pre-auth time."""

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

    @BaseService.measure_operation("pre_auth_batch")
    def run(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> BatchJobResult:
        current = now or utcnow()
        batch_limit = limit or settings.batch_limit
        return self.runner.run(
            JOB_NAME,
            fetch=lambda: self.payment_repository.find_payments_needing_pre_auth(batch_limit, current),
            handle=lambda payment: self.pre_authorize(payment, current),
            key=lambda payment: payment.booking_id,
        )

    def pre_authorize(self, payment: Payment, now: datetime) -> None:
        payment_id = payment.id
        booking_id = payment.booking_id

        if not payment.stripe_payment_method_id:
            raise DataIntegrityAnomaly(
                "Payment has no payment method on file",
                details={"payment_id": payment_id, "booking_id": booking_id},
            )

        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise DataIntegrityAnomaly(
                "Payment references a missing booking",
                details={"payment_id": payment_id, "booking_id": booking_id},
            )
        if booking.is_direct_platform_payment:
            # Should have been filtered by the candidate query
            raise DataIntegrityAnomaly(
                "Cash booking without deposit has no card hold to place",
                details={"payment_id": payment_id, "booking_id": booking_id},
            )

        customer = self.payment_repository.get_customer_by_user_id(booking.client_id)
        if customer is None:
            raise DataIntegrityAnomaly(
                "Client has no Stripe customer",
                details={"payment_id": payment_id, "client_id": booking.client_id},
            )

        route = decide_routing(payment, booking, booking.professional)
        payment_method_id = payment.stripe_payment_method_id
        # Tips known now ride on the hold; capture never takes more than was held
        amount = payment.total_capture_amount
        scheduled_for = payment.pre_auth_scheduled_for

        # A cancellation may have refunded the payment after the batch query ran
        if self.payment_repository.is_refunded(payment_id):
            self.logger.info(
                f"[CRON] Payment {payment_id} refunded before pre-auth (cancellation race), skipping"
            )
            raise ConflictError(
                "Payment was refunded before pre-authorization",
                payment_id=payment_id,
                expected_status="pending",
            )

        try:
            held = self.gateway.create_held_intent(
                amount=amount,
                customer_ref=customer.stripe_customer_id,
                route_target=route,
                metadata={
                    "booking_id": booking_id,
                    "payment_id": payment_id,
                    "job": JOB_NAME,
                    "scheduled_for": ensure_utc(scheduled_for).isoformat() if scheduled_for else None,
                },
                payment_method_ref=payment_method_id,
                idempotency_key=f"preauth:{payment_id}",
            )
        except ProcessorError as exc:
            if not exc.retryable:
                self._mark_failed(payment_id, exc.message)
            raise

        if held.authorization_expires_at is None:
            estimate = ensure_utc(now) + ESTIMATED_HOLD_WINDOW
            self.logger.info(
                f"[CRON] Processor reported no hold expiry for {held.intent_id}; "
                f"estimated {estimate.isoformat()}, storing none"
            )

        try:
            with self.transaction():
                self.payment_repository.mark_pre_authorized(
                    payment_id,
                    held.intent_id,
                    held.authorization_expires_at,
                    connected_account_id=route.account_id,
                    authorized_amount=amount,
                )
        except ConflictError:
            self.logger.warning(
                f"[CRON] Payment {payment_id} changed state while the hold was placed; releasing {held.intent_id}"
            )
            self._release_hold(held.intent_id)
            raise

        self.logger.info(f"[CRON] Pre-authorized booking {booking_id} ({held.intent_id})")
        dispatch_notification(self.dispatcher, self.notifier, booking_id, PRE_AUTHORIZED)

    def _mark_failed(self, payment_id: str, reason: str) -> None:
        try:
            with self.transaction():
                self.payment_repository.mark_failed(payment_id, reason)
        except ConflictError:
            self.logger.warning(f"[CRON] Payment {payment_id} left pending before it could be marked failed")

    def _release_hold(self, intent_id: str) -> None:
        try:
            self.gateway.cancel_intent(intent_id)
        except ProcessorError as exc:
            self.logger.error(f"[CRON] Failed to release hold {intent_id}: {exc.message}")
