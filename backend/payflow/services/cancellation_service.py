# backend/payflow/services/cancellation_service.py
"""
Cancellation and No-Show Service.

Human-triggered, synchronous counterparts of the batch jobs. Both compute a
charge, apply it against whatever the payment currently holds, and close the
booking so no batch job selects it again.

The policy binds clients. A professional cancelling refunds the client in
full unless the policy is forced.

Applying a charge depends on how far the payment got:
- pre_authorized: capture the reduced amount (never above the hold), or
  release the hold for zero
- captured: refund everything above the charge
- pending with a card on file: hold the charge, claim the payment row, then
  capture; a lost claim releases the hold before any money moves
- never authorized: nothing to charge, the payment is closed at zero
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    DataIntegrityAnomaly,
    ProcessorError,
    NotFoundException,
    ValidationException,
)
from ..core.money import ZERO, Number, round_money, utcnow
from ..models.booking import Appointment, Booking, BookingStatus, CancellationInitiator
from ..models.payment import Payment, PaymentStatus
from ..repositories.factory import RepositoryFactory
from .background import BackgroundDispatcher
from .base import BaseService
from .charge_calculator import clamp_percentage, compute_cancellation_charge, compute_no_show_charge
from .notification_service import CANCELLED, NO_SHOW, NotificationService, dispatch_notification
from .payment_router import decide_routing
from .stripe_gateway import ProcessorGateway


@dataclass(frozen=True)
class ChargeOutcome:
    charged_amount: Decimal
    refunded_amount: Decimal
    payment_status: Optional[str]

    @property
    def charged(self) -> bool:
        return self.charged_amount > ZERO


@dataclass(frozen=True)
class CancellationResult:
    booking_id: str
    status: str
    charge_percentage: Decimal
    charge_amount: Decimal
    hours_until_appointment: Optional[float]
    charged: bool
    refunded_amount: Decimal
    payment_status: Optional[str]
    cancelled_by: Optional[str] = None
    policy_applied: bool = False


class CancellationService(BaseService):
    """Applies cancellation and no-show charges to bookings."""

    def __init__(
        self,
        db: Session,
        gateway: ProcessorGateway,
        notifier: NotificationService,
        dispatcher: BackgroundDispatcher,
    ):
        super().__init__(db)
        self.gateway = gateway
        self.notifier = notifier
        self.dispatcher = dispatcher
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self,
        booking_id: str,
        reason: str,
        now: Optional[datetime] = None,
        cancelled_by: CancellationInitiator = CancellationInitiator.CLIENT,
        force_policy: bool = False,
    ) -> CancellationResult:
        """
        Cancel a confirmed booking and charge per the professional's policy.

        The policy applies when the client cancels, or when ``force_policy``
        is set. Otherwise the client gets everything back.

        Raises:
            ValidationException: empty reason
            NotFoundException: unknown booking or missing appointment
            AlreadyProcessedError: booking is not confirmed
            ProcessorError: the charge could not be applied; nothing is changed
        """
        cleaned_reason = (reason or "").strip()
        if not cleaned_reason:
            raise ValidationException("Cancellation reason is required", code="REASON_REQUIRED")

        current = now or utcnow()
        booking = self._get_booking(booking_id)
        if booking.status != BookingStatus.CONFIRMED.value:
            raise AlreadyProcessedError(
                f"Booking is already {booking.status}",
                details={"booking_id": booking_id, "status": booking.status},
            )

        appointment = self.booking_repository.get_appointment_by_booking_id(booking_id)
        if appointment is None:
            raise NotFoundException("Appointment not found for booking", code="APPOINTMENT_NOT_FOUND")
        if appointment.is_cancelled:
            raise AlreadyProcessedError(
                "Appointment is already cancelled", details={"booking_id": booking_id}
            )

        payment = self.payment_repository.get_by_booking_id(booking_id)
        initiator = CancellationInitiator(cancelled_by)
        policy_applies = initiator == CancellationInitiator.CLIENT or force_policy
        policy = None
        if policy_applies and booking.professional:
            policy = booking.professional.cancellation_policy
        breakdown = compute_cancellation_charge(
            policy, self._chargeable_total(booking, payment), appointment.start_time, current
        )

        with self.transaction():
            # Claiming the booking first serializes concurrent cancellations
            self.booking_repository.mark_booking_cancelled(
                booking_id, cleaned_reason, cancelled_by=initiator.value
            )
            self.booking_repository.mark_appointment_cancelled(appointment.id)
            outcome = self.apply_charge(
                booking, payment, breakdown.amount, reason=f"cancellation: {cleaned_reason}"
            )

        self.logger.info(
            f"Cancelled booking {booking_id} by {initiator.value}: {breakdown.percentage}% "
            f"(${outcome.charged_amount}) at {breakdown.hours_until_appointment:.1f}h notice"
        )
        dispatch_notification(self.dispatcher, self.notifier, booking_id, CANCELLED)

        return CancellationResult(
            booking_id=booking_id,
            status=BookingStatus.CANCELLED.value,
            charge_percentage=breakdown.percentage,
            charge_amount=outcome.charged_amount,
            hours_until_appointment=breakdown.hours_until_appointment,
            charged=outcome.charged,
            refunded_amount=outcome.refunded_amount,
            payment_status=outcome.payment_status,
            cancelled_by=initiator.value,
            policy_applied=policy is not None and policy.enabled,
        )

    @BaseService.measure_operation("mark_no_show")
    def mark_no_show(self, appointment_id: str, charge_percentage: Number) -> CancellationResult:
        """
        Mark an appointment as a no-show and charge ``charge_percentage`` of the total.

        The percentage is clamped to 0-100 here, before it reaches the calculator.
        """
        appointment = self._get_appointment(appointment_id)
        if appointment.is_cancelled:
            raise AlreadyProcessedError(
                "Appointment is already cancelled or marked no-show",
                details={"appointment_id": appointment_id},
            )

        booking = self._get_booking(appointment.booking_id)
        if booking.status != BookingStatus.CONFIRMED.value:
            raise AlreadyProcessedError(
                f"Booking is already {booking.status}",
                details={"booking_id": booking.id, "status": booking.status},
            )

        percentage = clamp_percentage(charge_percentage)
        payment = self.payment_repository.get_by_booking_id(booking.id)
        amount = compute_no_show_charge(self._chargeable_total(booking, payment), percentage)

        with self.transaction():
            self.booking_repository.mark_no_show(appointment.id)
            self.booking_repository.mark_booking_cancelled(
                booking.id, "no_show", status=BookingStatus.NO_SHOW
            )
            outcome = self.apply_charge(booking, payment, amount, reason="no_show")

        self.logger.info(f"Marked booking {booking.id} no-show: {percentage}% (${outcome.charged_amount})")
        dispatch_notification(self.dispatcher, self.notifier, booking.id, NO_SHOW)

        return CancellationResult(
            booking_id=booking.id,
            status=BookingStatus.NO_SHOW.value,
            charge_percentage=percentage,
            charge_amount=outcome.charged_amount,
            hours_until_appointment=None,
            charged=outcome.charged,
            refunded_amount=outcome.refunded_amount,
            payment_status=outcome.payment_status,
        )

    def apply_charge(
        self, booking: Booking, payment: Optional[Payment], amount: Decimal, reason: str
    ) -> ChargeOutcome:
        """Move the payment to reflect a charge of ``amount``. Caller owns the transaction."""
        amount = round_money(amount)
        if payment is None:
            return ChargeOutcome(charged_amount=ZERO, refunded_amount=ZERO, payment_status=None)

        if payment.status == PaymentStatus.PRE_AUTHORIZED.value:
            return self._settle_hold(payment, amount, reason)
        if payment.status == PaymentStatus.CAPTURED.value:
            return self._refund_excess(payment, amount, reason)
        if payment.status == PaymentStatus.PENDING.value:
            return self._charge_pending(booking, payment, amount, reason)

        # refunded or failed: there is nothing left to move
        self.logger.info(f"Payment {payment.id} is {payment.status}; no charge applied")
        return ChargeOutcome(charged_amount=ZERO, refunded_amount=ZERO, payment_status=payment.status)

    def _settle_hold(self, payment: Payment, amount: Decimal, reason: str) -> ChargeOutcome:
        intent_id = payment.stripe_payment_intent_id
        if not intent_id:
            raise DataIntegrityAnomaly(
                "Pre-authorized payment has no payment intent", details={"payment_id": payment.id}
            )

        # A tip added after the hold was placed cannot be taken from it
        amount = min(amount, payment.capturable_amount)
        if amount > ZERO:
            result = self.gateway.capture_intent(
                intent_id, amount, idempotency_key=f"cancel-capture:{payment.id}"
            )
            self.payment_repository.mark_captured(payment.id, result.captured_amount)
            return ChargeOutcome(
                charged_amount=round_money(result.captured_amount),
                refunded_amount=ZERO,
                payment_status=PaymentStatus.CAPTURED.value,
            )

        self.gateway.cancel_intent(intent_id)
        self.payment_repository.mark_refunded(payment.id, ZERO, reason)
        return ChargeOutcome(
            charged_amount=ZERO, refunded_amount=ZERO, payment_status=PaymentStatus.REFUNDED.value
        )

    def _refund_excess(self, payment: Payment, amount: Decimal, reason: str) -> ChargeOutcome:
        captured = round_money(payment.captured_amount)
        refund_amount = round_money(captured - amount)
        if refund_amount <= ZERO:
            return ChargeOutcome(
                charged_amount=captured,
                refunded_amount=ZERO,
                payment_status=PaymentStatus.CAPTURED.value,
            )

        refund = self.gateway.refund_intent(payment.stripe_payment_intent_id, refund_amount, reason)
        self.payment_repository.mark_refunded(
            payment.id, refund.amount, reason, refund_transaction_id=refund.refund_id
        )
        return ChargeOutcome(
            charged_amount=round_money(captured - round_money(refund.amount)),
            refunded_amount=round_money(refund.amount),
            payment_status=PaymentStatus.CAPTURED.value,
        )

    def _charge_pending(
        self, booking: Booking, payment: Payment, amount: Decimal, reason: str
    ) -> ChargeOutcome:
        customer = None
        if payment.stripe_payment_method_id and amount > ZERO:
            customer = self.payment_repository.get_customer_by_user_id(booking.client_id)
            if customer is None:
                self.logger.warning(
                    f"Client {booking.client_id} has no Stripe customer; booking {booking.id} not charged"
                )

        if customer is None:
            # Never authorized: close the payment so no batch picks it up
            self.payment_repository.mark_refunded(payment.id, ZERO, reason)
            return ChargeOutcome(
                charged_amount=ZERO, refunded_amount=ZERO, payment_status=PaymentStatus.REFUNDED.value
            )

        route = decide_routing(payment, booking, booking.professional)
        held = self.gateway.create_held_intent(
            amount=amount,
            customer_ref=customer.stripe_customer_id,
            route_target=route,
            metadata={"booking_id": booking.id, "payment_id": payment.id, "job": reason},
            payment_method_ref=payment.stripe_payment_method_id,
            idempotency_key=f"cancel-hold:{payment.id}",
        )
        try:
            # Claim the row before money moves; a pre-auth run that got there first wins
            self.payment_repository.mark_pre_authorized(
                payment.id,
                held.intent_id,
                held.authorization_expires_at,
                connected_account_id=route.account_id,
                authorized_amount=amount,
            )
        except ConflictError:
            self.logger.warning(
                f"Payment {payment.id} was claimed while booking {booking.id} was cancelling; "
                f"releasing {held.intent_id}"
            )
            self._release_hold(held.intent_id)
            raise

        try:
            result = self.gateway.capture_intent(
                held.intent_id, amount, idempotency_key=f"cancel-capture:{payment.id}"
            )
        except ProcessorError:
            self._release_hold(held.intent_id)
            raise
        self.payment_repository.mark_captured(payment.id, result.captured_amount)
        return ChargeOutcome(
            charged_amount=round_money(result.captured_amount),
            refunded_amount=ZERO,
            payment_status=PaymentStatus.CAPTURED.value,
        )

    def _release_hold(self, intent_id: str) -> None:
        try:
            self.gateway.cancel_intent(intent_id)
        except ProcessorError as exc:
            self.logger.error(f"Failed to release hold {intent_id}: {exc.message}")

    @staticmethod
    def _chargeable_total(booking: Booking, payment: Optional[Payment]) -> Decimal:
        if payment is not None:
            return payment.total_capture_amount
        return round_money(booking.total_amount)

    def _get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND")
        return booking

    def _get_appointment(self, appointment_id: str) -> Appointment:
        appointment = self.booking_repository.get_appointment_by_id(appointment_id)
        if appointment is None:
            raise NotFoundException(
                f"Appointment {appointment_id} not found", code="APPOINTMENT_NOT_FOUND"
            )
        return appointment
