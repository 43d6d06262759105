"""
Payment Repository for the payment orchestrator.

Implements data access for booking payments and their audit trail.

This repository handles:
- Candidate selection for the pre-auth and capture batch jobs
- Conditional state transitions (pending -> pre_authorized -> captured,
  refunds and failures) guarded in SQL
- Stripe customer lookups
- Payment event recording
"""

from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Dict, List, Optional, cast

from sqlalchemy import or_, select
from sqlalchemy.orm import Session
import ulid

from ..core.exceptions import ConflictError, RepositoryException
from ..core.money import round_money, utcnow
from ..models.booking import Booking
from ..models.payment import Payment, PaymentEvent, PaymentStatus, StripeCustomer
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PaymentRepository(BaseRepository[Payment]):
    """
    Repository for payment data access.

    Every state-changing method is a single conditional UPDATE. When the row
    is no longer in the expected prior state the method raises ConflictError
    and writes nothing.
    """

    def __init__(self, db: Session):
        """Initialize with database session."""
        super().__init__(db, Payment)
        self.logger = logging.getLogger(__name__)

    # ========== Lookups ==========

    def get_by_booking_id(self, booking_id: str) -> Optional[Payment]:
        try:
            stmt = select(Payment).where(Payment.booking_id == booking_id)
            return cast(Optional[Payment], self.db.execute(stmt).scalar_one_or_none())
        except Exception as e:
            self.logger.error(f"Failed to get payment for booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to get payment by booking: {str(e)}")

    def get_customer_by_user_id(self, user_id: str) -> Optional[StripeCustomer]:
        """
        Get Stripe customer record by user ID.

        Args:
            user_id: User's ID

        Returns:
            StripeCustomer if found, None otherwise
        """
        try:
            stmt = select(StripeCustomer).where(StripeCustomer.user_id == user_id)
            return cast(Optional[StripeCustomer], self.db.execute(stmt).scalar_one_or_none())
        except Exception as e:
            self.logger.error(f"Failed to get customer by user ID: {str(e)}")
            raise RepositoryException(f"Failed to get customer by user ID: {str(e)}")

    def create_customer_record(self, user_id: str, stripe_customer_id: str) -> StripeCustomer:
        try:
            customer = StripeCustomer(
                id=str(ulid.ULID()),
                user_id=user_id,
                stripe_customer_id=stripe_customer_id,
            )
            self.db.add(customer)
            self.db.flush()
            return customer
        except Exception as e:
            self.logger.error(f"Failed to create customer record: {str(e)}")
            raise RepositoryException(f"Failed to create customer record: {str(e)}")

    def is_refunded(self, payment_id: str) -> bool:
        """
        Fresh read of the refund marker, bypassing any loaded instance.

        Used right before a processor call so that a cancellation landing
        between the batch query and the call is noticed.
        """
        try:
            stmt = select(Payment.refunded_at).where(Payment.id == payment_id)
            row = self.db.execute(stmt).first()
            return row is not None and row[0] is not None
        except Exception as e:
            self.logger.error(f"Failed to read refund state for payment {payment_id}: {str(e)}")
            raise RepositoryException(f"Failed to read refund state: {str(e)}")

    # ========== Batch candidates ==========

    def find_payments_needing_pre_auth(
        self, limit: int, now: Optional[datetime] = None
    ) -> List[Payment]:
        """
        Pending payments whose pre-auth time has arrived.

        Excluded here, in SQL: payments without a scheduled pre-auth, refunded
        payments, and cash bookings without a deposit (their charge is created
        at capture time and goes to the platform).
        """
        current = now or utcnow()
        try:
            stmt = (
                select(Payment)
                .join(Booking, Booking.id == Payment.booking_id)
                .where(or_(Booking.is_online_payment.is_(True), Booking.deposit_amount > 0))
                .where(Payment.status == PaymentStatus.PENDING.value)
                .where(Payment.stripe_payment_method_id.is_not(None))
                .where(Payment.pre_auth_scheduled_for.is_not(None))
                .where(Payment.pre_auth_scheduled_for <= current)
                .where(Payment.refunded_at.is_(None))
                .order_by(Payment.pre_auth_scheduled_for.asc(), Payment.id.asc())
                .limit(limit)
            )
            return list(self.db.execute(stmt).scalars().all())
        except Exception as e:
            self.logger.error(f"Failed to query payments needing pre-auth: {str(e)}")
            raise RepositoryException(f"Failed to query payments needing pre-auth: {str(e)}")

    def find_payments_needing_capture(
        self, limit: int, now: Optional[datetime] = None
    ) -> List[Payment]:
        """Pre-authorized payments whose capture time has arrived."""
        current = now or utcnow()
        try:
            stmt = (
                select(Payment)
                .where(Payment.status == PaymentStatus.PRE_AUTHORIZED.value)
                .where(Payment.capture_scheduled_for.is_not(None))
                .where(Payment.capture_scheduled_for <= current)
                .where(Payment.refunded_at.is_(None))
                .order_by(Payment.capture_scheduled_for.asc(), Payment.id.asc())
                .limit(limit)
            )
            return list(self.db.execute(stmt).scalars().all())
        except Exception as e:
            self.logger.error(f"Failed to query payments needing capture: {str(e)}")
            raise RepositoryException(f"Failed to query payments needing capture: {str(e)}")

    # ========== State transitions ==========

    def mark_pre_authorized(
        self,
        payment_id: str,
        intent_id: str,
        expires_at: Optional[datetime],
        connected_account_id: Optional[str] = None,
        authorized_amount: Optional[Decimal] = None,
    ) -> None:
        """pending -> pre_authorized. Raises ConflictError if the row moved."""
        now = utcnow()
        values: Dict[str, Any] = {
            "status": PaymentStatus.PRE_AUTHORIZED.value,
            "stripe_payment_intent_id": intent_id,
            "authorization_expires_at": expires_at,
            "pre_auth_placed_at": now,
        }
        if authorized_amount is not None:
            values["authorized_amount"] = round_money(authorized_amount)
        if connected_account_id:
            values["professional_connected_account_id"] = connected_account_id

        matched = self._guarded_update(
            payment_id,
            [Payment.status == PaymentStatus.PENDING.value, Payment.refunded_at.is_(None)],
            values,
        )
        if matched == 0:
            raise ConflictError(payment_id=payment_id, expected_status=PaymentStatus.PENDING.value)
        self.create_payment_event(
            payment_id,
            "pre_authorized",
            {
                "intent_id": intent_id,
                "expires_at": expires_at.isoformat() if expires_at else None,
                "connected_account_id": connected_account_id,
                "authorized_amount": str(round_money(authorized_amount)) if authorized_amount is not None else None,
            },
        )

    def mark_captured(self, payment_id: str, captured_amount: Decimal) -> None:
        """pre_authorized -> captured. Raises ConflictError if the row moved."""
        amount = round_money(captured_amount)
        matched = self._guarded_update(
            payment_id,
            [Payment.status == PaymentStatus.PRE_AUTHORIZED.value, Payment.refunded_at.is_(None)],
            {
                "status": PaymentStatus.CAPTURED.value,
                "captured_at": utcnow(),
                "captured_amount": amount,
            },
        )
        if matched == 0:
            raise ConflictError(
                payment_id=payment_id, expected_status=PaymentStatus.PRE_AUTHORIZED.value
            )
        self.create_payment_event(payment_id, "captured", {"amount": str(amount)})

    def mark_refunded(
        self,
        payment_id: str,
        refunded_amount: Decimal,
        reason: Optional[str],
        refund_transaction_id: Optional[str] = None,
    ) -> None:
        """
        Close a payment against every batch query.

        Sets ``refunded_at``. The status becomes ``refunded`` unless the payment
        was already captured, in which case the captured status is kept and the
        partial refund is recorded next to it.
        """
        amount = round_money(refunded_amount)
        payment = self.get_by_id(payment_id)
        if payment is None:
            raise ConflictError("Payment not found", payment_id=payment_id)

        new_status = (
            PaymentStatus.CAPTURED.value
            if payment.status == PaymentStatus.CAPTURED.value and amount > 0
            else PaymentStatus.REFUNDED.value
        )
        matched = self._guarded_update(
            payment_id,
            [
                Payment.refunded_at.is_(None),
                Payment.status != PaymentStatus.FAILED.value,
                Payment.status == payment.status,
            ],
            {
                "status": new_status,
                "refunded_at": utcnow(),
                "refunded_amount": amount,
                "refund_reason": reason,
                "refund_transaction_id": refund_transaction_id,
            },
        )
        if matched == 0:
            raise ConflictError(
                "Payment was already refunded or failed",
                payment_id=payment_id,
                expected_status=payment.status,
            )
        self.create_payment_event(
            payment_id,
            "refunded",
            {"amount": str(amount), "reason": reason, "refund_id": refund_transaction_id},
        )

    def mark_failed(self, payment_id: str, reason: str) -> None:
        """pending -> failed, for non-retryable processor declines."""
        matched = self._guarded_update(
            payment_id,
            [Payment.status == PaymentStatus.PENDING.value],
            {"status": PaymentStatus.FAILED.value, "failure_reason": reason[:500]},
        )
        if matched == 0:
            raise ConflictError(payment_id=payment_id, expected_status=PaymentStatus.PENDING.value)
        self.create_payment_event(payment_id, "failed", {"reason": reason})

    # ========== Payment Events ==========

    def create_payment_event(
        self, payment_id: str, event_type: str, event_data: Optional[Dict[str, Any]] = None
    ) -> PaymentEvent:
        """
        Create a payment event for tracking payment state changes.

        Args:
            payment_id: The payment this event relates to
            event_type: Type of event (e.g., 'pre_authorized', 'captured')
            event_data: Optional JSON data for the event

        Returns:
            Created PaymentEvent object

        Raises:
            RepositoryException: If creation fails
        """
        try:
            event = PaymentEvent(
                id=str(ulid.ULID()),
                payment_id=payment_id,
                event_type=event_type,
                event_data=event_data or {},
                created_at=utcnow(),
            )
            self.db.add(event)
            self.db.flush()
            return event
        except Exception as e:
            self.logger.error(f"Failed to create payment event: {str(e)}")
            raise RepositoryException(f"Failed to create payment event: {str(e)}")

    def get_payment_events(self, payment_id: str) -> List[PaymentEvent]:
        try:
            stmt = (
                select(PaymentEvent)
                .where(PaymentEvent.payment_id == payment_id)
                .order_by(PaymentEvent.created_at.asc(), PaymentEvent.id.asc())
            )
            return list(self.db.execute(stmt).scalars().all())
        except Exception as e:
            self.logger.error(f"Failed to get payment events: {str(e)}")
            raise RepositoryException(f"Failed to get payment events: {str(e)}")
