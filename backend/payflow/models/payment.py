"""
Payment models for the Stripe integration.

This module defines the payment-related models: the per-booking payment
record that drives the pre-auth/capture state machine, its audit trail of
events, and the client-to-Stripe-customer mapping.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..core.money import round_money
from ..database import Base

if TYPE_CHECKING:
    from .booking import Booking


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PRE_AUTHORIZED = "pre_authorized"
    CAPTURED = "captured"
    REFUNDED = "refunded"
    FAILED = "failed"


class CaptureMethod(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class StripeCustomer(Base):
    """Maps client users to their Stripe customer IDs."""

    __tablename__ = "stripe_customers"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(String(26), nullable=False, unique=True, index=True)
    stripe_customer_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<StripeCustomer(user_id={self.user_id}, stripe_id={self.stripe_customer_id})>"


class Payment(Base):
    """Payment and capture state for a single booking."""

    __tablename__ = "booking_payments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, comment="Service/deposit portion, dollars")
    tip_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    capture_method: Mapped[str] = mapped_column(String(20), nullable=False, default=CaptureMethod.MANUAL.value)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)

    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)
    stripe_payment_method_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    professional_connected_account_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    pre_auth_scheduled_for: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    capture_scheduled_for: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    pre_auth_placed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    authorization_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="As reported by the processor"
    )
    authorized_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True, comment="Amount the hold covers; capture never exceeds it"
    )

    captured_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    captured_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    refund_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refund_transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    failure_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    booking: Mapped["Booking"] = relationship("Booking", back_populates="payment")

    @property
    def total_capture_amount(self) -> Decimal:
        """Service portion plus tip, the amount the capture job takes."""
        return round_money(Decimal(self.amount or 0) + Decimal(self.tip_amount or 0))

    @property
    def capturable_amount(self) -> Decimal:
        """Most that can be taken from the current hold."""
        if self.authorized_amount is None:
            return self.total_capture_amount
        return round_money(self.authorized_amount)

    def __repr__(self) -> str:
        return f"<Payment(booking_id={self.booking_id}, amount={self.amount}, status={self.status})>"


class PaymentEvent(Base):
    """Append-only audit trail of payment transitions and processor actions."""

    __tablename__ = "payment_events"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    payment_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("booking_payments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    event_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<PaymentEvent(payment_id={self.payment_id}, type={self.event_type})>"
