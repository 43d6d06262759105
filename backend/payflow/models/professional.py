"""
Professional profile model.

Only the payment-relevant slice of a professional's profile lives here:
the Stripe connected account that receives destination charges, the deposit
configuration, and the cancellation policy rates.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..database import Base

if TYPE_CHECKING:
    from .booking import Booking


class DepositType:
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class CancellationPolicy:
    """Per-professional charge rates for late cancellations."""

    enabled: bool
    charge_percentage_under_24h: Decimal
    charge_percentage_24_to_48h: Decimal

    @classmethod
    def disabled(cls) -> "CancellationPolicy":
        return cls(False, Decimal("0"), Decimal("0"))


@dataclass(frozen=True)
class DepositConfig:
    requires_deposit: bool
    deposit_type: str
    deposit_value: Optional[Decimal]


class ProfessionalProfile(Base):
    """Payment settings for a professional offering services on the marketplace."""

    __tablename__ = "professional_profiles"
    __table_args__ = (
        CheckConstraint(
            "cancellation_24h_charge_percentage >= cancellation_48h_charge_percentage",
            name="ck_cancellation_shorter_notice_charges_more",
        ),
        CheckConstraint(
            "cancellation_24h_charge_percentage BETWEEN 0 AND 100"
            " AND cancellation_48h_charge_percentage BETWEEN 0 AND 100",
            name="ck_cancellation_rates_range",
        ),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)

    # Stripe Connect destination; null until onboarding completes
    stripe_account_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Deposit configuration
    requires_deposit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deposit_type: Mapped[str] = mapped_column(String(20), default=DepositType.PERCENTAGE, nullable=False)
    deposit_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    # Cancellation policy
    cancellation_policy_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cancellation_24h_charge_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), default=Decimal("50"), nullable=False
    )
    cancellation_48h_charge_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), default=Decimal("25"), nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    bookings: Mapped[List["Booking"]] = relationship("Booking", back_populates="professional")

    @property
    def cancellation_policy(self) -> CancellationPolicy:
        return CancellationPolicy(
            enabled=bool(self.cancellation_policy_enabled),
            charge_percentage_under_24h=Decimal(self.cancellation_24h_charge_percentage or 0),
            charge_percentage_24_to_48h=Decimal(self.cancellation_48h_charge_percentage or 0),
        )

    @property
    def deposit_config(self) -> DepositConfig:
        return DepositConfig(
            requires_deposit=bool(self.requires_deposit),
            deposit_type=self.deposit_type,
            deposit_value=Decimal(self.deposit_value) if self.deposit_value is not None else None,
        )

    def __repr__(self) -> str:
        return f"<ProfessionalProfile(id={self.id}, stripe_account={self.stripe_account_id})>"
