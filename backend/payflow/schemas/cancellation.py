"""Request and response schemas for cancellations and no-shows."""

from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator

from ..models.booking import CancellationInitiator
from ..services.cancellation_service import CancellationResult
from ..services.charge_calculator import clamp_percentage
from .base import Money, StandardizedModel, StrictRequestModel


class CancelBookingRequest(StrictRequestModel):
    reason: str = Field(..., max_length=1000, description="Why the booking is cancelled")
    cancelled_by: CancellationInitiator = CancellationInitiator.CLIENT
    force_policy: bool = Field(
        default=False, description="Apply the cancellation policy even when the client did not cancel"
    )


class NoShowRequest(StrictRequestModel):
    charge_percentage: Decimal = Field(..., description="Share of the total to charge, 0-100")

    @field_validator("charge_percentage")
    @classmethod
    def _clamp(cls, value: Decimal) -> Decimal:
        return clamp_percentage(value)


class CancellationResponse(StandardizedModel):
    booking_id: str
    status: str
    charge_percentage: Money
    charge_amount: Money
    hours_until_appointment: Optional[float] = None
    charged: bool
    refunded_amount: Money
    payment_status: Optional[str] = None
    cancelled_by: Optional[str] = None
    policy_applied: bool = False

    @classmethod
    def from_result(cls, result: CancellationResult) -> "CancellationResponse":
        return cls(
            booking_id=result.booking_id,
            status=result.status,
            charge_percentage=result.charge_percentage,
            charge_amount=result.charge_amount,
            hours_until_appointment=(
                round(result.hours_until_appointment, 2)
                if result.hours_until_appointment is not None
                else None
            ),
            charged=result.charged,
            refunded_amount=result.refunded_amount,
            payment_status=result.payment_status,
            cancelled_by=result.cancelled_by,
            policy_applied=result.policy_applied,
        )
