"""Charge, deposit and schedule arithmetic. Pure functions, no I/O."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from ..core.exceptions import ValidationException
from ..core.money import HUNDRED, ZERO, Number, ensure_utc, percentage_of, round_money, to_decimal
from ..models.professional import CancellationPolicy, DepositConfig, DepositType

MINIMUM_DEPOSIT = Decimal("1.00")
PRE_AUTH_LEAD_TIME = timedelta(days=6)


@dataclass(frozen=True)
class ChargeBreakdown:
    percentage: Decimal
    amount: Decimal
    hours_until_appointment: float

    def to_payload(self) -> dict[str, object]:
        return {
            "charge_percentage": str(self.percentage),
            "charge_amount": str(self.amount),
            "hours_until_appointment": round(self.hours_until_appointment, 2),
        }


@dataclass(frozen=True)
class PaymentSchedule:
    pre_auth_at: datetime
    capture_at: datetime
    should_pre_auth_now: bool


def hours_between(start: datetime, now: datetime) -> float:
    return (ensure_utc(start) - ensure_utc(now)).total_seconds() / 3600


def compute_cancellation_charge(
    policy: CancellationPolicy | None,
    total_amount: Number,
    appointment_start: datetime,
    now: datetime,
) -> ChargeBreakdown:
    """
    Charge owed for cancelling ``appointment_start`` at ``now``.

    Under 24 hours notice pays the under-24h rate, under 48 hours the 24-48h
    rate, anything earlier is free. An appointment that already started has
    negative notice and lands in the under-24h band.
    """
    hours_until = hours_between(appointment_start, now)

    if policy is None or not policy.enabled:
        return ChargeBreakdown(percentage=ZERO, amount=ZERO, hours_until_appointment=hours_until)

    if hours_until < 24:
        percentage = to_decimal(policy.charge_percentage_under_24h)
    elif hours_until < 48:
        percentage = to_decimal(policy.charge_percentage_24_to_48h)
    else:
        percentage = ZERO

    return ChargeBreakdown(
        percentage=percentage,
        amount=percentage_of(total_amount, percentage),
        hours_until_appointment=hours_until,
    )


def clamp_percentage(value: Number) -> Decimal:
    """Clamp a human-entered percentage into 0-100."""
    pct = to_decimal(value)
    if pct < 0:
        return Decimal("0")
    if pct > HUNDRED:
        return HUNDRED
    return pct


def compute_no_show_charge(total_amount: Number, charge_percentage: Number) -> Decimal:
    pct = to_decimal(charge_percentage)
    if pct < 0 or pct > HUNDRED:
        raise ValidationException(
            f"No-show charge percentage must be between 0 and 100, got {pct}",
            code="INVALID_CHARGE_PERCENTAGE",
            details={"charge_percentage": str(pct)},
        )
    return percentage_of(total_amount, pct)


def compute_deposit_amount(service_price: Number, deposit_config: DepositConfig | None) -> Decimal:
    """
    Deposit collected up front for a booking.

    Percentage deposits take a share of the price, fixed deposits are capped
    at the price. Either way an enabled deposit is never below one dollar.
    """
    if deposit_config is None or not deposit_config.requires_deposit:
        return ZERO
    if deposit_config.deposit_value is None:
        return ZERO

    price = round_money(service_price)
    value = to_decimal(deposit_config.deposit_value)

    if deposit_config.deposit_type == DepositType.FIXED:
        deposit = round_money(min(value, price))
    else:
        deposit = percentage_of(price, value)

    return max(deposit, MINIMUM_DEPOSIT)


def compute_payment_schedule(start: datetime, end: datetime, now: datetime) -> PaymentSchedule:
    pre_auth_at = ensure_utc(start) - PRE_AUTH_LEAD_TIME
    return PaymentSchedule(
        pre_auth_at=pre_auth_at,
        capture_at=ensure_utc(end),
        should_pre_auth_now=pre_auth_at <= ensure_utc(now),
    )


def validate_cancellation_policy(policy: CancellationPolicy) -> None:
    """Raise ValidationException unless rates are within 0-100 and under_24h >= 24_to_48h."""
    under_24h = to_decimal(policy.charge_percentage_under_24h)
    within_48h = to_decimal(policy.charge_percentage_24_to_48h)

    for label, value in (("under 24h", under_24h), ("24-48h", within_48h)):
        if value < 0 or value > HUNDRED:
            raise ValidationException(
                f"Cancellation rate for {label} must be between 0 and 100",
                code="INVALID_CANCELLATION_POLICY",
                details={"rate": label, "value": str(value)},
            )

    if under_24h < within_48h:
        raise ValidationException(
            "Cancellation rate under 24h must be at least the 24-48h rate",
            code="INVALID_CANCELLATION_POLICY",
            details={
                "charge_percentage_under_24h": str(under_24h),
                "charge_percentage_24_to_48h": str(within_48h),
            },
        )
