"""Money helpers: every amount in the orchestrator passes through here."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Optional, Union

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value: Optional[Number]) -> Decimal:
    """Coerce a stored or user value to Decimal (floats go through str)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(value: Optional[Number]) -> Decimal:
    """Round to cents with half-even rounding."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)


def percentage_of(amount: Number, percentage: Number) -> Decimal:
    return round_money(to_decimal(amount) * to_decimal(percentage) / HUNDRED)


def to_cents(amount: Number) -> int:
    """Dollars to integer cents for the processor."""
    return int((round_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_EVEN))


def from_cents(cents: Optional[int]) -> Decimal:
    if cents is None:
        return ZERO
    return round_money(Decimal(int(cents)) / 100)


def ensure_utc(value: datetime) -> datetime:
    """Normalize naive (database) or offset datetimes to aware UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
