# backend/tests/services/test_charge_calculator.py
"""
Unit tests for charge, deposit and schedule arithmetic.

No database: the calculator is pure.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from payflow.core.exceptions import ValidationException
from payflow.models import CancellationPolicy, DepositConfig, DepositType
from payflow.services.charge_calculator import (
    clamp_percentage,
    compute_cancellation_charge,
    compute_deposit_amount,
    compute_no_show_charge,
    compute_payment_schedule,
    validate_cancellation_policy,
)

POLICY = CancellationPolicy(
    enabled=True,
    charge_percentage_under_24h=Decimal("50"),
    charge_percentage_24_to_48h=Decimal("25"),
)


class TestCancellationCharge:
    @pytest.mark.parametrize(
        "hours_before,expected_pct,expected_amount",
        [
            (72, Decimal("0"), Decimal("0.00")),
            (48, Decimal("0"), Decimal("0.00")),
            (47.9, Decimal("25"), Decimal("25.00")),
            (24, Decimal("25"), Decimal("25.00")),
            (23.99, Decimal("50"), Decimal("50.00")),
            (1, Decimal("50"), Decimal("50.00")),
        ],
    )
    def test_notice_bands(self, now, hours_before, expected_pct, expected_amount):
        start = now + timedelta(hours=hours_before)

        breakdown = compute_cancellation_charge(POLICY, Decimal("100.00"), start, now)

        assert breakdown.percentage == expected_pct
        assert breakdown.amount == expected_amount
        assert breakdown.hours_until_appointment == pytest.approx(hours_before)

    def test_appointment_already_started_is_under_24h(self, now):
        breakdown = compute_cancellation_charge(POLICY, "80.00", now - timedelta(hours=1), now)
        assert breakdown.hours_until_appointment < 0
        assert breakdown.amount == Decimal("40.00")

    def test_disabled_policy_is_free(self, now):
        breakdown = compute_cancellation_charge(
            CancellationPolicy.disabled(), "100.00", now + timedelta(hours=2), now
        )
        assert breakdown.amount == Decimal("0.00")

    def test_missing_policy_is_free(self, now):
        breakdown = compute_cancellation_charge(None, "100.00", now + timedelta(hours=2), now)
        assert breakdown.percentage == Decimal("0.00")

    def test_amount_rounds_half_even(self, now):
        policy = CancellationPolicy(True, Decimal("50"), Decimal("25"))
        breakdown = compute_cancellation_charge(policy, "0.05", now + timedelta(hours=1), now)
        # 0.025 rounds to the even cent
        assert breakdown.amount == Decimal("0.02")

    def test_payload(self, now):
        breakdown = compute_cancellation_charge(POLICY, "100", now + timedelta(hours=30), now)
        assert breakdown.to_payload() == {
            "charge_percentage": "25",
            "charge_amount": "25.00",
            "hours_until_appointment": 30.0,
        }


class TestNoShowCharge:
    def test_percentage_of_total(self):
        assert compute_no_show_charge("120.00", 50) == Decimal("60.00")
        assert compute_no_show_charge("120.00", 0) == Decimal("0.00")
        assert compute_no_show_charge("120.00", 100) == Decimal("120.00")

    @pytest.mark.parametrize("pct", [-1, Decimal("100.01"), 250])
    def test_out_of_range_percentage_rejected(self, pct):
        with pytest.raises(ValidationException) as exc_info:
            compute_no_show_charge("100.00", pct)
        assert exc_info.value.code == "INVALID_CHARGE_PERCENTAGE"

    @pytest.mark.parametrize(
        "value,expected",
        [(-20, Decimal("0")), (150, Decimal("100")), ("37.5", Decimal("37.5"))],
    )
    def test_clamp(self, value, expected):
        assert clamp_percentage(value) == expected


class TestDepositAmount:
    def test_no_deposit(self):
        assert compute_deposit_amount("100", None) == Decimal("0.00")
        assert compute_deposit_amount(
            "100", DepositConfig(False, DepositType.PERCENTAGE, Decimal("20"))
        ) == Decimal("0.00")

    def test_percentage(self):
        config = DepositConfig(True, DepositType.PERCENTAGE, Decimal("20"))
        assert compute_deposit_amount("85.00", config) == Decimal("17.00")

    def test_fixed_capped_at_price(self):
        config = DepositConfig(True, DepositType.FIXED, Decimal("50"))
        assert compute_deposit_amount("30.00", config) == Decimal("30.00")
        assert compute_deposit_amount("80.00", config) == Decimal("50.00")

    def test_minimum_one_dollar(self):
        config = DepositConfig(True, DepositType.PERCENTAGE, Decimal("1"))
        assert compute_deposit_amount("20.00", config) == Decimal("1.00")


class TestPaymentSchedule:
    def test_pre_auth_six_days_before_start(self, now):
        start = now + timedelta(days=10)
        schedule = compute_payment_schedule(start, start + timedelta(hours=1), now)

        assert schedule.pre_auth_at == start - timedelta(days=6)
        assert schedule.capture_at == start + timedelta(hours=1)
        assert schedule.should_pre_auth_now is False

    def test_short_notice_booking_pre_auths_now(self, now):
        start = now + timedelta(days=2)
        schedule = compute_payment_schedule(start, start + timedelta(hours=1), now)
        assert schedule.should_pre_auth_now is True


class TestPolicyValidation:
    def test_valid(self):
        validate_cancellation_policy(CancellationPolicy(True, Decimal("100"), Decimal("0")))
        validate_cancellation_policy(CancellationPolicy(True, Decimal("40"), Decimal("40")))

    @pytest.mark.parametrize(
        "under_24h,within_48h",
        [(Decimal("10"), Decimal("20")), (Decimal("101"), Decimal("0")), (Decimal("50"), Decimal("-5"))],
    )
    def test_invalid(self, under_24h, within_48h):
        with pytest.raises(ValidationException):
            validate_cancellation_policy(CancellationPolicy(True, under_24h, within_48h))
