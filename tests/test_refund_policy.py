"""Tests for the cancellation refund tiers and lifecycle table."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from booking_core.services import refund_policy


class TestRefundPercentage:
    @pytest.mark.parametrize(
        "hours,expected",
        [
            (48, 100),
            (24.0, 100),
            (23.99, 75),
            (12.0, 75),
            (11.99, 50),
            (2.0, 50),
            (1.99, 0),
            (0, 0),
            (-3, 0),
        ],
    )
    def test_thresholds(self, hours, expected):
        assert refund_policy.refund_percentage(hours) == expected

    @pytest.mark.parametrize(
        "hours,tier",
        [(30, "full"), (13, "partial_75"), (5, "partial_50"), (1, "none")],
    )
    def test_policy_tier(self, hours, tier):
        assert refund_policy.policy_tier(hours) == tier

    def test_amount_never_increases_as_start_approaches(self):
        total = Decimal("100.00")
        amounts = [
            refund_policy.refund_amount(total, refund_policy.refund_percentage(h / 4))
            for h in range(200, -8, -1)
        ]
        assert all(a >= b for a, b in zip(amounts, amounts[1:]))


class TestAmounts:
    def test_half_refund(self):
        assert refund_policy.refund_amount(Decimal("100"), 50) == Decimal("50.00")

    def test_rounds_half_up_to_cents(self):
        assert refund_policy.refund_amount(Decimal("10.05"), 75) == Decimal("7.54")

    def test_minor_units(self):
        assert refund_policy.to_minor_units(Decimal("19.99")) == 1999
        assert refund_policy.to_minor_units(Decimal("0.005")) == 1


def test_hours_until():
    now = datetime(2030, 3, 15, 4, 0)
    assert refund_policy.hours_until(now + timedelta(hours=5), now) == 5
    assert refund_policy.hours_until(now - timedelta(minutes=30), now) == -0.5


class TestTransitions:
    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            ("pending", "confirmed", True),
            ("pending", "cancelled", True),
            ("confirmed", "completed", True),
            ("confirmed", "missed", True),
            ("completed", "failed", True),
            ("pending", "completed", False),
            ("cancelled", "confirmed", False),
            ("completed", "cancelled", False),
            ("missed", "completed", False),
        ],
    )
    def test_can_transition(self, current, target, allowed):
        assert refund_policy.can_transition(current, target) is allowed

    def test_only_pending_and_confirmed_are_cancellable(self):
        assert refund_policy.CANCELLABLE_STATUSES == {"pending", "confirmed"}
