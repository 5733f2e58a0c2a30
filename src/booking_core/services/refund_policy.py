"""Cancellation refund tiers and the appointment lifecycle table."""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, FrozenSet

from booking_core.database.models import AppointmentStatus

# (minimum hours before start, refund percentage, tier name), highest first
REFUND_TIERS = (
    (24, 100, "full"),
    (12, 75, "partial_75"),
    (2, 50, "partial_50"),
)
NO_REFUND_TIER = "none"

TERMINAL_STATUSES: FrozenSet[str] = frozenset(
    {
        AppointmentStatus.COMPLETED.value,
        AppointmentStatus.CANCELLED.value,
        AppointmentStatus.MISSED.value,
        AppointmentStatus.FAILED.value,
    }
)

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    AppointmentStatus.PENDING.value: frozenset(
        {AppointmentStatus.CONFIRMED.value, AppointmentStatus.CANCELLED.value}
    ),
    AppointmentStatus.CONFIRMED.value: frozenset(
        {
            AppointmentStatus.COMPLETED.value,
            AppointmentStatus.CANCELLED.value,
            AppointmentStatus.MISSED.value,
            AppointmentStatus.FAILED.value,
        }
    ),
    # Administrative correction of a completed appointment
    AppointmentStatus.COMPLETED.value: frozenset(
        {AppointmentStatus.MISSED.value, AppointmentStatus.FAILED.value}
    ),
}

CANCELLABLE_STATUSES: FrozenSet[str] = frozenset(
    {AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value}
)
OVERRIDE_SOURCE_STATUSES: FrozenSet[str] = frozenset(
    {AppointmentStatus.CONFIRMED.value, AppointmentStatus.COMPLETED.value}
)
OVERRIDE_TARGET_STATUSES: FrozenSet[str] = frozenset(
    {AppointmentStatus.MISSED.value, AppointmentStatus.FAILED.value}
)


def hours_until(start: datetime, now: datetime) -> float:
    """Hours from `now` to `start` (negative once the appointment has begun)."""
    return (start - now).total_seconds() / 3600


def refund_percentage(hours: float) -> int:
    """Refund step function: >=24h 100%, >=12h 75%, >=2h 50%, otherwise 0%."""
    for threshold, percentage, _ in REFUND_TIERS:
        if hours >= threshold:
            return percentage
    return 0


def policy_tier(hours: float) -> str:
    for threshold, _, tier in REFUND_TIERS:
        if hours >= threshold:
            return tier
    return NO_REFUND_TIER


def refund_amount(total: Decimal, percentage: int) -> Decimal:
    """`total * percentage / 100`, rounded to cents."""
    amount = Decimal(total) * Decimal(percentage) / Decimal(100)
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Dollars to cents for the payment gateway."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())
