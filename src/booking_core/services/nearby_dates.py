"""Alternative-date suggestions for a fully booked target date."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, List

from booking_core.services.slot_generator import DateEntry


def find_nearby_dates(
    entries: Iterable[DateEntry],
    target: date,
    today: date,
    total: int = 10,
    lookbehind_days: int = 1,
    lookahead_days: int = 60,
) -> List[date]:
    """Pick up to `total` dates near `target` that have at least one window.

    At most one date strictly before the target is returned (the nearest one,
    never before `today`), and it is skipped entirely when the target is today
    or tomorrow. The rest are the earliest dates after the target. Only window
    existence is checked; capacity is the caller's concern.
    """
    if total <= 0:
        return []

    window_start = max(today, target - timedelta(days=lookbehind_days))
    window_end = target + timedelta(days=lookahead_days)

    candidates = sorted(
        {
            entry.date
            for entry in entries
            if entry.has_windows
            and window_start <= entry.date <= window_end
            and entry.date >= today
            and entry.date != target
        }
    )

    before = [d for d in candidates if d < target]
    after = [d for d in candidates if d > target]

    result: List[date] = []
    if before and (target - today).days > 1:
        result.append(before[-1])

    result.extend(after[: total - len(result)])
    return result

