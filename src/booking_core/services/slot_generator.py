"""Expansion of recurring availability windows into fixed-length slots."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence

from booking_core.utils.clock import format_hhmm, parse_hhmm


@dataclass(frozen=True)
class TimeWindow:
    """An availability window on one date. `capacity=None` defers to the date default."""

    start: str
    end: str
    capacity: Optional[int] = None


@dataclass(frozen=True)
class DateEntry:
    """One calendar date of a recurrence definition."""

    date: date
    default_capacity: int
    windows: Sequence[TimeWindow] = field(default_factory=tuple)

    @property
    def has_windows(self) -> bool:
        return any(w.start and w.end for w in self.windows)


@dataclass(frozen=True)
class Slot:
    """A bookable interval derived from a window. Never persisted."""

    start: str
    end: str
    remaining_capacity: int
    index: int
    offering_id: Optional[str] = None

    @property
    def key(self) -> tuple:
        return (self.start, self.end)


def generate_slots(
    entry: DateEntry,
    duration_minutes: int,
    offering_id: Optional[str] = None,
) -> List[Slot]:
    """Expand every window of `entry` into back-to-back slots of `duration_minutes`.

    A window (or trailing remainder) shorter than the duration yields nothing.
    Windows are walked independently and concatenated in their stored order,
    so overlapping or duplicated windows produce duplicate slots.

    Raises:
        ValueError: If the duration is not positive or a window time is malformed.
    """
    if duration_minutes <= 0:
        raise ValueError(f"Slot duration must be positive, got {duration_minutes}")

    slots: List[Slot] = []
    for window in entry.windows:
        window_start = parse_hhmm(window.start)
        window_end = parse_hhmm(window.end)
        capacity = window.capacity if window.capacity is not None else entry.default_capacity

        cursor = window_start
        while cursor + duration_minutes <= window_end:
            slots.append(
                Slot(
                    start=format_hhmm(cursor),
                    end=format_hhmm(cursor + duration_minutes),
                    remaining_capacity=capacity,
                    index=len(slots),
                    offering_id=offering_id,
                )
            )
            cursor += duration_minutes

    return slots


def find_slot(slots: Sequence[Slot], start: str, end: str) -> Optional[Slot]:
    """First slot with exactly this (start, end), if the generator produced one."""
    for slot in slots:
        if slot.start == start and slot.end == end:
            return slot
    return None
