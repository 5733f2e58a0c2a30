"""Reconciliation of generated slots against existing appointments."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from booking_core.database.models import AppointmentStatus
from booking_core.services.slot_generator import Slot
from booking_core.utils.clock import parse_hhmm

SlotKey = Tuple[str, str]


@dataclass(frozen=True)
class GroupedSlot:
    """A (start, end) pair offered by one or more offerings of a service family."""

    start: str
    end: str
    remaining_capacity: int
    offering_ids: Tuple[str, ...]


def intervals_overlap(a: SlotKey, b: SlotKey) -> bool:
    """Half-open overlap test on ("HH:MM", "HH:MM") pairs; touching endpoints don't overlap."""
    a_start, a_end = parse_hhmm(a[0]), parse_hhmm(a[1])
    b_start, b_end = parse_hhmm(b[0]), parse_hhmm(b[1])
    return not (a_end <= b_start or b_end <= a_start)


def count_bookings(appointments: Iterable) -> Dict[SlotKey, int]:
    """Aggregate non-cancelled appointments into `(start, end) -> booked count`."""
    counts: Counter = Counter()
    for appointment in appointments:
        if appointment.status == AppointmentStatus.CANCELLED.value:
            continue
        counts[(appointment.start_time, appointment.end_time)] += 1
    return dict(counts)


def remaining_capacity(slot: Slot, booked: Mapping[SlotKey, int]) -> int:
    """Capacity left on `slot` after every overlapping booking is deducted."""
    remaining = slot.remaining_capacity
    for key, count in booked.items():
        if intervals_overlap(slot.key, key):
            remaining -= count
    return remaining


def apply_bookings(slots: Sequence[Slot], booked: Mapping[SlotKey, int]) -> List[Slot]:
    """Deduct overlapping bookings and drop exhausted slots, keeping generation order."""
    available: List[Slot] = []
    for slot in slots:
        remaining = remaining_capacity(slot, booked)
        if remaining > 0:
            available.append(replace(slot, remaining_capacity=remaining))
    return available


def group_offering_slots(slot_lists: Iterable[Sequence[Slot]]) -> List[GroupedSlot]:
    """Merge available slots of several offerings into one start-sorted list.

    Identical (start, end) pairs collapse into one record listing every
    contributing offering; the first record's capacity is kept.
    """
    grouped: Dict[SlotKey, GroupedSlot] = {}
    for slots in slot_lists:
        for slot in slots:
            existing = grouped.get(slot.key)
            if existing is None:
                grouped[slot.key] = GroupedSlot(
                    start=slot.start,
                    end=slot.end,
                    remaining_capacity=slot.remaining_capacity,
                    offering_ids=(slot.offering_id,) if slot.offering_id else (),
                )
            elif slot.offering_id and slot.offering_id not in existing.offering_ids:
                grouped[slot.key] = replace(
                    existing, offering_ids=existing.offering_ids + (slot.offering_id,)
                )

    return sorted(grouped.values(), key=lambda g: (parse_hhmm(g.start), parse_hhmm(g.end)))
