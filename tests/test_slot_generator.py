"""Tests for window-to-slot expansion."""

from datetime import date

import pytest

from booking_core.services.slot_generator import DateEntry, TimeWindow, find_slot, generate_slots
from booking_core.utils.clock import parse_hhmm

DAY = date(2030, 3, 15)


def _entry(*windows, default_capacity=1):
    return DateEntry(date=DAY, default_capacity=default_capacity, windows=tuple(windows))


class TestGenerateSlots:
    def test_one_window_steps_by_duration(self):
        slots = generate_slots(_entry(TimeWindow("09:00", "10:00")), 30)

        assert [(s.start, s.end, s.remaining_capacity) for s in slots] == [
            ("09:00", "09:30", 1),
            ("09:30", "10:00", 1),
        ]
        assert [s.index for s in slots] == [0, 1]

    def test_trailing_remainder_is_dropped(self):
        slots = generate_slots(_entry(TimeWindow("09:00", "10:10")), 30)
        assert [s.end for s in slots] == ["09:30", "10:00"]

    def test_window_shorter_than_duration_yields_nothing(self):
        assert generate_slots(_entry(TimeWindow("09:00", "09:20")), 30) == []

    def test_window_capacity_overrides_date_default(self):
        slots = generate_slots(
            _entry(TimeWindow("09:00", "09:30", capacity=4), TimeWindow("10:00", "10:30"), default_capacity=2),
            30,
        )
        assert [s.remaining_capacity for s in slots] == [4, 2]

    def test_windows_are_concatenated_in_stored_order(self):
        slots = generate_slots(
            _entry(TimeWindow("14:00", "15:00"), TimeWindow("09:00", "10:00")), 60
        )
        assert [s.start for s in slots] == ["14:00", "09:00"]
        assert [s.index for s in slots] == [0, 1]

    def test_overlapping_windows_produce_duplicates(self):
        slots = generate_slots(
            _entry(TimeWindow("09:00", "10:00"), TimeWindow("09:00", "10:00")), 60
        )
        assert [(s.start, s.end) for s in slots] == [("09:00", "10:00"), ("09:00", "10:00")]

    def test_offering_id_is_carried(self):
        slots = generate_slots(_entry(TimeWindow("09:00", "10:00")), 60, offering_id="off-1")
        assert slots[0].offering_id == "off-1"

    @pytest.mark.parametrize("duration", [15, 25, 45, 90])
    def test_every_slot_fits_its_window(self, duration):
        window = TimeWindow("08:00", "12:00")
        for slot in generate_slots(_entry(window), duration):
            assert parse_hhmm(slot.end) - parse_hhmm(slot.start) == duration
            assert parse_hhmm(slot.end) <= parse_hhmm(window.end)

    @pytest.mark.parametrize("duration", [0, -30])
    def test_non_positive_duration_is_rejected(self, duration):
        with pytest.raises(ValueError):
            generate_slots(_entry(TimeWindow("09:00", "10:00")), duration)

    def test_malformed_window_is_rejected(self):
        with pytest.raises(ValueError):
            generate_slots(_entry(TimeWindow("9am", "10:00")), 30)

    def test_date_without_windows(self):
        entry = _entry()
        assert not entry.has_windows
        assert generate_slots(entry, 30) == []


def test_find_slot_matches_exact_range():
    slots = generate_slots(_entry(TimeWindow("09:00", "10:00")), 30)

    assert find_slot(slots, "09:30", "10:00").index == 1
    assert find_slot(slots, "09:15", "09:45") is None
