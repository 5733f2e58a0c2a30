"""Pydantic models for slot query endpoints."""

import datetime as dt
from typing import List, Optional

from pydantic import Field

from booking_core.models.common import CamelModel, SlotKeyModel
from booking_core.services.availability import GroupedSlot
from booking_core.services.slot_generator import Slot


class GetSlotsRequest(CamelModel):
    """Request model for listing available slots of one offering on one date."""

    offering_id: str = Field(..., min_length=1, description="Offering ID")
    date: dt.date = Field(..., description="Calendar date (YYYY-MM-DD)")
    duration: Optional[int] = Field(
        None, ge=1, le=24 * 60, description="Slot length in minutes (defaults to the offering's)"
    )


class SlotResponse(CamelModel):
    """A bookable slot with its remaining capacity."""

    start: str = Field(..., description="Start time (HH:MM)")
    end: str = Field(..., description="End time (HH:MM)")
    remaining_capacity: int = Field(..., description="Bookings still possible")

    @classmethod
    def from_slot(cls, slot: Slot) -> "SlotResponse":
        return cls(start=slot.start, end=slot.end, remaining_capacity=slot.remaining_capacity)


class ServiceSlotsRequest(CamelModel):
    """Request model for slots across every offering of a logical service."""

    service_id: str = Field(..., min_length=1, description="Logical service (offering family) ID")
    date: dt.date = Field(..., description="Calendar date (YYYY-MM-DD)")


class GroupedSlotResponse(SlotResponse):
    """A slot offered by one or more offerings."""

    offering_ids: List[str] = Field(..., description="Offerings providing this slot")

    @classmethod
    def from_grouped(cls, slot: GroupedSlot) -> "GroupedSlotResponse":
        return cls(
            start=slot.start,
            end=slot.end,
            remaining_capacity=slot.remaining_capacity,
            offering_ids=list(slot.offering_ids),
        )


class ServiceSlotsResponse(CamelModel):
    date: dt.date
    slots: List[GroupedSlotResponse] = Field(default_factory=list)


class CheckSlotRequest(SlotKeyModel):
    """Request model for checking a single slot."""

    holder_id: Optional[str] = Field(
        None, description="Caller's holder ID; its own lock does not count as a conflict"
    )


class CheckSlotResponse(CamelModel):
    """Result of a slot check. Advisory only: the lock step is authoritative."""

    available: bool
    remaining_capacity: Optional[int] = None
    locked: bool = False
    locked_until: Optional[dt.datetime] = None
    alternative_slots: Optional[List[SlotResponse]] = None


class NearbyDatesRequest(CamelModel):
    """Request model for alternative dates near a fully booked one."""

    service_id: str = Field(..., min_length=1, description="Logical service (offering family) ID")
    date: dt.date = Field(..., description="Target date (YYYY-MM-DD)")


class NearbyDatesResponse(CamelModel):
    date: dt.date
    nearby_dates: List[dt.date] = Field(default_factory=list)
