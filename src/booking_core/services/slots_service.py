"""Slot query surface: available slots, slot checks and nearby dates.

Every call re-reads appointments; nothing about remaining capacity is cached.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.config import Settings, get_settings
from booking_core.database.models import Offering
from booking_core.exceptions import NotFoundError, ValidationError
from booking_core.models.slots import (
    CheckSlotRequest,
    CheckSlotResponse,
    GetSlotsRequest,
    GroupedSlotResponse,
    NearbyDatesRequest,
    NearbyDatesResponse,
    ServiceSlotsRequest,
    ServiceSlotsResponse,
    SlotResponse,
)
from booking_core.models.common import as_utc
from booking_core.repositories.appointments_repository import AppointmentsRepository
from booking_core.repositories.offerings_repository import OfferingsRepository
from booking_core.repositories.recurrence_repository import RecurrenceRepository
from booking_core.repositories.slot_lock_repository import SlotKey, SlotLockRepository
from booking_core.services.availability import (
    apply_bookings,
    count_bookings,
    group_offering_slots,
    remaining_capacity,
)
from booking_core.services.nearby_dates import find_nearby_dates
from booking_core.services.slot_generator import Slot, find_slot, generate_slots
from booking_core.utils.clock import local_today, utcnow

logger = logging.getLogger(__name__)


class SlotsService:
    """Service for slot availability reads."""

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.offerings = OfferingsRepository(session)
        self.recurrence = RecurrenceRepository(session)
        self.appointments = AppointmentsRepository(session)
        self.locks = SlotLockRepository(session)

    async def get_offering(self, offering_id: str) -> Offering:
        """
        Load an active offering.

        Raises:
            NotFoundError: If the offering does not exist or is inactive
        """
        offering = await self.offerings.get_by_id(offering_id)
        if offering is None or not offering.is_active:
            raise NotFoundError("Offering", offering_id)
        return offering

    async def generated_slots(
        self, offering: Offering, day: date, duration: Optional[int] = None
    ) -> List[Slot]:
        """Raw slots for `day` before bookings are deducted."""
        entry = await self.recurrence.get_date_entry(offering.id, day)
        if entry is None:
            return []
        return generate_slots(entry, duration or offering.duration_minutes, offering.id)

    async def available_slots(
        self,
        offering: Offering,
        day: date,
        duration: Optional[int] = None,
        exclude_appointment_id: Optional[str] = None,
    ) -> List[Slot]:
        """Slots for `day` with overlapping bookings deducted and exhausted ones dropped."""
        slots = await self.generated_slots(offering, day, duration)
        if not slots:
            return []
        booked = await self._booked(offering.id, day, exclude_appointment_id)
        return apply_bookings(slots, booked)

    async def resolve_slot(self, offering: Offering, day: date, start: str, end: str) -> Slot:
        """
        The generated slot matching (start, end) exactly, capacity untouched.

        Raises:
            ValidationError: If no window on `day` produces this slot
        """
        slot = find_slot(await self.generated_slots(offering, day), start, end)
        if slot is None:
            raise ValidationError(
                "Requested time is not a bookable slot for this date",
                errors={"date": day.isoformat(), "start": start, "end": end},
            )
        return slot

    async def remaining_for(
        self,
        offering: Offering,
        day: date,
        start: str,
        end: str,
        exclude_appointment_id: Optional[str] = None,
    ) -> int:
        """Overlap-aware remaining capacity of one slot."""
        slot = await self.resolve_slot(offering, day, start, end)
        booked = await self._booked(offering.id, day, exclude_appointment_id)
        return remaining_capacity(slot, booked)

    async def alternatives(
        self, offering: Offering, day: date, start: str, end: str
    ) -> List[SlotResponse]:
        """Other available slots on the same date, capped by configuration."""
        limit = self.settings.booking.alternative_slots_limit
        if limit <= 0:
            return []
        others = [
            s
            for s in await self.available_slots(offering, day)
            if (s.start, s.end) != (start, end)
        ]
        return [SlotResponse.from_slot(s) for s in others[:limit]]

    async def _booked(
        self, offering_id: str, day: date, exclude_appointment_id: Optional[str] = None
    ) -> Dict:
        appointments = await self.appointments.find_for_date(offering_id, day)
        if exclude_appointment_id:
            appointments = [a for a in appointments if a.id != exclude_appointment_id]
        return count_bookings(appointments)

    async def get_slots(self, request: GetSlotsRequest) -> Dict[str, List[SlotResponse]]:
        """GetSlots: `{date: [slot, ...]}` for one offering."""
        offering = await self.get_offering(request.offering_id)
        slots = await self.available_slots(offering, request.date, request.duration)
        logger.debug(
            f"Computed {len(slots)} available slots for offering {offering.id} on {request.date}"
        )
        return {request.date.isoformat(): [SlotResponse.from_slot(s) for s in slots]}

    async def get_service_slots(self, request: ServiceSlotsRequest) -> ServiceSlotsResponse:
        """Available slots across every active offering of a service, merged by time."""
        offerings = await self.offerings.list_active_by_service(request.service_id)
        if not offerings:
            raise NotFoundError("Service", request.service_id)

        per_offering = [await self.available_slots(o, request.date) for o in offerings]
        grouped = group_offering_slots(per_offering)
        return ServiceSlotsResponse(
            date=request.date,
            slots=[GroupedSlotResponse.from_grouped(g) for g in grouped],
        )

    async def check_slot(
        self, request: CheckSlotRequest, now: Optional[datetime] = None
    ) -> CheckSlotResponse:
        """Advisory availability of one slot, including lock state."""
        now = now or utcnow()
        offering = await self.get_offering(request.offering_id)

        slot = find_slot(await self.generated_slots(offering, request.date), request.start, request.end)
        if slot is None:
            return CheckSlotResponse(
                available=False,
                alternative_slots=await self.alternatives(
                    offering, request.date, request.start, request.end
                ),
            )

        booked = await self._booked(offering.id, request.date)
        remaining = remaining_capacity(slot, booked)

        key = SlotKey(offering.id, request.date, request.start, request.end)
        lock = await self.locks.get_live(key, now)
        locked = lock is not None and lock.holder_id != request.holder_id

        available = remaining > 0 and not locked
        return CheckSlotResponse(
            available=available,
            remaining_capacity=max(remaining, 0),
            locked=locked,
            locked_until=as_utc(lock.expires_at) if locked else None,
            alternative_slots=None
            if available
            else await self.alternatives(offering, request.date, request.start, request.end),
        )

    async def nearby_dates(
        self, request: NearbyDatesRequest, now: Optional[datetime] = None
    ) -> NearbyDatesResponse:
        """Alternative dates with defined windows around a fully booked target."""
        booking = self.settings.booking
        offerings = await self.offerings.list_active_by_service(request.service_id)
        if not offerings:
            raise NotFoundError("Service", request.service_id)

        today = local_today(booking.zone, now)
        window_start = max(today, request.date - timedelta(days=booking.nearby_lookbehind_days))
        window_end = request.date + timedelta(days=booking.nearby_lookahead_days)

        by_offering = await self.recurrence.list_date_entries(
            [o.id for o in offerings], window_start, window_end
        )
        entries = [entry for group in by_offering.values() for entry in group]

        dates = find_nearby_dates(
            entries,
            target=request.date,
            today=today,
            total=booking.nearby_dates_total,
            lookbehind_days=booking.nearby_lookbehind_days,
            lookahead_days=booking.nearby_lookahead_days,
        )
        return NearbyDatesResponse(date=request.date, nearby_dates=dates)


def get_slots_service(session: AsyncSession) -> SlotsService:
    """Factory function to create SlotsService instance."""
    return SlotsService(session)
