"""FastAPI dependencies."""

from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.database.session import get_session
from booking_core.services.appointments_service import (
    AppointmentsService,
    get_appointments_service,
)
from booking_core.services.marker_store import MarkerStore, get_marker_store
from booking_core.services.slot_lock_service import SlotLockService, get_slot_lock_service
from booking_core.services.slots_service import SlotsService, get_slots_service
from booking_core.services.waitlist_service import WaitlistService, get_waitlist_service


async def get_markers() -> AsyncGenerator[MarkerStore, None]:
    """Redis marker store scoped to one request."""
    markers = get_marker_store()
    try:
        yield markers
    finally:
        await markers.aclose()


def slots_service(session: AsyncSession = Depends(get_session)) -> SlotsService:
    return get_slots_service(session)


def slot_lock_service(session: AsyncSession = Depends(get_session)) -> SlotLockService:
    return get_slot_lock_service(session)


def appointments_service(
    session: AsyncSession = Depends(get_session),
    markers: MarkerStore = Depends(get_markers),
) -> AppointmentsService:
    return get_appointments_service(session, markers=markers)


def waitlist_service(session: AsyncSession = Depends(get_session)) -> WaitlistService:
    return get_waitlist_service(session)


__all__ = [
    "get_session",
    "get_markers",
    "slots_service",
    "slot_lock_service",
    "appointments_service",
    "waitlist_service",
]
