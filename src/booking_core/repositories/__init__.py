"""Data access repositories."""

from booking_core.repositories.appointments_repository import AppointmentsRepository
from booking_core.repositories.base import BaseRepository
from booking_core.repositories.offerings_repository import OfferingsRepository
from booking_core.repositories.recurrence_repository import RecurrenceRepository
from booking_core.repositories.slot_lock_repository import SlotKey, SlotLockRepository
from booking_core.repositories.waitlist_repository import WaitlistRepository

__all__ = [
    "BaseRepository",
    "AppointmentsRepository",
    "OfferingsRepository",
    "RecurrenceRepository",
    "SlotKey",
    "SlotLockRepository",
    "WaitlistRepository",
]
