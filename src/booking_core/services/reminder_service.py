"""Appointment reminders (24 hours and 1 hour ahead).

Sent reminders are remembered in Redis under `reminder:{appointment_id}-{label}`
so a restart or a second worker never sends the same reminder twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.config import Settings, get_settings
from booking_core.database.models import Appointment, AppointmentStatus
from booking_core.repositories.appointments_repository import AppointmentsRepository
from booking_core.services.marker_store import MarkerStore, reminder_key
from booking_core.services.notification_service import NotificationService
from booking_core.utils.clock import to_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderWindow:
    label: str
    earliest: timedelta
    latest: timedelta


REMINDER_WINDOWS = (
    ReminderWindow("24h", timedelta(hours=23), timedelta(hours=25)),
    ReminderWindow("1h", timedelta(minutes=55), timedelta(minutes=65)),
)

REMINDABLE_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)


class ReminderService:
    """Finds appointments entering a reminder window and notifies their customers once."""

    def __init__(
        self,
        session: AsyncSession,
        markers: MarkerStore,
        notifier: Optional[NotificationService] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.repo = AppointmentsRepository(session)
        self.markers = markers
        self.notifier = notifier or NotificationService()

    @property
    def _dedup_ttl(self) -> int:
        return self.settings.booking.reminder_dedup_ttl_minutes * 60

    async def send_due(self, now: datetime) -> int:
        """Send every reminder whose window contains `now`. Returns how many were sent."""
        tz = self.settings.booking.zone
        sent = 0
        for window in REMINDER_WINDOWS:
            first_day = now + window.earliest
            last_day = now + window.latest
            # One day of slack either side covers the UTC/local date shift
            candidates = await self.repo.list_by_status_between(
                REMINDABLE_STATUSES,
                first_day.date() - timedelta(days=1),
                last_day.date() + timedelta(days=1),
            )
            for appointment in candidates:
                starts_in = to_utc(appointment.appointment_date, appointment.start_time, tz) - now
                if window.earliest <= starts_in <= window.latest:
                    if await self._send_once(appointment, window.label):
                        sent += 1

        if sent:
            logger.info(f"Sent {sent} appointment reminder(s)")
        return sent

    async def _send_once(self, appointment: Appointment, label: str) -> bool:
        key = reminder_key(appointment.id, label)
        if not await self.markers.claim(key, self._dedup_ttl):
            return False

        try:
            await self.notifier.send(
                f"appointment.reminder_{label}",
                {
                    "appointment_id": appointment.id,
                    "customer_id": appointment.customer_id,
                    "offering_id": appointment.offering_id,
                    "date": appointment.appointment_date.isoformat(),
                    "start": appointment.start_time,
                    "end": appointment.end_time,
                },
            )
        except httpx.HTTPError as e:
            # Give the next sweep a chance to retry
            await self.markers.release(key)
            logger.warning(f"Reminder {label} for appointment {appointment.id} failed: {e}")
            return False
        return True

    async def suppress(self, appointment_id: str) -> None:
        """Mark both reminders as already sent (cancelled appointment)."""
        ttl = max(self._dedup_ttl, int(REMINDER_WINDOWS[0].latest.total_seconds()) + 3600)
        for window in REMINDER_WINDOWS:
            await self.markers.mark(reminder_key(appointment_id, window.label), ttl)

    async def reset(self, appointment_id: str) -> None:
        """Forget sent reminders (rescheduled appointment)."""
        for window in REMINDER_WINDOWS:
            await self.markers.release(reminder_key(appointment_id, window.label))
