"""Appointment sweeps: reminders and auto-completion."""

import asyncio
import logging

from celery import shared_task

from booking_core.config import get_settings
from booking_core.database.session import close_db, get_session_context
from booking_core.services.appointments_service import AppointmentsService
from booking_core.services.marker_store import get_marker_store, sweep_key
from booking_core.services.reminder_service import ReminderService
from booking_core.utils.clock import utcnow

logger = logging.getLogger(__name__)

AUTO_COMPLETE_SWEEP = "auto-complete"


async def _send_reminders() -> dict:
    markers = get_marker_store()
    try:
        async with get_session_context() as session:
            sent = await ReminderService(session, markers).send_due(utcnow())
        return {"sent": sent}
    finally:
        await markers.aclose()
        # Each task run owns its event loop, so the pool must not outlive it
        await close_db()


async def _auto_complete() -> dict:
    settings = get_settings()
    now = utcnow()
    markers = get_marker_store()
    try:
        interval = settings.booking.auto_complete_interval_minutes * 60
        key = sweep_key(AUTO_COMPLETE_SWEEP)
        if not await markers.claim(key, interval, now.isoformat()):
            logger.debug("Auto-complete ran recently, skipping")
            return {"completed": 0, "skipped": True}

        try:
            async with get_session_context() as session:
                result = await AppointmentsService(session, markers=markers).auto_complete_past(now)
        except Exception:
            # Only a successful run counts as the last run; the retry must not be skipped
            await markers.release(key)
            raise
        return {"completed": result.completed, "skipped": False}
    finally:
        await markers.aclose()
        await close_db()


@shared_task(
    bind=True,
    name="booking_core.tasks.appointments.send_reminders",
    max_retries=3,
    default_retry_delay=60,
)
def send_reminders(self) -> dict:
    """
    Send 24-hour and 1-hour reminders for upcoming appointments.

    Triggered by Celery Beat every 5 minutes. Each reminder is sent at most
    once per appointment thanks to Redis dedup markers.
    """
    try:
        result = asyncio.run(_send_reminders())
    except Exception as e:
        logger.error(f"Reminder sweep failed: {e}", exc_info=True)
        raise self.retry(exc=e)
    logger.info("Reminder sweep completed", extra=result)
    return result


@shared_task(
    bind=True,
    name="booking_core.tasks.appointments.auto_complete_appointments",
    max_retries=3,
    default_retry_delay=60,
)
def auto_complete_appointments(self) -> dict:
    """
    Complete confirmed appointments whose end time passed more than the
    configured buffer ago.

    Triggered by Celery Beat every 5 minutes; actually runs at most once per
    `BOOKING_AUTO_COMPLETE_INTERVAL_MINUTES`.
    """
    try:
        result = asyncio.run(_auto_complete())
    except Exception as e:
        logger.error(f"Auto-complete sweep failed: {e}", exc_info=True)
        raise self.retry(exc=e)
    if not result.get("skipped"):
        logger.info("Auto-complete sweep completed", extra=result)
    return result
