"""Housekeeping sweeps: expired slot locks and stale waitlist entries."""

import asyncio
import logging

from celery import shared_task

from booking_core.database.session import close_db, get_session_context
from booking_core.services.slot_lock_service import SlotLockService
from booking_core.services.waitlist_service import WaitlistService
from booking_core.utils.clock import utcnow

logger = logging.getLogger(__name__)


async def _purge_locks() -> dict:
    try:
        async with get_session_context() as session:
            deleted = await SlotLockService(session).purge_expired(utcnow())
        return {"deleted": deleted}
    finally:
        await close_db()


async def _expire_waitlist() -> dict:
    try:
        async with get_session_context() as session:
            expired = await WaitlistService(session).expire_stale(utcnow())
        return {"expired": expired}
    finally:
        await close_db()


@shared_task(name="booking_core.tasks.maintenance.purge_expired_slot_locks")
def purge_expired_slot_locks() -> dict:
    """
    Physically delete expired slot lock rows.

    Expired locks are already ignored by every read; this only keeps the
    table small. Triggered by Celery Beat every 5 minutes.
    """
    result = asyncio.run(_purge_locks())
    logger.info("Expired slot locks purged", extra=result)
    return result


@shared_task(name="booking_core.tasks.maintenance.expire_waitlist_entries")
def expire_waitlist_entries() -> dict:
    """Mark waitlist entries past their expiry as expired. Hourly."""
    result = asyncio.run(_expire_waitlist())
    logger.info("Stale waitlist entries expired", extra=result)
    return result
