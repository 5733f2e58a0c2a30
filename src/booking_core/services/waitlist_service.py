"""Waitlist: customers waiting for capacity on a fully booked date."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.database.models import WaitlistStatus
from booking_core.exceptions import ConflictError, DatabaseError, NotFoundError
from booking_core.models.waitlist import JoinWaitlistRequest, WaitlistEntryResponse
from booking_core.repositories.offerings_repository import OfferingsRepository
from booking_core.repositories.waitlist_repository import WaitlistRepository
from booking_core.services.notification_service import NotificationService
from booking_core.utils.clock import utcnow

logger = logging.getLogger(__name__)

WAITLIST_ENTRY_TTL = timedelta(hours=24)


class WaitlistService:
    """Service for waitlist operations."""

    def __init__(self, session: AsyncSession, notifier: Optional[NotificationService] = None):
        self.session = session
        self.repo = WaitlistRepository(session)
        self.offerings = OfferingsRepository(session)
        self.notifier = notifier or NotificationService()

    async def join(
        self, request: JoinWaitlistRequest, now: Optional[datetime] = None
    ) -> WaitlistEntryResponse:
        """
        Add a customer to the waitlist of a date.

        Raises:
            NotFoundError: If the offering does not exist
            ConflictError: If the customer already has an active entry for the date
        """
        now = now or utcnow()
        if await self.offerings.get_by_id(request.offering_id) is None:
            raise NotFoundError("Offering", request.offering_id)

        existing = await self.repo.get_active(request.customer_id, request.offering_id, request.date)
        if existing is not None:
            logger.info(f"Customer {request.customer_id} already waitlisted for {request.date}")
            raise ConflictError(
                message="Already on the waitlist for this date",
                reason="already_waitlisted",
                details={"waitlistEntryId": existing.id},
            )

        entry = await self.repo.create(
            customer_id=request.customer_id,
            offering_id=request.offering_id,
            preferred_date=request.date,
            preferred_time=request.preferred_time,
            status=WaitlistStatus.ACTIVE.value,
            expires_at=now + WAITLIST_ENTRY_TTL,
            created_at=now,
        )
        logger.info(f"Customer {request.customer_id} joined waitlist {entry.id}")
        return WaitlistEntryResponse.from_model(entry)

    async def notify_waitlisted(
        self, offering_id: str, day: date, now: Optional[datetime] = None
    ) -> int:
        """
        Tell every active waiter of (offering, day) that capacity opened up.

        Each entry is handled on its own; one failing entry does not stop the
        rest. The status changes are committed before any notification goes
        out. Returns how many entries were notified.

        Raises:
            DatabaseError: If the status changes could not be committed
        """
        now = now or utcnow()
        entries = await self.repo.list_active_for_date(offering_id, day, now)
        marked = []
        for entry in entries:
            try:
                async with self.session.begin_nested():
                    entry.status = WaitlistStatus.NOTIFIED.value
                    entry.notified_at = now
                    entry.expires_at = now + WAITLIST_ENTRY_TTL
            except SQLAlchemyError as e:
                logger.warning(f"Failed to mark waitlist entry {entry.id} notified: {e}")
                continue
            marked.append(entry)

        if not marked:
            return 0
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error committing waitlist notifications: {e}")
            raise DatabaseError("Failed to save waitlist notifications") from e

        for entry in marked:
            self.notifier.dispatch(
                "waitlist.slot_available",
                {
                    "waitlist_entry_id": entry.id,
                    "customer_id": entry.customer_id,
                    "offering_id": offering_id,
                    "date": day.isoformat(),
                    "preferred_time": entry.preferred_time,
                },
            )
        logger.info(f"Notified {len(marked)} waitlisted customer(s) for {offering_id} on {day}")
        return len(marked)

    async def expire_stale(self, now: Optional[datetime] = None) -> int:
        expired = await self.repo.expire_stale(now or utcnow())
        if expired:
            logger.info(f"Expired {expired} waitlist entr{'y' if expired == 1 else 'ies'}")
        return expired


def get_waitlist_service(session: AsyncSession) -> WaitlistService:
    """Factory function to create WaitlistService instance."""
    return WaitlistService(session)
