"""Waitlist repository for data access operations."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.database.models import WaitlistEntry, WaitlistStatus
from booking_core.exceptions import DatabaseError
from booking_core.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class WaitlistRepository(BaseRepository[WaitlistEntry]):
    """Repository for waitlist entries."""

    def __init__(self, session: AsyncSession):
        super().__init__(WaitlistEntry, session)

    async def get_active(
        self, customer_id: str, offering_id: str, preferred_date: date
    ) -> Optional[WaitlistEntry]:
        try:
            result = await self.session.execute(
                select(WaitlistEntry).where(
                    WaitlistEntry.customer_id == customer_id,
                    WaitlistEntry.offering_id == offering_id,
                    WaitlistEntry.preferred_date == preferred_date,
                    WaitlistEntry.status == WaitlistStatus.ACTIVE.value,
                )
            )
            return result.scalars().first()
        except SQLAlchemyError as e:
            logger.error(f"Error reading waitlist entry: {e}")
            raise DatabaseError("Failed to retrieve waitlist entry") from e

    async def list_active_for_date(
        self, offering_id: str, preferred_date: date, now: datetime
    ) -> List[WaitlistEntry]:
        """Unexpired active entries for a date, oldest first."""
        try:
            result = await self.session.execute(
                select(WaitlistEntry)
                .where(
                    WaitlistEntry.offering_id == offering_id,
                    WaitlistEntry.preferred_date == preferred_date,
                    WaitlistEntry.status == WaitlistStatus.ACTIVE.value,
                    WaitlistEntry.expires_at > now,
                )
                .order_by(WaitlistEntry.created_at)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing waitlist for {offering_id} on {preferred_date}: {e}")
            raise DatabaseError("Failed to retrieve waitlist entries") from e

    async def expire_stale(self, now: datetime) -> int:
        """Mark active or notified entries past their expiry as expired."""
        try:
            result = await self.session.execute(
                update(WaitlistEntry)
                .where(
                    WaitlistEntry.status.in_(
                        [WaitlistStatus.ACTIVE.value, WaitlistStatus.NOTIFIED.value]
                    ),
                    WaitlistEntry.expires_at <= now,
                )
                .values(status=WaitlistStatus.EXPIRED.value)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error expiring waitlist entries: {e}")
            raise DatabaseError("Failed to expire waitlist entries") from e
