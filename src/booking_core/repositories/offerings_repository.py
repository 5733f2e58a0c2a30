"""Offerings repository for data access operations."""

from __future__ import annotations

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.database.models import Offering
from booking_core.exceptions import DatabaseError
from booking_core.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class OfferingsRepository(BaseRepository[Offering]):
    """Repository for offering lookups."""

    def __init__(self, session: AsyncSession):
        super().__init__(Offering, session)

    async def list_active_by_service(self, service_id: str) -> List[Offering]:
        """Active offerings of one logical service (the offering family)."""
        try:
            result = await self.session.execute(
                select(Offering)
                .where(Offering.service_id == service_id, Offering.is_active.is_(True))
                .order_by(Offering.created_at, Offering.id)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing offerings for service {service_id}: {e}")
            raise DatabaseError("Failed to retrieve offerings") from e
