"""Appointments repository for data access operations."""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.database.models import Appointment, AppointmentStatus
from booking_core.exceptions import DatabaseError
from booking_core.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class AppointmentsRepository(BaseRepository[Appointment]):
    """Repository for appointment data access operations.

    Availability reads always hit the database; nothing here is cached.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(Appointment, session)

    async def find_for_date(
        self,
        offering_id: str,
        day: date,
        exclude_statuses: Iterable[str] = (AppointmentStatus.CANCELLED.value,),
    ) -> List[Appointment]:
        """Appointments of one offering on one date, minus the excluded statuses."""
        excluded = list(exclude_statuses)
        try:
            query = select(Appointment).where(
                Appointment.offering_id == offering_id,
                Appointment.appointment_date == day,
            )
            if excluded:
                query = query.where(Appointment.status.not_in(excluded))
            result = await self.session.execute(query.order_by(Appointment.start_time))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error finding appointments for {offering_id} on {day}: {e}")
            raise DatabaseError("Failed to retrieve appointments") from e

    async def count_for_slot(
        self,
        offering_id: str,
        day: date,
        start_time: str,
        end_time: str,
        exclude_id: Optional[str] = None,
    ) -> int:
        """Non-cancelled appointments on exactly this (offering, date, start, end)."""
        try:
            query = (
                select(func.count())
                .select_from(Appointment)
                .where(
                    Appointment.offering_id == offering_id,
                    Appointment.appointment_date == day,
                    Appointment.start_time == start_time,
                    Appointment.end_time == end_time,
                    Appointment.status != AppointmentStatus.CANCELLED.value,
                )
            )
            if exclude_id:
                query = query.where(Appointment.id != exclude_id)
            result = await self.session.execute(query)
            return result.scalar() or 0
        except SQLAlchemyError as e:
            logger.error(f"Error counting appointments for slot: {e}")
            raise DatabaseError("Failed to count appointments") from e

    async def list_by_status_between(
        self, statuses: Iterable[str], start: date, end: date
    ) -> List[Appointment]:
        """Appointments in any of `statuses` dated within [start, end]."""
        try:
            result = await self.session.execute(
                select(Appointment)
                .where(
                    Appointment.status.in_(list(statuses)),
                    Appointment.appointment_date >= start,
                    Appointment.appointment_date <= end,
                )
                .order_by(Appointment.appointment_date, Appointment.start_time)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing appointments between {start} and {end}: {e}")
            raise DatabaseError("Failed to retrieve appointments") from e

    async def list_confirmed_until(self, last_day: date) -> List[Appointment]:
        """Confirmed appointments dated on or before `last_day` (auto-complete candidates)."""
        try:
            result = await self.session.execute(
                select(Appointment)
                .where(
                    Appointment.status == AppointmentStatus.CONFIRMED.value,
                    Appointment.appointment_date <= last_day,
                )
                .order_by(Appointment.appointment_date, Appointment.end_time)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing confirmed appointments: {e}")
            raise DatabaseError("Failed to retrieve appointments") from e
