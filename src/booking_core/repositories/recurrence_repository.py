"""Recurrence store reads, mapped onto slot-generator date entries."""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.database.models import RecurrenceDate, RecurrenceDefinition
from booking_core.exceptions import DatabaseError
from booking_core.repositories.base import BaseRepository
from booking_core.services.slot_generator import DateEntry, TimeWindow

logger = logging.getLogger(__name__)


def to_date_entry(row: RecurrenceDate) -> DateEntry:
    return DateEntry(
        date=row.entry_date,
        default_capacity=row.default_capacity,
        windows=tuple(
            TimeWindow(start=w.start_time, end=w.end_time, capacity=w.capacity)
            for w in row.windows
        ),
    )


class RecurrenceRepository(BaseRepository[RecurrenceDefinition]):
    """Read access to offerings' recurring availability."""

    def __init__(self, session: AsyncSession):
        super().__init__(RecurrenceDefinition, session)

    async def get_date_entry(self, offering_id: str, day: date) -> Optional[DateEntry]:
        """The entry for `day`, or None when the offering has no windows that day."""
        entries = await self.list_date_entries([offering_id], day, day)
        return entries.get(offering_id, [None])[0]

    async def list_date_entries(
        self, offering_ids: Sequence[str], start: date, end: date
    ) -> Dict[str, List[DateEntry]]:
        """Entries dated within [start, end] grouped by offering, in date order."""
        if not offering_ids:
            return {}
        try:
            result = await self.session.execute(
                select(RecurrenceDefinition.offering_id, RecurrenceDate)
                .join(RecurrenceDate, RecurrenceDate.definition_id == RecurrenceDefinition.id)
                .where(
                    RecurrenceDefinition.offering_id.in_(list(offering_ids)),
                    RecurrenceDate.entry_date >= start,
                    RecurrenceDate.entry_date <= end,
                )
                .order_by(RecurrenceDate.entry_date)
            )
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Error loading recurrence dates {start}..{end}: {e}")
            raise DatabaseError("Failed to retrieve recurrence dates") from e

        grouped: Dict[str, List[DateEntry]] = {}
        for offering_id, row in rows:
            grouped.setdefault(offering_id, []).append(to_date_entry(row))
        return grouped
