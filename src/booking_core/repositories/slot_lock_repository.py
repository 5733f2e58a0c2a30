"""Slot lock storage.

Acquisition relies on the `uq_slot_locks_slot_key` unique constraint: the
insert is a single `INSERT ... ON CONFLICT DO NOTHING` and the affected row
count tells the caller whether it won. Rows past `expires_at` are invisible
to every read and are physically removed by `purge_expired`.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.database.models import SlotLock
from booking_core.exceptions import DatabaseError
from booking_core.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass(frozen=True)
class SlotKey:
    """Identity of a lockable slot."""

    offering_id: str
    date: date
    start_time: str
    end_time: str

    def __str__(self) -> str:
        return f"{self.offering_id}:{self.date.isoformat()}:{self.start_time}-{self.end_time}"


class SlotLockRepository(BaseRepository[SlotLock]):
    """Repository for slot lock rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(SlotLock, session)

    def _key_clause(self, key: SlotKey):
        return (
            SlotLock.offering_id == key.offering_id,
            SlotLock.lock_date == key.date,
            SlotLock.start_time == key.start_time,
            SlotLock.end_time == key.end_time,
        )

    def _insert(self):
        dialect = self.session.bind.dialect.name
        try:
            return _INSERT_BY_DIALECT[dialect]
        except KeyError:
            raise DatabaseError(
                f"Slot locks need ON CONFLICT support; unsupported dialect '{dialect}'"
            ) from None

    async def delete_expired_for_key(self, key: SlotKey, now: datetime) -> int:
        """Remove an expired row occupying `key` so a fresh insert can take its place."""
        try:
            result = await self.session.execute(
                delete(SlotLock).where(*self._key_clause(key), SlotLock.expires_at <= now)
            )
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error clearing expired lock for {key}: {e}")
            raise DatabaseError("Failed to clear expired slot lock") from e

    async def insert_if_absent(
        self,
        key: SlotKey,
        holder_id: str,
        expires_at: datetime,
        now: datetime,
        payment_intent_id: Optional[str] = None,
    ) -> Optional[str]:
        """Atomically insert a lock row. Returns the new lock id, or None on conflict."""
        lock_id = str(uuid.uuid4())
        insert = self._insert()
        stmt = (
            insert(SlotLock)
            .values(
                id=lock_id,
                offering_id=key.offering_id,
                lock_date=key.date,
                start_time=key.start_time,
                end_time=key.end_time,
                holder_id=holder_id,
                payment_intent_id=payment_intent_id,
                created_at=now,
                expires_at=expires_at,
            )
            .on_conflict_do_nothing(
                index_elements=["offering_id", "lock_date", "start_time", "end_time"]
            )
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Error inserting lock for {key}: {e}")
            raise DatabaseError("Failed to create slot lock") from e
        return lock_id if result.rowcount == 1 else None

    async def get_live(self, key: SlotKey, now: datetime) -> Optional[SlotLock]:
        """The unexpired lock on `key`, if any."""
        try:
            result = await self.session.execute(
                select(SlotLock)
                .where(*self._key_clause(key), SlotLock.expires_at > now)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error reading lock for {key}: {e}")
            raise DatabaseError("Failed to retrieve slot lock") from e

    async def get_live_by_id(self, lock_id: str, now: datetime) -> Optional[SlotLock]:
        try:
            result = await self.session.execute(
                select(SlotLock)
                .where(SlotLock.id == lock_id, SlotLock.expires_at > now)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error reading lock {lock_id}: {e}")
            raise DatabaseError("Failed to retrieve slot lock") from e

    async def extend_for_holder(
        self,
        key: SlotKey,
        holder_id: str,
        expires_at: datetime,
        now: datetime,
        payment_intent_id: Optional[str] = None,
    ) -> int:
        """Push out the expiry of `holder_id`'s live lock on `key`."""
        values = {"expires_at": expires_at}
        if payment_intent_id:
            values["payment_intent_id"] = payment_intent_id
        try:
            result = await self.session.execute(
                update(SlotLock)
                .where(
                    *self._key_clause(key),
                    SlotLock.holder_id == holder_id,
                    SlotLock.expires_at > now,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error extending lock for {key}: {e}")
            raise DatabaseError("Failed to extend slot lock") from e

    async def delete_by_id(self, lock_id: str) -> int:
        try:
            result = await self.session.execute(delete(SlotLock).where(SlotLock.id == lock_id))
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting lock {lock_id}: {e}")
            raise DatabaseError("Failed to delete slot lock") from e

    async def delete_by_key(self, key: SlotKey, holder_id: Optional[str] = None) -> int:
        """Delete the row on `key`; restricted to `holder_id` when given."""
        clauses = list(self._key_clause(key))
        if holder_id is not None:
            clauses.append(SlotLock.holder_id == holder_id)
        try:
            result = await self.session.execute(delete(SlotLock).where(*clauses))
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting lock for {key}: {e}")
            raise DatabaseError("Failed to delete slot lock") from e

    async def delete_by_payment_intent(self, payment_intent_id: str, now: datetime) -> int:
        try:
            result = await self.session.execute(
                delete(SlotLock).where(
                    SlotLock.payment_intent_id == payment_intent_id,
                    SlotLock.expires_at > now,
                )
            )
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting lock for payment intent {payment_intent_id}: {e}")
            raise DatabaseError("Failed to delete slot lock") from e

    async def delete_by_holder(self, holder_id: str, now: datetime) -> int:
        try:
            result = await self.session.execute(
                delete(SlotLock).where(SlotLock.holder_id == holder_id, SlotLock.expires_at > now)
            )
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting locks of holder {holder_id}: {e}")
            raise DatabaseError("Failed to delete slot locks") from e

    async def list_live(self, now: datetime, holder_id: Optional[str] = None) -> List[SlotLock]:
        query = select(SlotLock).where(SlotLock.expires_at > now)
        if holder_id is not None:
            query = query.where(SlotLock.holder_id == holder_id)
        try:
            result = await self.session.execute(
                query.order_by(SlotLock.expires_at).execution_options(populate_existing=True)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing slot locks: {e}")
            raise DatabaseError("Failed to retrieve slot locks") from e

    async def purge_expired(self, now: datetime) -> int:
        """Physically delete every expired row."""
        try:
            result = await self.session.execute(delete(SlotLock).where(SlotLock.expires_at <= now))
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error purging expired slot locks: {e}")
            raise DatabaseError("Failed to purge expired slot locks") from e
