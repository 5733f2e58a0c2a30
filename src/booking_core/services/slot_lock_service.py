"""Slot lock manager: short-lived, mutually exclusive checkout reservations.

State machine per slot key: absent -> locked -> consumed | released | expired.
Mutual exclusion comes from the unique constraint on the lock table, never
from application-side read-then-write. Lock conflicts are expected traffic and
are logged at INFO.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.config import Settings, get_settings
from booking_core.database.models import SlotLock
from booking_core.exceptions import (
    ConflictError,
    DatabaseError,
    NotFoundError,
    SlotLockedError,
)
from booking_core.models.common import as_utc
from booking_core.models.slot_locks import (
    LockSlotRequest,
    LockSlotResponse,
    ReleaseResponse,
    SlotLockListResponse,
    SlotLockResponse,
    UnlockSlotRequest,
)
from booking_core.repositories.slot_lock_repository import SlotKey, SlotLockRepository
from booking_core.services.slots_service import SlotsService
from booking_core.utils.clock import utcnow

logger = logging.getLogger(__name__)

# Attempts at the insert/extend dance before giving up; a second round only
# happens when the conflicting lock vanished between statements.
_ACQUIRE_ATTEMPTS = 2


class SlotLockService:
    """Service for acquiring and releasing slot locks."""

    def __init__(
        self,
        session: AsyncSession,
        slots: Optional[SlotsService] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.slots = slots or SlotsService(session, self.settings)
        self.repo = SlotLockRepository(session)

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.booking.lock_ttl_minutes)

    async def acquire(
        self, request: LockSlotRequest, now: Optional[datetime] = None
    ) -> LockSlotResponse:
        """
        Lock a slot for `request.holder_id`.

        Re-acquiring a lock you already hold succeeds and extends its expiry.

        Raises:
            NotFoundError: If the offering does not exist
            ValidationError: If the slot is not generated for that date
            ConflictError: If the slot is fully booked (reason `slot_fully_booked`)
            SlotLockedError: If another holder has a live lock on the slot
        """
        now = now or utcnow()
        offering = await self.slots.get_offering(request.offering_id)

        remaining = await self.slots.remaining_for(
            offering, request.date, request.start, request.end
        )
        if remaining <= 0:
            logger.info(
                f"Lock refused, slot fully booked: {offering.id} {request.date} "
                f"{request.start}-{request.end}"
            )
            raise ConflictError(
                message="This slot is fully booked",
                reason="slot_fully_booked",
                details={
                    "alternativeSlots": [
                        s.model_dump(by_alias=True)
                        for s in await self.slots.alternatives(
                            offering, request.date, request.start, request.end
                        )
                    ]
                },
            )

        key = SlotKey(offering.id, request.date, request.start, request.end)
        expires_at = now + self.ttl

        for _ in range(_ACQUIRE_ATTEMPTS):
            await self.repo.delete_expired_for_key(key, now)

            lock_id = await self.repo.insert_if_absent(
                key,
                holder_id=request.holder_id,
                expires_at=expires_at,
                now=now,
                payment_intent_id=request.payment_intent_id,
            )
            if lock_id is not None:
                logger.info(f"Lock acquired on {key} by {request.holder_id} until {expires_at}")
                return LockSlotResponse(lock_id=lock_id, expires_at=as_utc(expires_at))

            extended = await self.repo.extend_for_holder(
                key,
                holder_id=request.holder_id,
                expires_at=expires_at,
                now=now,
                payment_intent_id=request.payment_intent_id,
            )
            lock = await self.repo.get_live(key, now)
            if extended and lock is not None:
                logger.info(f"Lock re-acquired on {key} by {request.holder_id} until {expires_at}")
                return LockSlotResponse(
                    lock_id=lock.id, expires_at=as_utc(lock.expires_at), reacquired=True
                )
            if lock is not None:
                logger.info(
                    f"Lock conflict on {key}: held by {lock.holder_id} until {lock.expires_at}"
                )
                raise SlotLockedError(locked_until=as_utc(lock.expires_at).isoformat())

        # The conflicting row kept disappearing between our statements
        raise ConflictError(
            message="Slot is busy, please retry",
            reason="slot_lock_contention",
        )

    async def release(
        self, request: UnlockSlotRequest, now: Optional[datetime] = None
    ) -> ReleaseResponse:
        """UnlockSlot by lock ID, by slot key + holder, or by payment intent."""
        if request.lock_id:
            released = await self.release_by_id(request.lock_id, request.holder_id, now=now)
        elif request.payment_intent_id:
            released = await self.release_by_payment_intent(request.payment_intent_id, now=now)
        else:
            key = SlotKey(request.offering_id, request.date, request.start, request.end)
            released = await self.release_by_key(key, request.holder_id, now=now)
        return ReleaseResponse(released=released)

    async def release_by_id(
        self,
        lock_id: str,
        holder_id: Optional[str] = None,
        admin: bool = False,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Release one lock by ID. Administrators skip the ownership check and
        may delete expired rows too.

        Raises:
            NotFoundError: If no (live) lock has this ID
            SlotLockedError: If `holder_id` does not own the lock
        """
        now = now or utcnow()
        if admin:
            deleted = await self.repo.delete_by_id(lock_id)
            if not deleted:
                raise NotFoundError("Slot lock", lock_id)
            logger.info(f"Lock {lock_id} force-released by administrator")
            return deleted

        lock = await self.repo.get_live_by_id(lock_id, now)
        if lock is None:
            raise NotFoundError("Slot lock", lock_id)
        self._check_owner(lock, holder_id)

        deleted = await self.repo.delete_by_id(lock_id)
        logger.info(f"Lock {lock_id} released by {lock.holder_id}")
        return deleted

    async def release_by_key(
        self, key: SlotKey, holder_id: str, now: Optional[datetime] = None
    ) -> int:
        now = now or utcnow()
        lock = await self.repo.get_live(key, now)
        if lock is None:
            raise NotFoundError("Slot lock", str(key))
        self._check_owner(lock, holder_id)

        deleted = await self.repo.delete_by_key(key, holder_id)
        logger.info(f"Lock on {key} released by {holder_id}")
        return deleted

    async def release_by_payment_intent(
        self, payment_intent_id: str, now: Optional[datetime] = None
    ) -> int:
        deleted = await self.repo.delete_by_payment_intent(payment_intent_id, now or utcnow())
        if not deleted:
            raise NotFoundError("Slot lock", details={"paymentIntentId": payment_intent_id})
        logger.info(f"Released {deleted} lock(s) for payment intent {payment_intent_id}")
        return deleted

    async def release_all(self, holder_id: str, now: Optional[datetime] = None) -> int:
        """Release every live lock `holder_id` holds (abandoned checkout)."""
        deleted = await self.repo.delete_by_holder(holder_id, now or utcnow())
        logger.info(f"Released {deleted} lock(s) held by {holder_id}")
        return deleted

    async def consume(self, key: SlotKey) -> bool:
        """
        Delete the lock on `key` after an appointment was created for it.

        Failure is logged and swallowed: the booking already succeeded and the
        TTL cleans up whatever is left behind.
        """
        try:
            async with self.session.begin_nested():
                deleted = await self.repo.delete_by_key(key)
        except (DatabaseError, SQLAlchemyError) as e:
            logger.warning(f"Could not consume lock on {key}; it will expire on its own: {e}")
            return False
        if deleted:
            logger.info(f"Lock on {key} consumed by booking")
        return bool(deleted)

    async def get_live_lock(self, key: SlotKey, now: Optional[datetime] = None) -> Optional[SlotLock]:
        return await self.repo.get_live(key, now or utcnow())

    async def list_holder_locks(
        self, holder_id: str, now: Optional[datetime] = None
    ) -> SlotLockListResponse:
        locks = await self.repo.list_live(now or utcnow(), holder_id=holder_id)
        return SlotLockListResponse(
            locks=[SlotLockResponse.from_model(lock) for lock in locks], total=len(locks)
        )

    async def list_all_locks(self, now: Optional[datetime] = None) -> SlotLockListResponse:
        locks = await self.repo.list_live(now or utcnow())
        return SlotLockListResponse(
            locks=[SlotLockResponse.from_model(lock) for lock in locks], total=len(locks)
        )

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Physically remove expired lock rows (periodic sweep)."""
        deleted = await self.repo.purge_expired(now or utcnow())
        if deleted:
            logger.info(f"Purged {deleted} expired slot lock(s)")
        return deleted

    @staticmethod
    def _check_owner(lock: SlotLock, holder_id: Optional[str]) -> None:
        if holder_id is not None and lock.holder_id != holder_id:
            logger.info(f"Release refused: lock {lock.id} is held by another holder")
            raise SlotLockedError(
                locked_until=as_utc(lock.expires_at).isoformat(),
                message="This slot lock is held by another user",
            )


def get_slot_lock_service(session: AsyncSession) -> SlotLockService:
    """Factory function to create SlotLockService instance."""
    return SlotLockService(session)
