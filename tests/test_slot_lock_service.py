"""Tests for checkout slot locks."""

from datetime import timedelta

import pytest

from booking_core.exceptions import ConflictError, NotFoundError, SlotLockedError, ValidationError
from booking_core.models.slot_locks import LockSlotRequest, UnlockSlotRequest
from booking_core.repositories.slot_lock_repository import SlotKey
from booking_core.services.slot_lock_service import SlotLockService
from tests.conftest import DAY, NOW


def _lock_request(offering, holder, start="09:00", end="09:30", payment_intent_id=None):
    return LockSlotRequest(
        offering_id=offering.id,
        date=DAY,
        start=start,
        end=end,
        holder_id=holder,
        payment_intent_id=payment_intent_id,
    )


@pytest.mark.asyncio
class TestAcquire:
    async def test_exclusive_with_same_locked_until_and_idempotent_reacquire(
        self, session, settings, make_offering
    ):
        offering = await make_offering()
        service = SlotLockService(session, settings=settings)

        first = await service.acquire(_lock_request(offering, "holder-x"), NOW)
        assert first.expires_at.replace(tzinfo=None) == NOW + timedelta(minutes=10)
        assert first.reacquired is False

        with pytest.raises(SlotLockedError) as exc_info:
            await service.acquire(_lock_request(offering, "holder-y"), NOW + timedelta(seconds=1))
        assert exc_info.value.status_code == 409
        assert exc_info.value.locked_until == first.expires_at.isoformat()

        again = await service.acquire(_lock_request(offering, "holder-x"), NOW + timedelta(seconds=2))
        assert again.lock_id == first.lock_id
        assert again.reacquired is True
        assert again.expires_at.replace(tzinfo=None) == NOW + timedelta(minutes=10, seconds=2)

    async def test_expired_lock_is_replaced(self, session, settings, make_offering):
        offering = await make_offering()
        service = SlotLockService(session, settings=settings)

        stale = await service.acquire(_lock_request(offering, "holder-x"), NOW)
        later = NOW + timedelta(minutes=11)
        fresh = await service.acquire(_lock_request(offering, "holder-y"), later)

        assert fresh.lock_id != stale.lock_id
        lock = await service.get_live_lock(SlotKey(offering.id, DAY, "09:00", "09:30"), later)
        assert lock.holder_id == "holder-y"

    async def test_different_slots_do_not_conflict(self, session, settings, make_offering):
        offering = await make_offering()
        service = SlotLockService(session, settings=settings)

        await service.acquire(_lock_request(offering, "holder-x"), NOW)
        await service.acquire(_lock_request(offering, "holder-y", "09:30", "10:00"), NOW)

        assert (await service.list_all_locks(NOW)).total == 2

    async def test_fully_booked_slot_cannot_be_locked(self, session, settings, make_offering, make_appointment):
        offering = await make_offering()
        await make_appointment(offering, "09:00", "09:30")
        service = SlotLockService(session, settings=settings)

        with pytest.raises(ConflictError) as exc_info:
            await service.acquire(_lock_request(offering, "holder-x"), NOW)

        assert exc_info.value.reason == "slot_fully_booked"
        assert exc_info.value.details["alternativeSlots"] == [
            {"start": "09:30", "end": "10:00", "remainingCapacity": 1}
        ]

    async def test_ungenerated_slot_is_rejected(self, session, settings, make_offering):
        offering = await make_offering()
        with pytest.raises(ValidationError):
            await SlotLockService(session, settings=settings).acquire(
                _lock_request(offering, "holder-x", "09:10", "09:40"), NOW
            )


@pytest.mark.asyncio
class TestRelease:
    async def test_release_by_lock_id(self, session, settings, make_offering):
        offering = await make_offering()
        service = SlotLockService(session, settings=settings)
        lock = await service.acquire(_lock_request(offering, "holder-x"), NOW)

        result = await service.release(UnlockSlotRequest(lock_id=lock.lock_id), NOW)

        assert result.released == 1
        assert await service.get_live_lock(SlotKey(offering.id, DAY, "09:00", "09:30"), NOW) is None

    async def test_release_by_key_requires_the_holder(self, session, settings, make_offering):
        offering = await make_offering()
        service = SlotLockService(session, settings=settings)
        await service.acquire(_lock_request(offering, "holder-x"), NOW)
        key_fields = dict(offering_id=offering.id, date=DAY, start="09:00", end="09:30")

        with pytest.raises(SlotLockedError):
            await service.release(UnlockSlotRequest(holder_id="holder-y", **key_fields), NOW)

        result = await service.release(UnlockSlotRequest(holder_id="holder-x", **key_fields), NOW)
        assert result.released == 1

    async def test_release_by_payment_intent(self, session, settings, make_offering):
        offering = await make_offering()
        service = SlotLockService(session, settings=settings)
        await service.acquire(_lock_request(offering, "holder-x", payment_intent_id="pi_1"), NOW)

        result = await service.release(UnlockSlotRequest(payment_intent_id="pi_1"), NOW)
        assert result.released == 1

        with pytest.raises(NotFoundError):
            await service.release(UnlockSlotRequest(payment_intent_id="pi_1"), NOW)

    async def test_release_unknown_lock_is_not_found(self, session, settings):
        with pytest.raises(NotFoundError):
            await SlotLockService(session, settings=settings).release(
                UnlockSlotRequest(lock_id="missing"), NOW
            )

    async def test_release_expired_lock_is_not_found(self, session, settings, make_offering):
        offering = await make_offering()
        service = SlotLockService(session, settings=settings)
        lock = await service.acquire(_lock_request(offering, "holder-x"), NOW)

        with pytest.raises(NotFoundError):
            await service.release_by_id(lock.lock_id, now=NOW + timedelta(minutes=20))

    async def test_admin_release_ignores_holder_and_expiry(self, session, settings, make_offering):
        offering = await make_offering()
        service = SlotLockService(session, settings=settings)
        lock = await service.acquire(_lock_request(offering, "holder-x"), NOW)

        assert await service.release_by_id(lock.lock_id, admin=True, now=NOW + timedelta(hours=1)) == 1

    async def test_release_all_for_holder(self, session, settings, make_offering):
        offering = await make_offering(windows=(("09:00", "10:30", None),))
        service = SlotLockService(session, settings=settings)
        await service.acquire(_lock_request(offering, "holder-x"), NOW)
        await service.acquire(_lock_request(offering, "holder-x", "09:30", "10:00"), NOW)
        await service.acquire(_lock_request(offering, "holder-y", "10:00", "10:30"), NOW)

        assert (await service.list_holder_locks("holder-x", NOW)).total == 2
        assert await service.release_all("holder-x", NOW) == 2
        assert await service.release_all("holder-x", NOW) == 0


@pytest.mark.asyncio
class TestHousekeeping:
    async def test_consume_removes_lock(self, session, settings, make_offering):
        offering = await make_offering()
        service = SlotLockService(session, settings=settings)
        await service.acquire(_lock_request(offering, "holder-x"), NOW)
        key = SlotKey(offering.id, DAY, "09:00", "09:30")

        assert await service.consume(key) is True
        assert await service.get_live_lock(key, NOW) is None
        assert await service.consume(key) is False

    async def test_purge_expired_keeps_live_locks(self, session, settings, make_offering):
        offering = await make_offering()
        service = SlotLockService(session, settings=settings)
        await service.acquire(_lock_request(offering, "holder-x"), NOW)
        await service.acquire(_lock_request(offering, "holder-y", "09:30", "10:00"), NOW + timedelta(minutes=8))

        deleted = await service.purge_expired(NOW + timedelta(minutes=12))

        assert deleted == 1
        assert (await service.list_all_locks(NOW + timedelta(minutes=12))).total == 1


class TestUnlockSlotRequest:
    def test_exactly_one_mode(self):
        with pytest.raises(ValueError):
            UnlockSlotRequest()
        with pytest.raises(ValueError):
            UnlockSlotRequest(lock_id="a", payment_intent_id="pi_1")

    def test_key_mode_needs_holder(self):
        with pytest.raises(ValueError):
            UnlockSlotRequest(offering_id="o", date=DAY, start="09:00", end="09:30")

    def test_key_times_are_normalised(self):
        request = UnlockSlotRequest(offering_id="o", date=DAY, start="9:00", end=" 09:30", holder_id="h")
        assert (request.start, request.end) == ("09:00", "09:30")


def test_lock_request_times_are_normalised():
    request = LockSlotRequest(offering_id="o", date=DAY, start="9:00", end="9:30 ", holder_id="h")
    assert (request.start, request.end) == ("09:00", "09:30")


@pytest.mark.asyncio
async def test_unpadded_times_lock_and_release_the_generated_slot(session, settings, make_offering):
    offering = await make_offering()
    service = SlotLockService(session, settings=settings)

    await service.acquire(_lock_request(offering, "holder-x", start="9:00", end="9:30"), NOW)
    result = await service.release(
        UnlockSlotRequest(
            offering_id=offering.id, date=DAY, start="09:00", end="09:30", holder_id="holder-x"
        ),
        NOW,
    )

    assert result.released == 1
