"""Tests for the appointment lifecycle."""

from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import redis.asyncio as redis
from sqlalchemy.exc import SQLAlchemyError

from booking_core.database.models import (
    AppointmentStatus,
    PaymentMode,
    PaymentStatus,
    WaitlistEntry,
    WaitlistStatus,
)
from booking_core.exceptions import (
    ConflictError,
    DatabaseError,
    InvalidTransitionError,
    NotFoundError,
    SlotLockedError,
    UpstreamError,
    ValidationError,
)
from booking_core.models.appointments import (
    CancelAppointmentRequest,
    ConfirmPaymentRequest,
    CreateAppointmentRequest,
    RescheduleAppointmentRequest,
    StatusOverrideRequest,
)
from booking_core.models.slot_locks import LockSlotRequest
from booking_core.repositories.slot_lock_repository import SlotKey
from booking_core.services.appointments_service import AppointmentsService
from booking_core.services.marker_store import MarkerStore, reminder_key
from booking_core.services.slot_lock_service import SlotLockService
from booking_core.services.stripe_service import PaymentIntentResult
from tests.conftest import DAY, NOW


@pytest.fixture
def service(session, settings, mock_payments, notifier):
    return AppointmentsService(session, payments=mock_payments, notifier=notifier, settings=settings)


def _create_request(offering, customer="customer-1", start="09:00", end="09:30", **kwargs):
    return CreateAppointmentRequest(
        offering_id=offering.id, date=DAY, start=start, end=end, customer_id=customer, **kwargs
    )


@pytest.mark.asyncio
class TestCreateAppointment:
    async def test_card_booking_creates_payment_intent(self, service, make_offering, mock_payments, notifier):
        offering = await make_offering()

        result = await service.create_appointment(_create_request(offering), NOW)

        assert result.appointment.status == AppointmentStatus.PENDING.value
        assert result.appointment.payment_status == PaymentStatus.PENDING.value
        assert result.appointment.total == Decimal("100.00")
        assert result.payment.payment_intent_id == "pi_test_123"
        assert result.payment.client_secret == "pi_test_123_secret"
        mock_payments.create_payment_intent.assert_awaited_once()
        args, kwargs = mock_payments.create_payment_intent.call_args
        assert args[:2] == (Decimal("100.00"), "usd")
        assert kwargs["metadata"]["offering_id"] == offering.id
        notifier.dispatch.assert_called_once()
        assert notifier.dispatch.call_args.args[0] == "appointment.created"

    async def test_cash_booking_skips_gateway(self, service, make_offering, mock_payments):
        offering = await make_offering()

        result = await service.create_appointment(
            _create_request(offering, payment_mode=PaymentMode.CASH, total=Decimal("40.00")), NOW
        )

        assert result.payment is None
        assert result.appointment.payment_status == PaymentStatus.COMPLETED.value
        assert result.appointment.total == Decimal("40.00")
        mock_payments.create_payment_intent.assert_not_awaited()

    async def test_own_lock_is_consumed(self, session, settings, service, make_offering):
        offering = await make_offering()
        locks = SlotLockService(session, settings=settings)
        await locks.acquire(
            LockSlotRequest(offering_id=offering.id, date=DAY, start="09:00", end="09:30", holder_id="customer-1"),
            NOW,
        )

        await service.create_appointment(_create_request(offering), NOW + timedelta(minutes=1))

        assert await locks.get_live_lock(SlotKey(offering.id, DAY, "09:00", "09:30"), NOW) is None

    async def test_slot_locked_by_someone_else(self, session, settings, service, make_offering, mock_payments):
        offering = await make_offering()
        await SlotLockService(session, settings=settings).acquire(
            LockSlotRequest(offering_id=offering.id, date=DAY, start="09:00", end="09:30", holder_id="other"),
            NOW,
        )

        with pytest.raises(SlotLockedError) as exc_info:
            await service.create_appointment(_create_request(offering), NOW)

        assert exc_info.value.details["lockedUntil"].startswith("2030-03-14T12:10:00")
        mock_payments.create_payment_intent.assert_not_awaited()

    async def test_fully_booked_slot(self, service, make_offering, make_appointment):
        offering = await make_offering()
        await make_appointment(offering, "09:00", "09:30")

        with pytest.raises(ConflictError) as exc_info:
            await service.create_appointment(_create_request(offering), NOW)

        assert exc_info.value.reason == "slot_fully_booked"
        assert exc_info.value.details["alternativeSlots"][0]["start"] == "09:30"

    async def test_capacity_allows_several_bookings(self, service, make_offering):
        offering = await make_offering(default_capacity=2)

        await service.create_appointment(_create_request(offering, customer="a"), NOW)
        await service.create_appointment(_create_request(offering, customer="b"), NOW)
        with pytest.raises(ConflictError):
            await service.create_appointment(_create_request(offering, customer="c"), NOW)

    async def test_gateway_failure_persists_nothing(self, session, service, make_offering, mock_payments):
        offering = await make_offering()
        mock_payments.create_payment_intent.side_effect = UpstreamError("stripe", message="card declined")

        with pytest.raises(UpstreamError):
            await service.create_appointment(_create_request(offering), NOW)

        assert await service.repo.count_for_slot(offering.id, DAY, "09:00", "09:30") == 0

    async def test_ungenerated_slot(self, service, make_offering):
        offering = await make_offering()
        with pytest.raises(ValidationError):
            await service.create_appointment(_create_request(offering, start="10:00", end="10:30"), NOW)

    async def test_unknown_offering(self, service):
        with pytest.raises(NotFoundError):
            await service.create_appointment(
                CreateAppointmentRequest(offering_id="missing", date=DAY, start="09:00", end="09:30", customer_id="c"),
                NOW,
            )


@pytest.mark.asyncio
class TestConfirmation:
    async def test_confirm_payment(self, service, make_offering, make_appointment):
        offering = await make_offering()
        appointment = await make_appointment(
            offering, status=AppointmentStatus.PENDING, payment_status=PaymentStatus.PENDING
        )

        result = await service.confirm_payment(
            appointment.id, ConfirmPaymentRequest(payment_intent_id="pi_test_123"), NOW
        )

        assert result.status == AppointmentStatus.CONFIRMED.value
        assert result.payment_status == PaymentStatus.COMPLETED.value
        assert result.confirmed_at is not None

    async def test_confirm_payment_with_foreign_intent(self, service, make_offering, make_appointment):
        offering = await make_offering()
        appointment = await make_appointment(offering, status=AppointmentStatus.PENDING)

        with pytest.raises(ValidationError):
            await service.confirm_payment(appointment.id, ConfirmPaymentRequest(payment_intent_id="pi_other"), NOW)

    async def test_confirm_payment_not_yet_succeeded(self, service, make_offering, make_appointment, mock_payments):
        offering = await make_offering()
        appointment = await make_appointment(
            offering, status=AppointmentStatus.PENDING, payment_status=PaymentStatus.PENDING
        )
        mock_payments.retrieve_payment_intent.return_value = PaymentIntentResult(
            id="pi_test_123", client_secret=None, status="requires_action", amount=10000
        )

        with pytest.raises(ConflictError) as exc_info:
            await service.confirm_payment(
                appointment.id, ConfirmPaymentRequest(payment_intent_id="pi_test_123"), NOW
            )
        assert exc_info.value.reason == "payment_not_succeeded"

    async def test_vendor_confirm_and_complete(self, service, make_offering, make_appointment):
        offering = await make_offering()
        appointment = await make_appointment(offering, status=AppointmentStatus.PENDING)

        confirmed = await service.confirm(appointment.id, actor="vendor-1", now=NOW)
        assert confirmed.status == AppointmentStatus.CONFIRMED.value
        assert confirmed.status_changed_by == "vendor-1"

        completed = await service.complete(appointment.id, now=NOW)
        assert completed.status == AppointmentStatus.COMPLETED.value
        assert completed.completed_at is not None

    async def test_complete_requires_confirmed(self, service, make_offering, make_appointment):
        offering = await make_offering()
        appointment = await make_appointment(offering, status=AppointmentStatus.PENDING)

        with pytest.raises(InvalidTransitionError):
            await service.complete(appointment.id, now=NOW)

    async def test_unknown_appointment(self, service):
        with pytest.raises(NotFoundError):
            await service.get("missing")


@pytest.mark.asyncio
class TestCancel:
    async def test_five_hours_before_refunds_half(self, service, make_offering, make_appointment, mock_payments, notifier):
        offering = await make_offering()
        appointment = await make_appointment(offering)
        five_hours_before = datetime(2030, 3, 15, 4, 0)

        result = await service.cancel(
            appointment.id, CancelAppointmentRequest(reason="Change of plans"), five_hours_before
        )

        mock_payments.refund.assert_awaited_once_with("pi_test_123", Decimal("50.00"))
        assert result.refund.percentage == 50
        assert result.refund.amount == Decimal("50.00")
        assert result.refund.refund_id == "re_test_123"
        assert result.appointment.status == AppointmentStatus.CANCELLED.value
        assert result.appointment.payment_status == PaymentStatus.PARTIALLY_REFUNDED.value
        assert result.appointment.refund_amount == Decimal("50.00")
        assert result.appointment.cancellation_reason == "Change of plans"
        assert "appointment.cancelled" in [c.args[0] for c in notifier.dispatch.call_args_list]

    async def test_a_day_ahead_refunds_everything(self, service, make_offering, make_appointment, mock_payments):
        offering = await make_offering()
        appointment = await make_appointment(offering)

        result = await service.cancel(
            appointment.id, CancelAppointmentRequest(), datetime(2030, 3, 14, 9, 0)
        )

        mock_payments.refund.assert_awaited_once_with("pi_test_123", None)
        assert result.refund.percentage == 100
        assert result.refund.amount == Decimal("100.00")
        assert result.appointment.payment_status == PaymentStatus.REFUNDED.value

    async def test_last_minute_cancel_refunds_nothing(self, service, make_offering, make_appointment, mock_payments):
        offering = await make_offering()
        appointment = await make_appointment(offering)

        result = await service.cancel(
            appointment.id, CancelAppointmentRequest(), datetime(2030, 3, 15, 8, 0)
        )

        mock_payments.refund.assert_not_awaited()
        assert result.refund.percentage == 0
        assert result.refund.status == "none"
        assert result.appointment.status == AppointmentStatus.CANCELLED.value
        assert result.appointment.payment_status == PaymentStatus.COMPLETED.value

    async def test_cash_booking_has_nothing_to_refund(self, service, make_offering, make_appointment, mock_payments):
        offering = await make_offering()
        appointment = await make_appointment(offering, payment_mode=PaymentMode.CASH)

        result = await service.cancel(appointment.id, CancelAppointmentRequest(), NOW)

        mock_payments.refund.assert_not_awaited()
        assert result.refund.status == "not_applicable"

    async def test_refund_failure_leaves_appointment_untouched(
        self, service, make_offering, make_appointment, mock_payments
    ):
        offering = await make_offering()
        appointment = await make_appointment(offering)
        mock_payments.refund.side_effect = UpstreamError("stripe", message="Refund failed")

        with pytest.raises(UpstreamError):
            await service.cancel(appointment.id, CancelAppointmentRequest(), datetime(2030, 3, 15, 4, 0))

        unchanged = await service.get(appointment.id)
        assert unchanged.status == AppointmentStatus.CONFIRMED.value
        assert unchanged.payment_status == PaymentStatus.COMPLETED.value
        assert unchanged.cancelled_at is None

    @pytest.mark.parametrize("status", [AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED])
    async def test_terminal_appointments_cannot_be_cancelled(
        self, service, make_offering, make_appointment, status
    ):
        offering = await make_offering()
        appointment = await make_appointment(offering, status=status)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await service.cancel(appointment.id, CancelAppointmentRequest(), NOW)
        assert exc_info.value.status_code == 400

    async def test_pending_can_be_cancelled(self, service, make_offering, make_appointment):
        offering = await make_offering()
        appointment = await make_appointment(
            offering, status=AppointmentStatus.PENDING, payment_status=PaymentStatus.PENDING
        )

        result = await service.cancel(appointment.id, CancelAppointmentRequest(), NOW)
        assert result.appointment.status == AppointmentStatus.CANCELLED.value
        assert result.refund.status == "not_applicable"

    async def test_waitlisted_customers_are_notified(self, session, service, make_offering, make_appointment, notifier):
        offering = await make_offering()
        appointment = await make_appointment(offering)
        entry = WaitlistEntry(
            customer_id="waiting-1",
            offering_id=offering.id,
            preferred_date=DAY,
            status=WaitlistStatus.ACTIVE.value,
            expires_at=NOW + timedelta(hours=24),
            created_at=NOW,
        )
        session.add(entry)
        await session.flush()

        await service.cancel(appointment.id, CancelAppointmentRequest(), NOW)

        assert entry.status == WaitlistStatus.NOTIFIED.value
        events = [c.args[0] for c in notifier.dispatch.call_args_list]
        assert "waitlist.slot_available" in events

    async def test_reminders_are_suppressed(self, session, settings, mock_payments, notifier, make_offering, make_appointment):
        client = MagicMock()
        client.set = AsyncMock(return_value=True)
        service = AppointmentsService(
            session, payments=mock_payments, notifier=notifier, markers=MarkerStore(client), settings=settings
        )
        offering = await make_offering()
        appointment = await make_appointment(offering)

        await service.cancel(appointment.id, CancelAppointmentRequest(), NOW)

        keys = [c.args[0] for c in client.set.call_args_list]
        assert keys == [reminder_key(appointment.id, "24h"), reminder_key(appointment.id, "1h")]

    async def test_redis_outage_does_not_block_cancel(
        self, session, settings, mock_payments, notifier, make_offering, make_appointment
    ):
        client = MagicMock()
        client.set = AsyncMock(side_effect=redis.ConnectionError("down"))
        service = AppointmentsService(
            session, payments=mock_payments, notifier=notifier, markers=MarkerStore(client), settings=settings
        )
        offering = await make_offering()
        appointment = await make_appointment(offering)

        result = await service.cancel(appointment.id, CancelAppointmentRequest(), NOW)
        assert result.appointment.status == AppointmentStatus.CANCELLED.value


@pytest.mark.asyncio
class TestNotificationsFollowCommit:
    async def test_events_are_dispatched_outside_a_transaction(
        self, session, service, make_offering, make_appointment, notifier
    ):
        offering = await make_offering()
        existing = await make_appointment(offering, "09:30", "10:00")
        session.add(
            WaitlistEntry(
                customer_id="waiting-1",
                offering_id=offering.id,
                preferred_date=DAY,
                status=WaitlistStatus.ACTIVE.value,
                expires_at=NOW + timedelta(hours=24),
                created_at=NOW,
            )
        )
        await session.flush()
        pending_work = []
        notifier.dispatch.side_effect = lambda event, data: pending_work.append(
            (event, session.in_transaction())
        )

        await service.create_appointment(_create_request(offering), NOW)
        await service.cancel(existing.id, CancelAppointmentRequest(), NOW)

        assert [event for event, _ in pending_work] == [
            "appointment.created",
            "appointment.cancelled",
            "waitlist.slot_available",
        ]
        assert not any(in_transaction for _, in_transaction in pending_work)

    async def test_failed_commit_dispatches_nothing(self, session, service, make_offering, notifier):
        offering = await make_offering()

        with patch.object(session, "commit", AsyncMock(side_effect=SQLAlchemyError("disk full"))):
            with pytest.raises(DatabaseError):
                await service.create_appointment(_create_request(offering), NOW)

        notifier.dispatch.assert_not_called()

    async def test_failed_cancel_commit_dispatches_nothing(
        self, session, service, make_offering, make_appointment, notifier
    ):
        offering = await make_offering()
        appointment = await make_appointment(offering)

        with patch.object(session, "commit", AsyncMock(side_effect=SQLAlchemyError("disk full"))):
            with pytest.raises(DatabaseError):
                await service.cancel(appointment.id, CancelAppointmentRequest(), NOW)

        notifier.dispatch.assert_not_called()


@pytest.mark.asyncio
class TestCancellationPreview:
    async def test_preview_matches_policy_without_side_effects(
        self, service, make_offering, make_appointment, mock_payments
    ):
        offering = await make_offering()
        appointment = await make_appointment(offering)

        preview = await service.preview_cancellation(appointment.id, datetime(2030, 3, 14, 20, 0))

        assert preview.hours_until_appointment == 13.0
        assert preview.refund_percentage == 75
        assert preview.policy_tier == "partial_75"
        assert preview.refund_amount == Decimal("75.00")
        mock_payments.refund.assert_not_awaited()
        assert (await service.get(appointment.id)).status == AppointmentStatus.CONFIRMED.value

    async def test_preview_of_cancelled_appointment(self, service, make_offering, make_appointment):
        offering = await make_offering()
        appointment = await make_appointment(offering, status=AppointmentStatus.CANCELLED)

        with pytest.raises(InvalidTransitionError):
            await service.preview_cancellation(appointment.id, NOW)


@pytest.mark.asyncio
class TestReschedule:
    async def test_moves_to_free_slot(self, service, make_offering, make_appointment, notifier):
        offering = await make_offering()
        appointment = await make_appointment(offering)

        result = await service.reschedule(
            appointment.id, RescheduleAppointmentRequest(date=DAY, start="09:30", end="10:00"), NOW
        )

        assert (result.start, result.end) == ("09:30", "10:00")
        assert notifier.dispatch.call_args.args[0] == "appointment.rescheduled"

    async def test_same_slot_is_rejected(self, service, make_offering, make_appointment):
        offering = await make_offering()
        appointment = await make_appointment(offering)

        with pytest.raises(ValidationError):
            await service.reschedule(
                appointment.id, RescheduleAppointmentRequest(date=DAY, start="09:00", end="09:30"), NOW
            )

    async def test_full_target_is_rejected(self, service, make_offering, make_appointment):
        offering = await make_offering()
        appointment = await make_appointment(offering)
        await make_appointment(offering, "09:30", "10:00", customer_id="customer-2")

        with pytest.raises(ConflictError) as exc_info:
            await service.reschedule(
                appointment.id, RescheduleAppointmentRequest(date=DAY, start="09:30", end="10:00"), NOW
            )
        assert exc_info.value.reason == "slot_fully_booked"

    async def test_completed_appointment_cannot_move(self, service, make_offering, make_appointment):
        offering = await make_offering()
        appointment = await make_appointment(offering, status=AppointmentStatus.COMPLETED)

        with pytest.raises(InvalidTransitionError):
            await service.reschedule(
                appointment.id, RescheduleAppointmentRequest(date=DAY, start="09:30", end="10:00"), NOW
            )


@pytest.mark.asyncio
class TestOverrideStatus:
    async def test_confirmed_to_missed(self, service, make_offering, make_appointment):
        offering = await make_offering()
        appointment = await make_appointment(offering)

        result = await service.override_status(
            appointment.id,
            StatusOverrideRequest(status="missed", reason="Customer did not show up", actor="admin-1"),
            NOW,
        )

        assert result.status == "missed"
        assert result.status_reason == "Customer did not show up"
        assert result.status_changed_by == "admin-1"

    async def test_short_reason_is_rejected(self, service, make_offering, make_appointment):
        offering = await make_offering()
        appointment = await make_appointment(offering)

        with pytest.raises(ValidationError):
            await service.override_status(
                appointment.id, StatusOverrideRequest(status="failed", reason="   no    ", actor="admin-1"), NOW
            )

    async def test_pending_cannot_be_overridden(self, service, make_offering, make_appointment):
        offering = await make_offering()
        appointment = await make_appointment(offering, status=AppointmentStatus.PENDING)

        with pytest.raises(InvalidTransitionError):
            await service.override_status(
                appointment.id,
                StatusOverrideRequest(status="failed", reason="Vendor equipment failure", actor="admin-1"),
                NOW,
            )


@pytest.mark.asyncio
class TestAutoComplete:
    async def test_completes_after_buffer(self, service, make_offering, make_appointment):
        offering = await make_offering()
        ended = await make_appointment(offering, "09:00", "09:30")
        later = await make_appointment(offering, "09:30", "10:00", customer_id="customer-2")
        pending = await make_appointment(offering, "09:00", "09:30", status=AppointmentStatus.PENDING)

        # 09:30 + 30 minute buffer has passed, 10:00 + 30 has not
        result = await service.auto_complete_past(datetime(2030, 3, 15, 10, 5))

        assert result.appointment_ids == [ended.id]
        assert (await service.get(ended.id)).status_changed_by == "auto"
        assert (await service.get(later.id)).status == AppointmentStatus.CONFIRMED.value
        assert (await service.get(pending.id)).status == AppointmentStatus.PENDING.value

    async def test_rerun_is_a_no_op(self, service, make_offering, make_appointment):
        offering = await make_offering()
        await make_appointment(offering, "09:00", "09:30")
        when = datetime(2030, 3, 15, 12, 0)

        assert (await service.auto_complete_past(when)).completed == 1
        assert (await service.auto_complete_past(when)).completed == 0
