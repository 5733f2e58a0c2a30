"""Booking lifecycle: creation, payment confirmation, vendor actions,
rescheduling, cancellation with tiered refunds, overrides and auto-completion.

Lifecycle: pending -> confirmed -> completed | missed | failed, and
pending | confirmed -> cancelled. Expected conflicts (slot locked, fully
booked, invalid transition) are logged at INFO. Each operation commits
before it dispatches notifications, so nobody hears about a rolled-back change.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

import redis.asyncio as redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.config import Settings, get_settings
from booking_core.database.models import (
    Appointment,
    AppointmentStatus,
    Offering,
    PaymentMode,
    PaymentStatus,
)
from booking_core.exceptions import (
    ConflictError,
    DatabaseError,
    InvalidTransitionError,
    NotFoundError,
    SlotLockedError,
    ValidationError,
)
from booking_core.models.appointments import (
    AppointmentResponse,
    AutoCompleteResponse,
    CancelAppointmentRequest,
    CancelAppointmentResponse,
    CancellationPreviewResponse,
    ConfirmPaymentRequest,
    CreateAppointmentRequest,
    CreateAppointmentResponse,
    PaymentResponse,
    RefundResponse,
    RescheduleAppointmentRequest,
    StatusOverrideRequest,
)
from booking_core.models.common import as_utc
from booking_core.repositories.appointments_repository import AppointmentsRepository
from booking_core.repositories.slot_lock_repository import SlotKey, SlotLockRepository
from booking_core.services import refund_policy
from booking_core.services.marker_store import MarkerStore
from booking_core.services.notification_service import NotificationService
from booking_core.services.reminder_service import ReminderService
from booking_core.services.slot_lock_service import SlotLockService
from booking_core.services.slots_service import SlotsService
from booking_core.services.stripe_service import StripeService
from booking_core.services.waitlist_service import WaitlistService
from booking_core.utils.clock import local_today, to_utc, utcnow

logger = logging.getLogger(__name__)

PAYMENT_INTENT_SUCCEEDED = "succeeded"
REFUND_NONE = "none"
REFUND_NOT_APPLICABLE = "not_applicable"
AUTO_ACTOR = "auto"


class AppointmentsService:
    """Service for the appointment lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        payments: Optional[StripeService] = None,
        notifier: Optional[NotificationService] = None,
        markers: Optional[MarkerStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = AppointmentsRepository(session)
        self.lock_repo = SlotLockRepository(session)
        self.slots = SlotsService(session, self.settings)
        self.locks = SlotLockService(session, self.slots, self.settings)
        self._payments = payments
        self.notifier = notifier or NotificationService()
        self.waitlist = WaitlistService(session, self.notifier)
        self.reminders = (
            ReminderService(session, markers, self.notifier, self.settings) if markers else None
        )

    @property
    def payments(self) -> StripeService:
        if self._payments is None:
            self._payments = StripeService()
        return self._payments

    async def get_appointment(self, appointment_id: str) -> Appointment:
        appointment = await self.repo.get_by_id(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    async def get(self, appointment_id: str) -> AppointmentResponse:
        return AppointmentResponse.from_model(await self.get_appointment(appointment_id))

    def starts_at(self, appointment: Appointment) -> datetime:
        """Appointment start as naive UTC."""
        return to_utc(
            appointment.appointment_date, appointment.start_time, self.settings.booking.zone
        )

    # Creation

    async def create_appointment(
        self, request: CreateAppointmentRequest, now: Optional[datetime] = None
    ) -> CreateAppointmentResponse:
        """
        Book one unit of a slot.

        Raises:
            NotFoundError: If the offering does not exist
            ValidationError: If the slot is not generated for that date
            SlotLockedError: If another holder has a live lock on the slot
            ConflictError: If the slot is fully booked (reason `slot_fully_booked`)
            UpstreamError: If the card payment intent could not be created
        """
        now = now or utcnow()
        offering = await self.slots.get_offering(request.offering_id)
        key = SlotKey(offering.id, request.date, request.start, request.end)

        await self._ensure_not_locked_by_other(key, request.effective_holder, now)
        await self._ensure_capacity(offering, key)

        total = request.total if request.total is not None else offering.price
        currency = offering.currency or self.settings.booking.currency

        payment: Optional[PaymentResponse] = None
        payment_intent_id: Optional[str] = None
        if request.payment_mode == PaymentMode.CARD:
            # Nothing is persisted until the gateway has accepted the intent
            intent = await self.payments.create_payment_intent(
                total,
                currency,
                metadata={
                    "offering_id": offering.id,
                    "customer_id": request.customer_id,
                    "date": request.date.isoformat(),
                    "start": request.start,
                    "end": request.end,
                },
            )
            payment_intent_id = intent.id
            payment = PaymentResponse(
                payment_intent_id=intent.id,
                client_secret=intent.client_secret,
                amount=total,
                currency=currency,
                status=intent.status,
            )
            payment_status = PaymentStatus.PENDING.value
        else:
            payment_status = PaymentStatus.COMPLETED.value

        appointment = await self.repo.create(
            offering_id=offering.id,
            customer_id=request.customer_id,
            appointment_date=request.date,
            start_time=request.start,
            end_time=request.end,
            status=AppointmentStatus.PENDING.value,
            payment_mode=request.payment_mode.value,
            payment_status=payment_status,
            payment_intent_id=payment_intent_id,
            total=total,
            currency=currency,
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )
        logger.info(f"Appointment {appointment.id} created on {key} for {request.customer_id}")

        await self.locks.consume(key)
        await self._commit()
        self.notifier.dispatch("appointment.created", self._event_payload(appointment))

        return CreateAppointmentResponse(
            appointment=AppointmentResponse.from_model(appointment), payment=payment
        )

    async def _ensure_not_locked_by_other(self, key: SlotKey, holder_id: str, now: datetime) -> None:
        lock = await self.lock_repo.get_live(key, now)
        if lock is not None and lock.holder_id != holder_id:
            logger.info(f"Booking refused, {key} locked by another holder until {lock.expires_at}")
            raise SlotLockedError(locked_until=as_utc(lock.expires_at).isoformat())

    async def _ensure_capacity(
        self, offering: Offering, key: SlotKey, exclude_appointment_id: Optional[str] = None
    ) -> None:
        """Exact-key bookings must stay below the slot's capacity."""
        slot = await self.slots.resolve_slot(offering, key.date, key.start_time, key.end_time)
        booked = await self.repo.count_for_slot(
            offering.id, key.date, key.start_time, key.end_time, exclude_id=exclude_appointment_id
        )
        if booked >= slot.remaining_capacity:
            logger.info(f"Booking refused, {key} fully booked ({booked}/{slot.remaining_capacity})")
            alternatives = await self.slots.alternatives(
                offering, key.date, key.start_time, key.end_time
            )
            raise ConflictError(
                message="This slot is fully booked",
                reason="slot_fully_booked",
                details={"alternativeSlots": [a.model_dump(by_alias=True) for a in alternatives]},
            )

    # Payment and vendor actions

    async def confirm_payment(
        self, appointment_id: str, request: ConfirmPaymentRequest, now: Optional[datetime] = None
    ) -> AppointmentResponse:
        """Mark a card payment completed once the gateway reports the intent succeeded."""
        now = now or utcnow()
        appointment = await self.get_appointment(appointment_id)
        if appointment.payment_intent_id != request.payment_intent_id:
            raise ValidationError(
                "Payment intent does not belong to this appointment",
                errors={"paymentIntentId": request.payment_intent_id},
            )
        if appointment.status in refund_policy.TERMINAL_STATUSES:
            raise InvalidTransitionError(appointment.status, AppointmentStatus.CONFIRMED.value)

        intent = await self.payments.retrieve_payment_intent(request.payment_intent_id)
        if intent.status != PAYMENT_INTENT_SUCCEEDED:
            logger.info(f"Payment {intent.id} not succeeded yet ({intent.status})")
            raise ConflictError(
                message="Payment has not succeeded",
                reason="payment_not_succeeded",
                details={"paymentStatus": intent.status},
            )

        appointment.payment_status = PaymentStatus.COMPLETED.value
        if appointment.status == AppointmentStatus.PENDING.value:
            appointment.status = AppointmentStatus.CONFIRMED.value
            appointment.confirmed_at = now
            appointment.status_changed_by = "payment"
        appointment.updated_at = now
        await self._flush(appointment)

        logger.info(f"Payment confirmed for appointment {appointment.id}")
        await self._commit()
        self.notifier.dispatch("appointment.confirmed", self._event_payload(appointment))
        return AppointmentResponse.from_model(appointment)

    async def confirm(
        self, appointment_id: str, actor: Optional[str] = None, now: Optional[datetime] = None
    ) -> AppointmentResponse:
        """Vendor accepts a pending appointment."""
        now = now or utcnow()
        appointment = await self.get_appointment(appointment_id)
        self._require_transition(appointment, AppointmentStatus.CONFIRMED.value, {AppointmentStatus.PENDING.value})

        appointment.status = AppointmentStatus.CONFIRMED.value
        appointment.confirmed_at = now
        appointment.status_changed_by = actor or "vendor"
        appointment.updated_at = now
        await self._flush(appointment)

        logger.info(f"Appointment {appointment.id} confirmed by {appointment.status_changed_by}")
        await self._commit()
        self.notifier.dispatch("appointment.confirmed", self._event_payload(appointment))
        return AppointmentResponse.from_model(appointment)

    async def complete(
        self, appointment_id: str, actor: Optional[str] = None, now: Optional[datetime] = None
    ) -> AppointmentResponse:
        """Vendor marks a confirmed appointment as done."""
        now = now or utcnow()
        appointment = await self.get_appointment(appointment_id)
        self._require_transition(appointment, AppointmentStatus.COMPLETED.value, {AppointmentStatus.CONFIRMED.value})

        appointment.status = AppointmentStatus.COMPLETED.value
        appointment.completed_at = now
        appointment.status_changed_by = actor or "vendor"
        appointment.updated_at = now
        await self._flush(appointment)

        logger.info(f"Appointment {appointment.id} completed by {appointment.status_changed_by}")
        return AppointmentResponse.from_model(appointment)

    # Rescheduling

    async def reschedule(
        self,
        appointment_id: str,
        request: RescheduleAppointmentRequest,
        now: Optional[datetime] = None,
    ) -> AppointmentResponse:
        """
        Move a pending/confirmed appointment to another slot of the same offering.

        Raises:
            InvalidTransitionError: If the appointment is cancelled or finished
            ValidationError: If the target is the current slot or not a generated slot
            SlotLockedError: If someone else holds the target slot
            ConflictError: If the target slot is fully booked
        """
        now = now or utcnow()
        appointment = await self.get_appointment(appointment_id)
        if appointment.status not in refund_policy.CANCELLABLE_STATUSES:
            logger.info(f"Reschedule refused for {appointment.id} in status {appointment.status}")
            raise InvalidTransitionError(
                appointment.status,
                appointment.status,
                message=f"Cannot reschedule a {appointment.status} appointment",
            )

        if (appointment.appointment_date, appointment.start_time, appointment.end_time) == (
            request.date,
            request.start,
            request.end,
        ):
            raise ValidationError("Appointment is already booked for this slot")

        offering = await self.slots.get_offering(appointment.offering_id)
        key = SlotKey(offering.id, request.date, request.start, request.end)
        holder = request.holder_id or appointment.customer_id

        await self._ensure_not_locked_by_other(key, holder, now)
        await self._ensure_capacity(offering, key, exclude_appointment_id=appointment.id)

        previous = f"{appointment.appointment_date} {appointment.start_time}-{appointment.end_time}"
        appointment.appointment_date = request.date
        appointment.start_time = request.start
        appointment.end_time = request.end
        appointment.updated_at = now
        await self._flush(appointment)
        logger.info(f"Appointment {appointment.id} rescheduled from {previous} to {key}")

        await self.locks.consume(key)
        await self._commit()
        self.notifier.dispatch("appointment.rescheduled", self._event_payload(appointment))
        await self._best_effort_reminders(appointment.id, reset=True)
        return AppointmentResponse.from_model(appointment)

    # Cancellation

    async def preview_cancellation(
        self, appointment_id: str, now: Optional[datetime] = None
    ) -> CancellationPreviewResponse:
        """What cancelling right now would refund. No side effects."""
        now = now or utcnow()
        appointment = await self.get_appointment(appointment_id)
        if appointment.status not in refund_policy.CANCELLABLE_STATUSES:
            raise InvalidTransitionError(appointment.status, AppointmentStatus.CANCELLED.value)

        hours = refund_policy.hours_until(self.starts_at(appointment), now)
        percentage = refund_policy.refund_percentage(hours)
        return CancellationPreviewResponse(
            hours_until_appointment=round(hours, 2),
            refund_percentage=percentage,
            policy_tier=refund_policy.policy_tier(hours),
            refund_amount=refund_policy.refund_amount(appointment.total, percentage),
        )

    async def cancel(
        self,
        appointment_id: str,
        request: CancelAppointmentRequest,
        now: Optional[datetime] = None,
    ) -> CancelAppointmentResponse:
        """
        Cancel a pending/confirmed appointment and refund per policy.

        The refund is requested before anything is written: if the gateway
        fails, the appointment is left exactly as it was.

        Raises:
            InvalidTransitionError: If the appointment is not pending/confirmed
            UpstreamError: If the refund request fails
        """
        now = now or utcnow()
        appointment = await self.get_appointment(appointment_id)
        if appointment.status not in refund_policy.CANCELLABLE_STATUSES:
            logger.info(f"Cancel refused for {appointment.id} in status {appointment.status}")
            raise InvalidTransitionError(appointment.status, AppointmentStatus.CANCELLED.value)

        hours = refund_policy.hours_until(self.starts_at(appointment), now)
        percentage = refund_policy.refund_percentage(hours)
        refund = await self._refund(appointment, percentage)

        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.cancelled_at = now
        appointment.cancellation_reason = request.reason
        appointment.status_changed_by = request.actor or appointment.customer_id
        appointment.refund_percentage = percentage
        if refund.refund_id:
            appointment.refund_id = refund.refund_id
            appointment.refund_status = refund.status
            appointment.refund_amount = refund.amount
            appointment.payment_status = (
                PaymentStatus.REFUNDED.value
                if percentage == 100
                else PaymentStatus.PARTIALLY_REFUNDED.value
            )
        appointment.updated_at = now
        await self._flush(appointment)
        logger.info(
            f"Appointment {appointment.id} cancelled {hours:.2f}h before start, "
            f"refund {percentage}% ({refund.status})"
        )

        await self._commit()
        self.notifier.dispatch(
            "appointment.cancelled",
            {**self._event_payload(appointment), "refund_percentage": percentage},
        )
        await self._best_effort_reminders(appointment.id)
        await self._best_effort_waitlist(appointment, now)

        return CancelAppointmentResponse(
            appointment=AppointmentResponse.from_model(appointment), refund=refund
        )

    async def _refund(self, appointment: Appointment, percentage: int) -> RefundResponse:
        paid_by_card = (
            appointment.payment_mode == PaymentMode.CARD.value
            and appointment.payment_status == PaymentStatus.COMPLETED.value
            and appointment.payment_intent_id
        )
        if not paid_by_card:
            return RefundResponse(percentage=percentage, amount=Decimal("0.00"), status=REFUND_NOT_APPLICABLE)
        if percentage <= 0:
            return RefundResponse(percentage=0, amount=Decimal("0.00"), status=REFUND_NONE)

        amount = refund_policy.refund_amount(appointment.total, percentage)
        # A full refund leaves the amount to the gateway so it matches what was captured
        result = await self.payments.refund(
            appointment.payment_intent_id, None if percentage == 100 else amount
        )
        return RefundResponse(
            percentage=percentage, amount=amount, status=result.status, refund_id=result.id
        )

    # Administrative

    async def override_status(
        self,
        appointment_id: str,
        request: StatusOverrideRequest,
        now: Optional[datetime] = None,
    ) -> AppointmentResponse:
        """Mark a confirmed/completed appointment missed or failed, with a reason."""
        now = now or utcnow()
        min_length = self.settings.booking.min_status_reason_length
        if len(request.reason) < min_length:
            raise ValidationError(
                f"Reason must be at least {min_length} characters",
                errors={"reason": "too_short"},
            )

        appointment = await self.get_appointment(appointment_id)
        self._require_transition(appointment, request.status, refund_policy.OVERRIDE_SOURCE_STATUSES)

        previous = appointment.status
        appointment.status = request.status
        appointment.status_reason = request.reason
        appointment.status_changed_by = request.actor
        appointment.updated_at = now
        await self._flush(appointment)

        logger.info(
            f"Appointment {appointment.id} moved {previous} -> {request.status} by {request.actor}"
        )
        return AppointmentResponse.from_model(appointment)

    async def auto_complete_past(self, now: Optional[datetime] = None) -> AutoCompleteResponse:
        """Complete confirmed appointments that ended more than the buffer ago. Idempotent."""
        now = now or utcnow()
        booking = self.settings.booking
        cutoff = now - timedelta(minutes=booking.auto_complete_buffer_minutes)

        completed = []
        for appointment in await self.repo.list_confirmed_until(local_today(booking.zone, now)):
            ends_at = to_utc(appointment.appointment_date, appointment.end_time, booking.zone)
            if ends_at > cutoff:
                continue
            appointment.status = AppointmentStatus.COMPLETED.value
            appointment.completed_at = now
            appointment.status_changed_by = AUTO_ACTOR
            appointment.updated_at = now
            completed.append(appointment.id)

        if completed:
            await self._flush()
            logger.info(f"Auto-completed {len(completed)} appointment(s)")
        return AutoCompleteResponse(completed=len(completed), appointment_ids=completed)

    # Helpers

    @staticmethod
    def _require_transition(appointment: Appointment, target: str, allowed_from) -> None:
        if appointment.status not in allowed_from or not refund_policy.can_transition(
            appointment.status, target
        ):
            logger.info(f"Refused {appointment.status} -> {target} for appointment {appointment.id}")
            raise InvalidTransitionError(appointment.status, target)

    async def _flush(self, appointment: Optional[Appointment] = None) -> None:
        try:
            await self.session.flush()
            if appointment is not None:
                await self.session.refresh(appointment)
        except SQLAlchemyError as e:
            logger.error(f"Error saving appointment changes: {e}")
            raise DatabaseError("Failed to update appointment") from e

    async def _commit(self) -> None:
        """Make the change durable; events are only dispatched after this."""
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error committing appointment changes: {e}")
            raise DatabaseError("Failed to save appointment changes") from e

    async def _best_effort_reminders(self, appointment_id: str, reset: bool = False) -> None:
        if self.reminders is None:
            return
        try:
            if reset:
                await self.reminders.reset(appointment_id)
            else:
                await self.reminders.suppress(appointment_id)
        except redis.RedisError as e:
            logger.warning(f"Reminder bookkeeping failed for appointment {appointment_id}: {e}")

    async def _best_effort_waitlist(self, appointment: Appointment, now: datetime) -> None:
        # The cancellation is already committed; a failure here only loses waitlist work
        try:
            await self.waitlist.notify_waitlisted(
                appointment.offering_id, appointment.appointment_date, now
            )
        except (DatabaseError, SQLAlchemyError) as e:
            await self.session.rollback()
            logger.warning(f"Waitlist notification failed for appointment {appointment.id}: {e}")

    @staticmethod
    def _event_payload(appointment: Appointment) -> Dict[str, Any]:
        return {
            "appointment_id": appointment.id,
            "customer_id": appointment.customer_id,
            "offering_id": appointment.offering_id,
            "date": appointment.appointment_date.isoformat(),
            "start": appointment.start_time,
            "end": appointment.end_time,
            "status": appointment.status,
        }


def get_appointments_service(
    session: AsyncSession,
    markers: Optional[MarkerStore] = None,
) -> AppointmentsService:
    """Factory function to create AppointmentsService instance."""
    return AppointmentsService(session, markers=markers)
