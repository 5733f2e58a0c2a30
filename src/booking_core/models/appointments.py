"""Pydantic models for appointment endpoints."""

import datetime as dt
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from booking_core.database.models import Appointment, PaymentMode
from booking_core.models.common import CamelModel, SlotKeyModel, TimeRangeModel, as_utc


class CreateAppointmentRequest(SlotKeyModel):
    """Request model for booking one unit of a slot."""

    customer_id: str = Field(..., min_length=1, description="Customer booking the slot")
    holder_id: Optional[str] = Field(
        None, description="Lock holder ID used at checkout (defaults to customerId)"
    )
    payment_mode: PaymentMode = Field(PaymentMode.CARD, description="card, cash or wallet")
    total: Optional[Decimal] = Field(
        None, ge=0, decimal_places=2, description="Amount charged (defaults to the offering price)"
    )
    notes: Optional[str] = Field(None, max_length=2000)

    @property
    def effective_holder(self) -> str:
        return self.holder_id or self.customer_id


class AppointmentResponse(CamelModel):
    """An appointment as returned to clients."""

    id: str
    offering_id: str
    customer_id: str
    date: dt.date
    start: str
    end: str
    status: str
    status_reason: Optional[str] = None
    status_changed_by: Optional[str] = None
    payment_mode: str
    payment_status: str
    payment_intent_id: Optional[str] = None
    total: Decimal
    currency: str
    refund_id: Optional[str] = None
    refund_status: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_percentage: Optional[int] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[dt.datetime] = None
    confirmed_at: Optional[dt.datetime] = None
    completed_at: Optional[dt.datetime] = None
    notes: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime

    @classmethod
    def from_model(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            offering_id=appointment.offering_id,
            customer_id=appointment.customer_id,
            date=appointment.appointment_date,
            start=appointment.start_time,
            end=appointment.end_time,
            status=appointment.status,
            status_reason=appointment.status_reason,
            status_changed_by=appointment.status_changed_by,
            payment_mode=appointment.payment_mode,
            payment_status=appointment.payment_status,
            payment_intent_id=appointment.payment_intent_id,
            total=appointment.total,
            currency=appointment.currency,
            refund_id=appointment.refund_id,
            refund_status=appointment.refund_status,
            refund_amount=appointment.refund_amount,
            refund_percentage=appointment.refund_percentage,
            cancellation_reason=appointment.cancellation_reason,
            cancelled_at=as_utc(appointment.cancelled_at),
            confirmed_at=as_utc(appointment.confirmed_at),
            completed_at=as_utc(appointment.completed_at),
            notes=appointment.notes,
            created_at=as_utc(appointment.created_at),
            updated_at=as_utc(appointment.updated_at),
        )


class PaymentResponse(CamelModel):
    """Payment intent handed back to the client to complete card payment."""

    payment_intent_id: str
    client_secret: Optional[str] = None
    amount: Decimal
    currency: str
    status: str


class CreateAppointmentResponse(CamelModel):
    appointment: AppointmentResponse
    payment: Optional[PaymentResponse] = None


class ConfirmPaymentRequest(CamelModel):
    payment_intent_id: str = Field(..., min_length=1)


class VendorActionRequest(CamelModel):
    actor: Optional[str] = Field(None, description="Who performed the action (vendor ID)")


class RescheduleAppointmentRequest(TimeRangeModel):
    """Move an appointment to another slot of the same offering."""

    date: dt.date = Field(..., description="New date (YYYY-MM-DD)")
    holder_id: Optional[str] = Field(
        None, description="Lock holder ID (defaults to the appointment's customer)"
    )


class CancelAppointmentRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=2000)
    actor: Optional[str] = Field(None, description="Who cancelled (defaults to the customer)")


class RefundResponse(CamelModel):
    percentage: int
    amount: Decimal
    status: str
    refund_id: Optional[str] = None


class CancelAppointmentResponse(CamelModel):
    appointment: AppointmentResponse
    refund: RefundResponse


class CancellationPreviewResponse(CamelModel):
    hours_until_appointment: float
    refund_percentage: int
    policy_tier: str
    refund_amount: Decimal


class StatusOverrideRequest(CamelModel):
    """Administrative missed/failed marking."""

    status: Literal["missed", "failed"]
    reason: str = Field(..., description="Why the appointment is being marked")
    actor: str = Field(..., min_length=1, description="Administrator or vendor making the change")

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        return v.strip()


class AutoCompleteResponse(CamelModel):
    completed: int
    appointment_ids: List[str] = Field(default_factory=list)

