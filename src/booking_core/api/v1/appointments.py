"""Appointment lifecycle endpoints."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status

from booking_core.dependencies import appointments_service
from booking_core.models.appointments import (
    AppointmentResponse,
    CancelAppointmentRequest,
    CancelAppointmentResponse,
    CancellationPreviewResponse,
    ConfirmPaymentRequest,
    CreateAppointmentRequest,
    CreateAppointmentResponse,
    RescheduleAppointmentRequest,
    VendorActionRequest,
)
from booking_core.services.appointments_service import AppointmentsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post(
    "",
    response_model=CreateAppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book a slot",
    description=(
        "Create a pending appointment. Card bookings return a payment intent whose "
        "client secret completes payment on the client."
    ),
    responses={409: {"description": "Slot locked by someone else or fully booked"}},
)
async def create_appointment(
    request: CreateAppointmentRequest,
    service: AppointmentsService = Depends(appointments_service),
) -> CreateAppointmentResponse:
    return await service.create_appointment(request)


@router.get("/{appointment_id}", response_model=AppointmentResponse, summary="Get an appointment")
async def get_appointment(
    appointment_id: str,
    service: AppointmentsService = Depends(appointments_service),
) -> AppointmentResponse:
    return await service.get(appointment_id)


@router.post(
    "/{appointment_id}/confirm-payment",
    response_model=AppointmentResponse,
    summary="Confirm card payment",
    description="Checks the payment intent with the gateway and confirms the appointment once it succeeded.",
)
async def confirm_payment(
    appointment_id: str,
    request: ConfirmPaymentRequest,
    service: AppointmentsService = Depends(appointments_service),
) -> AppointmentResponse:
    return await service.confirm_payment(appointment_id, request)


@router.post(
    "/{appointment_id}/confirm",
    response_model=AppointmentResponse,
    summary="Vendor confirms a pending appointment",
)
async def confirm_appointment(
    appointment_id: str,
    request: Optional[VendorActionRequest] = None,
    service: AppointmentsService = Depends(appointments_service),
) -> AppointmentResponse:
    return await service.confirm(appointment_id, actor=request.actor if request else None)


@router.post(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    summary="Vendor marks an appointment completed",
)
async def complete_appointment(
    appointment_id: str,
    request: Optional[VendorActionRequest] = None,
    service: AppointmentsService = Depends(appointments_service),
) -> AppointmentResponse:
    return await service.complete(appointment_id, actor=request.actor if request else None)


@router.post(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    summary="Move an appointment to another slot",
    responses={409: {"description": "Target slot locked or fully booked"}},
)
async def reschedule_appointment(
    appointment_id: str,
    request: RescheduleAppointmentRequest,
    service: AppointmentsService = Depends(appointments_service),
) -> AppointmentResponse:
    return await service.reschedule(appointment_id, request)


@router.post(
    "/{appointment_id}/cancel",
    response_model=CancelAppointmentResponse,
    summary="Cancel an appointment",
    description=(
        "Cancel a pending or confirmed appointment. Card payments are refunded by how far "
        "ahead the cancellation is: 24h+ full, 12h+ 75%, 2h+ 50%, otherwise nothing."
    ),
    responses={502: {"description": "Refund failed; the appointment was not changed"}},
)
async def cancel_appointment(
    appointment_id: str,
    request: Optional[CancelAppointmentRequest] = None,
    service: AppointmentsService = Depends(appointments_service),
) -> CancelAppointmentResponse:
    return await service.cancel(appointment_id, request or CancelAppointmentRequest())


@router.get(
    "/{appointment_id}/cancellation-preview",
    response_model=CancellationPreviewResponse,
    summary="Refund if cancelled now",
)
async def cancellation_preview(
    appointment_id: str,
    service: AppointmentsService = Depends(appointments_service),
) -> CancellationPreviewResponse:
    return await service.preview_cancellation(appointment_id)
