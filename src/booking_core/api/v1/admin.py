"""Administrative endpoints (internal API key only)."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from booking_core.auth.internal_service import InternalAuthDep
from booking_core.dependencies import appointments_service, slot_lock_service
from booking_core.models.appointments import (
    AppointmentResponse,
    AutoCompleteResponse,
    StatusOverrideRequest,
)
from booking_core.models.slot_locks import PurgeResponse, ReleaseResponse, SlotLockListResponse
from booking_core.services.appointments_service import AppointmentsService
from booking_core.services.slot_lock_service import SlotLockService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[InternalAuthDep])


@router.get(
    "/slot-locks",
    response_model=SlotLockListResponse,
    summary="List live slot locks",
)
async def list_locks(
    service: SlotLockService = Depends(slot_lock_service),
) -> SlotLockListResponse:
    return await service.list_all_locks()


@router.delete(
    "/slot-locks/{lock_id}",
    response_model=ReleaseResponse,
    summary="Force-release a slot lock",
    description="Removes the lock regardless of holder, expired rows included.",
)
async def force_release_lock(
    lock_id: str,
    service: SlotLockService = Depends(slot_lock_service),
) -> ReleaseResponse:
    released = await service.release_by_id(lock_id, admin=True)
    return ReleaseResponse(released=released)


@router.post(
    "/slot-locks/purge-expired",
    response_model=PurgeResponse,
    summary="Delete expired lock rows",
)
async def purge_expired_locks(
    service: SlotLockService = Depends(slot_lock_service),
) -> PurgeResponse:
    return PurgeResponse(deleted=await service.purge_expired())


@router.post(
    "/appointments/{appointment_id}/status",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark an appointment missed or failed",
)
async def override_status(
    appointment_id: str,
    request: StatusOverrideRequest,
    service: AppointmentsService = Depends(appointments_service),
) -> AppointmentResponse:
    return await service.override_status(appointment_id, request)


@router.post(
    "/appointments/auto-complete",
    response_model=AutoCompleteResponse,
    summary="Complete confirmed appointments that have ended",
)
async def auto_complete(
    service: AppointmentsService = Depends(appointments_service),
) -> AutoCompleteResponse:
    return await service.auto_complete_past()
