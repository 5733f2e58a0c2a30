"""Slot lock endpoints used by the checkout flow."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from booking_core.auth.internal_service import check_internal_api_key
from booking_core.dependencies import slot_lock_service
from booking_core.models.slot_locks import (
    LockSlotRequest,
    LockSlotResponse,
    ReleaseResponse,
    SlotLockListResponse,
    UnlockSlotRequest,
)
from booking_core.services.slot_lock_service import SlotLockService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slot-locks", tags=["slot-locks"])


@router.post(
    "",
    response_model=LockSlotResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Lock a slot for checkout",
    description=(
        "Reserve a slot for the caller for a short time while payment completes. "
        "Returns 409 with `lockedUntil` if someone else holds it."
    ),
    responses={409: {"description": "Slot locked or fully booked"}},
)
async def lock_slot(
    request: LockSlotRequest,
    service: SlotLockService = Depends(slot_lock_service),
) -> LockSlotResponse:
    return await service.acquire(request)


@router.post(
    "/release",
    response_model=ReleaseResponse,
    status_code=status.HTTP_200_OK,
    summary="Release a slot lock",
    description="Release by lock ID, by slot key and holder, or by payment intent.",
    responses={404: {"description": "No live lock matched"}, 409: {"description": "Held by someone else"}},
)
async def release_slot(
    request: UnlockSlotRequest,
    service: SlotLockService = Depends(slot_lock_service),
    is_admin: bool = Depends(check_internal_api_key),
) -> ReleaseResponse:
    if is_admin and request.lock_id:
        released = await service.release_by_id(request.lock_id, admin=True)
        return ReleaseResponse(released=released)
    return await service.release(request)


@router.get(
    "/holders/{holder_id}",
    response_model=SlotLockListResponse,
    summary="Live locks of a holder",
)
async def list_holder_locks(
    holder_id: str,
    service: SlotLockService = Depends(slot_lock_service),
) -> SlotLockListResponse:
    return await service.list_holder_locks(holder_id)


@router.delete(
    "/holders/{holder_id}",
    response_model=ReleaseResponse,
    summary="Release every lock of a holder",
    description="Used when a checkout is abandoned. Releasing nothing is not an error.",
)
async def release_holder_locks(
    holder_id: str,
    service: SlotLockService = Depends(slot_lock_service),
) -> ReleaseResponse:
    return ReleaseResponse(released=await service.release_all(holder_id))
