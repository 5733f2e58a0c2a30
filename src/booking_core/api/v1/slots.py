"""Slot query endpoints: availability, single-slot check and nearby dates."""

from __future__ import annotations

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, status

from booking_core.dependencies import slots_service
from booking_core.models.slots import (
    CheckSlotRequest,
    CheckSlotResponse,
    GetSlotsRequest,
    NearbyDatesRequest,
    NearbyDatesResponse,
    ServiceSlotsRequest,
    ServiceSlotsResponse,
    SlotResponse,
)
from booking_core.services.slots_service import SlotsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slots", tags=["slots"])


@router.post(
    "/query",
    response_model=Dict[str, List[SlotResponse]],
    status_code=status.HTTP_200_OK,
    summary="Available slots of an offering",
    description="Slots generated from the offering's recurrence for one date, with remaining capacity.",
)
async def get_slots(
    request: GetSlotsRequest,
    service: SlotsService = Depends(slots_service),
) -> Dict[str, List[SlotResponse]]:
    return await service.get_slots(request)


@router.post(
    "/check",
    response_model=CheckSlotResponse,
    status_code=status.HTTP_200_OK,
    summary="Check one slot",
    description=(
        "Advisory availability of a single slot including its lock state. "
        "Acquiring a lock is the authoritative check."
    ),
)
async def check_slot(
    request: CheckSlotRequest,
    service: SlotsService = Depends(slots_service),
) -> CheckSlotResponse:
    return await service.check_slot(request)


@router.post(
    "/service",
    response_model=ServiceSlotsResponse,
    status_code=status.HTTP_200_OK,
    summary="Available slots across a service",
    description="Slots of every active offering of a service, merged by time.",
)
async def get_service_slots(
    request: ServiceSlotsRequest,
    service: SlotsService = Depends(slots_service),
) -> ServiceSlotsResponse:
    return await service.get_service_slots(request)


@router.post(
    "/nearby-dates",
    response_model=NearbyDatesResponse,
    status_code=status.HTTP_200_OK,
    summary="Nearby dates with availability windows",
)
async def nearby_dates(
    request: NearbyDatesRequest,
    service: SlotsService = Depends(slots_service),
) -> NearbyDatesResponse:
    """Suggest up to ten dates close to a fully booked one, nearest first."""
    return await service.nearby_dates(request)
