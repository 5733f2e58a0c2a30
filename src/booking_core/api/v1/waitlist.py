"""Waitlist endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from booking_core.dependencies import waitlist_service
from booking_core.models.waitlist import JoinWaitlistRequest, WaitlistEntryResponse
from booking_core.services.waitlist_service import WaitlistService

router = APIRouter(prefix="/waitlist", tags=["waitlist"])


@router.post(
    "",
    response_model=WaitlistEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Join the waitlist of a date",
    responses={409: {"description": "Already waitlisted for this date"}},
)
async def join_waitlist(
    request: JoinWaitlistRequest,
    service: WaitlistService = Depends(waitlist_service),
) -> WaitlistEntryResponse:
    return await service.join(request)
