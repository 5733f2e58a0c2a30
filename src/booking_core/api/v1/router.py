"""API v1 router aggregation.

All v1 endpoints are prefixed with `/api/v1`:
- Slots (`/api/v1/slots/*`)
- Slot locks (`/api/v1/slot-locks/*`)
- Appointments (`/api/v1/appointments/*`)
- Waitlist (`/api/v1/waitlist`)
- Admin (`/api/v1/admin/*`, X-Internal-API-Key)
"""

from fastapi import APIRouter

from booking_core.api.v1 import admin, appointments, slot_locks, slots, waitlist

router = APIRouter(
    prefix="/api/v1",
    responses={
        404: {"description": "Not found"},
        422: {"description": "Validation error"},
        500: {"description": "Internal server error"},
    },
)

router.include_router(slots.router)
router.include_router(slot_locks.router)
router.include_router(appointments.router)
router.include_router(waitlist.router)
router.include_router(admin.router)


@router.get("/", summary="API Information", tags=["v1"])
async def api_info():
    """API version and the endpoint groups it serves."""
    return {
        "version": "v1",
        "status": "active",
        "endpoints": {
            "slots": "/api/v1/slots",
            "slot-locks": "/api/v1/slot-locks",
            "appointments": "/api/v1/appointments",
            "waitlist": "/api/v1/waitlist",
            "admin": "/api/v1/admin",
        },
    }
