"""Pydantic models for waitlist endpoints."""

import datetime as dt
from typing import Optional

from pydantic import Field, field_validator

from booking_core.database.models import WaitlistEntry
from booking_core.models.common import CamelModel, as_utc, check_time_of_day


class JoinWaitlistRequest(CamelModel):
    """Request model for waiting on capacity for a date."""

    customer_id: str = Field(..., min_length=1)
    offering_id: str = Field(..., min_length=1)
    date: dt.date = Field(..., description="Preferred date (YYYY-MM-DD)")
    preferred_time: Optional[str] = Field(None, description="Preferred start time (HH:MM)")

    @field_validator("preferred_time")
    @classmethod
    def validate_preferred_time(cls, v: Optional[str]) -> Optional[str]:
        return check_time_of_day(v) if v is not None else v


class WaitlistEntryResponse(CamelModel):
    id: str
    customer_id: str
    offering_id: str
    date: dt.date
    preferred_time: Optional[str] = None
    status: str
    notified_at: Optional[dt.datetime] = None
    expires_at: dt.datetime
    created_at: dt.datetime

    @classmethod
    def from_model(cls, entry: WaitlistEntry) -> "WaitlistEntryResponse":
        return cls(
            id=entry.id,
            customer_id=entry.customer_id,
            offering_id=entry.offering_id,
            date=entry.preferred_date,
            preferred_time=entry.preferred_time,
            status=entry.status,
            notified_at=as_utc(entry.notified_at),
            expires_at=as_utc(entry.expires_at),
            created_at=as_utc(entry.created_at),
        )
