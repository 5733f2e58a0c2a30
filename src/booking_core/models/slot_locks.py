"""Pydantic models for slot lock endpoints."""

import datetime as dt
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from booking_core.database.models import SlotLock
from booking_core.models.common import CamelModel, SlotKeyModel, as_utc, check_time_of_day


class LockSlotRequest(SlotKeyModel):
    """Request model for acquiring a checkout lock on a slot."""

    holder_id: str = Field(..., min_length=1, description="Who is checking out (usually the customer)")
    payment_intent_id: Optional[str] = Field(None, description="Payment intent tied to this checkout")


class LockSlotResponse(CamelModel):
    lock_id: str
    expires_at: dt.datetime
    reacquired: bool = Field(False, description="True when the caller already held this lock")


class UnlockSlotRequest(CamelModel):
    """Release a lock by exactly one of: lock ID, slot key + holder, or payment intent."""

    lock_id: Optional[str] = None
    offering_id: Optional[str] = None
    date: Optional[dt.date] = None
    start: Optional[str] = None
    end: Optional[str] = None
    holder_id: Optional[str] = None
    payment_intent_id: Optional[str] = None

    @property
    def has_key(self) -> bool:
        return all([self.offering_id, self.date, self.start, self.end])

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        return check_time_of_day(v) if v is not None else v

    @model_validator(mode="after")
    def validate_mode(self):
        modes = sum([bool(self.lock_id), self.has_key, bool(self.payment_intent_id)])
        if modes != 1:
            raise ValueError(
                "Provide exactly one of lockId, (offeringId, date, start, end), or paymentIntentId"
            )
        if self.has_key and not self.holder_id:
            raise ValueError("holderId is required when releasing by slot")
        return self


class ReleaseResponse(CamelModel):
    released: int = Field(..., description="Number of locks removed")


class SlotLockResponse(CamelModel):
    lock_id: str
    offering_id: str
    date: dt.date
    start: str
    end: str
    holder_id: str
    payment_intent_id: Optional[str] = None
    created_at: dt.datetime
    expires_at: dt.datetime

    @classmethod
    def from_model(cls, lock: SlotLock) -> "SlotLockResponse":
        return cls(
            lock_id=lock.id,
            offering_id=lock.offering_id,
            date=lock.lock_date,
            start=lock.start_time,
            end=lock.end_time,
            holder_id=lock.holder_id,
            payment_intent_id=lock.payment_intent_id,
            created_at=as_utc(lock.created_at),
            expires_at=as_utc(lock.expires_at),
        )


class SlotLockListResponse(CamelModel):
    locks: List[SlotLockResponse] = Field(default_factory=list)
    total: int = 0


class PurgeResponse(CamelModel):
    deleted: int
