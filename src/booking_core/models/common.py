"""Shared pydantic bases and field validators."""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from booking_core.utils.clock import format_hhmm, parse_hhmm


class CamelModel(BaseModel):
    """Base model: camelCase aliases on the wire, snake_case accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    """Tag a stored naive-UTC datetime with UTC for serialization."""
    if value is None:
        return None
    return value.replace(tzinfo=dt.timezone.utc) if value.tzinfo is None else value


def check_time_of_day(value: str) -> str:
    """Validate and normalise to zero-padded "HH:MM" (" 9:00" becomes "09:00")."""
    return format_hhmm(parse_hhmm(value))


class TimeRangeModel(CamelModel):
    """A "HH:MM"-"HH:MM" range with start strictly before end."""

    start: str = Field(..., description="Start time (HH:MM)", examples=["09:00"])
    end: str = Field(..., description="End time (HH:MM)", examples=["09:30"])

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return check_time_of_day(v)

    @model_validator(mode="after")
    def validate_range(self):
        if parse_hhmm(self.start) >= parse_hhmm(self.end):
            raise ValueError("start must be before end")
        return self


class SlotKeyModel(TimeRangeModel):
    """Identifies one slot of one offering on one date."""

    offering_id: str = Field(..., min_length=1, description="Offering ID")
    date: dt.date = Field(..., description="Calendar date (YYYY-MM-DD)")
