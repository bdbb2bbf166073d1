"""Busy periods, free slots and availability results."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from claritycall.modules.calendar.models import CalendarEvent


class BusyPeriod(BaseModel):
    """Time blocked by one opaque calendar event."""

    event_id: str
    title: str
    start: dt.datetime
    end: dt.datetime
    is_all_day: bool = False
    location: Optional[str] = None

    @model_validator(mode="after")
    def _positive_length(self) -> BusyPeriod:
        if self.start >= self.end:
            raise ValueError("BusyPeriod must have start < end")
        return self

    def overlaps(self, start: dt.datetime, end: dt.datetime) -> bool:
        """Strict overlap; touching edges do not count."""
        return self.start < end and start < self.end


class FreeSlot(BaseModel):
    """Uncovered time inside the query window."""

    start: dt.datetime
    end: dt.datetime
    is_business_hours: Optional[bool] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duration_minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60


class BusinessHours(BaseModel):
    """Daily working window applied in a given zone."""

    start: dt.time = dt.time(9, 0)
    end: dt.time = dt.time(17, 0)
    timezone: Optional[str] = None

    @model_validator(mode="after")
    def _ordered(self) -> BusinessHours:
        if self.start >= self.end:
            raise ValueError("Business hours must start before they end")
        return self


class AvailabilityStats(BaseModel):
    total_events: int = 0
    total_busy_periods: int = 0
    total_free_slots: int = 0
    longest_free_slot: float = 0


class AvailabilityResult(BaseModel):
    """Output of one availability computation."""

    query_start: dt.datetime
    query_end: dt.datetime
    events: list[CalendarEvent] = Field(default_factory=list)
    busy_periods: list[BusyPeriod] = Field(default_factory=list)
    free_slots: list[FreeSlot] = Field(default_factory=list)
    stats: AvailabilityStats = Field(default_factory=AvailabilityStats)


class SlotCheckResult(BaseModel):
    """Whether a requested slot is free, and what else would work."""

    requested_start: dt.datetime
    requested_end: dt.datetime
    is_available: bool
    conflicts: list[BusyPeriod] = Field(default_factory=list)
    alternatives: list[FreeSlot] = Field(default_factory=list)
