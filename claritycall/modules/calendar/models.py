"""Data models for calendar events as delivered by the provider."""

from __future__ import annotations

import datetime as dt
from enum import StrEnum
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, model_validator

from claritycall.timeutils import resolve_zone


class EventStatus(StrEnum):
    """Provider event status."""

    CONFIRMED = "confirmed"
    TENTATIVE = "tentative"
    CANCELLED = "cancelled"


class Transparency(StrEnum):
    """Whether an event blocks time."""

    OPAQUE = "opaque"
    TRANSPARENT = "transparent"


class EventTime(BaseModel):
    """Either a date (all-day) or a timestamp, as in the Google Calendar API."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    date: Optional[dt.date] = None
    date_time: Optional[dt.datetime] = Field(default=None, alias="dateTime")
    time_zone: Optional[str] = Field(default=None, alias="timeZone")

    @model_validator(mode="after")
    def _exactly_one(self) -> EventTime:
        if (self.date is None) == (self.date_time is None):
            raise ValueError("EventTime needs exactly one of 'date' or 'dateTime'")
        return self

    @property
    def is_all_day(self) -> bool:
        return self.date is not None

    def to_instant(self, default_tz: ZoneInfo) -> dt.datetime:
        """Resolve a timed value to an aware instant.

        A naive timestamp is read in the value's own ``timeZone`` when it has
        one, otherwise in ``default_tz``.
        """
        if self.date_time is None:
            raise ValueError("All-day values have no single instant; use the date")
        if self.date_time.tzinfo is not None:
            return self.date_time
        zone = resolve_zone(self.time_zone, default_tz)
        return self.date_time.replace(tzinfo=zone)


class CalendarEvent(BaseModel):
    """A raw calendar event; read-only from our side."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = Field(default="(No title)", alias="summary")
    description: Optional[str] = None
    location: Optional[str] = None
    start: EventTime
    end: EventTime
    status: EventStatus = EventStatus.CONFIRMED
    transparency: Transparency = Transparency.OPAQUE
    visibility: str = "default"

    @property
    def is_all_day(self) -> bool:
        return self.start.is_all_day

    @property
    def blocks_time(self) -> bool:
        """Only live, opaque events make the user busy."""
        return self.status != EventStatus.CANCELLED and self.transparency == Transparency.OPAQUE

    @classmethod
    def from_provider(cls, item: dict) -> CalendarEvent:
        """Build an event from a Google Calendar API ``events`` item."""
        data = dict(item)
        if not data.get("summary"):
            data["summary"] = "(No title)"
        data.setdefault("transparency", "opaque")
        data.setdefault("status", "confirmed")
        return cls.model_validate(data)
