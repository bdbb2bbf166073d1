"""Calendar events and the provider that fetches them."""

from claritycall.modules.calendar.models import CalendarEvent, EventStatus, EventTime, Transparency
from claritycall.modules.calendar.providers import BaseCalendarProvider, GoogleCalendarProvider

__all__ = [
    "BaseCalendarProvider",
    "CalendarEvent",
    "EventStatus",
    "EventTime",
    "GoogleCalendarProvider",
    "Transparency",
]
