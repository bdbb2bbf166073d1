"""Availability reads backed by the user's calendar."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from claritycall.config import get_settings
from claritycall.errors import ValidationError
from claritycall.logging_config import get_logger
from claritycall.modules.availability.computer import AvailabilityComputer
from claritycall.modules.availability.models import AvailabilityResult, BusinessHours, SlotCheckResult
from claritycall.modules.calendar.providers import BaseCalendarProvider
from claritycall.modules.tokens.service import TokenService
from claritycall.timeutils import ensure_aware, local_day_bounds

logger = get_logger(__name__)


class AvailabilityService:
    """Fetches events for a user and runs the availability computer over them."""

    def __init__(
        self,
        token_service: TokenService,
        calendar: BaseCalendarProvider,
        computer: Optional[AvailabilityComputer] = None,
    ) -> None:
        self._tokens = token_service
        self._calendar = calendar
        self._computer = computer or AvailabilityComputer()

    @property
    def computer(self) -> AvailabilityComputer:
        return self._computer

    @staticmethod
    def business_hours(timezone: Optional[str] = None) -> BusinessHours:
        """The configured working window, applied in ``timezone``."""
        settings = get_settings()
        return BusinessHours(
            start=settings.clarity_business_hours_start,
            end=settings.clarity_business_hours_end,
            timezone=timezone,
        )

    async def compute_availability(
        self,
        user_id: str,
        calendar_id: str,
        start: dt.datetime,
        end: dt.datetime,
        timezone: Optional[str] = None,
        business_hours: bool = False,
    ) -> AvailabilityResult:
        """Busy periods and free slots for one calendar over ``[start, end)``."""
        zone = self._computer.zone(timezone)
        start = ensure_aware(start, zone)
        end = ensure_aware(end, zone)
        if start >= end:
            return AvailabilityResult(query_start=start, query_end=end)

        token = await self._tokens.get_valid_token(user_id)
        events = await self._calendar.list_events(token, calendar_id, start, end)
        result = self._computer.compute(
            events,
            start,
            end,
            business_hours=self.business_hours(timezone) if business_hours else None,
            tz=timezone,
        )
        logger.info(
            "availability_computed",
            user_id=user_id,
            calendar_id=calendar_id,
            busy=result.stats.total_busy_periods,
            free=result.stats.total_free_slots,
        )
        return result

    async def is_slot_available(
        self,
        user_id: str,
        calendar_id: str,
        start: dt.datetime,
        end: dt.datetime,
        timezone: Optional[str] = None,
    ) -> SlotCheckResult:
        """Check ``[start, end)`` against the calendar of the local day(s) it touches."""
        zone = self._computer.zone(timezone)
        start = ensure_aware(start, zone)
        end = ensure_aware(end, zone)
        if start >= end:
            raise ValidationError("Requested slot must start before it ends")

        window_start, _ = local_day_bounds(start, zone)
        _, window_end = local_day_bounds(end - dt.timedelta(microseconds=1), zone)
        availability = await self.compute_availability(
            user_id, calendar_id, window_start, window_end, timezone=timezone
        )
        result = self._computer.check_slot(availability, start, end)
        logger.info(
            "slot_checked",
            user_id=user_id,
            start=start.isoformat(),
            available=result.is_available,
            conflicts=len(result.conflicts),
        )
        return result
