"""Turns raw calendar events into busy periods, free slots and stats."""

from __future__ import annotations

import datetime as dt
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from claritycall.config import get_settings
from claritycall.errors import ValidationError
from claritycall.logging_config import get_logger
from claritycall.modules.availability.intervals import IntervalSet
from claritycall.modules.availability.models import (
    AvailabilityResult,
    AvailabilityStats,
    BusinessHours,
    BusyPeriod,
    FreeSlot,
    SlotCheckResult,
)
from claritycall.modules.calendar.models import CalendarEvent, EventStatus, EventTime
from claritycall.timeutils import ensure_aware, resolve_zone

logger = get_logger(__name__)

END_OF_DAY = dt.time(23, 59, 59)


class AvailabilityComputer:
    """Pure availability computation; no I/O."""

    MAX_ALTERNATIVES = 3

    def __init__(
        self,
        min_free_slot_minutes: Optional[int] = None,
        default_timezone: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        minutes = settings.clarity_min_free_slot_minutes if min_free_slot_minutes is None else min_free_slot_minutes
        self._min_slot = dt.timedelta(minutes=minutes)
        self._default_zone = resolve_zone(default_timezone or settings.clarity_default_timezone)

    def zone(self, tz: Optional[str] = None) -> ZoneInfo:
        return resolve_zone(tz, self._default_zone)

    # ── Normalization ────────────────────────────────────────────────

    @staticmethod
    def _bound(value: EventTime, zone: ZoneInfo, is_end: bool, start_day: Optional[dt.date]) -> dt.datetime:
        if not value.is_all_day:
            return value.to_instant(zone)
        if not is_end:
            return dt.datetime.combine(value.date, dt.time.min, tzinfo=zone)
        # Provider end dates are exclusive; a same-day end still covers that day.
        last_day = value.date - dt.timedelta(days=1)
        if start_day is not None and last_day < start_day:
            last_day = start_day
        return dt.datetime.combine(last_day, END_OF_DAY, tzinfo=zone)

    def to_busy_period(self, event: CalendarEvent, zone: ZoneInfo) -> Optional[BusyPeriod]:
        """Normalize one event; ``None`` when it has no positive length.

        All-day events cover their local days from 00:00:00 to 23:59:59 in
        ``zone`` rather than UTC days.
        """
        start_day = event.start.date if event.start.is_all_day else None
        start = self._bound(event.start, zone, is_end=False, start_day=start_day)
        end = self._bound(event.end, zone, is_end=True, start_day=start_day)
        if start >= end:
            logger.debug("busy_period_dropped", event_id=event.id, reason="non_positive_length")
            return None
        return BusyPeriod(
            event_id=event.id,
            title=event.title,
            start=start,
            end=end,
            is_all_day=event.is_all_day,
            location=event.location or None,
        )

    # ── Free slots ───────────────────────────────────────────────────

    def free_slots(
        self,
        busy_periods: Iterable[BusyPeriod],
        query_start: dt.datetime,
        query_end: dt.datetime,
    ) -> list[FreeSlot]:
        """Gaps between busy periods inside the window, minimum length applied."""
        busy = IntervalSet((p.start, p.end) for p in busy_periods)
        return [
            FreeSlot(start=start, end=end)
            for start, end in busy.gaps(query_start, query_end)
            if end - start >= self._min_slot
        ]

    def trim_to_business_hours(
        self,
        slots: Iterable[FreeSlot],
        policy: BusinessHours,
        zone: ZoneInfo,
    ) -> list[FreeSlot]:
        """Intersect each slot with the working window of every local day it spans."""
        bh_zone = resolve_zone(policy.timezone, zone)
        trimmed: list[FreeSlot] = []
        for slot in slots:
            first_day = slot.start.astimezone(bh_zone).date()
            last_day = slot.end.astimezone(bh_zone).date()
            windows = IntervalSet(
                (
                    dt.datetime.combine(first_day + dt.timedelta(days=n), policy.start, tzinfo=bh_zone),
                    dt.datetime.combine(first_day + dt.timedelta(days=n), policy.end, tzinfo=bh_zone),
                )
                for n in range((last_day - first_day).days + 1)
            )
            for start, end in IntervalSet([(slot.start, slot.end)]).intersection(windows):
                if end - start >= self._min_slot:
                    trimmed.append(FreeSlot(start=start, end=end, is_business_hours=True))
        return trimmed

    # ── Entry points ─────────────────────────────────────────────────

    def compute(
        self,
        events: Iterable[CalendarEvent],
        query_start: dt.datetime,
        query_end: dt.datetime,
        business_hours: Optional[BusinessHours] = None,
        tz: Optional[str] = None,
    ) -> AvailabilityResult:
        """Busy periods, free slots and stats for ``[query_start, query_end)``."""
        zone = self.zone(tz)
        query_start = ensure_aware(query_start, zone)
        query_end = ensure_aware(query_end, zone)
        if query_start >= query_end:
            return AvailabilityResult(query_start=query_start, query_end=query_end)

        live = [e for e in events if e.status != EventStatus.CANCELLED]

        busy_periods: list[BusyPeriod] = []
        for event in live:
            if not event.blocks_time:
                continue
            try:
                period = self.to_busy_period(event, zone)
            except ValidationError as exc:
                logger.warning("event_skipped", event_id=event.id, error=exc.message)
                continue
            if period is not None and period.overlaps(query_start, query_end):
                busy_periods.append(period)
        busy_periods.sort(key=lambda p: p.start)

        free = self.free_slots(busy_periods, query_start, query_end)
        if business_hours is not None:
            free = self.trim_to_business_hours(free, business_hours, zone)

        return AvailabilityResult(
            query_start=query_start,
            query_end=query_end,
            events=live,
            busy_periods=busy_periods,
            free_slots=free,
            stats=AvailabilityStats(
                total_events=len(live),
                total_busy_periods=len(busy_periods),
                total_free_slots=len(free),
                longest_free_slot=max((s.duration_minutes for s in free), default=0),
            ),
        )

    def check_slot(
        self,
        availability: AvailabilityResult,
        start: dt.datetime,
        end: dt.datetime,
    ) -> SlotCheckResult:
        """Conflicts for ``[start, end)`` plus nearby free slots that fit it."""
        if start >= end:
            raise ValidationError("Requested slot must start before it ends")
        conflicts = [p for p in availability.busy_periods if p.overlaps(start, end)]
        alternatives: list[FreeSlot] = []
        if conflicts:
            needed = end - start
            fitting = [s for s in availability.free_slots if s.end - s.start >= needed]
            fitting.sort(key=lambda s: abs(s.start - start))
            alternatives = fitting[: self.MAX_ALTERNATIVES]
        return SlotCheckResult(
            requested_start=start,
            requested_end=end,
            is_available=not conflicts,
            conflicts=conflicts,
            alternatives=alternatives,
        )
