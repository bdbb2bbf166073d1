"""Selects what is due to fire now: scheduled calls and recurring user calls."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select

from claritycall.config import get_settings
from claritycall.database import get_session
from claritycall.errors import ValidationError
from claritycall.logging_config import get_logger
from claritycall.modules.calls.models import ScheduledCall, ScheduledCallStatus
from claritycall.modules.users.models import User
from claritycall.timeutils import resolve_zone

logger = get_logger(__name__)


@dataclass(frozen=True)
class CallTime:
    """A daily wall-clock call time in a specific zone."""
    hour: int
    minute: int
    zone: ZoneInfo

    @classmethod
    def parse(cls, text: str, zone_name: str) -> CallTime:
        """Build from ``"HH:MM"`` and an IANA zone name."""
        zone = resolve_zone(zone_name)
        try:
            hour_text, minute_text = text.strip().split(":")
            hour, minute = int(hour_text), int(minute_text)
        except (AttributeError, ValueError) as exc:
            raise ValidationError(f"Invalid call time format: {text!r}") from exc
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValidationError(f"Invalid call time format: {text!r}")
        return cls(hour=hour, minute=minute, zone=zone)

    def is_due(self, now: dt.datetime, window: dt.timedelta) -> bool:
        """True during the first ``window`` minutes of the configured local hour."""
        local = now.astimezone(self.zone)
        return local.hour == self.hour and local.minute < window.total_seconds() // 60

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d} {self.zone.key}"


class DueSelector:
    """Finds due scheduled calls and users whose recurring call time has come."""

    def __init__(self, tolerance: Optional[dt.timedelta] = None) -> None:
        self._tolerance = tolerance if tolerance is not None else get_settings().dispatch_tolerance

    @property
    def tolerance(self) -> dt.timedelta:
        return self._tolerance

    @staticmethod
    def call_time_for(user: User) -> Optional[CallTime]:
        """The user's parsed call time, or ``None`` when they cannot be called."""
        missing = [
            name for name in ("call_time", "timezone", "main_calendar_id", "phone")
            if not getattr(user, name)
        ]
        if missing:
            logger.info("due_user_skipped", user_id=user.id, reason="missing_fields", missing=missing)
            return None
        try:
            return CallTime.parse(user.call_time, user.timezone)
        except ValidationError as exc:
            logger.warning("due_user_skipped", user_id=user.id, reason="invalid_call_time", error=exc.message)
            return None

    def select_due_users(self, users: list[User], now: dt.datetime) -> list[User]:
        return [
            user for user in users
            if (call_time := self.call_time_for(user)) is not None
            and call_time.is_due(now, self._tolerance)
        ]

    async def due_users(self, now: Optional[dt.datetime] = None) -> list[User]:
        """Opted-in users whose local call window is open at ``now``."""
        now = now or dt.datetime.now(dt.UTC)
        async with get_session() as session:
            result = await session.execute(
                select(User).where(User.wants_clarity_calls.is_(True))
            )
            users = list(result.scalars().all())
        due = self.select_due_users(users, now)
        logger.debug("due_users_selected", candidates=len(users), due=len(due))
        return due

    async def due_scheduled_calls(self, now: Optional[dt.datetime] = None) -> list[ScheduledCall]:
        """``scheduled`` calls whose time fell within the last tolerance window."""
        now = now or dt.datetime.now(dt.UTC)
        async with get_session() as session:
            result = await session.execute(
                select(ScheduledCall)
                .where(ScheduledCall.status == ScheduledCallStatus.SCHEDULED)
                .where(ScheduledCall.scheduled_at_utc >= now - self._tolerance)
                .where(ScheduledCall.scheduled_at_utc <= now)
                .order_by(ScheduledCall.scheduled_at_utc)
            )
            return list(result.scalars().all())
