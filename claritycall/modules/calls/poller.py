"""Periodic sweep that fires due scheduled calls and daily clarity calls."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Optional

from claritycall.config import get_settings
from claritycall.logging_config import get_logger
from claritycall.modules.calls.selector import DueSelector
from claritycall.modules.calls.service import ScheduledCallService
from claritycall.modules.dispatch import ClaimOutcome
from claritycall.modules.scheduler.service import SchedulerService
from claritycall.timeutils import resolve_zone

logger = get_logger(__name__)


@dataclass
class PollReport:
    """What one sweep did."""
    fired: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    already_claimed: list[str] = field(default_factory=list)
    skipped_users: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.fired) + len(self.failed) + len(self.already_claimed)


class DuePoller:
    """Runs every poll interval; each record is claimed through the dispatch guard."""

    def __init__(self, selector: DueSelector, scheduled_calls: ScheduledCallService) -> None:
        self._selector = selector
        self._scheduled_calls = scheduled_calls
        self._job_id: Optional[str] = None

    async def _fire(self, scheduled_call_id: str, report: PollReport, now: dt.datetime) -> None:
        try:
            result = await self._scheduled_calls.fire(scheduled_call_id, now=now)
        except Exception as exc:
            logger.error("poll_fire_failed", scheduled_call_id=scheduled_call_id, error=str(exc))
            report.failed.append(scheduled_call_id)
            return
        if result.outcome == ClaimOutcome.ALREADY_CLAIMED:
            report.already_claimed.append(scheduled_call_id)
        elif result.succeeded:
            report.fired.append(scheduled_call_id)
        else:
            report.failed.append(scheduled_call_id)

    async def poll(self, now: Optional[dt.datetime] = None) -> PollReport:
        """One sweep: due one-shot calls first, then recurring per-user calls."""
        now = now or dt.datetime.now(dt.UTC)
        report = PollReport()

        for call in await self._selector.due_scheduled_calls(now):
            await self._fire(call.id, report, now)

        default_zone = get_settings().default_zone
        for user in await self._selector.due_users(now):
            zone = resolve_zone(user.timezone, default_zone)
            if await self._scheduled_calls.has_call_today(user.id, zone, now):
                logger.debug("due_user_already_called", user_id=user.id)
                report.skipped_users.append(user.id)
                continue
            call = await self._scheduled_calls.daily_call(user.id, zone, now)
            if call is None:
                report.skipped_users.append(user.id)
                continue
            await self._fire(call.id, report, now)

        logger.info(
            "poll_completed",
            fired=len(report.fired),
            failed=len(report.failed),
            already_claimed=len(report.already_claimed),
            skipped_users=len(report.skipped_users),
        )
        return report

    def start(self, scheduler: SchedulerService) -> str:
        """Register the sweep as an interval job."""
        self._job_id = scheduler.schedule_interval(
            name="due call poll",
            func=self.poll,
            seconds=get_settings().clarity_poll_interval_seconds,
        )
        return self._job_id
