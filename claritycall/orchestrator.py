"""Central orchestrator: builds the services and runs their lifecycle.

Wiring happens once here so the API, the CLI and the scheduler jobs all share
the same token cache, dispatch engine and scheduler.
"""

from __future__ import annotations

from typing import Any, Optional

from claritycall.config import get_settings
from claritycall.logging_config import get_logger
from claritycall.modules.availability import AvailabilityService
from claritycall.modules.calendar import BaseCalendarProvider, GoogleCalendarProvider
from claritycall.modules.calls.poller import DuePoller
from claritycall.modules.calls.selector import DueSelector
from claritycall.modules.calls.service import CallService, ScheduledCallService
from claritycall.modules.calls.voice import BaseVoiceProvider, ElevenLabsVoiceProvider
from claritycall.modules.dispatch import DispatchStateMachine
from claritycall.modules.scheduler import SchedulerService
from claritycall.modules.tasks.planner import ReminderPlanner
from claritycall.modules.tasks.service import TaskService
from claritycall.modules.tokens import TokenService
from claritycall.modules.transcripts.service import TranscriptService
from claritycall.modules.users import UserService

logger = get_logger(__name__)


class Orchestrator:
    """Owns every service instance."""

    def __init__(
        self,
        calendar: Optional[BaseCalendarProvider] = None,
        voice: Optional[BaseVoiceProvider] = None,
        tokens: Optional[TokenService] = None,
    ) -> None:
        self.settings = get_settings()
        self.scheduler = SchedulerService()
        self.dispatch = DispatchStateMachine()
        self.users = UserService()
        self.tokens = tokens or TokenService()
        self.calendar = calendar or GoogleCalendarProvider()
        self.voice = voice or ElevenLabsVoiceProvider()
        self.availability = AvailabilityService(self.tokens, self.calendar)
        self.calls = CallService(self.users, self.availability, self.voice)
        self.scheduled_calls = ScheduledCallService(
            self.calls, self.users, self.tokens, self.dispatch, scheduler=self.scheduler,
        )
        self.selector = DueSelector()
        self.poller = DuePoller(self.selector, self.scheduled_calls)
        self.planner = ReminderPlanner(self.scheduler, self.dispatch, self.calls)
        self.tasks = TaskService(
            self.planner, self.dispatch, users=self.users, tokens=self.tokens, calendar=self.calendar,
        )
        self.transcripts = TranscriptService(self.calls, self.tasks, self.users, self.dispatch)

    async def startup(self) -> None:
        """Start the scheduler, recover and re-plan pending work, then begin polling."""
        logger.info("orchestrator_startup_begin")
        await self.scheduler.start()

        try:
            stale = await self.scheduled_calls.recover_stale() + await self.planner.recover_stale()
            logger.info("stale_dispatches_failed_on_startup", count=stale)
        except Exception as exc:
            logger.error("stale_dispatch_recovery_failed", error=str(exc))

        try:
            restored = await self.planner.restore()
            logger.info("reminders_restored_on_startup", count=restored)
        except Exception as exc:
            logger.error("reminder_restore_failed", error=str(exc))

        try:
            restored = await self.scheduled_calls.restore()
            logger.info("scheduled_calls_restored_on_startup", count=restored)
        except Exception as exc:
            logger.error("scheduled_call_restore_failed", error=str(exc))

        self.poller.start(self.scheduler)
        logger.info("orchestrator_startup_complete")

    async def shutdown(self) -> None:
        """Gracefully shutdown all services."""
        logger.info("orchestrator_shutdown_begin")
        try:
            await self.scheduler.stop()
        except Exception as exc:
            logger.error("scheduler_stop_failed", error=str(exc))
        logger.info("orchestrator_shutdown_complete")

    def status(self) -> dict[str, Any]:
        return {
            "scheduler_running": self.scheduler.running,
            "scheduled_jobs": len(self.scheduler.list_jobs()),
            "planning_agent": self.settings.has_voice_agent("planning"),
            "reminder_agent": self.settings.has_voice_agent("reminder"),
            "webhook_signing": bool(self.settings.elevenlabs_webhook_secret),
        }
