"""Plans and runs reminder calls for tasks.

``plan`` asks the scheduler to run ``run_reminder`` at ``due - offset``. The
handler re-reads the task when it fires: a task that is gone, no longer
``scheduled``, or whose fire time has since moved later is left alone.
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import select

from claritycall.config import get_settings
from claritycall.database import get_session
from claritycall.logging_config import get_logger
from claritycall.modules.calls.models import InitiatedCall
from claritycall.modules.calls.service import CallService
from claritycall.modules.dispatch import (
    ClaimTaskReminder,
    CompleteTaskReminder,
    DispatchResult,
    DispatchStateMachine,
    FailTaskReminder,
)
from claritycall.modules.scheduler.service import SchedulerService
from claritycall.modules.tasks.models import Task, TaskStatus

logger = get_logger(__name__)

INTERRUPTED_MESSAGE = "Interrupted before the reminder call was recorded"


class ReminderPlanner:
    """Turns a task's due time into one pending reminder dispatch."""

    def __init__(
        self,
        scheduler: SchedulerService,
        dispatch: DispatchStateMachine,
        calls: CallService,
        tolerance: Optional[dt.timedelta] = None,
    ) -> None:
        self._scheduler = scheduler
        self._dispatch = dispatch
        self._calls = calls
        self._tolerance = tolerance if tolerance is not None else get_settings().dispatch_tolerance

    @staticmethod
    def job_id(task_id: str) -> str:
        return f"task-reminder:{task_id}"

    def plan(self, task: Task, now: Optional[dt.datetime] = None) -> dt.datetime:
        """Schedule the reminder and return when it will fire."""
        now = now or dt.datetime.now(dt.UTC)
        fire_at = max(task.fire_at, now)
        self._scheduler.schedule_at(
            name=f"reminder: {task.title}",
            func=self.run_reminder,
            run_at=fire_at,
            kwargs={"task_id": task.id},
            job_id=self.job_id(task.id),
        )
        logger.info("reminder_planned", task_id=task.id, fire_at=fire_at.isoformat())
        return fire_at

    def cancel(self, task_id: str) -> bool:
        return self._scheduler.cancel_job(self.job_id(task_id))

    async def run_reminder(
        self,
        task_id: str,
        now: Optional[dt.datetime] = None,
    ) -> Optional[DispatchResult[InitiatedCall]]:
        """Fire the reminder if the task still wants it; ``None`` means no-op."""
        now = now or dt.datetime.now(dt.UTC)
        async with get_session() as session:
            task = await session.get(Task, task_id)

        if task is None:
            logger.info("reminder_skipped", task_id=task_id, reason="task_missing")
            return None
        if task.status != TaskStatus.SCHEDULED:
            logger.info("reminder_skipped", task_id=task_id, reason="not_scheduled", status=task.status)
            return None
        if task.fire_at > now + self._tolerance:
            # Due time moved later since this fire was planned.
            logger.info("reminder_skipped", task_id=task_id, reason="not_due_yet", fire_at=task.fire_at.isoformat())
            return None

        result = await self._dispatch.dispatch(
            ClaimTaskReminder(task.id),
            lambda: self._calls.initiate_reminder_call(task),
            complete=lambda placed: CompleteTaskReminder(task.id, call_id=placed.call_id),
            fail=lambda message: FailTaskReminder(task.id, error_message=message),
        )
        logger.info("reminder_dispatched", task_id=task.id, outcome=result.describe())
        return result

    async def restore(self, now: Optional[dt.datetime] = None) -> int:
        """Re-plan every still-pending task after a restart."""
        now = now or dt.datetime.now(dt.UTC)
        async with get_session() as session:
            result = await session.execute(
                select(Task).where(Task.status == TaskStatus.SCHEDULED)
            )
            tasks = list(result.scalars().all())

        restored = 0
        for task in tasks:
            if task.due <= now:
                logger.info("reminder_expired", task_id=task.id, due=task.due.isoformat())
                continue
            self.plan(task, now=now)
            restored += 1
        logger.info("reminders_restored", count=restored)
        return restored

    async def recover_stale(self, now: Optional[dt.datetime] = None) -> int:
        """Fail reminders a previous process claimed but never finished."""
        return await self._dispatch.fail_stale(
            Task,
            TaskStatus.CALLING,
            lambda task_id: FailTaskReminder(task_id, error_message=INTERRUPTED_MESSAGE),
            now=now,
        )
