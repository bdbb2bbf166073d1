"""Task CRUD with validation and reminder planning."""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from sqlalchemy import select

from claritycall.config import get_settings
from claritycall.database import get_session
from claritycall.errors import NotFoundError, ValidationError
from claritycall.logging_config import get_logger
from claritycall.modules.calendar.providers import BaseCalendarProvider
from claritycall.modules.dispatch import CancelTask, CompleteTask, DispatchStateMachine
from claritycall.modules.tasks.models import Task, TaskCreate, TaskStatus, TaskUpdate
from claritycall.modules.tasks.planner import ReminderPlanner
from claritycall.modules.tokens.service import TokenService
from claritycall.modules.users.service import UserService
from claritycall.timeutils import parse_iso_with_offset, resolve_zone

logger = get_logger(__name__)

DEFAULT_EVENT_MINUTES = 30


class TaskService:
    """Creates, updates and removes tasks, keeping one reminder planned per task."""

    def __init__(
        self,
        planner: ReminderPlanner,
        dispatch: DispatchStateMachine,
        users: Optional[UserService] = None,
        tokens: Optional[TokenService] = None,
        calendar: Optional[BaseCalendarProvider] = None,
    ) -> None:
        self._planner = planner
        self._dispatch = dispatch
        self._users = users
        self._tokens = tokens
        self._calendar = calendar

    @staticmethod
    def _validated_due(due: str, now: dt.datetime) -> dt.datetime:
        value = parse_iso_with_offset(due)
        if value <= now:
            raise ValidationError("Due date must be in the future")
        return value

    async def create_task(self, data: TaskCreate, now: Optional[dt.datetime] = None) -> Task:
        now = now or dt.datetime.now(dt.UTC)
        title = data.title.strip()
        if not title:
            raise ValidationError("Title is required")
        due = self._validated_due(data.due, now)
        resolve_zone(data.timezone)
        minutes = data.reminder_minutes_before
        if minutes is None:
            minutes = get_settings().clarity_default_reminder_minutes

        async with get_session() as session:
            task = Task(
                title=title,
                due=due,
                timezone=data.timezone,
                status=TaskStatus.SCHEDULED,
                reminder_minutes_before=minutes,
                source=data.source,
                user_id=data.user_id,
                call_id=data.call_id,
            )
            session.add(task)

        fire_at = self._planner.plan(task, now=now)
        logger.info("task_created", task_id=task.id, source=str(data.source), fire_at=fire_at.isoformat())
        return task

    async def get_task(self, task_id: str) -> Optional[Task]:
        async with get_session() as session:
            return await session.get(Task, task_id)

    async def require_task(self, task_id: str) -> Task:
        task = await self.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task with ID {task_id} not found")
        return task

    async def list_tasks(self, user_id: str, status: Optional[TaskStatus] = None) -> list[Task]:
        async with get_session() as session:
            stmt = select(Task).where(Task.user_id == user_id)
            if status is not None:
                stmt = stmt.where(Task.status == status)
            result = await session.execute(stmt.order_by(Task.due))
            return list(result.scalars().all())

    async def find_duplicate(self, call_id: str, due: dt.datetime, title: str) -> Optional[Task]:
        """A task already created from the same call with the same due time and title."""
        async with get_session() as session:
            result = await session.execute(
                select(Task)
                .where(Task.call_id == call_id)
                .where(Task.due == due)
                .where(Task.title == title)
            )
            return result.scalars().first()

    async def update_task(self, task_id: str, data: TaskUpdate, now: Optional[dt.datetime] = None) -> Task:
        """Edit a task. Status changes are limited to completing or cancelling it."""
        now = now or dt.datetime.now(dt.UTC)
        task = await self.require_task(task_id)

        if data.status is not None and data.status != task.status:
            await self._change_status(task, data.status)

        changes: dict[str, Any] = {}
        if data.title is not None:
            if not data.title.strip():
                raise ValidationError("Title is required")
            changes["title"] = data.title.strip()
        if data.timezone is not None:
            resolve_zone(data.timezone)
            changes["timezone"] = data.timezone
        if data.due is not None:
            changes["due"] = self._validated_due(data.due, now)
        if data.reminder_minutes_before is not None:
            changes["reminder_minutes_before"] = data.reminder_minutes_before

        replan = "due" in changes or "reminder_minutes_before" in changes
        async with get_session() as session:
            task = await session.get(Task, task_id)
            if task is None:
                raise NotFoundError(f"Task with ID {task_id} not found")
            if replan and task.status != TaskStatus.SCHEDULED:
                raise ValidationError(f"Cannot reschedule a task that is {task.status}")
            for field, value in changes.items():
                setattr(task, field, value)

        if replan:
            self._planner.plan(task, now=now)
        logger.info("task_updated", task_id=task_id, fields=sorted(changes))
        return task

    async def _change_status(self, task: Task, status: TaskStatus) -> None:
        if status == TaskStatus.COMPLETED:
            transition = CompleteTask(task.id)
        elif status == TaskStatus.CANCELLED:
            transition = CancelTask(task.id)
        else:
            raise ValidationError(f"Tasks can only be marked completed or cancelled, not {status}")
        if not await self._dispatch.apply(transition):
            raise ValidationError(f"Task cannot move from {task.status} to {status}")
        self._planner.cancel(task.id)

    async def delete_task(self, task_id: str) -> Task:
        async with get_session() as session:
            task = await session.get(Task, task_id)
            if task is None:
                raise NotFoundError(f"Task with ID {task_id} not found")
            await session.delete(task)
        self._planner.cancel(task_id)
        logger.info("task_deleted", task_id=task_id)
        return task

    async def add_to_calendar(self, task_id: str, duration_minutes: int = DEFAULT_EVENT_MINUTES) -> dict[str, Any]:
        """Block time for the task on its owner's main calendar."""
        if self._users is None or self._tokens is None or self._calendar is None:
            raise ValidationError("Calendar integration is not available")
        task = await self.require_task(task_id)
        if not task.user_id:
            raise ValidationError("Task has no owner")
        user = await self._users.require_user(task.user_id)
        if not user.main_calendar_id:
            raise ValidationError("User has no main calendar selected")
        token = await self._tokens.get_valid_token(user.id)
        zone = resolve_zone(task.timezone)
        start = task.due.astimezone(zone)
        return await self._calendar.create_event(
            token,
            user.main_calendar_id,
            task.title,
            start,
            start + dt.timedelta(minutes=duration_minutes),
        )

