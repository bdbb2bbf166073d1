"""Run-at-time and interval jobs on APScheduler.

This is the single "fire at time T" primitive the reminder planner and the
due poller build on. Jobs are in-memory; durable state lives on the records
themselves and is re-planned at startup.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Callable, Coroutine, Optional
from uuid import uuid4

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from claritycall.logging_config import get_logger

logger = get_logger(__name__)

AsyncTask = Callable[..., Coroutine[Any, Any, Any]]


class ScheduledJob:
    """Metadata about a scheduled job."""

    def __init__(
        self,
        job_id: str,
        name: str,
        job_type: str,
        schedule_info: str,
        func_name: str,
    ) -> None:
        self.job_id = job_id
        self.name = name
        self.job_type = job_type
        self.schedule_info = schedule_info
        self.func_name = func_name
        self.created_at = dt.datetime.now(dt.UTC)
        self.last_run: Optional[dt.datetime] = None
        self.run_count: int = 0


class SchedulerService:
    """Manages one-shot and interval jobs."""

    def __init__(self) -> None:
        self._scheduler = AsyncIOScheduler(
            job_defaults={
                "misfire_grace_time": 300,  # 5 min grace
                "coalesce": True,           # merge missed runs into one
                "max_instances": 1,
            },
        )
        self._jobs: dict[str, ScheduledJob] = {}

    @property
    def running(self) -> bool:
        return self._scheduler.running

    async def start(self) -> None:
        """Start the scheduler (idempotent)."""
        if self._scheduler.running:
            return
        self._scheduler.add_listener(self._on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED)
        self._scheduler.start()
        logger.info("scheduler_started")

    @staticmethod
    def _on_job_event(event) -> None:
        job_id = getattr(event, "job_id", "?")
        if event.code == EVENT_JOB_EXECUTED:
            logger.debug("apscheduler_job_executed", job_id=job_id)
        elif event.code == EVENT_JOB_ERROR:
            logger.error("apscheduler_job_error", job_id=job_id, error=str(getattr(event, "exception", "")))
        elif event.code == EVENT_JOB_MISSED:
            logger.warning("apscheduler_job_missed", job_id=job_id)

    async def stop(self) -> None:
        """Shut down the scheduler gracefully."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._jobs.clear()
        logger.info("scheduler_stopped")

    def _wrap(
        self,
        job_id: str,
        name: str,
        func: AsyncTask,
        kwargs: Optional[dict[str, Any]],
        once: bool = False,
    ) -> AsyncTask:
        async def _wrapper():
            try:
                await func(**(kwargs or {}))
                meta = self._jobs.get(job_id)
                if meta:
                    meta.last_run = dt.datetime.now(dt.UTC)
                    meta.run_count += 1
                logger.debug("job_executed", job_id=job_id, name=name)
            except Exception as exc:
                logger.error("job_failed", job_id=job_id, name=name, error=str(exc))
            finally:
                if once:
                    self._jobs.pop(job_id, None)
        return _wrapper

    def schedule_at(
        self,
        name: str,
        func: AsyncTask,
        run_at: dt.datetime,
        kwargs: Optional[dict[str, Any]] = None,
        job_id: Optional[str] = None,
    ) -> str:
        """Run ``func(**kwargs)`` once at ``run_at``.

        Re-using ``job_id`` replaces the pending job, so re-planning a record
        never leaves two fires queued for it.
        """
        job_id = job_id or str(uuid4())
        self._scheduler.add_job(
            self._wrap(job_id, name, func, kwargs, once=True),
            trigger=DateTrigger(run_date=run_at),
            id=job_id,
            name=name,
            replace_existing=True,
        )
        self._jobs[job_id] = ScheduledJob(
            job_id=job_id, name=name, job_type="once",
            schedule_info=run_at.isoformat(), func_name=getattr(func, "__name__", repr(func)),
        )
        logger.info("job_scheduled_once", job_id=job_id, name=name, at=run_at.isoformat())
        return job_id

    def schedule_interval(
        self,
        name: str,
        func: AsyncTask,
        seconds: int = 0,
        minutes: int = 0,
        kwargs: Optional[dict[str, Any]] = None,
        run_immediately: bool = False,
    ) -> str:
        """Run ``func(**kwargs)`` every interval."""
        job_id = str(uuid4())
        options: dict[str, Any] = {}
        if run_immediately:
            options["next_run_time"] = dt.datetime.now(dt.UTC)
        # An explicit next_run_time of None would add the job paused.
        self._scheduler.add_job(
            self._wrap(job_id, name, func, kwargs),
            trigger=IntervalTrigger(minutes=minutes, seconds=seconds),
            id=job_id,
            name=name,
            **options,
        )
        interval_str = f"{minutes}m{seconds}s"
        self._jobs[job_id] = ScheduledJob(
            job_id=job_id, name=name, job_type="interval",
            schedule_info=interval_str, func_name=getattr(func, "__name__", repr(func)),
        )
        logger.info("job_scheduled_interval", job_id=job_id, name=name, interval=interval_str)
        return job_id

    def cancel_job(self, job_id: str) -> bool:
        """Remove a pending job. Returns False if it was unknown."""
        meta = self._jobs.pop(job_id, None)
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            # One-shot jobs drop out of APScheduler after they fire.
            pass
        if meta is None:
            return False
        logger.info("job_cancelled", job_id=job_id)
        return True

    def list_jobs(self) -> list[ScheduledJob]:
        return list(self._jobs.values())

    def get_job(self, job_id: str) -> Optional[ScheduledJob]:
        return self._jobs.get(job_id)
