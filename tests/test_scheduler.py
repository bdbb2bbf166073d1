"""Tests for the scheduler module."""

from __future__ import annotations

import asyncio
import datetime as dt

import pytest

from claritycall.modules.scheduler.service import SchedulerService


class TestSchedulerService:
    """Tests for the scheduler service."""

    @pytest.fixture
    def scheduler(self) -> SchedulerService:
        """Create a SchedulerService instance."""
        return SchedulerService()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, scheduler: SchedulerService) -> None:
        """Scheduler starts and stops cleanly."""
        await scheduler.start()
        assert scheduler.running
        await scheduler.start()
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_schedule_at(self, scheduler: SchedulerService) -> None:
        """One-time job is registered under the given id."""
        await scheduler.start()

        async def dummy(**kwargs):
            pass

        run_at = dt.datetime.now(dt.UTC) + dt.timedelta(hours=1)
        job_id = scheduler.schedule_at("reminder", dummy, run_at=run_at, job_id="task-reminder:t1")

        assert job_id == "task-reminder:t1"
        jobs = scheduler.list_jobs()
        assert len(jobs) == 1
        assert jobs[0].job_type == "once"
        assert jobs[0].schedule_info == run_at.isoformat()

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_same_job_id_replaces(self, scheduler: SchedulerService) -> None:
        """Re-planning with the same id leaves one pending job."""
        await scheduler.start()

        async def dummy(**kwargs):
            pass

        later = dt.datetime.now(dt.UTC) + dt.timedelta(hours=2)
        scheduler.schedule_at("reminder", dummy, run_at=later - dt.timedelta(hours=1), job_id="j")
        scheduler.schedule_at("reminder", dummy, run_at=later, job_id="j")

        assert len(scheduler.list_jobs()) == 1
        assert scheduler._scheduler.get_job("j").next_run_time == later

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_one_shot_fires_with_kwargs(self, scheduler: SchedulerService) -> None:
        """A due one-shot job runs once with its kwargs and is forgotten."""
        await scheduler.start()
        received: list[dict] = []
        fired = asyncio.Event()

        async def callback(**kwargs):
            received.append(kwargs)
            fired.set()

        scheduler.schedule_at("soon", callback, run_at=dt.datetime.now(dt.UTC), kwargs={"task_id": "t1"},
                              job_id="soon")

        try:
            await asyncio.wait_for(fired.wait(), timeout=3)
        except asyncio.TimeoutError:
            pytest.fail("one-shot job did not fire within 3 seconds")
        await asyncio.sleep(0.05)

        assert received == [{"task_id": "t1"}]
        assert scheduler.get_job("soon") is None

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_schedule_interval(self, scheduler: SchedulerService) -> None:
        """Interval job is registered."""
        await scheduler.start()

        async def dummy(**kwargs):
            pass

        job_id = scheduler.schedule_interval("due call poll", dummy, seconds=60)
        jobs = scheduler.list_jobs()
        assert jobs[0].job_id == job_id
        assert jobs[0].job_type == "interval"
        assert jobs[0].schedule_info == "0m60s"

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_interval_job_runs_without_run_immediately(self, scheduler: SchedulerService) -> None:
        """A plain interval job is active and fires after its first interval."""
        await scheduler.start()
        fired = asyncio.Event()

        async def tick(**kwargs):
            fired.set()

        job_id = scheduler.schedule_interval("due call poll", tick, seconds=1)
        assert scheduler._scheduler.get_job(job_id).next_run_time is not None

        try:
            await asyncio.wait_for(fired.wait(), timeout=3)
        except asyncio.TimeoutError:
            pytest.fail("interval job did not fire within 3 seconds")

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_schedule_interval_run_immediately(self, scheduler: SchedulerService) -> None:
        """Interval job with run_immediately fires within seconds."""
        await scheduler.start()

        fired = asyncio.Event()

        async def callback(**kwargs):
            fired.set()

        scheduler.schedule_interval("immediate", callback, minutes=60, run_immediately=True)

        try:
            await asyncio.wait_for(fired.wait(), timeout=3)
        except asyncio.TimeoutError:
            pytest.fail("run_immediately job did not fire within 3 seconds")

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_scheduler(self, scheduler: SchedulerService) -> None:
        """An exception inside a job is logged and the scheduler keeps running."""
        await scheduler.start()
        fired = asyncio.Event()

        async def boom(**kwargs):
            fired.set()
            raise RuntimeError("boom")

        scheduler.schedule_at("boom", boom, run_at=dt.datetime.now(dt.UTC))
        await asyncio.wait_for(fired.wait(), timeout=3)
        await asyncio.sleep(0.05)

        assert scheduler.running
        await scheduler.stop()

    def test_misfire_grace_time_configured(self, scheduler: SchedulerService) -> None:
        """Scheduler has a generous misfire_grace_time (not the 1s default)."""
        grace = scheduler._scheduler._job_defaults.get("misfire_grace_time", 1)
        assert grace >= 60, f"misfire_grace_time too low: {grace}s"

    @pytest.mark.asyncio
    async def test_cancel_job(self, scheduler: SchedulerService) -> None:
        """Cancelling a job removes it."""
        await scheduler.start()

        async def dummy(**kwargs):
            pass

        job_id = scheduler.schedule_at(
            "to_cancel", dummy, run_at=dt.datetime.now(dt.UTC) + dt.timedelta(hours=1),
        )
        assert scheduler.cancel_job(job_id) is True
        assert scheduler.list_jobs() == []
        assert scheduler._scheduler.get_job(job_id) is None

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_cancel_unknown_job(self, scheduler: SchedulerService) -> None:
        """Cancelling an unknown job returns False."""
        await scheduler.start()
        assert scheduler.cancel_job("nonexistent-id") is False
        await scheduler.stop()
