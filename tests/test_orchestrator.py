"""Tests for the central orchestrator wiring and lifecycle."""

from __future__ import annotations

import datetime as dt

import pytest

from claritycall.database import get_session
from claritycall.modules.calls.models import ScheduledCall, ScheduledCallStatus
from claritycall.modules.tasks.models import Task, TaskStatus
from claritycall.modules.tasks.planner import ReminderPlanner
from claritycall.orchestrator import Orchestrator

FAR_FUTURE = dt.datetime(2099, 1, 15, 14, 0, tzinfo=dt.UTC)


class TestWiring:

    @pytest.mark.asyncio
    async def test_services_share_collaborators(self, orchestrator, fake_calendar, fake_tokens) -> None:
        assert orchestrator.calendar is fake_calendar
        assert orchestrator.tokens is fake_tokens
        assert orchestrator.planner._scheduler is orchestrator.scheduler
        assert orchestrator.planner._dispatch is orchestrator.dispatch
        assert orchestrator.scheduled_calls._dispatch is orchestrator.dispatch

    @pytest.mark.asyncio
    async def test_status_before_start(self, orchestrator) -> None:
        status = orchestrator.status()
        assert status["scheduler_running"] is False
        assert status["scheduled_jobs"] == 0
        assert status["planning_agent"] is True
        assert status["reminder_agent"] is True
        assert status["webhook_signing"] is False


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_startup_replans_pending_work(self, db, fake_calendar, fake_voice, fake_tokens) -> None:
        async with get_session() as session:
            task = Task(title="Renew passport", due=FAR_FUTURE, timezone="UTC", user_id="u1")
            call = ScheduledCall(user_id="u1", scheduled_at_utc=FAR_FUTURE)
            session.add_all([task, call])

        orchestrator = Orchestrator(calendar=fake_calendar, voice=fake_voice, tokens=fake_tokens)
        await orchestrator.startup()
        try:
            assert orchestrator.scheduler.running
            assert orchestrator.scheduler.get_job(ReminderPlanner.job_id(task.id)) is not None
            assert orchestrator.scheduler.get_job(f"scheduled-call:{call.id}") is not None
            # Both records plus the poll job.
            assert orchestrator.status()["scheduled_jobs"] == 3
        finally:
            await orchestrator.shutdown()

        assert not orchestrator.scheduler.running
        assert orchestrator.scheduler.list_jobs() == []

    @pytest.mark.asyncio
    async def test_startup_fails_interrupted_dispatches(self, db, fake_calendar, fake_voice, fake_tokens) -> None:
        claimed_at = dt.datetime(2025, 1, 15, 13, 0, tzinfo=dt.UTC)
        async with get_session() as session:
            task = Task(title="Renew passport", due=FAR_FUTURE, timezone="UTC", user_id="u1",
                        status=TaskStatus.CALLING, updated_at=claimed_at)
            call = ScheduledCall(user_id="u1", scheduled_at_utc=claimed_at,
                                 status=ScheduledCallStatus.IN_PROGRESS, updated_at=claimed_at)
            session.add_all([task, call])

        orchestrator = Orchestrator(calendar=fake_calendar, voice=fake_voice, tokens=fake_tokens)
        await orchestrator.startup()
        try:
            async with get_session() as session:
                stored_task = await session.get(Task, task.id)
                stored_call = await session.get(ScheduledCall, call.id)
            assert stored_task.status == TaskStatus.FAILED
            assert stored_call.status == ScheduledCallStatus.FAILED
            assert stored_call.error_message == "Interrupted before the call was recorded"
            assert orchestrator.scheduler.get_job(ReminderPlanner.job_id(task.id)) is None
        finally:
            await orchestrator.shutdown()
