"""Placing calls and managing scheduled calls.

``CallService`` talks to the voice provider and keeps the call log.
``ScheduledCallService`` owns the one-shot ScheduledCall lifecycle and hands
every fire to the dispatch state machine.
"""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from claritycall.config import get_settings
from claritycall.database import get_session
from claritycall.errors import NotFoundError, ProviderError, ValidationError
from claritycall.logging_config import get_logger
from claritycall.modules.availability.models import AvailabilityResult
from claritycall.modules.availability.service import AvailabilityService
from claritycall.modules.calls.models import (
    CallPurpose,
    CallRecord,
    InitiatedCall,
    PlacedCall,
    ScheduledCall,
    ScheduledCallStatus,
)
from claritycall.modules.calls.voice import BaseVoiceProvider, VoiceVariables
from claritycall.modules.dispatch import (
    ClaimScheduledCall,
    CompleteScheduledCall,
    DispatchResult,
    DispatchStateMachine,
    FailScheduledCall,
)
from claritycall.modules.tokens.service import TokenService
from claritycall.modules.users.models import User
from claritycall.modules.users.service import UserService
from claritycall.timeutils import ensure_aware, local_day_bounds, resolve_zone

if TYPE_CHECKING:
    from claritycall.modules.scheduler.service import SchedulerService
    from claritycall.modules.tasks.models import Task

logger = get_logger(__name__)

INTERRUPTED_MESSAGE = "Interrupted before the call was recorded"


def _clock(value: dt.datetime, zone: ZoneInfo) -> str:
    return value.astimezone(zone).strftime("%H:%M")


def build_calendar_context(availability: AvailabilityResult, zone: ZoneInfo) -> VoiceVariables:
    """Summarize a day's availability as agent variables."""
    free = "; ".join(
        f"{_clock(s.start, zone)}-{_clock(s.end, zone)} ({int(s.duration_minutes)} min)"
        for s in availability.free_slots
    )
    busy = "; ".join(
        f"{_clock(p.start, zone)}-{_clock(p.end, zone)} {p.title}" if not p.is_all_day else f"all day {p.title}"
        for p in availability.busy_periods
    )
    return {
        "today": availability.query_start.astimezone(zone).strftime("%A, %B %d"),
        "free_slots": free or "none",
        "busy_periods": busy or "none",
        "free_slot_count": availability.stats.total_free_slots,
        "busy_period_count": availability.stats.total_busy_periods,
        "longest_free_slot_minutes": int(availability.stats.longest_free_slot),
    }


class CallService:
    """Places planning and reminder calls and records them in the call log."""

    def __init__(
        self,
        users: UserService,
        availability: AvailabilityService,
        voice: BaseVoiceProvider,
    ) -> None:
        self._users = users
        self._availability = availability
        self._voice = voice
        self._settings = get_settings()

    def _agent_for(self, purpose: CallPurpose) -> str:
        if not self._settings.has_voice_agent(purpose):
            raise ProviderError(f"Voice agent for {purpose} calls is not configured")
        if purpose == CallPurpose.PLANNING:
            return self._settings.elevenlabs_calendar_agent_id
        return self._settings.elevenlabs_reminder_agent_id

    async def _record(
        self,
        user: User,
        purpose: CallPurpose,
        agent_id: str,
        placed: PlacedCall,
        task_id: Optional[str] = None,
    ) -> CallRecord:
        async with get_session() as session:
            record = CallRecord(
                user_id=user.id,
                to_number=user.phone,
                purpose=purpose,
                agent_id=agent_id,
                provider_call_id=placed.call_sid,
                conversation_id=placed.conversation_id,
                task_id=task_id,
            )
            session.add(record)
        return record

    async def initiate_calendar_call(self, user_id: str, now: Optional[dt.datetime] = None) -> InitiatedCall:
        """Place today's planning call, briefed with the user's free and busy time."""
        user = await self._users.require_user(user_id)
        if not user.main_calendar_id:
            raise ValidationError("User has no main calendar selected")
        if not user.phone:
            raise ValidationError("User has no phone number")
        agent_id = self._agent_for(CallPurpose.PLANNING)

        zone = resolve_zone(user.timezone, self._settings.default_zone)
        day_start, day_end = local_day_bounds(now or dt.datetime.now(dt.UTC), zone)
        availability = await self._availability.compute_availability(
            user.id, user.main_calendar_id, day_start, day_end, timezone=zone.key
        )
        variables: VoiceVariables = {
            "user_name": user.name or "There",
            "user_timezone": zone.key,
            **build_calendar_context(availability, zone),
        }

        placed = await self._voice.place_call(
            agent_id, self._settings.elevenlabs_agent_phone_number_id, user.phone, variables
        )
        record = await self._record(user, CallPurpose.PLANNING, agent_id, placed)
        message = (
            f"Calendar call initiated - {availability.stats.total_free_slots} free slots, "
            f"{availability.stats.total_busy_periods} busy periods"
        )
        logger.info("calendar_call_initiated", user_id=user.id, call_id=record.id)
        return InitiatedCall(
            call_id=record.id,
            provider_call_id=placed.call_sid,
            conversation_id=placed.conversation_id,
            message=message,
        )

    async def initiate_reminder_call(self, task: Task) -> InitiatedCall:
        """Call the task's owner to remind them of it."""
        if not task.user_id:
            raise ValidationError(f"Task {task.id} has no owner to call")
        user = await self._users.require_user(task.user_id)
        if not user.phone:
            raise ValidationError(f"User {user.id} has no phone number")
        agent_id = self._agent_for(CallPurpose.REMINDER)

        zone = resolve_zone(task.timezone or user.timezone, self._settings.default_zone)
        variables: VoiceVariables = {
            "user_name": user.name or "There",
            "user_timezone": zone.key,
            "task_name": task.title,
            "task_time": task.due.astimezone(zone).isoformat(),
        }
        placed = await self._voice.place_call(
            agent_id, self._settings.elevenlabs_agent_phone_number_id, user.phone, variables
        )
        record = await self._record(user, CallPurpose.REMINDER, agent_id, placed, task_id=task.id)
        logger.info("reminder_call_initiated", task_id=task.id, call_id=record.id)
        return InitiatedCall(
            call_id=record.id,
            provider_call_id=placed.call_sid,
            conversation_id=placed.conversation_id,
        )

    async def find_call(self, provider_id: str) -> Optional[CallRecord]:
        """Look up a call by the provider's call SID or conversation id."""
        async with get_session() as session:
            result = await session.execute(
                select(CallRecord).where(
                    (CallRecord.provider_call_id == provider_id)
                    | (CallRecord.conversation_id == provider_id)
                )
            )
            return result.scalars().first()

    async def get_call(self, call_id: str) -> Optional[CallRecord]:
        async with get_session() as session:
            return await session.get(CallRecord, call_id)


class ScheduledCallService:
    """Creates, fires and retries one-shot scheduled calls."""

    def __init__(
        self,
        calls: CallService,
        users: UserService,
        tokens: TokenService,
        dispatch: DispatchStateMachine,
        scheduler: Optional[SchedulerService] = None,
    ) -> None:
        self._calls = calls
        self._users = users
        self._tokens = tokens
        self._dispatch = dispatch
        self._scheduler = scheduler
        self._settings = get_settings()

    def _plan(self, call: ScheduledCall) -> None:
        if self._scheduler is None:
            return
        self._scheduler.schedule_at(
            name=f"scheduled call {call.id}",
            func=self.fire,
            run_at=call.scheduled_at_utc,
            kwargs={"scheduled_call_id": call.id},
            job_id=f"scheduled-call:{call.id}",
        )

    async def _insert(self, user_id: str, at: dt.datetime, retry_count: int = 0,
                      retry_of: Optional[str] = None, recurring_day: Optional[str] = None) -> ScheduledCall:
        async with get_session() as session:
            call = ScheduledCall(
                user_id=user_id,
                scheduled_at_utc=at,
                status=ScheduledCallStatus.SCHEDULED,
                retry_count=retry_count,
                retry_of=retry_of,
                recurring_day=recurring_day,
            )
            session.add(call)
        return call

    async def create(
        self,
        user_id: str,
        scheduled_at: dt.datetime,
        now: Optional[dt.datetime] = None,
    ) -> ScheduledCall:
        """Schedule a call; the time must be in the future and the calendar connected."""
        user = await self._users.require_user(user_id)
        zone = resolve_zone(user.timezone, self._settings.default_zone)
        scheduled_at = ensure_aware(scheduled_at, zone).astimezone(dt.UTC)
        if scheduled_at <= (now or dt.datetime.now(dt.UTC)):
            raise ValidationError("Scheduled time must be in the future")
        if not await self._tokens.is_calendar_connected(user_id):
            raise ValidationError("Connect a calendar before scheduling a call")

        call = await self._insert(user_id, scheduled_at)
        self._plan(call)
        logger.info("scheduled_call_created", scheduled_call_id=call.id, at=scheduled_at.isoformat())
        return call

    async def get(self, scheduled_call_id: str) -> Optional[ScheduledCall]:
        async with get_session() as session:
            return await session.get(ScheduledCall, scheduled_call_id)

    async def list_for_user(self, user_id: str) -> list[ScheduledCall]:
        async with get_session() as session:
            result = await session.execute(
                select(ScheduledCall)
                .where(ScheduledCall.user_id == user_id)
                .order_by(ScheduledCall.scheduled_at_utc.desc())
            )
            return list(result.scalars().all())

    async def fire(
        self,
        scheduled_call_id: str,
        now: Optional[dt.datetime] = None,
    ) -> DispatchResult[InitiatedCall]:
        """Claim the record and place its call exactly once.

        ``now`` is the reference time for the briefing; the wall clock when omitted.
        """
        call = await self.get(scheduled_call_id)
        if call is None:
            raise NotFoundError(f"Scheduled call {scheduled_call_id} not found")
        user_id = call.user_id
        result = await self._dispatch.dispatch(
            ClaimScheduledCall(scheduled_call_id),
            lambda: self._calls.initiate_calendar_call(user_id, now=now),
            complete=lambda placed: CompleteScheduledCall(scheduled_call_id, call_id=placed.call_id),
            fail=lambda message: FailScheduledCall(scheduled_call_id, error_message=message),
        )
        logger.info("scheduled_call_fired", scheduled_call_id=scheduled_call_id, outcome=result.describe())
        return result

    async def retry(self, scheduled_call_id: str, now: Optional[dt.datetime] = None) -> ScheduledCall:
        """Queue a fresh attempt for a failed call; the failed record is left as is."""
        call = await self.get(scheduled_call_id)
        if call is None:
            raise NotFoundError(f"Scheduled call {scheduled_call_id} not found")
        if call.status != ScheduledCallStatus.FAILED:
            raise ValidationError(f"Only failed calls can be retried (status is {call.status})")
        if call.retry_count >= self._settings.clarity_max_call_retries:
            raise ValidationError(
                f"Retry limit reached ({self._settings.clarity_max_call_retries})"
            )
        fresh = await self._insert(
            call.user_id,
            now or dt.datetime.now(dt.UTC),
            retry_count=call.retry_count + 1,
            retry_of=call.id,
        )
        self._plan(fresh)
        logger.info("scheduled_call_retried", scheduled_call_id=fresh.id, retry_of=call.id,
                    retry_count=fresh.retry_count)
        return fresh

    async def _daily_attempt(
        self,
        user_id: str,
        day: str,
        retry_count: Optional[int] = None,
    ) -> Optional[ScheduledCall]:
        stmt = (
            select(ScheduledCall)
            .where(ScheduledCall.user_id == user_id)
            .where(ScheduledCall.recurring_day == day)
        )
        if retry_count is not None:
            stmt = stmt.where(ScheduledCall.retry_count == retry_count)
        async with get_session() as session:
            result = await session.execute(stmt.order_by(ScheduledCall.retry_count.desc()).limit(1))
            return result.scalars().first()

    async def daily_call(self, user_id: str, zone: ZoneInfo, now: dt.datetime) -> Optional[ScheduledCall]:
        """Today's recurring call record for the user, created at most once per attempt.

        Sweeps racing to create the same attempt collide on the
        ``(user_id, recurring_day, retry_count)`` key; the loser gets the
        winner's row and the dispatch claim decides who places the call.
        Returns ``None`` when today's call is in flight, placed, or out of retries.
        """
        day = now.astimezone(zone).date().isoformat()
        latest = await self._daily_attempt(user_id, day)
        attempt, retry_of = 0, None
        if latest is not None:
            if latest.status == ScheduledCallStatus.SCHEDULED:
                return latest
            if latest.status != ScheduledCallStatus.FAILED:
                return None
            if latest.retry_count >= self._settings.clarity_max_call_retries:
                logger.info("daily_call_retries_exhausted", user_id=user_id, day=day)
                return None
            attempt, retry_of = latest.retry_count + 1, latest.id
        try:
            return await self._insert(user_id, now, retry_count=attempt, retry_of=retry_of, recurring_day=day)
        except IntegrityError:
            logger.debug("daily_call_created_elsewhere", user_id=user_id, day=day, attempt=attempt)
            return await self._daily_attempt(user_id, day, retry_count=attempt)

    async def has_call_today(self, user_id: str, zone: ZoneInfo, now: dt.datetime) -> bool:
        """Whether a call for the user's local day is already in flight or placed."""
        day_start, day_end = local_day_bounds(now, zone)
        async with get_session() as session:
            result = await session.execute(
                select(ScheduledCall.id)
                .where(ScheduledCall.user_id == user_id)
                .where(ScheduledCall.status.in_([
                    ScheduledCallStatus.IN_PROGRESS, ScheduledCallStatus.COMPLETED,
                ]))
                .where(ScheduledCall.scheduled_at_utc >= day_start)
                .where(ScheduledCall.scheduled_at_utc < day_end)
                .limit(1)
            )
            return result.first() is not None

    async def restore(self, now: Optional[dt.datetime] = None) -> int:
        """Re-plan every pending future call after a restart."""
        if self._scheduler is None:
            return 0
        now = now or dt.datetime.now(dt.UTC)
        async with get_session() as session:
            result = await session.execute(
                select(ScheduledCall)
                .where(ScheduledCall.status == ScheduledCallStatus.SCHEDULED)
                .where(ScheduledCall.scheduled_at_utc > now)
            )
            pending = list(result.scalars().all())
        for call in pending:
            self._plan(call)
        logger.info("scheduled_calls_restored", count=len(pending))
        return len(pending)

    async def recover_stale(self, now: Optional[dt.datetime] = None) -> int:
        """Fail calls a previous process claimed but never finished."""
        return await self._dispatch.fail_stale(
            ScheduledCall,
            ScheduledCallStatus.IN_PROGRESS,
            lambda call_id: FailScheduledCall(call_id, error_message=INTERRUPTED_MESSAGE),
            now=now,
        )
