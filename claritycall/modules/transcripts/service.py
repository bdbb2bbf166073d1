"""Post-call processing: store the transcript, close the call, create tasks."""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from sqlalchemy import select

from claritycall.config import get_settings
from claritycall.database import get_session
from claritycall.errors import ClarityError, NotFoundError
from claritycall.logging_config import get_logger
from claritycall.modules.calls.models import CallPurpose, CallRecord
from claritycall.modules.calls.service import CallService
from claritycall.modules.dispatch import (
    CompleteCall,
    DispatchStateMachine,
    FailCall,
    MarkCallNoAnswer,
    StartCall,
)
from claritycall.modules.tasks.models import TaskCreate, TaskSource
from claritycall.modules.tasks.service import TaskService
from claritycall.modules.transcripts.extractor import extract_task_requests, transcript_turns
from claritycall.modules.transcripts.models import (
    Conversation,
    PostCallResult,
    PostCallWebhook,
    WebhookEvent,
)
from claritycall.modules.users.service import UserService

logger = get_logger(__name__)

CALL_TASK_REMINDER_MINUTES = 5

_FAILED_EVENTS = {WebhookEvent.CALL_FAILED, WebhookEvent.CALL_ERROR}
_STARTED_EVENTS = {WebhookEvent.CALL_STARTED, WebhookEvent.CALL_IN_PROGRESS}
_NO_ANSWER_REASONS = {"no-answer", "busy"}


def condense_transcript(turns: list[Any]) -> list[dict[str, Any]]:
    """Keep turns with content, as ``{role, time_in_call_secs, message}``."""
    condensed = []
    for turn in turns:
        if not isinstance(turn, dict):
            continue
        if not (turn.get("message") or turn.get("tool_calls") or turn.get("tool_results")):
            continue
        condensed.append({
            "role": "assistant" if turn.get("role") == "agent" else "user",
            "time_in_call_secs": turn.get("time_in_call_secs") or 0,
            "message": turn.get("message") or "",
        })
    return condensed


class TranscriptService:
    """Handles the voice provider's post-call webhook."""

    def __init__(
        self,
        calls: CallService,
        tasks: TaskService,
        users: UserService,
        dispatch: DispatchStateMachine,
    ) -> None:
        self._calls = calls
        self._tasks = tasks
        self._users = users
        self._dispatch = dispatch

    async def _find_call(self, payload: PostCallWebhook) -> CallRecord:
        for key in (payload.data.call_sid, payload.data.conversation_id):
            if key:
                call = await self._calls.find_call(key)
                if call is not None:
                    return call
        raise NotFoundError(
            f"Call not found for provider call ID: {payload.data.call_sid or payload.data.conversation_id}"
        )

    async def _store_conversation(self, call: CallRecord, payload: PostCallWebhook) -> str:
        async with get_session() as session:
            existing = (await session.execute(
                select(Conversation)
                .where(Conversation.call_id == call.id)
                .where(Conversation.conversation_id == payload.data.conversation_id)
            )).scalar_one_or_none()
            if existing is not None:
                return existing.id
            conversation = Conversation(
                call_id=call.id,
                user_id=call.user_id,
                conversation_id=payload.data.conversation_id,
                transcript=condense_transcript(payload.data.transcript),
            )
            session.add(conversation)
        return conversation.id

    async def get_conversation(self, call_id: str) -> Optional[Conversation]:
        async with get_session() as session:
            result = await session.execute(
                select(Conversation).where(Conversation.call_id == call_id)
            )
            return result.scalars().first()

    async def process_post_call(
        self,
        payload: PostCallWebhook,
        now: Optional[dt.datetime] = None,
    ) -> PostCallResult:
        call = await self._find_call(payload)

        if payload.type in _STARTED_EVENTS:
            await self._dispatch.apply(StartCall(call.id))
            return PostCallResult(call_id=call.id, status="in_progress", message="Call in progress")

        if payload.type == WebhookEvent.CALL_INITIATION_FAILURE:
            return await self._initiation_failed(call, payload)

        conversation_id = await self._store_conversation(call, payload)

        if payload.type in _FAILED_EVENTS:
            await self._dispatch.apply(FailCall(call.id, error_message=f"Provider reported {payload.type}"))
            logger.info("post_call_failed", call_id=call.id, event=str(payload.type))
            return PostCallResult(
                call_id=call.id, status="failed", conversation_id=conversation_id,
                message="Call marked failed",
            )

        await self._dispatch.apply(
            CompleteCall(call.id, duration=payload.data.duration, cost=payload.data.cost)
        )

        created = skipped = 0
        if call.purpose == CallPurpose.PLANNING and call.user_id:
            created, skipped = await self._create_tasks(call, payload.data.transcript, now)

        logger.info("post_call_processed", call_id=call.id, tasks_created=created, tasks_skipped=skipped)
        return PostCallResult(
            call_id=call.id,
            status="completed",
            conversation_id=conversation_id,
            tasks_created=created,
            tasks_skipped=skipped,
            message=f"Webhook processed successfully. Created {created} tasks.",
        )

    async def _initiation_failed(self, call: CallRecord, payload: PostCallWebhook) -> PostCallResult:
        reason = payload.data.failure_reason or "unknown"
        if reason in _NO_ANSWER_REASONS:
            await self._dispatch.apply(MarkCallNoAnswer(call.id))
            logger.info("post_call_no_answer", call_id=call.id, reason=reason)
            return PostCallResult(call_id=call.id, status="no_answer", message=f"Call not answered ({reason})")
        await self._dispatch.apply(FailCall(call.id, error_message=f"Call initiation failed: {reason}"))
        logger.info("post_call_initiation_failed", call_id=call.id, reason=reason)
        return PostCallResult(call_id=call.id, status="failed", message="Call marked failed")

    async def _create_tasks(
        self,
        call: CallRecord,
        transcript: list[Any],
        now: Optional[dt.datetime],
    ) -> tuple[int, int]:
        user = await self._users.get_user(call.user_id)
        default_tz = (user.timezone if user and user.timezone else None) or get_settings().clarity_default_timezone

        created = skipped = 0
        for request in extract_task_requests(transcript_turns(transcript), default_tz):
            if await self._tasks.find_duplicate(call.id, request.due_at, request.title):
                logger.info("call_task_duplicate_skipped", call_id=call.id, title=request.title)
                skipped += 1
                continue
            try:
                await self._tasks.create_task(
                    TaskCreate(
                        title=request.title,
                        due=request.due,
                        timezone=request.timezone or default_tz,
                        user_id=call.user_id,
                        reminder_minutes_before=CALL_TASK_REMINDER_MINUTES,
                        source=TaskSource.CALL,
                        call_id=call.id,
                    ),
                    now=now,
                )
                created += 1
            except ClarityError as exc:
                logger.warning("call_task_rejected", call_id=call.id, title=request.title, error=exc.message)
                skipped += 1
        return created, skipped
