"""API route definitions for ClarityCall."""

from __future__ import annotations

import datetime as dt
import json
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import pydantic
from fastapi import APIRouter, HTTPException, Query, Request, Response
from pydantic import BaseModel

from claritycall.errors import ClarityError
from claritycall.logging_config import get_logger
from claritycall.modules.availability.models import AvailabilityResult, SlotCheckResult
from claritycall.modules.calls.models import ScheduledCallCreate, ScheduledCallOut
from claritycall.modules.tasks.models import TaskCreate, TaskOut, TaskSource, TaskStatus, TaskUpdate
from claritycall.modules.transcripts.models import PostCallResult, PostCallWebhook
from claritycall.modules.transcripts.signature import SIGNATURE_HEADER, verify_signature
from claritycall.modules.users.models import UserCreate, UserPreferences

logger = get_logger(__name__)

router = APIRouter()


# ── Request / Response Models ────────────────────────────────────────

class UserOut(BaseModel):
    model_config = pydantic.ConfigDict(from_attributes=True)

    id: str
    name: str = ""
    email: str
    phone: str = ""
    call_time: str = ""
    timezone: str = ""
    main_calendar_id: str = ""
    wants_clarity_calls: bool = False
    wants_call_reminders: bool = False


class WebTaskCreate(BaseModel):
    """Task creation from the web app; ``source`` is always ``web``."""

    title: str
    due: str
    timezone: str
    user_id: Optional[str] = None
    reminder_minutes_before: Optional[int] = pydantic.Field(default=None, ge=0)


# ── Orchestrator injection ───────────────────────────────────────────

_orchestrator = None


def set_orchestrator(orch: Any) -> None:
    """Set the global orchestrator reference (called from main.py)."""
    global _orchestrator
    _orchestrator = orch


def get_orchestrator():
    """Get the orchestrator or raise if not initialized."""
    if _orchestrator is None:
        raise HTTPException(status_code=503, detail="System not initialized")
    return _orchestrator


@contextmanager
def _errors() -> Iterator[None]:
    """Translate service errors into HTTP responses."""
    try:
        yield
    except ClarityError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


# ── Health ───────────────────────────────────────────────────────────

@router.get("/health")
async def health_check() -> dict[str, Any]:
    """System health check."""
    orch = get_orchestrator()
    return {"status": "healthy", **orch.status()}


# ── Users ────────────────────────────────────────────────────────────

@router.post("/users", response_model=UserOut, status_code=201)
async def create_user(body: UserCreate) -> Any:
    orch = get_orchestrator()
    with _errors():
        return await orch.users.create_user(body)


@router.get("/users/{user_id}", response_model=UserOut)
async def get_user(user_id: str) -> Any:
    orch = get_orchestrator()
    with _errors():
        return await orch.users.require_user(user_id)


@router.patch("/users/{user_id}/preferences", response_model=UserOut)
async def update_preferences(user_id: str, body: UserPreferences) -> Any:
    """Partially update the user's call preferences."""
    orch = get_orchestrator()
    with _errors():
        return await orch.users.update_preferences(user_id, body)


# ── Availability ─────────────────────────────────────────────────────

@router.get("/users/{user_id}/availability", response_model=AvailabilityResult)
async def get_availability(
    user_id: str,
    start: dt.datetime,
    end: dt.datetime,
    timezone: Optional[str] = None,
    calendar_id: Optional[str] = None,
    business_hours: bool = False,
) -> Any:
    """Busy periods and free slots for ``[start, end)``."""
    orch = get_orchestrator()
    with _errors():
        user = await orch.users.require_user(user_id)
        return await orch.availability.compute_availability(
            user.id,
            calendar_id or user.main_calendar_id or "primary",
            start,
            end,
            timezone=timezone or user.timezone or None,
            business_hours=business_hours,
        )


@router.get("/users/{user_id}/availability/slot", response_model=SlotCheckResult)
async def check_slot(
    user_id: str,
    start: dt.datetime,
    end: dt.datetime,
    timezone: Optional[str] = None,
    calendar_id: Optional[str] = None,
) -> Any:
    """Conflicts for a specific slot plus up to three alternatives."""
    orch = get_orchestrator()
    with _errors():
        user = await orch.users.require_user(user_id)
        return await orch.availability.is_slot_available(
            user.id,
            calendar_id or user.main_calendar_id or "primary",
            start,
            end,
            timezone=timezone or user.timezone or None,
        )


# ── Scheduled calls ──────────────────────────────────────────────────

@router.post("/scheduled-calls", response_model=ScheduledCallOut, status_code=201)
async def create_scheduled_call(body: ScheduledCallCreate) -> Any:
    orch = get_orchestrator()
    with _errors():
        return await orch.scheduled_calls.create(body.user_id, body.scheduled_at)


@router.get("/users/{user_id}/scheduled-calls", response_model=list[ScheduledCallOut])
async def list_scheduled_calls(user_id: str) -> Any:
    orch = get_orchestrator()
    return await orch.scheduled_calls.list_for_user(user_id)


@router.post("/scheduled-calls/{scheduled_call_id}/retry", response_model=ScheduledCallOut, status_code=201)
async def retry_scheduled_call(scheduled_call_id: str) -> Any:
    """Queue a new attempt for a failed call."""
    orch = get_orchestrator()
    with _errors():
        return await orch.scheduled_calls.retry(scheduled_call_id)


# ── Tasks ────────────────────────────────────────────────────────────

@router.post("/tasks", response_model=TaskOut, status_code=201)
async def create_task(body: WebTaskCreate) -> Any:
    orch = get_orchestrator()
    with _errors():
        return await orch.tasks.create_task(
            TaskCreate(**body.model_dump(), source=TaskSource.WEB)
        )


@router.get("/tasks/{task_id}", response_model=TaskOut)
async def get_task(task_id: str) -> Any:
    orch = get_orchestrator()
    with _errors():
        return await orch.tasks.require_task(task_id)


@router.get("/users/{user_id}/tasks", response_model=list[TaskOut])
async def list_tasks(user_id: str, status: Optional[TaskStatus] = Query(default=None)) -> Any:
    orch = get_orchestrator()
    return await orch.tasks.list_tasks(user_id, status=status)


@router.patch("/tasks/{task_id}", response_model=TaskOut)
async def update_task(task_id: str, body: TaskUpdate) -> Any:
    orch = get_orchestrator()
    with _errors():
        return await orch.tasks.update_task(task_id, body)


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_task(task_id: str) -> Response:
    orch = get_orchestrator()
    with _errors():
        await orch.tasks.delete_task(task_id)
    return Response(status_code=204)


@router.post("/tasks/{task_id}/calendar-event")
async def add_task_to_calendar(task_id: str, duration_minutes: int = Query(default=30, ge=1)) -> dict[str, Any]:
    """Block time on the owner's main calendar for the task."""
    orch = get_orchestrator()
    with _errors():
        event = await orch.tasks.add_to_calendar(task_id, duration_minutes=duration_minutes)
    return {"event_id": event.get("id"), "html_link": event.get("htmlLink")}


# ── Voice provider webhook ───────────────────────────────────────────

@router.post("/webhooks/voice/post-call", response_model=PostCallResult)
async def post_call_webhook(request: Request) -> Any:
    """Transcript delivery from the voice provider after a call ends."""
    orch = get_orchestrator()
    body = await request.body()

    with _errors():
        secret = orch.settings.elevenlabs_webhook_secret
        if secret:
            verify_signature(body, request.headers.get(SIGNATURE_HEADER), secret)

        try:
            payload = PostCallWebhook.model_validate(json.loads(body))
        except (ValueError, pydantic.ValidationError) as exc:
            logger.warning("post_call_payload_invalid", error=str(exc)[:300])
            raise HTTPException(status_code=400, detail="Invalid webhook payload") from exc

        return await orch.transcripts.process_post_call(payload)
