"""Explicit state transitions for dispatchable records.

Each transition names the entity it applies to, the statuses it may start
from, the status it moves to, and only the fields that change with it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Optional

from claritycall.database import utcnow
from claritycall.modules.calls.models import CallRecord, CallStatus, ScheduledCall, ScheduledCallStatus
from claritycall.modules.tasks.models import Task, TaskStatus


@dataclass(frozen=True)
class Transition:
    """Base transition: a guarded status change on one record."""
    record_id: str

    entity: ClassVar[type]
    from_statuses: ClassVar[tuple[str, ...]]
    to_status: ClassVar[str]

    def values(self) -> dict[str, Any]:
        return {"status": self.to_status}

    @property
    def name(self) -> str:
        return type(self).__name__


# ── ScheduledCall ────────────────────────────────────────────────────


@dataclass(frozen=True)
class ClaimScheduledCall(Transition):
    entity = ScheduledCall
    from_statuses = (ScheduledCallStatus.SCHEDULED,)
    to_status = ScheduledCallStatus.IN_PROGRESS


@dataclass(frozen=True)
class CompleteScheduledCall(Transition):
    call_id: str
    entity = ScheduledCall
    from_statuses = (ScheduledCallStatus.IN_PROGRESS,)
    to_status = ScheduledCallStatus.COMPLETED

    def values(self) -> dict[str, Any]:
        return {"status": self.to_status, "call_id": self.call_id, "error_message": None}


@dataclass(frozen=True)
class FailScheduledCall(Transition):
    error_message: str
    entity = ScheduledCall
    from_statuses = (ScheduledCallStatus.IN_PROGRESS,)
    to_status = ScheduledCallStatus.FAILED

    def values(self) -> dict[str, Any]:
        return {"status": self.to_status, "error_message": self.error_message}


# ── Task reminders ───────────────────────────────────────────────────


@dataclass(frozen=True)
class ClaimTaskReminder(Transition):
    entity = Task
    from_statuses = (TaskStatus.SCHEDULED,)
    to_status = TaskStatus.CALLING


@dataclass(frozen=True)
class CompleteTaskReminder(Transition):
    call_id: str
    entity = Task
    from_statuses = (TaskStatus.CALLING,)
    to_status = TaskStatus.REMINDED

    def values(self) -> dict[str, Any]:
        return {"status": self.to_status, "reminder_call_id": self.call_id, "error_message": None}


@dataclass(frozen=True)
class FailTaskReminder(Transition):
    error_message: str
    entity = Task
    from_statuses = (TaskStatus.CALLING,)
    to_status = TaskStatus.FAILED

    def values(self) -> dict[str, Any]:
        return {"status": self.to_status, "error_message": self.error_message}


@dataclass(frozen=True)
class CompleteTask(Transition):
    """The user marked the task done."""
    entity = Task
    from_statuses = (TaskStatus.SCHEDULED, TaskStatus.REMINDED, TaskStatus.FAILED)
    to_status = TaskStatus.COMPLETED


@dataclass(frozen=True)
class CancelTask(Transition):
    entity = Task
    from_statuses = (TaskStatus.SCHEDULED, TaskStatus.REMINDED, TaskStatus.FAILED)
    to_status = TaskStatus.CANCELLED


# ── Call log ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StartCall(Transition):
    entity = CallRecord
    from_statuses = (CallStatus.INITIATED,)
    to_status = CallStatus.IN_PROGRESS


@dataclass(frozen=True)
class CompleteCall(Transition):
    duration: Optional[float] = None
    cost: Optional[float] = None
    entity = CallRecord
    from_statuses = (CallStatus.INITIATED, CallStatus.IN_PROGRESS)
    to_status = CallStatus.COMPLETED

    def values(self) -> dict[str, Any]:
        return {
            "status": self.to_status,
            "duration": self.duration,
            "cost": self.cost,
            "completed_at": utcnow(),
        }


@dataclass(frozen=True)
class FailCall(Transition):
    error_message: str = ""
    entity = CallRecord
    from_statuses = (CallStatus.INITIATED, CallStatus.IN_PROGRESS)
    to_status = CallStatus.FAILED

    def values(self) -> dict[str, Any]:
        return {"status": self.to_status, "error_message": self.error_message, "completed_at": utcnow()}


@dataclass(frozen=True)
class MarkCallNoAnswer(Transition):
    entity = CallRecord
    from_statuses = (CallStatus.INITIATED, CallStatus.IN_PROGRESS)
    to_status = CallStatus.NO_ANSWER

    def values(self) -> dict[str, Any]:
        return {"status": self.to_status, "completed_at": utcnow()}
