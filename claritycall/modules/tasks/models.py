"""Tasks with reminder calls, and their API schemas."""

from __future__ import annotations

import datetime as dt
from enum import StrEnum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Column, Integer, String, Text

from claritycall.database import Base, UTCDateTime, utcnow


class TaskStatus(StrEnum):
    """Status of a task and its reminder dispatch."""
    SCHEDULED = "scheduled"       # Reminder pending
    CALLING = "calling"           # Reminder claimed; call being placed
    REMINDED = "reminded"         # Reminder call placed
    COMPLETED = "completed"       # Marked done by the user
    FAILED = "failed"             # Reminder call could not be placed
    CANCELLED = "cancelled"


class TaskSource(StrEnum):
    MANUAL = "manual"
    WEB = "web"
    CALL = "call"


class Task(Base):
    """Something the user committed to, with a reminder call before it is due."""

    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(36), nullable=True, index=True)
    title = Column(String(512), nullable=False)
    due = Column(UTCDateTime, nullable=False, index=True)
    timezone = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False, default=TaskStatus.SCHEDULED, index=True)
    reminder_minutes_before = Column(Integer, nullable=False, default=5)
    source = Column(String(16), nullable=False, default=TaskSource.MANUAL)
    call_id = Column(String(36), nullable=True, index=True)
    reminder_call_id = Column(String(36), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def fire_at(self) -> dt.datetime:
        """When the reminder call should be placed."""
        return self.due - dt.timedelta(minutes=self.reminder_minutes_before)

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, title={self.title!r}, status={self.status})>"


# ── API schemas ──────────────────────────────────────────────────────


class TaskCreate(BaseModel):
    """Input for creating a task. ``due`` must carry a UTC offset."""

    title: str
    due: str
    timezone: str
    user_id: Optional[str] = None
    reminder_minutes_before: Optional[int] = Field(default=None, ge=0)
    source: TaskSource = TaskSource.MANUAL
    call_id: Optional[str] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    due: Optional[str] = None
    timezone: Optional[str] = None
    reminder_minutes_before: Optional[int] = Field(default=None, ge=0)
    status: Optional[TaskStatus] = None


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    title: str
    due: dt.datetime
    timezone: str
    status: TaskStatus
    reminder_minutes_before: int
    source: TaskSource
    call_id: Optional[str] = None
    reminder_call_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime
