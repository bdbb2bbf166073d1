"""Scheduled calls, the call log, and their API schemas."""

from __future__ import annotations

import datetime as dt
from enum import StrEnum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Column, Float, Integer, String, Text, UniqueConstraint

from claritycall.database import Base, UTCDateTime, utcnow


class ScheduledCallStatus(StrEnum):
    """Lifecycle of a one-shot scheduled call."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"     # Claimed; the call is being placed
    COMPLETED = "completed"         # Call placed
    FAILED = "failed"


class CallPurpose(StrEnum):
    PLANNING = "planning"
    REMINDER = "reminder"


class CallStatus(StrEnum):
    """Lifecycle of a placed call as reported by the voice provider."""
    INITIATED = "initiated"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    NO_ANSWER = "no_answer"


class ScheduledCall(Base):
    """A clarity call to place for a user at a given instant."""

    __tablename__ = "scheduled_calls"
    # Recurring calls get one row per user, local day and attempt.
    __table_args__ = (UniqueConstraint("user_id", "recurring_day", "retry_count"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    scheduled_at_utc = Column(UTCDateTime, nullable=False, index=True)
    status = Column(String(32), nullable=False, default=ScheduledCallStatus.SCHEDULED, index=True)
    retry_count = Column(Integer, nullable=False, default=0)
    retry_of = Column(String(36), nullable=True)
    recurring_day = Column(String(10), nullable=True)
    call_id = Column(String(36), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ScheduledCall(id={self.id}, status={self.status}, at={self.scheduled_at_utc})>"


class CallRecord(Base):
    """Log entry for every call handed to the voice provider."""

    __tablename__ = "calls"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    to_number = Column(String(64), nullable=False)
    purpose = Column(String(32), nullable=False, default=CallPurpose.PLANNING)
    status = Column(String(32), nullable=False, default=CallStatus.INITIATED, index=True)
    provider_call_id = Column(String(128), nullable=True, index=True)
    conversation_id = Column(String(128), nullable=True, index=True)
    agent_id = Column(String(128), default="")
    task_id = Column(String(36), nullable=True)
    duration = Column(Float, nullable=True)
    cost = Column(Float, nullable=True)
    error_message = Column(Text, nullable=True)
    initiated_at = Column(UTCDateTime, default=utcnow, nullable=False)
    completed_at = Column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<CallRecord(id={self.id}, purpose={self.purpose}, status={self.status})>"


# ── API schemas ──────────────────────────────────────────────────────


class ScheduledCallCreate(BaseModel):
    user_id: str
    scheduled_at: dt.datetime


class ScheduledCallOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    scheduled_at_utc: dt.datetime
    status: ScheduledCallStatus
    retry_count: int = 0
    retry_of: Optional[str] = None
    recurring_day: Optional[str] = None
    call_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime


class PlacedCall(BaseModel):
    """What the voice provider hands back for an outbound call."""

    call_sid: str = Field(min_length=1)
    conversation_id: str = Field(min_length=1)


class InitiatedCall(BaseModel):
    """A call that was placed and logged."""

    call_id: str
    provider_call_id: str
    conversation_id: str
    message: str = ""
