"""Transcript, tool-invocation and post-call webhook models."""

from __future__ import annotations

import datetime as dt
from enum import StrEnum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import JSON, Column, String

from claritycall.database import Base, UTCDateTime, utcnow
from claritycall.errors import ValidationError
from claritycall.timeutils import parse_iso_with_offset


class ToolInvocation(BaseModel):
    """One named tool call found in a transcript."""

    request_id: str = ""
    tool_name: str
    raw_params: str
    parsed_params: dict[str, Any]
    parsed_details: Optional[Any] = None
    message_index: int
    call_index: int
    timestamp: float = 0
    role: str = ""


class CreateTaskParams(BaseModel):
    """Parameters of a ``create_task`` tool call."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    title: str = Field(min_length=1)
    due: str
    timezone: Optional[str] = None

    @field_validator("due")
    @classmethod
    def _has_offset(cls, value: str) -> str:
        try:
            parse_iso_with_offset(value)
        except ValidationError as exc:
            raise ValueError(exc.message) from exc
        return value

    @property
    def due_at(self) -> dt.datetime:
        return parse_iso_with_offset(self.due)


class WebhookEvent(StrEnum):
    POST_CALL_TRANSCRIPTION = "post_call_transcription"
    CALL_FAILED = "call_failed"
    CALL_ERROR = "call_error"
    CALL_STARTED = "call_started"
    CALL_IN_PROGRESS = "call_in_progress"
    CALL_INITIATION_FAILURE = "call_initiation_failure"


class PostCallData(BaseModel):
    model_config = ConfigDict(extra="allow")

    conversation_id: str = Field(min_length=1)
    agent_id: str = ""
    transcript: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def call_sid(self) -> Optional[str]:
        phone_call = self.metadata.get("phone_call") or {}
        return phone_call.get("call_sid") if isinstance(phone_call, dict) else None

    @property
    def duration(self) -> Optional[float]:
        return self.metadata.get("call_duration_secs")

    @property
    def cost(self) -> Optional[float]:
        return self.metadata.get("cost")

    @property
    def failure_reason(self) -> str:
        extra = self.model_extra or {}
        return str(extra.get("failure_reason") or self.metadata.get("failure_reason") or "")


class PostCallWebhook(BaseModel):
    """Body the voice provider posts when a conversation ends."""

    model_config = ConfigDict(extra="allow")

    type: WebhookEvent
    event_timestamp: Optional[int] = None
    data: PostCallData


class PostCallResult(BaseModel):
    call_id: str
    status: str
    conversation_id: Optional[str] = None
    tasks_created: int = 0
    tasks_skipped: int = 0
    message: str = ""


class Conversation(Base):
    """Stored transcript of a finished call."""

    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    call_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    conversation_id = Column(String(128), nullable=False, index=True)
    transcript = Column(JSON, default=list)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
