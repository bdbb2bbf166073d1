"""User profile with call preferences."""

from __future__ import annotations

import re
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import AfterValidator, BaseModel, Field
from sqlalchemy import Boolean, Column, String

from claritycall.database import Base, UTCDateTime, utcnow
from claritycall.errors import ValidationError
from claritycall.timeutils import resolve_zone

_HH_MM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _check_zone(value: str) -> str:
    if value:
        try:
            resolve_zone(value)
        except ValidationError as exc:
            raise ValueError(exc.message) from exc
    return value


def _check_call_time(value: str) -> str:
    if value and not _HH_MM.match(value):
        raise ValueError("call_time must be HH:MM (24-hour)")
    return value


ZoneName = Annotated[str, AfterValidator(_check_zone)]
CallTimeText = Annotated[str, AfterValidator(_check_call_time)]


class User(Base):
    """A person who receives clarity and reminder calls."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(256), default="")
    email = Column(String(320), nullable=False, unique=True, index=True)
    phone = Column(String(64), default="")
    call_time = Column(String(5), default="")  # "HH:MM" in the user's zone
    timezone = Column(String(64), default="")
    main_calendar_id = Column(String(256), default="")
    wants_clarity_calls = Column(Boolean, default=False, nullable=False)
    wants_call_reminders = Column(Boolean, default=False, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class UserCreate(BaseModel):
    """Input for registering a user."""

    email: str = Field(min_length=3)
    name: str = ""
    phone: str = ""
    call_time: CallTimeText = ""
    timezone: ZoneName = ""
    main_calendar_id: str = ""
    wants_clarity_calls: bool = False
    wants_call_reminders: bool = False


class UserPreferences(BaseModel):
    """Partial update of the call preferences."""

    phone: Optional[str] = None
    call_time: Optional[CallTimeText] = None
    timezone: Optional[ZoneName] = None
    main_calendar_id: Optional[str] = None
    wants_clarity_calls: Optional[bool] = None
    wants_call_reminders: Optional[bool] = None
