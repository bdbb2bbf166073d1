"""Shared test fixtures and configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

os.environ.setdefault("CLARITY_ENV", "test")
os.environ.setdefault("CLARITY_LOG_LEVEL", "WARNING")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
# base64 of "0123456789abcdef0123456789abcdef"
os.environ.setdefault("CLARITY_ENCRYPTION_KEY", "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=")
os.environ.setdefault("CLARITY_DEFAULT_TIMEZONE", "America/Toronto")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-secret")
os.environ.setdefault("ELEVENLABS_API_KEY", "test-xi-key")
os.environ.setdefault("ELEVENLABS_WEBHOOK_SECRET", "")
os.environ.setdefault("ELEVENLABS_CALENDAR_AGENT_ID", "agent-planning")
os.environ.setdefault("ELEVENLABS_REMINDER_AGENT_ID", "agent-reminder")
os.environ.setdefault("ELEVENLABS_AGENT_PHONE_NUMBER_ID", "phone-number-1")

from claritycall.config import Settings, get_settings
from tests.fakes import TORONTO, FakeCalendar, FakeTokens, FakeVoice


@pytest.fixture
def settings() -> Settings:
    """Return the test settings."""
    return get_settings()


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[None, None]:
    """Point the app at a fresh file-backed SQLite database for one test."""
    import claritycall.database as database

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    database._engine = engine
    database._session_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await database.init_db()
    yield
    await database.close_db()


@pytest.fixture
def fake_calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture
def fake_voice() -> FakeVoice:
    return FakeVoice()


@pytest.fixture
def fake_tokens() -> FakeTokens:
    return FakeTokens()


@pytest.fixture
def orchestrator(db, fake_calendar, fake_voice, fake_tokens):
    """Fully wired orchestrator over the test database and fake providers."""
    from claritycall.orchestrator import Orchestrator

    return Orchestrator(calendar=fake_calendar, voice=fake_voice, tokens=fake_tokens)


@pytest_asyncio.fixture
async def user(db):
    """A user who is set up for clarity and reminder calls."""
    from claritycall.modules.users import UserCreate, UserService

    return await UserService().create_user(UserCreate(
        email="ada@example.com",
        name="Ada",
        phone="+15555550100",
        call_time="08:00",
        timezone=TORONTO,
        main_calendar_id="primary",
        wants_clarity_calls=True,
        wants_call_reminders=True,
    ))
