"""Tests for configuration module."""

from __future__ import annotations

import datetime as dt
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from claritycall.config import Settings


class TestSettings:
    """Tests for the Settings configuration class."""

    @patch.dict(os.environ, {}, clear=True)
    def test_default_values(self) -> None:
        """Settings loads with sane defaults."""
        s = Settings(
            clarity_env="test",
            database_url="sqlite+aiosqlite:///:memory:",
            _env_file=None,
        )
        assert s.clarity_env == "test"
        assert s.api_port == 8000
        assert s.clarity_log_level == "INFO"
        assert s.clarity_default_timezone == "America/Toronto"
        assert s.clarity_min_free_slot_minutes == 15
        assert s.clarity_business_hours_start == dt.time(9, 0)
        assert s.clarity_business_hours_end == dt.time(17, 0)
        assert s.clarity_default_reminder_minutes == 5
        assert s.dispatch_tolerance == dt.timedelta(minutes=5)

    @patch.dict(os.environ, {"CLARITY_DISPATCH_TOLERANCE_MINUTES": "3", "CLARITY_MAX_CALL_RETRIES": "4"}, clear=True)
    def test_environment_overrides(self) -> None:
        s = Settings(_env_file=None)
        assert s.dispatch_tolerance == dt.timedelta(minutes=3)
        assert s.clarity_max_call_retries == 4

    def test_unknown_default_timezone_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(clarity_default_timezone="Mars/Olympus", _env_file=None)

    def test_default_zone(self) -> None:
        s = Settings(clarity_default_timezone="Europe/Paris", _env_file=None)
        assert s.default_zone.key == "Europe/Paris"

    @pytest.mark.parametrize("minutes", [0, 60])
    def test_tolerance_bounds(self, minutes: int) -> None:
        with pytest.raises(ValidationError):
            Settings(clarity_dispatch_tolerance_minutes=minutes, _env_file=None)

    @patch.dict(os.environ, {}, clear=True)
    def test_has_voice_agent(self) -> None:
        """has_voice_agent needs the key, the phone number and the purpose's agent."""
        s = Settings(
            elevenlabs_api_key="xi",
            elevenlabs_agent_phone_number_id="pn",
            elevenlabs_calendar_agent_id="agent-planning",
            _env_file=None,
        )
        assert s.has_voice_agent("planning") is True
        assert s.has_voice_agent("reminder") is False
        assert s.has_voice_agent("unknown") is False

        s = Settings(elevenlabs_calendar_agent_id="agent-planning", _env_file=None)
        assert s.has_voice_agent("planning") is False

    def test_encryption_key_empty(self) -> None:
        """Empty encryption key is allowed (ephemeral key generated at runtime)."""
        s = Settings(clarity_encryption_key="", _env_file=None)
        assert s.clarity_encryption_key == ""
