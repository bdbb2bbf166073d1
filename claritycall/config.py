"""Centralized configuration loaded from environment variables."""

from __future__ import annotations

import datetime as dt
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide settings sourced from .env / environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────────────
    clarity_env: str = "development"
    clarity_log_level: str = "INFO"
    clarity_encryption_key: str = ""

    # ── API Server ───────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # ── Database ─────────────────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///data/claritycall.db"

    # ── Google Calendar / OAuth ──────────────────────────────────────
    google_client_id: str = ""
    google_client_secret: str = ""
    google_token_url: str = "https://oauth2.googleapis.com/token"
    google_calendar_base_url: str = "https://www.googleapis.com/calendar/v3"

    # ── ElevenLabs voice agent ───────────────────────────────────────
    elevenlabs_api_key: str = ""
    elevenlabs_base_url: str = "https://api.elevenlabs.io"
    elevenlabs_webhook_secret: str = ""
    elevenlabs_calendar_agent_id: str = ""
    elevenlabs_reminder_agent_id: str = ""
    elevenlabs_agent_phone_number_id: str = ""

    # ── Availability ─────────────────────────────────────────────────
    clarity_default_timezone: str = "America/Toronto"
    clarity_min_free_slot_minutes: int = Field(default=15, ge=1)
    clarity_business_hours_start: dt.time = dt.time(9, 0)
    clarity_business_hours_end: dt.time = dt.time(17, 0)

    # ── Dispatch ─────────────────────────────────────────────────────
    # One tolerance for the recurring call window, the due-call lookback
    # and reminder re-validation.
    clarity_dispatch_tolerance_minutes: int = Field(default=5, ge=1, le=59)
    clarity_default_reminder_minutes: int = Field(default=5, ge=0)
    clarity_poll_interval_seconds: int = Field(default=60, ge=1)
    clarity_provider_timeout_seconds: float = Field(default=30.0, gt=0)
    clarity_max_call_retries: int = Field(default=2, ge=0)
    clarity_token_refresh_buffer_seconds: int = 30

    @field_validator("clarity_default_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown IANA timezone: {value}") from exc
        return value

    # ── Derived ──────────────────────────────────────────────────────
    @property
    def default_zone(self) -> ZoneInfo:
        """The fallback zone for naive timestamps and all-day events."""
        return ZoneInfo(self.clarity_default_timezone)

    @property
    def dispatch_tolerance(self) -> dt.timedelta:
        return dt.timedelta(minutes=self.clarity_dispatch_tolerance_minutes)

    def has_voice_agent(self, purpose: str) -> bool:
        """Check if the voice agent for a call purpose is fully configured."""
        agent_map = {
            "planning": self.elevenlabs_calendar_agent_id,
            "reminder": self.elevenlabs_reminder_agent_id,
        }
        return bool(
            self.elevenlabs_api_key
            and self.elevenlabs_agent_phone_number_id
            and agent_map.get(purpose, "")
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the singleton Settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
