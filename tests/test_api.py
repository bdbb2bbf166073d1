"""Tests for the FastAPI API routes."""

from __future__ import annotations

import datetime as dt
import json
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from claritycall.api.routes import set_orchestrator
from claritycall.errors import NotFoundError, ProviderError, ValidationError
from claritycall.modules.availability.models import (
    AvailabilityResult,
    AvailabilityStats,
    BusyPeriod,
    FreeSlot,
    SlotCheckResult,
)
from claritycall.modules.calls.models import ScheduledCall, ScheduledCallStatus
from claritycall.modules.tasks.models import Task, TaskSource, TaskStatus
from claritycall.modules.transcripts.models import PostCallResult
from claritycall.modules.transcripts.signature import compute_signature
from claritycall.modules.users.models import User

STAMP = dt.datetime(2025, 1, 15, 12, 0, tzinfo=dt.UTC)


def make_user() -> User:
    return User(
        id="u1", name="Ada", email="ada@example.com", phone="+15555550100", call_time="08:00",
        timezone="America/Toronto", main_calendar_id="primary",
        wants_clarity_calls=True, wants_call_reminders=True,
    )


def make_task(**fields) -> Task:
    values = dict(
        id="t1", user_id="u1", title="Send report", due=dt.datetime(2025, 1, 15, 19, 0, tzinfo=dt.UTC),
        timezone="America/Toronto", status=TaskStatus.SCHEDULED, reminder_minutes_before=5,
        source=TaskSource.WEB, created_at=STAMP, updated_at=STAMP,
    )
    values.update(fields)
    return Task(**values)


def make_scheduled_call(**fields) -> ScheduledCall:
    values = dict(
        id="sc1", user_id="u1", scheduled_at_utc=dt.datetime(2025, 1, 15, 15, 0, tzinfo=dt.UTC),
        status=ScheduledCallStatus.SCHEDULED, retry_count=0, created_at=STAMP, updated_at=STAMP,
    )
    values.update(fields)
    return ScheduledCall(**values)


@pytest.fixture
def mock_orchestrator():
    """Create a mock orchestrator with all required services."""
    orch = MagicMock()
    orch.settings.elevenlabs_webhook_secret = ""
    orch.status.return_value = {"scheduler_running": True, "scheduled_jobs": 2}

    orch.users.create_user = AsyncMock(return_value=make_user())
    orch.users.require_user = AsyncMock(return_value=make_user())
    orch.users.update_preferences = AsyncMock(return_value=make_user())

    orch.availability.compute_availability = AsyncMock(return_value=AvailabilityResult(
        query_start=dt.datetime(2025, 1, 15, 5, 0, tzinfo=dt.UTC),
        query_end=dt.datetime(2025, 1, 16, 5, 0, tzinfo=dt.UTC),
        free_slots=[FreeSlot(start=dt.datetime(2025, 1, 15, 5, 0, tzinfo=dt.UTC),
                             end=dt.datetime(2025, 1, 16, 5, 0, tzinfo=dt.UTC))],
        stats=AvailabilityStats(total_free_slots=1, longest_free_slot=1440),
    ))
    orch.availability.is_slot_available = AsyncMock(return_value=SlotCheckResult(
        requested_start=dt.datetime(2025, 1, 15, 15, 0, tzinfo=dt.UTC),
        requested_end=dt.datetime(2025, 1, 15, 16, 0, tzinfo=dt.UTC),
        is_available=False,
        conflicts=[BusyPeriod(event_id="e1", title="Standup",
                              start=dt.datetime(2025, 1, 15, 15, 0, tzinfo=dt.UTC),
                              end=dt.datetime(2025, 1, 15, 15, 30, tzinfo=dt.UTC))],
        alternatives=[FreeSlot(start=dt.datetime(2025, 1, 15, 16, 0, tzinfo=dt.UTC),
                               end=dt.datetime(2025, 1, 15, 17, 0, tzinfo=dt.UTC))],
    ))

    orch.scheduled_calls.create = AsyncMock(return_value=make_scheduled_call())
    orch.scheduled_calls.list_for_user = AsyncMock(return_value=[make_scheduled_call()])
    orch.scheduled_calls.retry = AsyncMock(return_value=make_scheduled_call(id="sc2", retry_of="sc1", retry_count=1))

    orch.tasks.create_task = AsyncMock(return_value=make_task())
    orch.tasks.require_task = AsyncMock(return_value=make_task())
    orch.tasks.list_tasks = AsyncMock(return_value=[make_task()])
    orch.tasks.update_task = AsyncMock(return_value=make_task(status=TaskStatus.COMPLETED))
    orch.tasks.delete_task = AsyncMock(return_value=make_task())
    orch.tasks.add_to_calendar = AsyncMock(return_value={"id": "ev-1", "htmlLink": "https://calendar.test/ev-1"})

    orch.transcripts.process_post_call = AsyncMock(return_value=PostCallResult(
        call_id="c1", status="completed", conversation_id="conv-row", tasks_created=1,
        message="Webhook processed successfully. Created 1 tasks.",
    ))
    return orch


@pytest.fixture
def client(mock_orchestrator):
    """Create a test client with mock orchestrator."""
    set_orchestrator(mock_orchestrator)
    from claritycall.main import app
    yield TestClient(app)
    set_orchestrator(None)


class TestHealth:

    def test_health_check(self, client) -> None:
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "scheduler_running": True, "scheduled_jobs": 2}

    def test_not_initialized(self) -> None:
        set_orchestrator(None)
        from claritycall.main import app
        response = TestClient(app).get("/api/health")
        assert response.status_code == 503
        assert response.json()["detail"] == "System not initialized"


class TestUsers:

    def test_create_user(self, client, mock_orchestrator) -> None:
        response = client.post("/api/users", json={"email": "ada@example.com", "name": "Ada"})
        assert response.status_code == 201
        assert response.json()["id"] == "u1"
        assert mock_orchestrator.users.create_user.await_args.args[0].email == "ada@example.com"

    def test_duplicate_user(self, client, mock_orchestrator) -> None:
        mock_orchestrator.users.create_user.side_effect = ValidationError("A user with email x already exists")
        response = client.post("/api/users", json={"email": "ada@example.com"})
        assert response.status_code == 400
        assert "already exists" in response.json()["detail"]

    def test_user_not_found(self, client, mock_orchestrator) -> None:
        mock_orchestrator.users.require_user.side_effect = NotFoundError("User nobody not found")
        response = client.get("/api/users/nobody")
        assert response.status_code == 404
        assert response.json()["detail"] == "User nobody not found"

    def test_update_preferences(self, client, mock_orchestrator) -> None:
        response = client.patch("/api/users/u1/preferences", json={"call_time": "07:30"})
        assert response.status_code == 200
        user_id, prefs = mock_orchestrator.users.update_preferences.await_args.args
        assert user_id == "u1"
        assert prefs.call_time == "07:30"
        assert prefs.timezone is None

    def test_update_preferences_rejects_bad_call_time(self, client, mock_orchestrator) -> None:
        response = client.patch("/api/users/u1/preferences", json={"call_time": "noon"})
        assert response.status_code == 422
        mock_orchestrator.users.update_preferences.assert_not_called()


class TestAvailability:

    def test_defaults_to_users_calendar_and_zone(self, client, mock_orchestrator) -> None:
        response = client.get("/api/users/u1/availability", params={
            "start": "2025-01-15T00:00:00-05:00", "end": "2025-01-16T00:00:00-05:00",
        })

        assert response.status_code == 200
        assert response.json()["stats"]["total_free_slots"] == 1
        assert response.json()["free_slots"][0]["duration_minutes"] == 1440
        args = mock_orchestrator.availability.compute_availability.await_args
        assert args.args[1] == "primary"
        assert args.kwargs["timezone"] == "America/Toronto"
        assert args.kwargs["business_hours"] is False

    def test_explicit_calendar_and_business_hours(self, client, mock_orchestrator) -> None:
        client.get("/api/users/u1/availability", params={
            "start": "2025-01-15T00:00:00Z", "end": "2025-01-16T00:00:00Z",
            "calendar_id": "work", "timezone": "Europe/Paris", "business_hours": "true",
        })
        args = mock_orchestrator.availability.compute_availability.await_args
        assert args.args[1] == "work"
        assert args.kwargs == {"timezone": "Europe/Paris", "business_hours": True}

    def test_bad_range(self, client, mock_orchestrator) -> None:
        mock_orchestrator.availability.compute_availability.side_effect = ValidationError(
            "start must be before end"
        )
        response = client.get("/api/users/u1/availability", params={
            "start": "2025-01-16T00:00:00Z", "end": "2025-01-15T00:00:00Z",
        })
        assert response.status_code == 400

    def test_missing_bounds(self, client) -> None:
        assert client.get("/api/users/u1/availability").status_code == 422

    def test_slot_check(self, client) -> None:
        response = client.get("/api/users/u1/availability/slot", params={
            "start": "2025-01-15T15:00:00Z", "end": "2025-01-15T16:00:00Z",
        })
        body = response.json()
        assert response.status_code == 200
        assert body["is_available"] is False
        assert body["conflicts"][0]["title"] == "Standup"
        assert len(body["alternatives"]) == 1


class TestScheduledCalls:

    def test_create(self, client, mock_orchestrator) -> None:
        response = client.post("/api/scheduled-calls", json={
            "user_id": "u1", "scheduled_at": "2025-01-15T10:00:00-05:00",
        })
        assert response.status_code == 201
        assert response.json()["status"] == "scheduled"
        user_id, at = mock_orchestrator.scheduled_calls.create.await_args.args
        assert user_id == "u1"
        assert at == dt.datetime(2025, 1, 15, 15, 0, tzinfo=dt.UTC)

    def test_create_rejected(self, client, mock_orchestrator) -> None:
        mock_orchestrator.scheduled_calls.create.side_effect = ValidationError("Scheduled time must be in the future")
        response = client.post("/api/scheduled-calls", json={"user_id": "u1", "scheduled_at": "2020-01-01T00:00:00Z"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Scheduled time must be in the future"

    def test_list(self, client) -> None:
        response = client.get("/api/users/u1/scheduled-calls")
        assert [c["id"] for c in response.json()] == ["sc1"]

    def test_retry(self, client) -> None:
        response = client.post("/api/scheduled-calls/sc1/retry")
        assert response.status_code == 201
        assert response.json()["retry_of"] == "sc1"


class TestTasks:

    def test_create_is_web_sourced(self, client, mock_orchestrator) -> None:
        response = client.post("/api/tasks", json={
            "title": "Send report", "due": "2025-01-15T14:00:00-05:00", "timezone": "America/Toronto",
            "user_id": "u1",
        })
        assert response.status_code == 201
        assert response.json()["source"] == "web"
        created = mock_orchestrator.tasks.create_task.await_args.args[0]
        assert created.source == TaskSource.WEB
        assert created.reminder_minutes_before is None

    def test_create_validation_error(self, client, mock_orchestrator) -> None:
        mock_orchestrator.tasks.create_task.side_effect = ValidationError("Due date must be in the future")
        response = client.post("/api/tasks", json={
            "title": "Old", "due": "2020-01-15T14:00:00Z", "timezone": "UTC",
        })
        assert response.status_code == 400

    def test_negative_offset_rejected(self, client) -> None:
        response = client.post("/api/tasks", json={
            "title": "x", "due": "2025-01-15T14:00:00Z", "timezone": "UTC", "reminder_minutes_before": -1,
        })
        assert response.status_code == 422

    def test_get_and_list(self, client, mock_orchestrator) -> None:
        assert client.get("/api/tasks/t1").json()["title"] == "Send report"
        response = client.get("/api/users/u1/tasks", params={"status": "scheduled"})
        assert len(response.json()) == 1
        assert mock_orchestrator.tasks.list_tasks.await_args.kwargs["status"] == TaskStatus.SCHEDULED

    def test_update(self, client, mock_orchestrator) -> None:
        response = client.patch("/api/tasks/t1", json={"status": "completed"})
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert mock_orchestrator.tasks.update_task.await_args.args[1].status == TaskStatus.COMPLETED

    def test_delete(self, client) -> None:
        assert client.delete("/api/tasks/t1").status_code == 204

    def test_delete_missing(self, client, mock_orchestrator) -> None:
        mock_orchestrator.tasks.delete_task.side_effect = NotFoundError("Task with ID t9 not found")
        assert client.delete("/api/tasks/t9").status_code == 404

    def test_add_to_calendar(self, client, mock_orchestrator) -> None:
        response = client.post("/api/tasks/t1/calendar-event", params={"duration_minutes": 45})
        assert response.json() == {"event_id": "ev-1", "html_link": "https://calendar.test/ev-1"}
        assert mock_orchestrator.tasks.add_to_calendar.await_args.kwargs == {"duration_minutes": 45}

    def test_calendar_provider_failure(self, client, mock_orchestrator) -> None:
        mock_orchestrator.tasks.add_to_calendar.side_effect = ProviderError("Google Calendar API error: HTTP 500")
        assert client.post("/api/tasks/t1/calendar-event").status_code == 502


class TestPostCallWebhook:

    BODY = {
        "type": "post_call_transcription",
        "event_timestamp": 1736946300,
        "data": {"conversation_id": "conv_1", "transcript": [], "metadata": {"phone_call": {"call_sid": "CA1"}}},
    }

    def test_processed(self, client, mock_orchestrator) -> None:
        response = client.post("/api/webhooks/voice/post-call", json=self.BODY)

        assert response.status_code == 200
        assert response.json()["tasks_created"] == 1
        payload = mock_orchestrator.transcripts.process_post_call.await_args.args[0]
        assert payload.data.call_sid == "CA1"

    def test_invalid_json(self, client) -> None:
        response = client.post("/api/webhooks/voice/post-call", content=b"{not json",
                               headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid webhook payload"

    def test_invalid_payload(self, client) -> None:
        response = client.post("/api/webhooks/voice/post-call", json={"type": "post_call_transcription"})
        assert response.status_code == 400

    def test_unknown_call(self, client, mock_orchestrator) -> None:
        mock_orchestrator.transcripts.process_post_call.side_effect = NotFoundError(
            "Call not found for provider call ID: CA1"
        )
        assert client.post("/api/webhooks/voice/post-call", json=self.BODY).status_code == 404

    def test_signature_required_when_secret_set(self, client, mock_orchestrator) -> None:
        mock_orchestrator.settings.elevenlabs_webhook_secret = "whsec"
        response = client.post("/api/webhooks/voice/post-call", json=self.BODY)
        assert response.status_code == 401
        mock_orchestrator.transcripts.process_post_call.assert_not_awaited()

    def test_valid_signature_accepted(self, client, mock_orchestrator) -> None:
        mock_orchestrator.settings.elevenlabs_webhook_secret = "whsec"
        body = json.dumps(self.BODY).encode()
        timestamp = str(int(time.time()))
        header = f"t={timestamp},{compute_signature('whsec', timestamp, body)}"

        response = client.post("/api/webhooks/voice/post-call", content=body,
                               headers={"Content-Type": "application/json", "ElevenLabs-Signature": header})

        assert response.status_code == 200
