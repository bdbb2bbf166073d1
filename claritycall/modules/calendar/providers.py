"""Calendar provider implementations.

Providers only move raw events over the wire; no availability logic lives here.
"""

from __future__ import annotations

import datetime as dt
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import quote

import httpx
import pydantic
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from claritycall.config import get_settings
from claritycall.errors import ProviderError
from claritycall.logging_config import get_logger
from claritycall.modules.calendar.models import CalendarEvent

logger = get_logger(__name__)


def to_rfc3339(value: dt.datetime) -> str:
    """Render an aware datetime as RFC3339 UTC with a ``Z`` suffix."""
    if value.tzinfo is None:
        raise ValueError("RFC3339 bounds must be timezone-aware")
    return value.astimezone(dt.UTC).replace(tzinfo=None).isoformat() + "Z"


class BaseCalendarProvider(ABC):
    """Abstract calendar provider interface."""

    @abstractmethod
    async def list_events(
        self,
        access_token: str,
        calendar_id: str,
        time_min: dt.datetime,
        time_max: dt.datetime,
    ) -> list[CalendarEvent]:
        """List raw events (recurring events already expanded) in a range."""

    @abstractmethod
    async def list_calendars(self, access_token: str) -> list[dict[str, Any]]:
        """List the calendars visible to the credential."""

    @abstractmethod
    async def create_event(
        self,
        access_token: str,
        calendar_id: str,
        title: str,
        start: dt.datetime,
        end: dt.datetime,
    ) -> dict[str, Any]:
        """Create a timed event and return the provider's representation."""


class GoogleCalendarProvider(BaseCalendarProvider):
    """Google Calendar v3 REST integration over httpx."""

    PAGE_SIZE = 250

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self._base_url = (base_url or settings.google_calendar_base_url).rstrip("/")
        self._transport = transport
        self._timeout = timeout if timeout is not None else settings.clarity_provider_timeout_seconds

    def _client(self, access_token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
            timeout=self._timeout,
            transport=self._transport,
        )

    @staticmethod
    def _check(resp: httpx.Response, what: str) -> dict[str, Any]:
        if resp.status_code >= 400:
            raise ProviderError(
                f"Google Calendar API error while {what}: HTTP {resp.status_code}",
                detail=resp.text[:500],
            )
        return resp.json()

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        reraise=True,
    )
    async def _get(self, client: httpx.AsyncClient, path: str, params: dict[str, Any]) -> httpx.Response:
        return await client.get(path, params=params)

    async def list_events(
        self,
        access_token: str,
        calendar_id: str,
        time_min: dt.datetime,
        time_max: dt.datetime,
    ) -> list[CalendarEvent]:
        params: dict[str, Any] = {
            "maxResults": self.PAGE_SIZE,
            "singleEvents": "true",
            "orderBy": "startTime",
            "timeMin": to_rfc3339(time_min),
            "timeMax": to_rfc3339(time_max),
        }
        path = f"/calendars/{quote(calendar_id, safe='')}/events"
        events: list[CalendarEvent] = []
        try:
            async with self._client(access_token) as client:
                while True:
                    resp = await self._get(client, path, params)
                    data = self._check(resp, f"listing events for {calendar_id}")
                    for item in data.get("items", []):
                        try:
                            events.append(CalendarEvent.from_provider(item))
                        except pydantic.ValidationError as exc:
                            # Cancelled recurring instances arrive without start/end.
                            logger.warning(
                                "calendar_event_skipped",
                                event_id=item.get("id"),
                                status=item.get("status"),
                                error=str(exc.errors()[0]["msg"]) if exc.errors() else str(exc),
                            )
                    page_token = data.get("nextPageToken")
                    if not page_token:
                        break
                    params["pageToken"] = page_token
        except httpx.HTTPError as exc:
            raise ProviderError(f"Failed to fetch calendar events for {calendar_id}: {exc}") from exc

        logger.debug("calendar_events_fetched", calendar_id=calendar_id, count=len(events))
        return events

    async def list_calendars(self, access_token: str) -> list[dict[str, Any]]:
        try:
            async with self._client(access_token) as client:
                resp = await self._get(client, "/users/me/calendarList", {})
        except httpx.HTTPError as exc:
            raise ProviderError(f"Failed to fetch user calendars: {exc}") from exc
        return self._check(resp, "listing calendars").get("items", [])

    async def create_event(
        self,
        access_token: str,
        calendar_id: str,
        title: str,
        start: dt.datetime,
        end: dt.datetime,
    ) -> dict[str, Any]:
        body = {
            "summary": title,
            "start": {"dateTime": start.isoformat()},
            "end": {"dateTime": end.isoformat()},
        }
        try:
            async with self._client(access_token) as client:
                resp = await client.post(f"/calendars/{quote(calendar_id, safe='')}/events", json=body)
        except httpx.HTTPError as exc:
            raise ProviderError(f'Failed to create calendar event "{title}": {exc}') from exc
        created = self._check(resp, f'creating event "{title}"')
        logger.info("calendar_event_created", calendar_id=calendar_id, title=title)
        return created
