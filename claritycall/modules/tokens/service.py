"""OAuth token storage and the single ``get_valid_token`` capability.

Every caller that needs a Google access token goes through
``TokenService.get_valid_token``. Refreshes are single-flight per user: the
first caller to find an expired token refreshes it while later callers wait
on the same lock and then read the fresh value.
"""

from __future__ import annotations

import asyncio
import datetime as dt
from typing import Optional

import httpx
from sqlalchemy import select
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from claritycall.config import get_settings
from claritycall.database import get_session
from claritycall.errors import ProviderError, TokenError
from claritycall.logging_config import get_logger
from claritycall.modules.tokens.models import GoogleToken
from claritycall.security.encryption import decrypt, encrypt

logger = get_logger(__name__)


class TokenService:
    """Stores, caches and refreshes per-user Google OAuth tokens."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._settings = get_settings()
        self._transport = transport
        self._locks: dict[str, asyncio.Lock] = {}
        # user_id -> (access_token, expires_at)
        self._cache: dict[str, tuple[str, dt.datetime]] = {}

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    def _is_fresh(self, expires_at: dt.datetime, now: Optional[dt.datetime] = None) -> bool:
        now = now or dt.datetime.now(dt.UTC)
        buffer = dt.timedelta(seconds=self._settings.clarity_token_refresh_buffer_seconds)
        return now + buffer < expires_at

    async def upsert_tokens(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: dt.datetime,
        user_email: str = "",
    ) -> None:
        """Store a credential from the OAuth callback, replacing any previous one."""
        async with get_session() as session:
            existing = (await session.execute(
                select(GoogleToken).where(GoogleToken.user_id == user_id)
            )).scalar_one_or_none()
            if existing:
                existing.access_token = encrypt(access_token)
                existing.refresh_token = encrypt(refresh_token)
                existing.expires_at = expires_at
                if user_email:
                    existing.user_email = user_email
            else:
                session.add(GoogleToken(
                    user_id=user_id,
                    user_email=user_email,
                    access_token=encrypt(access_token),
                    refresh_token=encrypt(refresh_token),
                    expires_at=expires_at,
                ))
        self._cache[user_id] = (access_token, expires_at)
        logger.info("google_tokens_stored", user_id=user_id)

    async def _load(self, user_id: str) -> Optional[GoogleToken]:
        async with get_session() as session:
            return (await session.execute(
                select(GoogleToken).where(GoogleToken.user_id == user_id)
            )).scalar_one_or_none()

    async def is_calendar_connected(self, user_id: str) -> bool:
        """A user is connected when a refreshable credential is stored."""
        row = await self._load(user_id)
        return bool(row and row.refresh_token and row.access_token)

    async def get_valid_token(self, user_id: str) -> str:
        """Return an access token valid for at least the refresh buffer."""
        cached = self._cache.get(user_id)
        if cached and self._is_fresh(cached[1]):
            return cached[0]

        async with self._lock_for(user_id):
            # Another waiter may have refreshed while we queued.
            cached = self._cache.get(user_id)
            if cached and self._is_fresh(cached[1]):
                return cached[0]

            row = await self._load(user_id)
            if row is None:
                raise TokenError(f"No calendar credential stored for user {user_id}")

            if self._is_fresh(row.expires_at):
                access_token = decrypt(row.access_token)
                self._cache[user_id] = (access_token, row.expires_at)
                return access_token

            access_token, expires_at = await self._refresh(decrypt(row.refresh_token))
            async with get_session() as session:
                stored = await session.get(GoogleToken, row.id)
                if stored is not None:
                    stored.access_token = encrypt(access_token)
                    stored.expires_at = expires_at
            self._cache[user_id] = (access_token, expires_at)
            logger.info("google_token_refreshed", user_id=user_id, expires_at=expires_at.isoformat())
            return access_token

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        reraise=True,
    )
    async def _post_refresh(self, refresh_token: str) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self._settings.clarity_provider_timeout_seconds,
            transport=self._transport,
        ) as client:
            return await client.post(
                self._settings.google_token_url,
                data={
                    "client_id": self._settings.google_client_id,
                    "client_secret": self._settings.google_client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )

    async def _refresh(self, refresh_token: str) -> tuple[str, dt.datetime]:
        try:
            resp = await self._post_refresh(refresh_token)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Token refresh failed: {exc}") from exc
        if resp.status_code >= 400:
            raise ProviderError(
                f"Token refresh failed: HTTP {resp.status_code}", detail=resp.text[:500]
            )
        payload = resp.json()
        expires_in = int(payload.get("expires_in", 3600))
        return payload["access_token"], dt.datetime.now(dt.UTC) + dt.timedelta(seconds=expires_in)

    def forget(self, user_id: str) -> None:
        """Drop the cached token for a user."""
        self._cache.pop(user_id, None)
