"""Exception hierarchy shared by the services and the API layer."""

from __future__ import annotations

from typing import Optional


class ClarityError(Exception):
    """Base exception for all application errors."""

    status_code = 500

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        self.message = message
        self.detail = detail
        super().__init__(message)


class ValidationError(ClarityError):
    """Bad input shape, past due time, missing user fields. Never retried."""

    status_code = 400


class NotFoundError(ClarityError):
    """A referenced record does not exist."""

    status_code = 404


class ProviderError(ClarityError):
    """Calendar, voice or OAuth provider failed (network, timeout, bad reply)."""

    status_code = 502


class TokenError(ProviderError):
    """No usable OAuth credential is stored for the user."""


class WebhookSignatureError(ClarityError):
    """Inbound webhook failed signature verification."""

    status_code = 401
