"""ElevenLabs webhook signature verification.

Header format: ``ElevenLabs-Signature: t=<unix seconds>,v0=<hex>`` where the
hex digest is HMAC-SHA256 over ``"<t>.<raw body>"`` keyed with the webhook
secret.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from typing import Optional

from claritycall.errors import WebhookSignatureError

SIGNATURE_HEADER = "ElevenLabs-Signature"
DEFAULT_TOLERANCE_SECONDS = 1800


def _parse_header(header: Optional[str]) -> tuple[str, str]:
    if not header:
        raise WebhookSignatureError("Invalid or missing ElevenLabs-Signature header")
    parts = [p.strip() for p in header.split(",")]
    timestamp = next((p[2:] for p in parts if p.startswith("t=")), None)
    provided = next((p for p in parts if p.startswith("v0=")), None)
    if timestamp is None or provided is None:
        raise WebhookSignatureError("Invalid or missing ElevenLabs-Signature header")
    return timestamp, provided


def compute_signature(secret: str, timestamp: str, body: bytes | str) -> str:
    """``v0=`` plus the hex HMAC-SHA256 of ``"{timestamp}.{body}"``."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    message = timestamp.encode("utf-8") + b"." + body
    return "v0=" + hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(
    body: bytes | str,
    header: Optional[str],
    secret: str,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> int:
    """Check the header against the body; returns the signed timestamp."""
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")
    timestamp, provided = _parse_header(header)
    try:
        signed_at = int(timestamp)
    except ValueError as exc:
        raise WebhookSignatureError("Invalid timestamp") from exc

    current = time.time() if now is None else now
    if signed_at < current - tolerance_seconds:
        raise WebhookSignatureError("Request expired")

    expected = compute_signature(secret, timestamp, body)
    if not hmac.compare_digest(expected, provided):
        raise WebhookSignatureError("Signature mismatch")
    return signed_at
