"""Time zone helpers shared across modules."""

from __future__ import annotations

import datetime as dt
import re
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from claritycall.errors import ValidationError

# "2025-01-15T14:30:00Z", "2025-01-15T14:30:00.000-05:00"
_ISO_WITH_OFFSET = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{1,6})?(Z|[+-]\d{2}:\d{2})$"
)


def resolve_zone(name: Optional[str], default: Optional[ZoneInfo] = None) -> ZoneInfo:
    """Look up an IANA zone, raising ``ValidationError`` for unknown names."""
    if not name:
        if default is None:
            raise ValidationError("A timezone is required")
        return default
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(
            f"Invalid timezone: {name}. Use IANA timezone names like 'America/New_York'"
        ) from exc


def ensure_aware(value: dt.datetime, zone: ZoneInfo) -> dt.datetime:
    """Attach ``zone`` to a naive datetime; aware values pass through."""
    if value.tzinfo is None:
        return value.replace(tzinfo=zone)
    return value


def parse_iso_with_offset(value: str) -> dt.datetime:
    """Parse an ISO-8601 timestamp that must carry ``Z`` or a ``±HH:MM`` offset."""
    if not _ISO_WITH_OFFSET.match(value or ""):
        raise ValidationError(
            "Date must be in ISO format with timezone (e.g., '2025-01-15T14:30:00-05:00')"
        )
    try:
        return dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError("Invalid date value") from exc


def local_day_bounds(instant: dt.datetime, zone: ZoneInfo) -> tuple[dt.datetime, dt.datetime]:
    """Return ``[midnight, next midnight)`` of the local day containing ``instant``."""
    day = instant.astimezone(zone).date()
    start = dt.datetime.combine(day, dt.time.min, tzinfo=zone)
    end = dt.datetime.combine(day + dt.timedelta(days=1), dt.time.min, tzinfo=zone)
    return start, end
