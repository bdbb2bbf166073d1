"""Scheduled calls, the call log and outbound voice calls."""

from claritycall.modules.calls.models import (
    CallPurpose,
    CallRecord,
    CallStatus,
    InitiatedCall,
    PlacedCall,
    ScheduledCall,
    ScheduledCallStatus,
)

__all__ = [
    "CallPurpose",
    "CallRecord",
    "CallStatus",
    "InitiatedCall",
    "PlacedCall",
    "ScheduledCall",
    "ScheduledCallStatus",
]
