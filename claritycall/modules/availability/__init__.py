"""Availability computation: busy periods, free slots and slot checks."""

from claritycall.modules.availability.computer import AvailabilityComputer
from claritycall.modules.availability.intervals import IntervalSet
from claritycall.modules.availability.models import (
    AvailabilityResult,
    AvailabilityStats,
    BusinessHours,
    BusyPeriod,
    FreeSlot,
    SlotCheckResult,
)
from claritycall.modules.availability.service import AvailabilityService

__all__ = [
    "AvailabilityComputer",
    "AvailabilityResult",
    "AvailabilityService",
    "AvailabilityStats",
    "BusinessHours",
    "BusyPeriod",
    "FreeSlot",
    "IntervalSet",
    "SlotCheckResult",
]
