"""APScheduler-backed run-at-time and interval jobs."""

from claritycall.modules.scheduler.service import ScheduledJob, SchedulerService

__all__ = ["ScheduledJob", "SchedulerService"]
