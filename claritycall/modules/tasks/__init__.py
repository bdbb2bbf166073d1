"""Tasks and their reminder calls."""

from claritycall.modules.tasks.models import Task, TaskSource, TaskStatus

__all__ = ["Task", "TaskSource", "TaskStatus"]
