"""Team tasks."""

from teamhub.tasks.models import Task, TaskStatus
from teamhub.tasks.service import TaskService, task_service

__all__ = ["Task", "TaskStatus", "TaskService", "task_service"]
