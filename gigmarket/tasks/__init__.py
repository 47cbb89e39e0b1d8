"""Per-job task checklists."""

from gigmarket.tasks.models import Task, TaskDraft
from gigmarket.tasks.store import TaskStore

__all__ = ["Task", "TaskDraft", "TaskStore"]
