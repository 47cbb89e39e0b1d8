"""
Task store.

Per-job checklists. Positions are zero-based and contiguous: new tasks are
appended at the current task count, deletes compact the remaining positions
and ``reorder`` rewrites every position of the job as a single batch.
"""

import dataclasses
import logging
import uuid
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from gigmarket.errors import InvalidRequestError, InvalidTransitionError, TaskNotFoundError
from gigmarket.jobs.models import Job
from gigmarket.jobs.store import JobStore
from gigmarket.tasks.models import EDITABLE_TASK_FIELDS, Task, TaskDraft
from gigmarket.types import utc_now

if TYPE_CHECKING:
    from gigmarket.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)


def _as_draft(task: Any) -> TaskDraft:
    if isinstance(task, TaskDraft):
        return task
    if isinstance(task, str):
        return TaskDraft(description=task)
    if isinstance(task, dict):
        try:
            return TaskDraft(**task)
        except TypeError as e:
            raise InvalidRequestError(f"Invalid task: {e}") from e
    raise InvalidRequestError(f"Invalid task: {task!r}")


class TaskStore:
    """Checklist items belonging to a job."""

    def __init__(self, storage: "MarketplaceStorage", jobs: JobStore):
        self.storage = storage
        self.jobs = jobs

    def _editable_job(self, job_id: str) -> Job:
        job = self.jobs.get_by_id(job_id)
        if job.is_terminal:
            raise InvalidTransitionError(f"Cannot modify tasks of job in status: {job.status}")
        return job

    def _build(self, job_id: str, draft: TaskDraft, position: int) -> Task:
        try:
            return Task(
                id=str(uuid.uuid4()),
                job_id=job_id,
                description=draft.description,
                position=position,
                is_optional=draft.is_optional,
                due_time=draft.due_time,
                location=draft.location,
                bonus_amount=draft.bonus_amount,
                estimated_duration=draft.estimated_duration,
                notes=draft.notes,
                created_at=utc_now(),
            )
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e

    def add_task(self, job_id: str, task) -> Task:
        """Append a task at the end of the job's list."""
        return self.add_tasks_batch(job_id, [task])[0]

    def add_tasks_batch(self, job_id: str, tasks: Iterable) -> List[Task]:
        """Append tasks in the given order; nothing is written if any is invalid."""
        drafts = [_as_draft(t) for t in tasks]
        with self.storage.transaction():
            self._editable_job(job_id)
            start = len(self.storage.list_tasks(job_id))
            created = [self._build(job_id, draft, start + i) for i, draft in enumerate(drafts)]
            self.storage.save_tasks(created)
        logger.info(f"Added {len(created)} task(s) to job {job_id}")
        return created

    def get(self, task_id: str) -> Task:
        task = self.storage.get_task(task_id)
        if not task:
            raise TaskNotFoundError(task_id)
        return task

    def list_for_job(self, job_id: str) -> List[Task]:
        """List tasks ordered by position."""
        self.jobs.get_by_id(job_id)
        return self.storage.list_tasks(job_id)

    def outstanding_required(self, job_id: str) -> List[Task]:
        return [t for t in self.storage.list_tasks(job_id) if t.is_outstanding]

    def update_task(self, task_id: str, changes: Dict[str, Any]) -> Task:
        """Patch a task's descriptive fields."""
        unknown = set(changes) - EDITABLE_TASK_FIELDS
        if unknown:
            raise InvalidRequestError(f"Fields not editable: {sorted(unknown)}")
        with self.storage.transaction():
            task = self.get(task_id)
            self._editable_job(task.job_id)
            try:
                updated = dataclasses.replace(task, **changes)
            except (TypeError, ValueError) as e:
                raise InvalidRequestError(str(e)) from e
            self.storage.update_tasks([updated])
        logger.info(f"Updated task {task_id} fields {sorted(changes)}")
        return updated

    def delete_task(self, task_id: str) -> Task:
        """Delete a task and close the gap in positions."""
        with self.storage.transaction():
            task = self.get(task_id)
            self._editable_job(task.job_id)
            self.storage.delete_task(task_id)
            remaining = self.storage.list_tasks(task.job_id)
            moved = []
            for index, other in enumerate(remaining):
                if other.position != index:
                    other.position = index
                    moved.append(other)
            if moved:
                self.storage.update_tasks(moved)
        logger.info(f"Deleted task {task_id} from job {task.job_id}")
        return task

    def reorder(self, job_id: str, ordered_ids: List[str]) -> List[Task]:
        """Rewrite every position of the job's tasks to match ``ordered_ids``.

        Raises:
            InvalidRequestError: If ``ordered_ids`` is not a permutation of the job's task ids
        """
        with self.storage.transaction():
            self._editable_job(job_id)
            tasks = {t.id: t for t in self.storage.list_tasks(job_id)}
            if len(ordered_ids) != len(set(ordered_ids)):
                raise InvalidRequestError("Duplicate task ids in reorder")
            if set(ordered_ids) != set(tasks):
                foreign = sorted(set(ordered_ids) - set(tasks))
                missing = sorted(set(tasks) - set(ordered_ids))
                raise InvalidRequestError(
                    f"Reorder must list every task of job {job_id} exactly once "
                    f"(unknown: {foreign}, missing: {missing})"
                )
            reordered = []
            for index, task_id in enumerate(ordered_ids):
                task = tasks[task_id]
                task.position = index
                reordered.append(task)
            self.storage.update_tasks(reordered)
        logger.info(f"Reordered {len(reordered)} task(s) of job {job_id}")
        return reordered

    def complete(self, task_id: str, completed_by: Optional[str] = None) -> Task:
        """Mark a task done. Completing a done task changes nothing."""
        with self.storage.transaction():
            task = self.get(task_id)
            if task.is_completed:
                return task
            self._mark(task, completed_by)
            self.storage.update_tasks([task])
        logger.info(f"Task {task_id} completed")
        return task

    def complete_all(self, job_id: str, task_ids: Optional[List[str]] = None, completed_by: Optional[str] = None) -> List[Task]:
        """Complete several tasks of one job as a batch.

        ``task_ids`` defaults to every task of the job.
        """
        with self.storage.transaction():
            tasks = {t.id: t for t in self.storage.list_tasks(job_id)}
            if task_ids is None:
                task_ids = list(tasks)
            foreign = sorted(set(task_ids) - set(tasks))
            if foreign:
                raise InvalidRequestError(f"Tasks do not belong to job {job_id}: {foreign}")
            changed = []
            for task_id in dict.fromkeys(task_ids):
                task = tasks[task_id]
                if not task.is_completed:
                    self._mark(task, completed_by)
                    changed.append(task)
            if changed:
                self.storage.update_tasks(changed)
        logger.info(f"Completed {len(changed)} task(s) of job {job_id}")
        return [tasks[t] for t in dict.fromkeys(task_ids)]

    @staticmethod
    def _mark(task: Task, completed_by: Optional[str]) -> None:
        task.is_completed = True
        task.completed_at = utc_now()
        task.completed_by = completed_by
