"""Tests for the task store: ordering, completion and terminal-job locking."""

from decimal import Decimal

import pytest

from gigmarket.config import MarketplaceConfig
from gigmarket.errors import InvalidRequestError, InvalidTransitionError, JobNotFoundError, TaskNotFoundError
from gigmarket.jobs.models import JobStatus
from gigmarket.jobs.store import JobStore
from gigmarket.tasks.models import TaskDraft
from gigmarket.tasks.store import TaskStore

from support import POSTER, WORKER, make_draft


@pytest.fixture
def jobs(storage):
    return JobStore(storage, MarketplaceConfig(require_upfront_payment=False))


@pytest.fixture
def tasks(storage, jobs):
    return TaskStore(storage, jobs)


@pytest.fixture
def job(jobs):
    return jobs.create_job(make_draft(), POSTER)


def _positions(tasks, job_id):
    return [(t.description, t.position) for t in tasks.list_for_job(job_id)]


class TestAddTasks:
    """Tests for adding tasks."""

    def test_batch_positions_follow_input_order(self, tasks, job):
        created = tasks.add_tasks_batch(job.id, ["One", "Two", "Three", "Four"])
        assert [t.position for t in created] == [0, 1, 2, 3]
        assert _positions(tasks, job.id) == [("One", 0), ("Two", 1), ("Three", 2), ("Four", 3)]

    def test_single_task_appended(self, tasks, job):
        tasks.add_tasks_batch(job.id, ["One", "Two"])
        added = tasks.add_task(job.id, TaskDraft(description="Three", bonus_amount=Decimal("5")))
        assert added.position == 2
        assert added.bonus_amount == Decimal("5.00")

    def test_second_batch_continues_numbering(self, tasks, job):
        tasks.add_tasks_batch(job.id, ["One"])
        second = tasks.add_tasks_batch(job.id, ["Two", "Three"])
        assert [t.position for t in second] == [1, 2]

    def test_batch_is_all_or_nothing(self, tasks, job):
        with pytest.raises(InvalidRequestError):
            tasks.add_tasks_batch(job.id, ["Fine", "  "])
        assert tasks.list_for_job(job.id) == []

    def test_unknown_draft_field(self, tasks, job):
        with pytest.raises(InvalidRequestError, match="Invalid task"):
            tasks.add_tasks_batch(job.id, [{"description": "x", "colour": "red"}])

    def test_unknown_job(self, tasks):
        with pytest.raises(JobNotFoundError):
            tasks.add_task("missing", "Anything")


class TestEditTasks:
    """Tests for updating, deleting and reordering."""

    def test_update_descriptive_fields(self, tasks, job):
        task = tasks.add_task(job.id, "Sweep")
        updated = tasks.update_task(task.id, {"description": "Sweep and mop", "is_optional": True})
        assert updated.description == "Sweep and mop"
        assert tasks.get(task.id).is_optional is True

    def test_position_not_patchable(self, tasks, job):
        task = tasks.add_task(job.id, "Sweep")
        with pytest.raises(InvalidRequestError, match="not editable"):
            tasks.update_task(task.id, {"position": 5})
        with pytest.raises(InvalidRequestError):
            tasks.update_task(task.id, {"is_completed": True})

    def test_delete_compacts_positions(self, tasks, job):
        a, b, c, d = tasks.add_tasks_batch(job.id, ["A", "B", "C", "D"])
        tasks.delete_task(b.id)
        assert _positions(tasks, job.id) == [("A", 0), ("C", 1), ("D", 2)]
        with pytest.raises(TaskNotFoundError):
            tasks.get(b.id)

    def test_reorder_is_a_permutation(self, tasks, job):
        a, b, c = tasks.add_tasks_batch(job.id, ["A", "B", "C"])
        reordered = tasks.reorder(job.id, [c.id, a.id, b.id])
        assert [t.id for t in reordered] == [c.id, a.id, b.id]
        assert _positions(tasks, job.id) == [("C", 0), ("A", 1), ("B", 2)]

    def test_reorder_rejects_missing_ids(self, tasks, job):
        a, b, c = tasks.add_tasks_batch(job.id, ["A", "B", "C"])
        with pytest.raises(InvalidRequestError, match="exactly once"):
            tasks.reorder(job.id, [a.id, b.id])
        assert _positions(tasks, job.id) == [("A", 0), ("B", 1), ("C", 2)]

    def test_reorder_rejects_duplicates_and_foreign_ids(self, tasks, jobs, job):
        a, b = tasks.add_tasks_batch(job.id, ["A", "B"])
        other_job = jobs.create_job(make_draft(title="Other"), POSTER)
        (foreign,) = tasks.add_tasks_batch(other_job.id, ["X"])
        with pytest.raises(InvalidRequestError, match="Duplicate"):
            tasks.reorder(job.id, [a.id, a.id])
        with pytest.raises(InvalidRequestError):
            tasks.reorder(job.id, [a.id, foreign.id])


class TestCompletion:
    """Tests for completing tasks."""

    def test_complete_is_idempotent(self, tasks, job):
        task = tasks.add_task(job.id, "Sweep")
        first = tasks.complete(task.id, completed_by=WORKER)
        assert first.is_completed
        assert first.completed_by == WORKER
        again = tasks.complete(task.id, completed_by="someone-else")
        assert again.completed_at == first.completed_at
        assert again.completed_by == WORKER

    def test_complete_all(self, tasks, job):
        created = tasks.add_tasks_batch(job.id, ["A", "B", "C"])
        done = tasks.complete_all(job.id, completed_by=WORKER)
        assert [t.id for t in done] == [t.id for t in created]
        assert tasks.outstanding_required(job.id) == []

    def test_complete_subset(self, tasks, job):
        a, b, c = tasks.add_tasks_batch(job.id, ["A", "B", "C"])
        tasks.complete_all(job.id, [a.id, c.id])
        assert [t.id for t in tasks.outstanding_required(job.id)] == [b.id]

    def test_complete_all_rejects_foreign_ids(self, tasks, job):
        (a,) = tasks.add_tasks_batch(job.id, ["A"])
        with pytest.raises(InvalidRequestError, match="do not belong"):
            tasks.complete_all(job.id, [a.id, "elsewhere"])
        assert not tasks.get(a.id).is_completed

    def test_optional_tasks_not_outstanding(self, tasks, job):
        tasks.add_tasks_batch(job.id, [{"description": "Optional", "is_optional": True}])
        assert tasks.outstanding_required(job.id) == []


class TestTerminalJobs:
    def test_tasks_of_canceled_job_are_locked(self, tasks, jobs, job):
        task = tasks.add_task(job.id, "Sweep")
        jobs.update_status(job.id, JobStatus.CANCELED, POSTER)
        with pytest.raises(InvalidTransitionError):
            tasks.add_task(job.id, "Another")
        with pytest.raises(InvalidTransitionError):
            tasks.update_task(task.id, {"notes": "late"})
        with pytest.raises(InvalidTransitionError):
            tasks.delete_task(task.id)
        with pytest.raises(InvalidTransitionError):
            tasks.reorder(job.id, [task.id])
