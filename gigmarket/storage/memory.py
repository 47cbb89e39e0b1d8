"""
In-memory marketplace storage.

Used by the test suite and for local development. A single re-entrant lock
serializes transactions; the outermost transaction snapshots all tables and
restores them if the block raises. Records are copied on the way in and out
so callers can never mutate stored state without going through an update.
"""

import contextlib
import copy
import itertools
import logging
import threading
from typing import Dict, List, Optional

from gigmarket.applications.models import Application, ApplicationStatus
from gigmarket.earnings.models import Earning, EarningStatus
from gigmarket.jobs.models import Job, JobStateTransition, JobStatus
from gigmarket.payments.models import Payment
from gigmarket.reviews.models import Review
from gigmarket.tasks.models import Task
from gigmarket.types import VersionConflictError, utc_now

logger = logging.getLogger(__name__)


def _status_value(status) -> Optional[str]:
    if status is None:
        return None
    return status.value if hasattr(status, "value") else status


class InMemoryStorage:
    """In-memory storage for testing and local development."""

    _TABLES = ("_jobs", "_applications", "_tasks", "_earnings", "_payments", "_reviews", "_transitions", "_order")

    def __init__(self):
        """Initialize empty storage."""
        self._lock = threading.RLock()
        self._depth = 0
        self._seq = itertools.count()
        self._jobs: Dict[str, Job] = {}
        self._applications: Dict[str, Application] = {}
        self._tasks: Dict[str, Task] = {}
        self._earnings: Dict[str, Earning] = {}
        self._payments: Dict[str, Payment] = {}
        self._reviews: Dict[str, Review] = {}
        self._transitions: Dict[str, List[JobStateTransition]] = {}  # job_id -> list
        self._order: Dict[str, int] = {}  # record id -> insertion sequence

    # === Transactions ===

    @contextlib.contextmanager
    def transaction(self):
        with self._lock:
            outermost = self._depth == 0
            snapshot = self._snapshot() if outermost else None
            self._depth += 1
            try:
                yield self
            except BaseException as e:
                if outermost:
                    logger.debug(f"Transaction failed, rolling back: {e}")
                    self._restore(snapshot)
                raise
            finally:
                self._depth -= 1

    def _snapshot(self) -> dict:
        return {name: copy.deepcopy(getattr(self, name)) for name in self._TABLES}

    def _restore(self, snapshot: dict) -> None:
        for name, value in snapshot.items():
            setattr(self, name, value)

    def _remember(self, record_id: str) -> None:
        self._order.setdefault(record_id, next(self._seq))

    def ping(self) -> bool:
        return True

    # === Jobs ===

    def save_job(self, job: Job) -> str:
        with self._lock:
            self._jobs[job.id] = copy.deepcopy(job)
            self._transitions.setdefault(job.id, [])
            self._remember(job.id)
            return job.id

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        poster_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        with self._lock:
            jobs = list(self._jobs.values())

            status_val = _status_value(status)
            if status_val is not None:
                jobs = [j for j in jobs if j.status == status_val]
            if poster_id is not None:
                jobs = [j for j in jobs if j.poster_id == poster_id]
            if worker_id is not None:
                jobs = [j for j in jobs if j.worker_id == worker_id]
            if category is not None:
                jobs = [j for j in jobs if j.category == category]

            # Newest first
            jobs.sort(key=lambda j: (j.date_posted or utc_now(), self._order.get(j.id, 0)), reverse=True)

            return [copy.deepcopy(j) for j in jobs[offset : offset + limit]]

    def update_job(self, job: Job, expected_version: Optional[int] = None) -> bool:
        if expected_version is None:
            expected_version = job.version
        with self._lock:
            current = self._jobs.get(job.id)
            if current is None:
                return False
            if current.version != expected_version:
                raise VersionConflictError("jobs", job.id, expected_version, current.version)
            job.version = expected_version + 1
            job.updated_at = utc_now()
            self._jobs[job.id] = copy.deepcopy(job)
            return True

    # === Applications ===

    def save_application(self, application: Application) -> str:
        with self._lock:
            self._applications[application.id] = copy.deepcopy(application)
            self._remember(application.id)
            return application.id

    def get_application(self, application_id: str) -> Optional[Application]:
        with self._lock:
            app = self._applications.get(application_id)
            return copy.deepcopy(app) if app else None

    def list_applications(
        self,
        job_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        status: Optional[ApplicationStatus] = None,
        limit: int = 100,
    ) -> List[Application]:
        with self._lock:
            apps = list(self._applications.values())

            if job_id is not None:
                apps = [a for a in apps if a.job_id == job_id]
            if worker_id is not None:
                apps = [a for a in apps if a.worker_id == worker_id]
            status_val = _status_value(status)
            if status_val is not None:
                apps = [a for a in apps if a.status == status_val]

            apps.sort(key=lambda a: self._order.get(a.id, 0))
            return [copy.deepcopy(a) for a in apps[:limit]]

    def update_application(self, application: Application) -> bool:
        with self._lock:
            if application.id not in self._applications:
                return False
            self._applications[application.id] = copy.deepcopy(application)
            return True

    # === Tasks ===

    def save_tasks(self, tasks: List[Task]) -> List[str]:
        with self._lock:
            for task in tasks:
                self._tasks[task.id] = copy.deepcopy(task)
                self._remember(task.id)
            return [t.id for t in tasks]

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            return copy.deepcopy(task) if task else None

    def list_tasks(self, job_id: str) -> List[Task]:
        with self._lock:
            tasks = [t for t in self._tasks.values() if t.job_id == job_id]
            tasks.sort(key=lambda t: (t.position, self._order.get(t.id, 0)))
            return [copy.deepcopy(t) for t in tasks]

    def update_tasks(self, tasks: List[Task]) -> None:
        with self._lock:
            missing = [t.id for t in tasks if t.id not in self._tasks]
            if missing:
                raise KeyError(f"Unknown task ids: {missing}")
            for task in tasks:
                self._tasks[task.id] = copy.deepcopy(task)

    def delete_task(self, task_id: str) -> bool:
        with self._lock:
            return self._tasks.pop(task_id, None) is not None

    # === Earnings ===

    def save_earning(self, earning: Earning) -> str:
        with self._lock:
            self._earnings[earning.id] = copy.deepcopy(earning)
            self._remember(earning.id)
            return earning.id

    def get_earning(self, earning_id: str) -> Optional[Earning]:
        with self._lock:
            earning = self._earnings.get(earning_id)
            return copy.deepcopy(earning) if earning else None

    def list_earnings(
        self,
        job_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        status: Optional[EarningStatus] = None,
    ) -> List[Earning]:
        with self._lock:
            earnings = list(self._earnings.values())
            if job_id is not None:
                earnings = [e for e in earnings if e.job_id == job_id]
            if worker_id is not None:
                earnings = [e for e in earnings if e.worker_id == worker_id]
            status_val = _status_value(status)
            if status_val is not None:
                earnings = [e for e in earnings if e.status == status_val]
            earnings.sort(key=lambda e: self._order.get(e.id, 0), reverse=True)
            return [copy.deepcopy(e) for e in earnings]

    def update_earning(self, earning: Earning) -> bool:
        with self._lock:
            if earning.id not in self._earnings:
                return False
            self._earnings[earning.id] = copy.deepcopy(earning)
            return True

    # === Payments ===

    def save_payment(self, payment: Payment) -> str:
        with self._lock:
            self._payments[payment.id] = copy.deepcopy(payment)
            self._remember(payment.id)
            return payment.id

    def list_payments(self, job_id: str) -> List[Payment]:
        with self._lock:
            payments = [p for p in self._payments.values() if p.job_id == job_id]
            payments.sort(key=lambda p: self._order.get(p.id, 0))
            return [copy.deepcopy(p) for p in payments]

    # === Reviews ===

    def save_review(self, review: Review) -> str:
        with self._lock:
            self._reviews[review.id] = copy.deepcopy(review)
            self._remember(review.id)
            return review.id

    def list_reviews(
        self,
        job_id: Optional[str] = None,
        reviewer_id: Optional[str] = None,
        reviewee_id: Optional[str] = None,
    ) -> List[Review]:
        with self._lock:
            reviews = list(self._reviews.values())
            if job_id is not None:
                reviews = [r for r in reviews if r.job_id == job_id]
            if reviewer_id is not None:
                reviews = [r for r in reviews if r.reviewer_id == reviewer_id]
            if reviewee_id is not None:
                reviews = [r for r in reviews if r.reviewee_id == reviewee_id]
            reviews.sort(key=lambda r: self._order.get(r.id, 0), reverse=True)
            return [copy.deepcopy(r) for r in reviews]

    # === Transitions ===

    def save_transition(self, transition: JobStateTransition) -> str:
        with self._lock:
            self._transitions.setdefault(transition.job_id, []).append(copy.deepcopy(transition))
            return transition.id

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        with self._lock:
            return [copy.deepcopy(t) for t in self._transitions.get(job_id, [])]
