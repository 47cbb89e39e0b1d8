"""
Storage protocol for marketplace records.

A backend persists jobs, applications, tasks, earnings, payments, reviews and
the job transition log, and provides a transaction boundary so that a
lifecycle intent commits or fails as one unit.
"""

from typing import ContextManager, List, Optional, Protocol

from gigmarket.applications.models import Application, ApplicationStatus
from gigmarket.earnings.models import Earning, EarningStatus
from gigmarket.jobs.models import Job, JobStateTransition, JobStatus
from gigmarket.payments.models import Payment
from gigmarket.reviews.models import Review
from gigmarket.tasks.models import Task


class MarketplaceStorage(Protocol):
    """Protocol for marketplace persistence backends."""

    def transaction(self) -> ContextManager["MarketplaceStorage"]:
        """Open a re-entrant transaction.

        Nested calls join the outermost transaction. Any exception escaping the
        outermost block discards every write made inside it. Transactions on
        the same backend are serialized.
        """
        ...

    def ping(self) -> bool:
        """Return True when the backend is reachable."""
        ...

    # Jobs
    def save_job(self, job: Job) -> str:
        """Insert a new job. Returns the job ID."""
        ...

    def get_job(self, job_id: str) -> Optional[Job]:
        ...

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        poster_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        """List jobs newest first with optional filters."""
        ...

    def update_job(self, job: Job, expected_version: Optional[int] = None) -> bool:
        """Compare-and-set update of a job.

        ``expected_version`` defaults to ``job.version``. On success the stored
        version and ``job.version`` are incremented.

        Returns False if the job does not exist.
        Raises VersionConflictError if the stored version differs.
        """
        ...

    # Applications
    def save_application(self, application: Application) -> str:
        ...

    def get_application(self, application_id: str) -> Optional[Application]:
        ...

    def list_applications(
        self,
        job_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        status: Optional[ApplicationStatus] = None,
        limit: int = 100,
    ) -> List[Application]:
        """List applications oldest first with optional filters."""
        ...

    def update_application(self, application: Application) -> bool:
        ...

    # Tasks
    def save_tasks(self, tasks: List[Task]) -> List[str]:
        """Insert tasks as one batch."""
        ...

    def get_task(self, task_id: str) -> Optional[Task]:
        ...

    def list_tasks(self, job_id: str) -> List[Task]:
        """List a job's tasks ordered by position."""
        ...

    def update_tasks(self, tasks: List[Task]) -> None:
        """Write every given task as one batch."""
        ...

    def delete_task(self, task_id: str) -> bool:
        ...

    # Earnings
    def save_earning(self, earning: Earning) -> str:
        ...

    def get_earning(self, earning_id: str) -> Optional[Earning]:
        ...

    def list_earnings(
        self,
        job_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        status: Optional[EarningStatus] = None,
    ) -> List[Earning]:
        ...

    def update_earning(self, earning: Earning) -> bool:
        ...

    # Payments
    def save_payment(self, payment: Payment) -> str:
        ...

    def list_payments(self, job_id: str) -> List[Payment]:
        """List a job's payment records oldest first."""
        ...

    # Reviews
    def save_review(self, review: Review) -> str:
        ...

    def list_reviews(
        self,
        job_id: Optional[str] = None,
        reviewer_id: Optional[str] = None,
        reviewee_id: Optional[str] = None,
    ) -> List[Review]:
        ...

    # Transitions (audit log)
    def save_transition(self, transition: JobStateTransition) -> str:
        ...

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        """Get all state transitions for a job, oldest first."""
        ...
