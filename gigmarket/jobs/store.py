"""
Job store.

Owns job records and their status field. Every status change goes through
``transition()``, which enforces the transition table, the completion gate on
outstanding required tasks and the optimistic version check, and appends an
entry to the transition log.
"""

import dataclasses
import logging
import uuid
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from gigmarket.config import MarketplaceConfig
from gigmarket.errors import (
    IncompleteTasksError,
    InvalidRequestError,
    InvalidTransitionError,
    JobNotFoundError,
)
from gigmarket.fees import FeePolicy
from gigmarket.jobs.models import (
    EDITABLE_JOB_FIELDS,
    PRICING_FIELDS,
    REQUIRED_JOB_FIELDS,
    WORKER_STATUSES,
    Job,
    JobDraft,
    JobStateTransition,
    JobStatus,
    PaymentType,
)
from gigmarket.payments.models import PaymentKind
from gigmarket.types import VersionConflictError, to_money, utc_now

if TYPE_CHECKING:
    from gigmarket.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)

# Timestamp stamped the first time a job enters a status
_STATUS_TIMESTAMPS = {
    JobStatus.ASSIGNED: "assigned_at",
    JobStatus.IN_PROGRESS: "started_at",
    JobStatus.COMPLETED: "date_completed",
    JobStatus.CANCELED: "canceled_at",
}

_UNPAID_STATUSES = frozenset({JobStatus.PENDING_PAYMENT.value, JobStatus.PAYMENT_FAILED.value})


class JobStore:
    """Job records and the job status state machine."""

    def __init__(self, storage: "MarketplaceStorage", config: Optional[MarketplaceConfig] = None):
        self.storage = storage
        self.config = config or MarketplaceConfig()
        self.fees = FeePolicy.from_config(self.config)

    def initial_status(self, payment_type: str) -> JobStatus:
        """Paid job types wait for the poster's charge before opening."""
        if self.config.require_upfront_payment and payment_type == PaymentType.FIXED.value:
            return JobStatus.PENDING_PAYMENT
        return JobStatus.OPEN

    def _check_payment_amount(self, amount) -> None:
        if to_money(amount) < self.config.minimum_payment:
            raise InvalidRequestError(f"Minimum payment is ${self.config.minimum_payment}")

    def create_job(self, draft: JobDraft, poster_id: str) -> Job:
        """Create a job from a poster's draft.

        Raises:
            InvalidRequestError: If the draft is invalid
        """
        payment_type = draft.payment_type.value if isinstance(draft.payment_type, PaymentType) else draft.payment_type
        try:
            self._check_payment_amount(draft.payment_amount)
            status = self.initial_status(payment_type)
            now = utc_now()
            job = Job(
                id=str(uuid.uuid4()),
                poster_id=poster_id,
                title=draft.title,
                description=draft.description,
                payment_amount=draft.payment_amount,
                service_fee=self.fees.service_fee(draft.payment_amount),
                payment_type=payment_type,
                category=draft.category,
                status=status,
                location=draft.location,
                latitude=draft.latitude,
                longitude=draft.longitude,
                date_needed=draft.date_needed,
                required_skills=draft.required_skills,
                equipment_provided=draft.equipment_provided,
                date_posted=now,
                updated_at=now,
            )
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e

        with self.storage.transaction():
            self.storage.save_job(job)
            self._record_transition(job.id, None, status, poster_id)

        logger.info(f"Created job {job.id} for poster {poster_id} ({job.status}, total {job.total_amount})")
        return job

    def get_by_id(self, job_id: str) -> Job:
        """Get a job by ID.

        Raises:
            JobNotFoundError: If job doesn't exist
        """
        job = self.storage.get_job(job_id)
        if not job:
            raise JobNotFoundError(job_id)
        return job

    def list_by_filter(
        self,
        poster_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        category: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        if status is not None:
            try:
                status = JobStatus(status)
            except ValueError as e:
                raise InvalidRequestError(f"Invalid status: {status}") from e
        return self.storage.list_jobs(
            status=status,
            poster_id=poster_id,
            worker_id=worker_id,
            category=category,
            limit=limit,
            offset=offset,
        )

    def history(self, job_id: str) -> List[JobStateTransition]:
        self.get_by_id(job_id)
        return self.storage.get_transitions(job_id)

    def update_status(
        self,
        job_id: str,
        new_status: JobStatus,
        actor_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        **changes,
    ) -> Job:
        """Load a job and move it to ``new_status``.

        Raises:
            JobNotFoundError: If job doesn't exist
            InvalidTransitionError: If the transition is not allowed
            IncompleteTasksError: If completing with outstanding required tasks
        """
        with self.storage.transaction():
            job = self.get_by_id(job_id)
            return self.transition(job, new_status, actor_id, metadata, **changes)

    def transition(
        self,
        job: Job,
        new_status: JobStatus,
        actor_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        **changes,
    ) -> Job:
        """Move an already loaded job to ``new_status``.

        ``changes`` are applied together with the status (e.g. ``worker_id``
        on assignment). Leaving the worker statuses clears the worker.
        """
        new_status = JobStatus(new_status)
        if not job.can_transition_to(new_status):
            raise InvalidTransitionError(f"Cannot transition job from {job.status} to {new_status.value}")

        if new_status == JobStatus.COMPLETED:
            outstanding = [t.id for t in self.storage.list_tasks(job.id) if t.is_outstanding]
            if outstanding:
                raise IncompleteTasksError(job.id, outstanding)

        metadata = dict(metadata or {})
        if new_status not in WORKER_STATUSES and job.worker_id:
            changes.setdefault("worker_id", None)
            metadata.setdefault("worker_id", job.worker_id)

        stamp = _STATUS_TIMESTAMPS.get(new_status)
        if stamp and getattr(job, stamp) is None:
            changes.setdefault(stamp, utc_now())

        try:
            updated = dataclasses.replace(job, status=new_status.value, **changes)
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e

        self._save(updated, job.version)
        self._record_transition(job.id, job.status, new_status, actor_id, metadata)
        logger.info(f"Job {job.id}: {job.status} -> {new_status.value} | actor={actor_id}")
        return updated

    def update_details(self, job_id: str, changes: Dict[str, Any]) -> Job:
        """Edit a job's descriptive fields.

        Status and worker are never patchable here; they only change through
        lifecycle transitions.
        """
        if "status" in changes or "worker_id" in changes:
            raise InvalidRequestError("Job status cannot be changed directly; use the lifecycle actions")
        unknown = set(changes) - EDITABLE_JOB_FIELDS
        if unknown:
            raise InvalidRequestError(f"Fields not editable: {sorted(unknown)}")
        cleared = sorted(f for f in REQUIRED_JOB_FIELDS if f in changes and changes[f] is None)
        if cleared:
            raise InvalidRequestError(f"Fields cannot be cleared: {cleared}")

        with self.storage.transaction():
            job = self.get_by_id(job_id)
            if job.is_terminal:
                raise InvalidTransitionError(f"Cannot edit job in status: {job.status}")

            changes = dict(changes)
            if PRICING_FIELDS & set(changes):
                if not self._pricing_editable(job):
                    raise InvalidTransitionError(f"Cannot change pricing of job in status: {job.status}")
                if "payment_amount" in changes:
                    try:
                        self._check_payment_amount(changes["payment_amount"])
                        changes["service_fee"] = self.fees.service_fee(changes["payment_amount"])
                    except ValueError as e:
                        raise InvalidRequestError(str(e)) from e

            try:
                updated = dataclasses.replace(job, **changes)
            except (TypeError, ValueError) as e:
                raise InvalidRequestError(str(e)) from e
            self._save(updated, job.version)

        logger.info(f"Updated job {job_id} fields {sorted(changes)}")
        return updated

    def _pricing_editable(self, job: Job) -> bool:
        if job.status in _UNPAID_STATUSES:
            return True
        if job.status != JobStatus.OPEN.value:
            return False
        return not any(p.kind == PaymentKind.CHARGE.value and p.succeeded for p in self.storage.list_payments(job.id))

    def _save(self, job: Job, expected_version: int) -> None:
        try:
            saved = self.storage.update_job(job, expected_version)
        except VersionConflictError as e:
            logger.warning(f"Race condition detected: job {job.id} modified concurrently ({e})")
            raise InvalidTransitionError(f"Job {job.id} was modified concurrently") from e
        if not saved:
            raise JobNotFoundError(job.id)

    def _record_transition(
        self,
        job_id: str,
        from_status: Optional[str],
        to_status: JobStatus,
        actor_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> JobStateTransition:
        transition = JobStateTransition(
            id=str(uuid.uuid4()),
            job_id=job_id,
            from_status=from_status,
            to_status=JobStatus(to_status).value,
            actor_id=actor_id,
            metadata=metadata or {},
            created_at=utc_now(),
        )
        self.storage.save_transition(transition)
        return transition
