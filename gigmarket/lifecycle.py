"""
Job lifecycle controller.

The single entry point for every state-changing marketplace intent: posting
and paying for jobs, applying, accepting, working through tasks, completing,
cancelling and reviewing. Each intent validates against current state and
then mutates the stores inside one storage transaction, so a job's status and
its correlated records (applications, earnings, payments) commit or fail
together.

Payment gateway calls are fallible I/O and never run inside a storage
transaction: state is validated first, the gateway is called, and the outcome
is recorded in a second transaction guarded by the job version. Failures are
recorded in the payment ledger and mapped to a job status (payment_failed) or
a pending earning; they never undo a completed job.
"""

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from gigmarket.applications.models import Application, ApplicationStatus
from gigmarket.applications.store import ApplicationStore
from gigmarket.config import MarketplaceConfig
from gigmarket.earnings.models import Earning
from gigmarket.earnings.store import EarningStore
from gigmarket.errors import (
    IncompleteTasksError,
    InvalidRequestError,
    InvalidTransitionError,
    JobNotOpenError,
    NotFoundError,
    PaymentGatewayError,
    PayoutAccountRequiredError,
    UnauthorizedError,
)
from gigmarket.jobs.models import Job, JobDraft, JobStateTransition, JobStatus
from gigmarket.jobs.store import JobStore
from gigmarket.payments.gateway import GatewayResult, PaymentGateway, PayoutAccountStatus
from gigmarket.payments.ledger import PaymentLedger
from gigmarket.payments.models import Payment, PaymentKind
from gigmarket.payments.receipts import Receipt, build_receipt
from gigmarket.reviews.models import Review
from gigmarket.reviews.store import ReviewStore
from gigmarket.tasks.models import Task
from gigmarket.tasks.store import TaskStore
from gigmarket.types import to_money

if TYPE_CHECKING:
    from gigmarket.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)

PAYMENT_PENDING_MESSAGE = "Job completed. Payment will be processed."
PAYMENT_SENT_MESSAGE = "Job completed. Payment sent."

_PAYABLE_STATUSES = frozenset({JobStatus.PENDING_PAYMENT.value, JobStatus.PAYMENT_FAILED.value})
_WORKING_STATUSES = frozenset({JobStatus.ASSIGNED.value, JobStatus.IN_PROGRESS.value})


@dataclass
class CompletionResult:
    """Outcome of completing a job."""

    job: Job
    earning: Earning
    payment_status: str  # paid | pending
    message: str
    already_completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job.to_dict(),
            "earning": self.earning.to_dict(),
            "payment_status": self.payment_status,
            "message": self.message,
            "already_completed": self.already_completed,
        }


class LifecycleController:
    """Enforces job, application, task and earning transitions.

    Args:
        storage: Persistence backend
        gateway: Payment processor adapter
        config: Marketplace settings (fee policy, payment requirements)
    """

    def __init__(
        self,
        storage: "MarketplaceStorage",
        gateway: PaymentGateway,
        config: Optional[MarketplaceConfig] = None,
    ):
        self.storage = storage
        self.gateway = gateway
        self.config = config or MarketplaceConfig()
        self.jobs = JobStore(storage, self.config)
        self.applications = ApplicationStore(storage, self.jobs)
        self.tasks = TaskStore(storage, self.jobs)
        self.earnings = EarningStore(storage)
        self.reviews = ReviewStore(storage, self.jobs)
        self.ledger = PaymentLedger(storage)
        self._payout_lock = threading.Lock()
        self._payouts_in_flight: Set[str] = set()

    # === Helpers ===

    @staticmethod
    def _require_poster(job: Job, actor_id: str, action: str) -> None:
        if job.poster_id != actor_id:
            raise UnauthorizedError(f"Only the poster can {action}")

    @staticmethod
    def _require_worker(job: Job, actor_id: str, action: str) -> None:
        if not job.worker_id or job.worker_id != actor_id:
            raise UnauthorizedError(f"Only the assigned worker can {action}")

    def _call_gateway(self, operation: str, call: Callable[..., GatewayResult], *args) -> GatewayResult:
        """Run a money-moving gateway call, converting any exception to a failed result."""
        try:
            return call(*args)
        except PaymentGatewayError as e:
            logger.warning(f"Payment gateway {operation} failed: {e}")
            return GatewayResult.failure(str(e), e.error_code)
        except Exception as e:
            logger.exception(f"Payment gateway {operation} raised unexpectedly")
            return GatewayResult.failure(f"Payment gateway error: {e}", "gateway_exception")

    def _ensure_started(self, job: Job, actor_id: str) -> Job:
        """Work on an assigned job implicitly starts it."""
        if job.status == JobStatus.ASSIGNED.value:
            return self.jobs.transition(job, JobStatus.IN_PROGRESS, actor_id, {"implicit": True})
        return job

    # === Jobs ===

    def post_job(
        self,
        poster_id: str,
        draft: JobDraft,
        tasks: Optional[Iterable] = None,
        payment_method_id: Optional[str] = None,
    ) -> Job:
        """Create a job with its task checklist, charging the poster if a payment method is given.

        The job and its tasks are created atomically. A failed charge leaves
        the job in payment_failed for the poster to retry.
        """
        with self.storage.transaction():
            job = self.jobs.create_job(draft, poster_id)
            if tasks:
                self.tasks.add_tasks_batch(job.id, tasks)

        if payment_method_id and job.status == JobStatus.PENDING_PAYMENT.value:
            job, _ = self.process_payment(job.id, poster_id, payment_method_id)
        return job

    def get_job(self, job_id: str) -> Job:
        return self.jobs.get_by_id(job_id)

    def list_jobs(self, **filters) -> List[Job]:
        return self.jobs.list_by_filter(**filters)

    def update_job_details(self, job_id: str, actor_id: str, changes: Dict[str, Any]) -> Job:
        job = self.jobs.get_by_id(job_id)
        self._require_poster(job, actor_id, "edit this job")
        return self.jobs.update_details(job_id, changes)

    def get_job_history(self, job_id: str) -> List[JobStateTransition]:
        """Get the full state transition history for a job."""
        return self.jobs.history(job_id)

    # === Payments ===

    def process_payment(
        self,
        job_id: str,
        actor_id: str,
        payment_method_id: str,
        amount: Optional[Decimal] = None,
    ) -> Tuple[Job, Payment]:
        """Charge the poster for a job awaiting payment.

        Success opens the job; failure moves it to payment_failed. Gateway
        failures are never raised. The charge runs outside any storage
        transaction; if the job changed while it was in flight, a successful
        charge is refunded and the conflict is raised.

        Returns:
            The updated job and the recorded charge

        Raises:
            JobNotFoundError: If job doesn't exist
            UnauthorizedError: If actor is not the poster
            InvalidTransitionError: If the job is not awaiting payment, or was
                paid or canceled while the charge was in flight
            InvalidRequestError: If the amount does not match the job total
        """
        if not payment_method_id:
            raise InvalidRequestError("payment_method_id is required")

        with self.storage.transaction():
            job = self.jobs.get_by_id(job_id)
            self._require_poster(job, actor_id, "pay for this job")
            if job.status not in _PAYABLE_STATUSES:
                raise InvalidTransitionError(f"Cannot process payment for job in status: {job.status}")
            total = job.total_amount
            if amount is not None and to_money(amount) != total:
                raise InvalidRequestError(f"Amount {to_money(amount)} does not match job total {total}")

        result = self._call_gateway(
            "process_payment", self.gateway.process_payment, job.id, actor_id, payment_method_id, total
        )

        try:
            with self.storage.transaction():
                payment = self.ledger.record(job, PaymentKind.CHARGE, result, total, payer_id=actor_id)
                # transition() compares against the version loaded above
                if result.success:
                    job = self.jobs.transition(
                        job, JobStatus.OPEN, actor_id, {"transaction_id": result.transaction_id}
                    )
                elif job.status == JobStatus.PENDING_PAYMENT.value:
                    job = self.jobs.transition(
                        job,
                        JobStatus.PAYMENT_FAILED,
                        actor_id,
                        {"error": result.error, "error_code": result.error_code},
                    )
        except InvalidTransitionError:
            self._settle_stale_charge(job_id, actor_id, result, total)
            raise

        if result.success:
            logger.info(f"Payment for job {job_id} succeeded ({total}) | transaction={result.transaction_id}")
        else:
            logger.warning(f"Payment for job {job_id} failed: {result.error}")
        return job, payment

    def _settle_stale_charge(self, job_id: str, payer_id: str, result: GatewayResult, total: Decimal) -> None:
        """Record a charge whose job moved on while it was in flight, refunding it if it went through."""
        with self.storage.transaction():
            job = self.jobs.get_by_id(job_id)
            charge = self.ledger.record(job, PaymentKind.CHARGE, result, total, payer_id=payer_id)
        if charge.succeeded:
            logger.warning(f"Job {job_id} changed during charge {charge.transaction_id}; refunding it")
            self._refund(job, charge)

    def payout_account_status(self, user_id: str) -> PayoutAccountStatus:
        try:
            return self.gateway.get_connect_account_status(user_id)
        except PaymentGatewayError:
            raise
        except Exception as e:
            raise PaymentGatewayError(f"Could not fetch payout account status: {e}") from e

    def create_payout_account(self, user_id: str, email: Optional[str] = None) -> PayoutAccountStatus:
        try:
            account = self.gateway.create_connect_account(user_id, email)
        except PaymentGatewayError:
            raise
        except Exception as e:
            raise PaymentGatewayError(f"Could not create payout account: {e}") from e
        logger.info(f"Payout account {account.account_id} registered for {user_id}")
        return account

    def generate_receipt(self, job_id: str, actor_id: str) -> Receipt:
        job = self.jobs.get_by_id(job_id)
        if actor_id != job.poster_id and not self._was_worker(job, actor_id):
            raise UnauthorizedError("Only the poster or the worker can view this receipt")
        charge = self.ledger.successful_charge(job_id, include_refunded=True)
        if charge is None:
            raise NotFoundError(job_id, f"No payment recorded for job {job_id}")
        return build_receipt(job, charge, self.config.currency)

    def _was_worker(self, job: Job, user_id: str) -> bool:
        if job.worker_id == user_id:
            return True
        return any(e.worker_id == user_id for e in self.earnings.list_for_job(job.id))

    # === Applications ===

    def apply_to_job(
        self,
        job_id: str,
        worker_id: str,
        message: str = "",
        hourly_rate=None,
        expected_duration: Optional[str] = None,
        cover_letter: Optional[str] = None,
    ) -> Application:
        """Apply to an open job.

        Raises:
            JobNotFoundError: If job doesn't exist
            PayoutAccountRequiredError: If the worker has no verified payout account
            PaymentGatewayError: If the payout account could not be checked
            JobNotOpenError: If job is not open
            DuplicateApplicationError: If the worker already applied
        """
        job = self.jobs.get_by_id(job_id)
        if not job.is_open:
            raise JobNotOpenError(f"Job is not open for applications (status: {job.status})")

        if self.config.require_payout_account:
            account = self.payout_account_status(worker_id)
            if not account.is_verified:
                raise PayoutAccountRequiredError(
                    "Set up and verify a payout account before applying to jobs"
                )

        return self.applications.apply(
            job_id,
            worker_id,
            message,
            hourly_rate=hourly_rate,
            expected_duration=expected_duration,
            cover_letter=cover_letter,
        )

    def accept_application(self, application_id: str, actor_id: str) -> Tuple[Job, Application]:
        """Hire the applicant: application accepted, job assigned, competing applications rejected.

        Raises:
            ApplicationNotFoundError: If application doesn't exist
            UnauthorizedError: If actor is not the poster
            JobNotOpenError: If the job is no longer open
            InvalidTransitionError: If the application is not pending
        """
        with self.storage.transaction():
            application = self.applications.get(application_id)
            job = self.jobs.get_by_id(application.job_id)
            self._require_poster(job, actor_id, "accept applications")
            if not job.is_open:
                raise JobNotOpenError(f"Job is not open (status: {job.status})")
            if not application.is_pending:
                raise InvalidTransitionError(f"Application is already {application.status}")

            job = self.jobs.transition(
                job,
                JobStatus.ASSIGNED,
                actor_id,
                {"application_id": application.id},
                worker_id=application.worker_id,
            )
            application = self.applications.set_status(application.id, ApplicationStatus.ACCEPTED)
            self.applications.reject_pending_siblings(job.id, application.id)

        logger.info(f"Accepted application {application_id} | job={job.id} worker={job.worker_id}")
        return job, application

    def reject_application(self, application_id: str, actor_id: str) -> Application:
        with self.storage.transaction():
            application = self.applications.get(application_id)
            job = self.jobs.get_by_id(application.job_id)
            self._require_poster(job, actor_id, "reject applications")
            return self.applications.set_status(application_id, ApplicationStatus.REJECTED)

    def list_applications_for_job(self, job_id: str, actor_id: str) -> List[Application]:
        job = self.jobs.get_by_id(job_id)
        self._require_poster(job, actor_id, "view applications")
        return self.applications.list_for_job(job_id)

    def list_applications_for_worker(self, worker_id: str, actor_id: str) -> List[Application]:
        if worker_id != actor_id:
            raise UnauthorizedError("Workers can only view their own applications")
        return self.applications.list_for_worker(worker_id)

    def set_application_status(self, application_id: str, actor_id: str, status: str) -> Application:
        """Accept or reject, as requested by an application PATCH."""
        if status == ApplicationStatus.ACCEPTED.value:
            return self.accept_application(application_id, actor_id)[1]
        if status == ApplicationStatus.REJECTED.value:
            return self.reject_application(application_id, actor_id)
        raise InvalidRequestError(f"Invalid application status: {status}")

    # === Tasks ===

    def add_task(self, job_id: str, actor_id: str, task) -> Task:
        return self.add_tasks_batch(job_id, actor_id, [task])[0]

    def add_tasks_batch(self, job_id: str, actor_id: str, tasks: Iterable) -> List[Task]:
        with self.storage.transaction():
            job = self.jobs.get_by_id(job_id)
            self._require_poster(job, actor_id, "add tasks")
            return self.tasks.add_tasks_batch(job_id, tasks)

    def update_task(self, task_id: str, actor_id: str, changes: Dict[str, Any]) -> Task:
        with self.storage.transaction():
            task = self.tasks.get(task_id)
            self._require_poster(self.jobs.get_by_id(task.job_id), actor_id, "edit tasks")
            return self.tasks.update_task(task_id, changes)

    def delete_task(self, task_id: str, actor_id: str) -> Task:
        with self.storage.transaction():
            task = self.tasks.get(task_id)
            self._require_poster(self.jobs.get_by_id(task.job_id), actor_id, "delete tasks")
            return self.tasks.delete_task(task_id)

    def reorder_tasks(self, job_id: str, actor_id: str, ordered_ids: List[str]) -> List[Task]:
        with self.storage.transaction():
            self._require_poster(self.jobs.get_by_id(job_id), actor_id, "reorder tasks")
            return self.tasks.reorder(job_id, ordered_ids)

    def list_tasks(self, job_id: str) -> List[Task]:
        return self.tasks.list_for_job(job_id)

    def _working_job(self, job_id: str, actor_id: str) -> Job:
        job = self.jobs.get_by_id(job_id)
        self._require_worker(job, actor_id, "complete tasks")
        if job.status not in _WORKING_STATUSES:
            raise InvalidTransitionError(f"Cannot complete tasks of job in status: {job.status}")
        return self._ensure_started(job, actor_id)

    def complete_task(self, task_id: str, actor_id: str) -> Task:
        with self.storage.transaction():
            task = self.tasks.get(task_id)
            self._working_job(task.job_id, actor_id)
            return self.tasks.complete(task_id, completed_by=actor_id)

    def complete_all_tasks(self, job_id: str, actor_id: str, task_ids: Optional[List[str]] = None) -> List[Task]:
        with self.storage.transaction():
            self._working_job(job_id, actor_id)
            return self.tasks.complete_all(job_id, task_ids, completed_by=actor_id)

    def start_job(self, job_id: str, actor_id: str) -> Job:
        with self.storage.transaction():
            job = self.jobs.get_by_id(job_id)
            self._require_worker(job, actor_id, "start this job")
            return self.jobs.transition(job, JobStatus.IN_PROGRESS, actor_id)

    # === Completion & payouts ===

    def complete_job(self, job_id: str, actor_id: str) -> CompletionResult:
        """Mark a job completed and pay the worker.

        Completing an already completed job is a no-op that returns the
        existing earning. Payout failures leave the earning pending.

        Raises:
            JobNotFoundError: If job doesn't exist
            UnauthorizedError: If actor is not the assigned worker
            InvalidTransitionError: If the job is not assigned or in progress
            IncompleteTasksError: If required tasks are outstanding
        """
        with self.storage.transaction():
            job = self.jobs.get_by_id(job_id)
            self._require_worker(job, actor_id, "complete this job")

            if job.status == JobStatus.COMPLETED.value:
                earning = self.earnings.create_for_job(job)
                already_completed = True
            else:
                if job.status not in _WORKING_STATUSES:
                    raise InvalidTransitionError(f"Cannot complete job in status: {job.status}")
                outstanding = self.tasks.outstanding_required(job.id)
                if outstanding:
                    raise IncompleteTasksError(job.id, [t.id for t in outstanding])
                job = self._ensure_started(job, actor_id)
                job = self.jobs.transition(job, JobStatus.COMPLETED, actor_id)
                earning = self.earnings.create_for_job(job)
                already_completed = False

        if not already_completed:
            try:
                earning, _ = self._pay_worker(job, earning)
            except InvalidTransitionError:
                logger.info(f"Payout for earning {earning.id} already in flight; leaving it pending")

        paid = not earning.is_pending
        return CompletionResult(
            job=job,
            earning=earning,
            payment_status=earning.status,
            message=PAYMENT_SENT_MESSAGE if paid else PAYMENT_PENDING_MESSAGE,
            already_completed=already_completed,
        )

    def _pay_worker(self, job: Job, earning: Earning) -> Tuple[Earning, GatewayResult]:
        """Transfer a pending earning; the gateway call runs outside any transaction.

        Raises:
            InvalidTransitionError: If a transfer for the earning is already in flight
        """
        with self._payout_lock:
            if earning.id in self._payouts_in_flight:
                raise InvalidTransitionError(f"Payout for earning {earning.id} is already in progress")
            self._payouts_in_flight.add(earning.id)
        try:
            result = self._call_gateway(
                "pay_worker", self.gateway.pay_worker, job.id, earning.worker_id, earning.amount
            )
            with self.storage.transaction():
                self.ledger.record(job, PaymentKind.TRANSFER, result, earning.amount, payee_id=earning.worker_id)
                if result.success:
                    current = self.earnings.get(earning.id)
                    if current.is_pending:
                        earning = self.earnings.mark_paid(earning.id, result.transaction_id)
                    else:
                        logger.error(
                            f"Earning {earning.id} was already paid; transfer {result.transaction_id} "
                            f"needs reconciliation"
                        )
                        earning = current
        finally:
            with self._payout_lock:
                self._payouts_in_flight.discard(earning.id)

        if not result.success:
            logger.warning(f"Payout for job {job.id} failed, earning {earning.id} left pending: {result.error}")
        return earning, result

    def retry_payout(self, earning_id: str, actor_id: Optional[str] = None) -> Earning:
        """Re-attempt the transfer of a pending earning.

        ``actor_id`` None means an operator; otherwise it must be the worker.

        Raises:
            EarningNotFoundError: If earning doesn't exist
            InvalidTransitionError: If the earning is already paid or its payout is in flight
            PaymentGatewayError: If the transfer fails again
        """
        with self.storage.transaction():
            earning = self.earnings.get(earning_id)
            if actor_id is not None and actor_id != earning.worker_id:
                raise UnauthorizedError("Only the worker can retry this payout")
            if not earning.is_pending:
                raise InvalidTransitionError(f"Earning {earning_id} is already {earning.status}")
            job = self.jobs.get_by_id(earning.job_id)

        earning, result = self._pay_worker(job, earning)
        if not result.success:
            raise PaymentGatewayError(f"Payout failed: {result.error}", error_code=result.error_code)
        return earning

    def list_earnings_for_worker(self, worker_id: str, actor_id: str) -> List[Earning]:
        if worker_id != actor_id:
            raise UnauthorizedError("Workers can only view their own earnings")
        return self.earnings.list_for_worker(worker_id)

    def list_earnings_for_job(self, job_id: str, actor_id: str) -> List[Earning]:
        job = self.jobs.get_by_id(job_id)
        if actor_id != job.poster_id and not self._was_worker(job, actor_id):
            raise UnauthorizedError("Only the poster or the worker can view earnings for this job")
        return self.earnings.list_for_job(job_id)

    def retry_pending_payouts(self) -> List[Tuple[Earning, bool]]:
        """Retry every pending earning; returns (earning, paid) pairs."""
        outcomes = []
        for earning in self.earnings.list_pending():
            try:
                outcomes.append((self.retry_payout(earning.id), True))
            except PaymentGatewayError as e:
                logger.warning(f"Retry of earning {earning.id} failed: {e}")
                outcomes.append((earning, False))
            except InvalidTransitionError as e:
                logger.info(f"Skipping earning {earning.id}: {e}")
        return outcomes

    # === Cancellation ===

    def cancel_job(self, job_id: str, actor_id: str, reason: Optional[str] = None) -> Job:
        """Cancel a job.

        Pending applications are rejected. A charge is refunded when the
        worker never started; in-progress cancellations are settled manually.

        Raises:
            JobNotFoundError: If job doesn't exist
            UnauthorizedError: If actor is not the poster
            InvalidTransitionError: If the job is completed or already canceled
        """
        with self.storage.transaction():
            job = self.jobs.get_by_id(job_id)
            self._require_poster(job, actor_id, "cancel this job")
            if not job.is_cancelable:
                raise InvalidTransitionError(f"Cannot cancel job in status: {job.status}")

            was_started = job.status == JobStatus.IN_PROGRESS.value
            previous_worker = job.worker_id
            job = self.jobs.transition(job, JobStatus.CANCELED, actor_id, {"reason": reason} if reason else None)
            self.applications.reject_pending_siblings(job.id)
            charge = None if was_started else self.ledger.successful_charge(job.id)

        if charge is not None:
            self._refund(job, charge)
        if previous_worker:
            logger.info(f"Job {job_id} canceled with worker {previous_worker} assigned (started={was_started})")
        logger.info(f"Canceled job {job_id} | actor={actor_id}")
        return job

    def _refund(self, job: Job, charge: Payment) -> None:
        result = self._call_gateway("cancel_payment", self.gateway.cancel_payment, charge.transaction_id)
        with self.storage.transaction():
            self.ledger.record(
                job,
                PaymentKind.REFUND,
                result,
                charge.amount,
                payee_id=job.poster_id,
                transaction_id=charge.transaction_id,
            )
        if result.success:
            logger.info(f"Refunded {charge.transaction_id} for job {job.id} | refund={result.transaction_id}")
        else:
            logger.error(f"Refund of {charge.transaction_id} for job {job.id} failed: {result.error}")

    # === Reviews ===

    def submit_review(self, job_id: str, reviewer_id: str, rating: int, comment: Optional[str] = None) -> Review:
        return self.reviews.create(job_id, reviewer_id, rating, comment)
