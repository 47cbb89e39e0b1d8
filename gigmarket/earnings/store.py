"""Earning store."""

import logging
import uuid
from typing import TYPE_CHECKING, List, Optional

from gigmarket.earnings.models import Earning, EarningStatus
from gigmarket.errors import EarningNotFoundError, InvalidTransitionError
from gigmarket.jobs.models import Job
from gigmarket.types import utc_now

if TYPE_CHECKING:
    from gigmarket.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)


class EarningStore:
    def __init__(self, storage: "MarketplaceStorage"):
        self.storage = storage

    def create_for_job(self, job: Job) -> Earning:
        """Create the pending earning for a completed job, once.

        An existing earning for the job's worker is returned unchanged.
        """
        with self.storage.transaction():
            existing = self.storage.list_earnings(job_id=job.id, worker_id=job.worker_id)
            if existing:
                return existing[0]
            earning = Earning(
                id=str(uuid.uuid4()),
                job_id=job.id,
                worker_id=job.worker_id,
                amount=job.payment_amount,
                service_fee=job.service_fee,
                date_earned=job.date_completed or utc_now(),
                description=f"Payment for job: {job.title}",
            )
            self.storage.save_earning(earning)
        logger.info(f"Earning {earning.id} created for worker {job.worker_id} on job {job.id} ({earning.amount})")
        return earning

    def get(self, earning_id: str) -> Earning:
        earning = self.storage.get_earning(earning_id)
        if not earning:
            raise EarningNotFoundError(earning_id)
        return earning

    def mark_paid(self, earning_id: str, transaction_id: Optional[str]) -> Earning:
        with self.storage.transaction():
            earning = self.get(earning_id)
            if not earning.is_pending:
                raise InvalidTransitionError(f"Earning {earning_id} is already {earning.status}")
            earning.status = EarningStatus.PAID.value
            earning.date_paid = utc_now()
            earning.transaction_id = transaction_id
            self.storage.update_earning(earning)
        logger.info(f"Earning {earning_id} paid (transaction {transaction_id})")
        return earning

    def list_for_worker(self, worker_id: str, status: Optional[EarningStatus] = None) -> List[Earning]:
        return self.storage.list_earnings(worker_id=worker_id, status=status)

    def list_for_job(self, job_id: str) -> List[Earning]:
        return self.storage.list_earnings(job_id=job_id)

    def list_pending(self) -> List[Earning]:
        return self.storage.list_earnings(status=EarningStatus.PENDING)
