"""Review store.

Both parties of a completed job may review each other once.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from gigmarket.errors import DuplicateReviewError, InvalidRequestError, InvalidTransitionError, UnauthorizedError
from gigmarket.jobs.models import JobStatus
from gigmarket.jobs.store import JobStore
from gigmarket.reviews.models import Review
from gigmarket.types import utc_now

if TYPE_CHECKING:
    from gigmarket.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)


@dataclass
class RatingSummary:
    user_id: str
    count: int
    average: Optional[float]

    def to_dict(self):
        return {"user_id": self.user_id, "count": self.count, "average": self.average}


class ReviewStore:
    def __init__(self, storage: "MarketplaceStorage", jobs: JobStore):
        self.storage = storage
        self.jobs = jobs

    def create(self, job_id: str, reviewer_id: str, rating: int, comment: Optional[str] = None) -> Review:
        """Record a review of the other party of a completed job.

        Raises:
            JobNotFoundError: If job doesn't exist
            InvalidTransitionError: If the job is not completed
            UnauthorizedError: If the reviewer is not the poster or the worker
            DuplicateReviewError: If the reviewer already reviewed this job
        """
        with self.storage.transaction():
            job = self.jobs.get_by_id(job_id)
            if job.status != JobStatus.COMPLETED.value:
                raise InvalidTransitionError(f"Cannot review job in status: {job.status}")
            if reviewer_id == job.poster_id:
                reviewee_id = job.worker_id
            elif reviewer_id == job.worker_id:
                reviewee_id = job.poster_id
            else:
                raise UnauthorizedError("Only the poster or the worker can review this job")

            if self.storage.list_reviews(job_id=job_id, reviewer_id=reviewer_id):
                raise DuplicateReviewError(f"Reviewer {reviewer_id} already reviewed job {job_id}")

            try:
                review = Review(
                    id=str(uuid.uuid4()),
                    job_id=job_id,
                    reviewer_id=reviewer_id,
                    reviewee_id=reviewee_id,
                    rating=rating,
                    comment=comment,
                    date_reviewed=utc_now(),
                )
            except ValueError as e:
                raise InvalidRequestError(str(e)) from e
            self.storage.save_review(review)

        logger.info(f"Review {review.id}: {reviewer_id} rated {reviewee_id} {rating}/5 on job {job_id}")
        return review

    def list_for_job(self, job_id: str) -> List[Review]:
        return self.storage.list_reviews(job_id=job_id)

    def list_for_user(self, user_id: str) -> List[Review]:
        """Reviews received by a user."""
        return self.storage.list_reviews(reviewee_id=user_id)

    def summary_for_user(self, user_id: str) -> RatingSummary:
        reviews = self.list_for_user(user_id)
        if not reviews:
            return RatingSummary(user_id=user_id, count=0, average=None)
        average = round(sum(r.rating for r in reviews) / len(reviews), 2)
        return RatingSummary(user_id=user_id, count=len(reviews), average=average)
