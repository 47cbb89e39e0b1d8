"""Review routes."""

from fastapi import APIRouter, Request, status
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..database import Controller
from ..logging_config import get_logger
from ..models import ReviewResponse
from ..rate_limit import limiter

logger = get_logger("reviews")
router = APIRouter(prefix="/reviews", tags=["reviews"])


class ReviewCreate(BaseModel):
    """Request to review the other party of a completed job."""

    job_id: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(None, max_length=2000)


class UserReviewsResponse(BaseModel):
    user_id: str
    count: int
    average: float | None = None
    reviews: list[ReviewResponse]


def to_review_response(review) -> ReviewResponse:
    return ReviewResponse.model_validate(review.to_dict())


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def create_review(
    request: Request,
    review: ReviewCreate,
    auth: CurrentUser,
    controller: Controller,
):
    """Review the poster or worker of a completed job, once per job."""
    logger.info(f"POST /reviews | reviewer={auth.user_id} | job={review.job_id}")
    created = controller.submit_review(review.job_id, auth.user_id, review.rating, review.comment)
    return to_review_response(created)


@router.get("/job/{job_id}", response_model=list[ReviewResponse])
@limiter.limit("60/minute")
def list_job_reviews(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """Reviews left on a job."""
    return [to_review_response(r) for r in controller.reviews.list_for_job(job_id)]


@router.get("/user/{user_id}", response_model=UserReviewsResponse)
@limiter.limit("60/minute")
def list_user_reviews(
    request: Request,
    user_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """Reviews a user received, with their average rating."""
    summary = controller.reviews.summary_for_user(user_id)
    return UserReviewsResponse(
        user_id=user_id,
        count=summary.count,
        average=summary.average,
        reviews=[to_review_response(r) for r in controller.reviews.list_for_user(user_id)],
    )
