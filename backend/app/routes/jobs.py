"""Jobs routes.

Posting, browsing and driving a job through its lifecycle. Status never
changes through PATCH; it moves only through the action endpoints below.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, Field, field_validator

from gigmarket.jobs.models import JobDraft
from gigmarket.lifecycle import CompletionResult

from ..auth import CurrentUser
from ..database import Controller
from ..logging_config import get_logger
from ..models import (
    EarningResponse,
    JobListResponse,
    JobResponse,
    JobStatusValue,
    PaymentTypeValue,
    TaskResponse,
    TransitionResponse,
)
from ..rate_limit import limiter

logger = get_logger("jobs")
router = APIRouter(prefix="/jobs", tags=["jobs"])


# =============================================================================
# Request/Response Models
# =============================================================================


class TaskCreateItem(BaseModel):
    """A checklist item supplied with a job or a batch."""

    description: str = Field(..., min_length=1)
    is_optional: bool = False
    due_time: datetime | None = None
    location: str | None = None
    bonus_amount: Decimal | None = Field(None, ge=0)
    estimated_duration: int | None = Field(None, gt=0)
    notes: str | None = None


class JobCreate(BaseModel):
    """Request to post a job."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    payment_amount: Decimal = Field(..., gt=0)
    payment_type: PaymentTypeValue = "fixed"
    category: str | None = None
    location: str | None = None
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    date_needed: datetime | None = None
    required_skills: list[str] = Field(default_factory=list)
    equipment_provided: bool = False
    tasks: list[TaskCreateItem] = Field(default_factory=list)
    payment_method_id: str | None = None

    @field_validator("required_skills")
    @classmethod
    def validate_skills(cls, v: list[str]) -> list[str]:
        return [s.lower().strip() for s in v if s.strip()]

    def to_draft(self) -> JobDraft:
        return JobDraft(**self.model_dump(exclude={"tasks", "payment_method_id"}))


class JobUpdate(BaseModel):
    """Partial job edit. ``status`` and ``worker_id`` are accepted only to be refused."""

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    payment_amount: Decimal | None = Field(None, gt=0)
    payment_type: PaymentTypeValue | None = None
    category: str | None = None
    location: str | None = None
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    date_needed: datetime | None = None
    required_skills: list[str] | None = None
    equipment_provided: bool | None = None
    status: str | None = None
    worker_id: str | None = None


class CancelJobRequest(BaseModel):
    """Request to cancel a job."""

    reason: str | None = Field(None, max_length=500)


class TaskBatchRequest(BaseModel):
    tasks: list[TaskCreateItem] = Field(..., min_length=1)


class CompleteAllRequest(BaseModel):
    task_ids: list[str] | None = None


class CompletionResponse(BaseModel):
    """Outcome of completing a job."""

    job: JobResponse
    earning: EarningResponse
    payment_status: str
    message: str
    already_completed: bool = False


# =============================================================================
# Helper Functions
# =============================================================================


def to_job_response(job) -> JobResponse:
    return JobResponse.model_validate(job.to_dict())


def to_task_responses(tasks) -> list[TaskResponse]:
    return [TaskResponse.model_validate(t.to_dict()) for t in tasks]


def to_completion_response(result: CompletionResult) -> CompletionResponse:
    return CompletionResponse.model_validate(result.to_dict())


# =============================================================================
# Routes
# =============================================================================


@router.post("", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_job_listing(
    request: Request,
    job: JobCreate,
    auth: CurrentUser,
    controller: Controller,
):
    """
    Post a new job.

    The authenticated user becomes the poster. Fixed-price jobs start in
    'pending_payment'; when a payment_method_id is given the charge is
    attempted immediately and the job comes back 'open' or 'payment_failed'.
    """
    logger.info(f"POST /jobs | poster={auth.user_id} | title={job.title[:50]}")

    tasks = [t.model_dump() for t in job.tasks]
    created = controller.post_job(auth.user_id, job.to_draft(), tasks=tasks, payment_method_id=job.payment_method_id)

    logger.info(f"Job created | id={created.id} | status={created.status}")
    return to_job_response(created)


@router.get("", response_model=JobListResponse)
@limiter.limit("60/minute")
def list_jobs_endpoint(
    request: Request,
    auth: CurrentUser,
    controller: Controller,
    status_filter: JobStatusValue | None = Query(None, alias="status"),
    poster_id: str | None = Query(None),
    worker_id: str | None = Query(None),
    category: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """List jobs, newest first."""
    logger.info(f"GET /jobs | user={auth.user_id} | status={status_filter}")

    jobs = controller.list_jobs(
        status=status_filter,
        poster_id=poster_id,
        worker_id=worker_id,
        category=category,
        limit=limit,
        offset=offset,
    )
    return JobListResponse(
        jobs=[to_job_response(j) for j in jobs],
        total=len(jobs),
        limit=limit,
        offset=offset,
    )


@router.get("/{job_id}", response_model=JobResponse)
@limiter.limit("60/minute")
def get_job_details(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """Get details of a specific job."""
    return to_job_response(controller.get_job(job_id))


@router.patch("/{job_id}", response_model=JobResponse)
@limiter.limit("20/minute")
def update_job(
    request: Request,
    job_id: str,
    update: JobUpdate,
    auth: CurrentUser,
    controller: Controller,
):
    """
    Edit a job's details (poster only).

    Pricing can change only until the job is paid for. Sending 'status' or
    'worker_id' is rejected; use the action endpoints instead.
    """
    changes: dict[str, Any] = update.model_dump(exclude_unset=True)
    logger.info(f"PATCH /jobs/{job_id} | poster={auth.user_id} | fields={sorted(changes)}")
    return to_job_response(controller.update_job_details(job_id, auth.user_id, changes))


@router.post("/{job_id}/start", response_model=JobResponse)
@limiter.limit("10/minute")
def start_job(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """Start work on an assigned job (assigned worker only)."""
    logger.info(f"POST /jobs/{job_id}/start | worker={auth.user_id}")
    return to_job_response(controller.start_job(job_id, auth.user_id))


@router.post("/{job_id}/complete", response_model=CompletionResponse)
@limiter.limit("10/minute")
def complete_job(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """
    Complete a job and pay the worker (assigned worker only).

    Every required task must be completed first. A failed payout does not
    undo the completion; the earning stays 'pending' and can be retried.
    Completing an already completed job returns the existing earning.
    """
    logger.info(f"POST /jobs/{job_id}/complete | worker={auth.user_id}")
    result = controller.complete_job(job_id, auth.user_id)
    logger.info(f"Job completed | id={job_id} | payment={result.payment_status}")
    return to_completion_response(result)


@router.post("/{job_id}/cancel", response_model=JobResponse)
@limiter.limit("10/minute")
def cancel_job(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    controller: Controller,
    cancel_request: CancelJobRequest | None = None,
):
    """Cancel a job (poster only). Completed and canceled jobs cannot be canceled."""
    reason = cancel_request.reason if cancel_request else None
    logger.info(f"POST /jobs/{job_id}/cancel | poster={auth.user_id}")
    return to_job_response(controller.cancel_job(job_id, auth.user_id, reason))


@router.get("/{job_id}/history", response_model=list[TransitionResponse])
@limiter.limit("60/minute")
def get_job_history(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """Status history of a job, oldest first."""
    return [TransitionResponse.model_validate(t.to_dict()) for t in controller.get_job_history(job_id)]


@router.get("/{job_id}/receipt")
@limiter.limit("30/minute")
def get_job_receipt(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """Receipt for the job's charge (poster or worker)."""
    return controller.generate_receipt(job_id, auth.user_id).to_dict()


@router.post("/{job_id}/tasks/batch", response_model=list[TaskResponse], status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def add_tasks_batch(
    request: Request,
    job_id: str,
    batch: TaskBatchRequest,
    auth: CurrentUser,
    controller: Controller,
):
    """Append several tasks in the given order (poster only)."""
    logger.info(f"POST /jobs/{job_id}/tasks/batch | poster={auth.user_id} | count={len(batch.tasks)}")
    tasks = controller.add_tasks_batch(job_id, auth.user_id, [t.model_dump() for t in batch.tasks])
    return to_task_responses(tasks)


@router.post("/{job_id}/tasks/complete-all", response_model=list[TaskResponse])
@limiter.limit("20/minute")
def complete_all_tasks(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    controller: Controller,
    body: CompleteAllRequest | None = None,
):
    """Complete all (or the listed) tasks of a job (assigned worker only)."""
    task_ids = body.task_ids if body else None
    logger.info(f"POST /jobs/{job_id}/tasks/complete-all | worker={auth.user_id}")
    return to_task_responses(controller.complete_all_tasks(job_id, auth.user_id, task_ids))
