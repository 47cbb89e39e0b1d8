"""Application routes.

Workers apply to open jobs; the poster accepts one applicant (which assigns
the job and rejects the rest) or rejects individual applications.
"""

from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Request, status
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..database import Controller
from ..logging_config import get_logger
from ..models import ApplicationResponse
from ..rate_limit import limiter

logger = get_logger("applications")
router = APIRouter(prefix="/applications", tags=["applications"])


class ApplicationCreate(BaseModel):
    """Request to apply to a job."""

    job_id: str = Field(..., min_length=1)
    message: str = ""
    hourly_rate: Decimal | None = Field(None, gt=0)
    expected_duration: str | None = None
    cover_letter: str | None = None


class ApplicationStatusUpdate(BaseModel):
    """Poster decision on an application."""

    status: Literal["accepted", "rejected"]


def to_application_response(application) -> ApplicationResponse:
    return ApplicationResponse.model_validate(application.to_dict())


@router.post("", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def apply_to_job(
    request: Request,
    application: ApplicationCreate,
    auth: CurrentUser,
    controller: Controller,
):
    """
    Apply to work on a job.

    The job must be 'open', the worker needs a verified payout account and
    may hold only one live application per job.
    """
    logger.info(f"POST /applications | worker={auth.user_id} | job={application.job_id}")
    created = controller.apply_to_job(
        application.job_id,
        auth.user_id,
        application.message,
        hourly_rate=application.hourly_rate,
        expected_duration=application.expected_duration,
        cover_letter=application.cover_letter,
    )
    logger.info(f"Application created | id={created.id} | job={created.job_id}")
    return to_application_response(created)


@router.get("/job/{job_id}", response_model=list[ApplicationResponse])
@limiter.limit("60/minute")
def list_job_applications(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """Applications for a job (poster only)."""
    return [to_application_response(a) for a in controller.list_applications_for_job(job_id, auth.user_id)]


@router.get("/worker/{worker_id}", response_model=list[ApplicationResponse])
@limiter.limit("60/minute")
def list_worker_applications(
    request: Request,
    worker_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """A worker's own applications."""
    return [to_application_response(a) for a in controller.list_applications_for_worker(worker_id, auth.user_id)]


def _decide(application_id: str, update: ApplicationStatusUpdate, auth, controller) -> ApplicationResponse:
    logger.info(f"PATCH /applications/{application_id} | poster={auth.user_id} | status={update.status}")
    application = controller.set_application_status(application_id, auth.user_id, update.status)
    return to_application_response(application)


@router.patch("/{application_id}", response_model=ApplicationResponse)
@limiter.limit("20/minute")
def update_application(
    request: Request,
    application_id: str,
    update: ApplicationStatusUpdate,
    auth: CurrentUser,
    controller: Controller,
):
    """Accept or reject an application (poster only)."""
    return _decide(application_id, update, auth, controller)


@router.patch("/{application_id}/status", response_model=ApplicationResponse)
@limiter.limit("20/minute")
def update_application_status(
    request: Request,
    application_id: str,
    update: ApplicationStatusUpdate,
    auth: CurrentUser,
    controller: Controller,
):
    """Accept or reject an application (poster only)."""
    return _decide(application_id, update, auth, controller)
