"""Earnings routes."""

from fastapi import APIRouter, Request

from ..auth import CurrentUser
from ..database import Controller
from ..logging_config import get_logger
from ..models import EarningResponse
from ..rate_limit import limiter

logger = get_logger("earnings")
router = APIRouter(prefix="/earnings", tags=["earnings"])


def to_earning_responses(earnings) -> list[EarningResponse]:
    return [EarningResponse.model_validate(e.to_dict()) for e in earnings]


@router.get("/worker/{worker_id}", response_model=list[EarningResponse])
@limiter.limit("60/minute")
def list_worker_earnings(
    request: Request,
    worker_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """A worker's own earnings."""
    return to_earning_responses(controller.list_earnings_for_worker(worker_id, auth.user_id))


@router.get("/job/{job_id}", response_model=list[EarningResponse])
@limiter.limit("60/minute")
def list_job_earnings(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """Earnings recorded for a job (poster or worker)."""
    return to_earning_responses(controller.list_earnings_for_job(job_id, auth.user_id))


@router.post("/{earning_id}/retry", response_model=EarningResponse)
@limiter.limit("5/minute")
def retry_payout(
    request: Request,
    earning_id: str,
    auth: CurrentUser,
    controller: Controller,
):
    """
    Retry the transfer of a pending earning (the earning's worker only).

    Fails with 502 if the payment processor rejects the transfer again;
    the earning stays 'pending'.
    """
    logger.info(f"POST /earnings/{earning_id}/retry | worker={auth.user_id}")
    earning = controller.retry_payout(earning_id, auth.user_id)
    return EarningResponse.model_validate(earning.to_dict())
