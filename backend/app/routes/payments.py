"""Payment routes.

Charging the poster for a job and managing the worker's payout account.
Gateway failures while charging are not errors: the job moves to
'payment_failed' and the failed charge is returned.
"""

from decimal import Decimal

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..database import Controller
from ..logging_config import get_logger
from ..models import JobResponse, PaymentResponse
from ..rate_limit import limiter

logger = get_logger("payments")
router = APIRouter(prefix="/payments", tags=["payments"])


class ProcessPaymentRequest(BaseModel):
    """Request to charge the poster for a job."""

    job_id: str = Field(..., min_length=1)
    payment_method_id: str = Field(..., min_length=1)
    amount: Decimal | None = Field(None, gt=0)


class ProcessPaymentResponse(BaseModel):
    job: JobResponse
    payment: PaymentResponse


class PayoutAccountResponse(BaseModel):
    """Payout account state as reported by the payment processor."""

    user_id: str
    account_id: str | None = None
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    requirements: dict[str, list[str]] = {}
    is_verified: bool = False


class CreatePayoutAccountRequest(BaseModel):
    email: str | None = None


@router.post("/process", response_model=ProcessPaymentResponse)
@limiter.limit("10/minute")
def process_payment(
    request: Request,
    payment_request: ProcessPaymentRequest,
    auth: CurrentUser,
    controller: Controller,
):
    """
    Charge the poster for a job awaiting payment.

    Success opens the job for applications; a declined charge leaves it in
    'payment_failed' so it can be retried with another payment method.
    """
    logger.info(f"POST /payments/process | poster={auth.user_id} | job={payment_request.job_id}")
    job, payment = controller.process_payment(
        payment_request.job_id,
        auth.user_id,
        payment_request.payment_method_id,
        payment_request.amount,
    )
    logger.info(f"Payment {payment.status} | job={job.id} | status={job.status}")
    return ProcessPaymentResponse(
        job=JobResponse.model_validate(job.to_dict()),
        payment=PaymentResponse.model_validate(payment.to_dict()),
    )


@router.get("/connect/status", response_model=PayoutAccountResponse)
@limiter.limit("30/minute")
def payout_account_status(
    request: Request,
    auth: CurrentUser,
    controller: Controller,
):
    """The caller's payout account status."""
    return PayoutAccountResponse.model_validate(controller.payout_account_status(auth.user_id).to_dict())


@router.post("/connect/account", response_model=PayoutAccountResponse)
@limiter.limit("5/minute")
def create_payout_account(
    request: Request,
    auth: CurrentUser,
    controller: Controller,
    body: CreatePayoutAccountRequest | None = None,
):
    """Register a payout account for the caller."""
    email = (body.email if body else None) or auth.email
    logger.info(f"POST /payments/connect/account | user={auth.user_id}")
    account = controller.create_payout_account(auth.user_id, email)
    return PayoutAccountResponse.model_validate(account.to_dict())
