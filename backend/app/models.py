"""Pydantic models for API responses shared across routers.

Request models live beside the routes that accept them.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

JobStatusValue = Literal[
    "pending_payment", "payment_failed", "open", "assigned", "in_progress", "completed", "canceled"
]
PaymentTypeValue = Literal["hourly", "fixed"]


class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""
    message: str
    code: str


# =============================================================================
# Jobs
# =============================================================================

class JobResponse(BaseModel):
    """Job details response."""
    id: str
    poster_id: str
    title: str
    description: str
    category: str | None = None
    payment_type: PaymentTypeValue
    payment_amount: float
    service_fee: float
    total_amount: float
    status: JobStatusValue
    worker_id: str | None = None
    location: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    date_needed: datetime | None = None
    required_skills: list[str] = []
    equipment_provided: bool = False
    date_posted: datetime | None = None
    date_completed: datetime | None = None
    assigned_at: datetime | None = None
    started_at: datetime | None = None
    canceled_at: datetime | None = None
    updated_at: datetime | None = None
    version: int


class JobListResponse(BaseModel):
    """Paginated list of jobs."""
    jobs: list[JobResponse]
    total: int
    limit: int
    offset: int


class TransitionResponse(BaseModel):
    """One entry of a job's status history."""
    id: str
    job_id: str
    from_status: str | None = None
    to_status: str
    actor_id: str
    metadata: dict[str, Any] = {}
    created_at: datetime | None = None


# =============================================================================
# Applications, tasks, earnings
# =============================================================================

class ApplicationResponse(BaseModel):
    """Job application response."""
    id: str
    job_id: str
    worker_id: str
    message: str = ""
    status: Literal["pending", "accepted", "rejected"]
    hourly_rate: float | None = None
    expected_duration: str | None = None
    cover_letter: str | None = None
    date_applied: datetime | None = None
    decided_at: datetime | None = None


class TaskResponse(BaseModel):
    """Task checklist item."""
    id: str
    job_id: str
    description: str
    position: int
    is_optional: bool
    is_completed: bool
    completed_at: datetime | None = None
    completed_by: str | None = None
    due_time: datetime | None = None
    location: str | None = None
    bonus_amount: float | None = None
    estimated_duration: int | None = None
    notes: str | None = None
    created_at: datetime | None = None


class EarningResponse(BaseModel):
    """Worker earning for a completed job."""
    id: str
    job_id: str
    worker_id: str
    amount: float
    service_fee: float
    status: Literal["pending", "paid"]
    date_earned: datetime | None = None
    date_paid: datetime | None = None
    transaction_id: str | None = None
    description: str | None = None


# =============================================================================
# Payments & reviews
# =============================================================================

class PaymentResponse(BaseModel):
    """Ledger entry for a gateway money movement."""
    id: str
    job_id: str
    payer_id: str | None = None
    payee_id: str | None = None
    kind: Literal["charge", "transfer", "refund"]
    amount: float
    service_fee: float
    status: Literal["succeeded", "failed"]
    transaction_id: str | None = None
    error: str | None = None
    created_at: datetime | None = None


class ReviewResponse(BaseModel):
    """Review of one job party by the other."""
    id: str
    job_id: str
    reviewer_id: str
    reviewee_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = None
    date_reviewed: datetime | None = None
