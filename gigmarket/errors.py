"""
Error taxonomy for marketplace operations.

Every error raised by the stores and the lifecycle controller derives from
MarketplaceError and carries a stable ``code`` that the API layer uses to pick
an HTTP status and that clients may switch on.
"""

from typing import List, Optional


class MarketplaceError(Exception):
    """Base exception for marketplace operations."""

    code = "marketplace_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(MarketplaceError):
    """Referenced record does not exist."""

    code = "not_found"
    entity = "Record"

    def __init__(self, record_id: str, message: Optional[str] = None):
        self.record_id = record_id
        super().__init__(message or f"{self.entity} not found: {record_id}")


class JobNotFoundError(NotFoundError):
    entity = "Job"


class ApplicationNotFoundError(NotFoundError):
    entity = "Application"


class TaskNotFoundError(NotFoundError):
    entity = "Task"


class EarningNotFoundError(NotFoundError):
    entity = "Earning"


class InvalidTransitionError(MarketplaceError):
    """Status change is not permitted from the current state."""

    code = "invalid_transition"


class IncompleteTasksError(MarketplaceError):
    """Completion blocked by outstanding required tasks."""

    code = "incomplete_tasks"

    def __init__(self, job_id: str, outstanding: List[str]):
        self.job_id = job_id
        self.outstanding = list(outstanding)
        super().__init__(
            f"Cannot complete job {job_id}: {len(self.outstanding)} required task(s) outstanding"
        )


class DuplicateApplicationError(MarketplaceError):
    """Worker already has a live application for the job."""

    code = "duplicate_application"


class JobNotOpenError(MarketplaceError):
    """Job is not accepting applications."""

    code = "job_not_open"


class PayoutAccountRequiredError(MarketplaceError):
    """Worker has no verified payout account with the payment gateway."""

    code = "payout_account_required"


class PaymentGatewayError(MarketplaceError):
    """Wraps any failure reported by, or while talking to, the payment gateway."""

    code = "payment_gateway_error"

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code


class UnauthorizedError(MarketplaceError):
    """Actor is not allowed to perform this action."""

    code = "unauthorized"


class DuplicateReviewError(MarketplaceError):
    """Reviewer already reviewed this job."""

    code = "duplicate_review"


class InvalidRequestError(MarketplaceError):
    """Request is malformed or violates a record invariant."""

    code = "invalid_request"
