"""Jobs subsystem.

Models:
- Job: A work listing in the marketplace
- JobDraft: Poster-supplied fields for a new job
- JobStatus: Job lifecycle status
- PaymentType: hourly or fixed
- JobStateTransition: Audit log entry for state changes

Store:
- JobStore: Job records and the status state machine
"""

from gigmarket.jobs.models import (
    VALID_JOB_TRANSITIONS,
    Job,
    JobDraft,
    JobStateTransition,
    JobStatus,
    PaymentType,
)
from gigmarket.jobs.store import JobStore

__all__ = [
    # Models
    "Job",
    "JobDraft",
    "JobStatus",
    "PaymentType",
    "JobStateTransition",
    "VALID_JOB_TRANSITIONS",
    # Store
    "JobStore",
]
