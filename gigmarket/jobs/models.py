"""
Job data models.

Jobs are listings posted by a poster and worked by exactly one worker once an
application is accepted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from gigmarket.types import format_datetime, money_to_float, parse_datetime, to_money


class JobStatus(str, Enum):
    """Job lifecycle status."""

    PENDING_PAYMENT = "pending_payment"  # Waiting for the poster's charge
    PAYMENT_FAILED = "payment_failed"  # Charge failed, poster may retry
    OPEN = "open"  # Accepting applications
    ASSIGNED = "assigned"  # Worker hired, not started
    IN_PROGRESS = "in_progress"  # Worker is on the job
    COMPLETED = "completed"  # Worker finished all required tasks
    CANCELED = "canceled"  # Poster withdrew the job


class PaymentType(str, Enum):
    HOURLY = "hourly"
    FIXED = "fixed"


# Valid state transitions for jobs
VALID_JOB_TRANSITIONS: Dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING_PAYMENT: {JobStatus.OPEN, JobStatus.PAYMENT_FAILED, JobStatus.CANCELED},
    JobStatus.PAYMENT_FAILED: {JobStatus.OPEN, JobStatus.CANCELED},
    JobStatus.OPEN: {JobStatus.ASSIGNED, JobStatus.CANCELED},
    JobStatus.ASSIGNED: {JobStatus.IN_PROGRESS, JobStatus.CANCELED},
    JobStatus.IN_PROGRESS: {JobStatus.COMPLETED, JobStatus.CANCELED},
    JobStatus.COMPLETED: set(),  # Terminal state
    JobStatus.CANCELED: set(),  # Terminal state
}

# Statuses in which a job must have a worker (and no others may)
WORKER_STATUSES = frozenset({JobStatus.ASSIGNED, JobStatus.IN_PROGRESS, JobStatus.COMPLETED})

TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.CANCELED})

MAX_TITLE_LENGTH = 200


def normalize_skills(skills: Optional[List[str]]) -> List[str]:
    """Lower-case, strip and de-duplicate skills preserving first-seen order."""
    seen: List[str] = []
    for skill in skills or []:
        s = str(skill).strip().lower()
        if s and s not in seen:
            seen.append(s)
    return seen


@dataclass
class Job:
    """A job listing in the marketplace.

    Attributes:
        id: Unique identifier (UUID)
        poster_id: User who posted the job
        title: Short title (max 200 chars)
        description: Full description of the work
        payment_amount: What the worker earns
        service_fee: Platform fee charged to the poster on top
        payment_type: hourly or fixed
        category: Free-form category
        status: Current lifecycle status
        worker_id: Assigned worker (only while assigned/in progress/completed)
        location: Where the work happens
        latitude: Optional coordinate of the location
        longitude: Optional coordinate of the location
        date_needed: When the poster needs the work done
        required_skills: Normalized skill tags
        equipment_provided: Whether the poster supplies equipment
        date_posted: When the job was created
        date_completed: When the worker completed the job
        assigned_at: When an application was accepted
        started_at: When the worker started
        canceled_at: When the poster canceled
        updated_at: Last modification timestamp
        version: Optimistic concurrency counter
    """

    id: str
    poster_id: str
    title: str
    description: str
    payment_amount: Decimal
    service_fee: Decimal = Decimal("2.50")
    payment_type: str = PaymentType.FIXED.value
    category: Optional[str] = None
    status: str = JobStatus.OPEN.value
    worker_id: Optional[str] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    date_needed: Optional[datetime] = None
    required_skills: List[str] = field(default_factory=list)
    equipment_provided: bool = False
    date_posted: Optional[datetime] = None
    date_completed: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        """Validate job data."""
        if isinstance(self.status, JobStatus):
            self.status = self.status.value
        if isinstance(self.payment_type, PaymentType):
            self.payment_type = self.payment_type.value

        valid_statuses = {s.value for s in JobStatus}
        if self.status not in valid_statuses:
            raise ValueError(f"Invalid status: {self.status}. Must be one of {valid_statuses}")
        valid_types = {t.value for t in PaymentType}
        if self.payment_type not in valid_types:
            raise ValueError(f"Invalid payment type: {self.payment_type}")

        if not self.title or not self.title.strip():
            raise ValueError("Title cannot be empty")
        if len(self.title) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title too long (max {MAX_TITLE_LENGTH} chars)")

        self.payment_amount = to_money(self.payment_amount)
        self.service_fee = to_money(self.service_fee)
        if self.payment_amount <= 0:
            raise ValueError("Payment amount must be positive")
        if self.service_fee < 0:
            raise ValueError("Service fee cannot be negative")

        if self.latitude is not None and not -90 <= self.latitude <= 90:
            raise ValueError("Latitude must be between -90 and 90")
        if self.longitude is not None and not -180 <= self.longitude <= 180:
            raise ValueError("Longitude must be between -180 and 180")

        needs_worker = JobStatus(self.status) in WORKER_STATUSES
        if needs_worker and not self.worker_id:
            raise ValueError(f"Job in status {self.status} must have a worker")
        if not needs_worker and self.worker_id:
            raise ValueError(f"Job in status {self.status} cannot have a worker")

        self.required_skills = normalize_skills(self.required_skills)

    @property
    def total_amount(self) -> Decimal:
        """Amount charged to the poster."""
        return self.payment_amount + self.service_fee

    @property
    def is_open(self) -> bool:
        """Check if job is accepting applications."""
        return self.status == JobStatus.OPEN.value

    @property
    def is_terminal(self) -> bool:
        return JobStatus(self.status) in TERMINAL_STATUSES

    @property
    def is_cancelable(self) -> bool:
        return self.can_transition_to(JobStatus.CANCELED)

    def can_transition_to(self, new_status: JobStatus) -> bool:
        """Check if transition to new status is valid."""
        current = JobStatus(self.status)
        return JobStatus(new_status) in VALID_JOB_TRANSITIONS.get(current, set())

    def is_party(self, user_id: str) -> bool:
        return user_id is not None and user_id in (self.poster_id, self.worker_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "poster_id": self.poster_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "payment_type": self.payment_type,
            "payment_amount": money_to_float(self.payment_amount),
            "service_fee": money_to_float(self.service_fee),
            "total_amount": money_to_float(self.total_amount),
            "status": self.status,
            "worker_id": self.worker_id,
            "location": self.location,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "date_needed": format_datetime(self.date_needed),
            "required_skills": list(self.required_skills),
            "equipment_provided": self.equipment_provided,
            "date_posted": format_datetime(self.date_posted),
            "date_completed": format_datetime(self.date_completed),
            "assigned_at": format_datetime(self.assigned_at),
            "started_at": format_datetime(self.started_at),
            "canceled_at": format_datetime(self.canceled_at),
            "updated_at": format_datetime(self.updated_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            poster_id=data["poster_id"],
            title=data["title"],
            description=data.get("description") or "",
            payment_amount=data["payment_amount"],
            service_fee=data.get("service_fee", Decimal("2.50")),
            payment_type=data.get("payment_type", PaymentType.FIXED.value),
            category=data.get("category"),
            status=data.get("status", JobStatus.OPEN.value),
            worker_id=data.get("worker_id"),
            location=data.get("location"),
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            date_needed=parse_datetime(data.get("date_needed")),
            required_skills=data.get("required_skills") or [],
            equipment_provided=bool(data.get("equipment_provided", False)),
            date_posted=parse_datetime(data.get("date_posted")),
            date_completed=parse_datetime(data.get("date_completed")),
            assigned_at=parse_datetime(data.get("assigned_at")),
            started_at=parse_datetime(data.get("started_at")),
            canceled_at=parse_datetime(data.get("canceled_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            version=int(data.get("version", 1)),
        )


@dataclass
class JobDraft:
    """Poster-supplied fields for a new job; ids, fee and status are assigned on create."""

    title: str
    description: str
    payment_amount: Decimal
    payment_type: str = PaymentType.FIXED.value
    category: Optional[str] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    date_needed: Optional[datetime] = None
    required_skills: List[str] = field(default_factory=list)
    equipment_provided: bool = False


# Fields a poster may edit after posting. Money fields are only editable
# before a worker is hired.
EDITABLE_JOB_FIELDS = frozenset(
    {
        "title",
        "description",
        "category",
        "location",
        "latitude",
        "longitude",
        "date_needed",
        "required_skills",
        "equipment_provided",
        "payment_amount",
        "payment_type",
    }
)
PRICING_FIELDS = frozenset({"payment_amount", "payment_type"})
# Editable fields that cannot be cleared
REQUIRED_JOB_FIELDS = frozenset(
    {"title", "description", "payment_amount", "payment_type", "equipment_provided", "required_skills"}
)


@dataclass
class JobStateTransition:
    """Audit log entry for job state changes.

    Attributes:
        id: Unique identifier
        job_id: The job that transitioned
        from_status: Previous status (None for creation)
        to_status: New status
        actor_id: Who triggered the transition
        metadata: Additional context (application id, reason, etc.)
        created_at: When the transition occurred
    """

    id: str
    job_id: str
    to_status: str
    actor_id: str
    from_status: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "metadata": dict(self.metadata),
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobStateTransition":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            from_status=data.get("from_status"),
            to_status=data["to_status"],
            actor_id=data["actor_id"],
            metadata=data.get("metadata") or {},
            created_at=parse_datetime(data.get("created_at")),
        )
