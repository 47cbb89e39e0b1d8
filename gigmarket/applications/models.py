"""Application data models."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from gigmarket.types import format_datetime, money_to_float, parse_datetime, to_money


class ApplicationStatus(str, Enum):
    """Application lifecycle status."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


VALID_APPLICATION_TRANSITIONS: Dict[ApplicationStatus, set[ApplicationStatus]] = {
    ApplicationStatus.PENDING: {ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED},
    ApplicationStatus.ACCEPTED: set(),
    ApplicationStatus.REJECTED: set(),
}

MAX_MESSAGE_LENGTH = 5000


@dataclass
class Application:
    """A worker's application to a job.

    Attributes:
        id: Unique identifier
        job_id: Job being applied to
        worker_id: Applying worker
        message: Pitch shown to the poster
        status: pending, accepted or rejected
        hourly_rate: Optional bid for hourly jobs
        expected_duration: Optional free-form estimate ("2 hours")
        cover_letter: Optional longer text
        date_applied: When the application was submitted
        decided_at: When the poster accepted or rejected it
    """

    id: str
    job_id: str
    worker_id: str
    message: str = ""
    status: str = ApplicationStatus.PENDING.value
    hourly_rate: Optional[Decimal] = None
    expected_duration: Optional[str] = None
    cover_letter: Optional[str] = None
    date_applied: Optional[datetime] = None
    decided_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, ApplicationStatus):
            self.status = self.status.value
        valid_statuses = {s.value for s in ApplicationStatus}
        if self.status not in valid_statuses:
            raise ValueError(f"Invalid status: {self.status}. Must be one of {valid_statuses}")
        self.message = self.message or ""
        if len(self.message) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"Message too long (max {MAX_MESSAGE_LENGTH} chars)")
        if self.hourly_rate is not None:
            self.hourly_rate = to_money(self.hourly_rate)
            if self.hourly_rate <= 0:
                raise ValueError("Hourly rate must be positive")

    @property
    def is_pending(self) -> bool:
        return self.status == ApplicationStatus.PENDING.value

    @property
    def is_accepted(self) -> bool:
        return self.status == ApplicationStatus.ACCEPTED.value

    @property
    def is_live(self) -> bool:
        """Pending or accepted applications block a re-application."""
        return self.status != ApplicationStatus.REJECTED.value

    def can_transition_to(self, new_status: ApplicationStatus) -> bool:
        current = ApplicationStatus(self.status)
        return ApplicationStatus(new_status) in VALID_APPLICATION_TRANSITIONS[current]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "worker_id": self.worker_id,
            "message": self.message,
            "status": self.status,
            "hourly_rate": money_to_float(self.hourly_rate),
            "expected_duration": self.expected_duration,
            "cover_letter": self.cover_letter,
            "date_applied": format_datetime(self.date_applied),
            "decided_at": format_datetime(self.decided_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Application":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            worker_id=data["worker_id"],
            message=data.get("message") or "",
            status=data.get("status", ApplicationStatus.PENDING.value),
            hourly_rate=data.get("hourly_rate"),
            expected_duration=data.get("expected_duration"),
            cover_letter=data.get("cover_letter"),
            date_applied=parse_datetime(data.get("date_applied")),
            decided_at=parse_datetime(data.get("decided_at")),
        )
