"""Task checklist models."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from gigmarket.types import format_datetime, money_to_float, parse_datetime, to_money


@dataclass
class Task:
    """One checklist item of a job.

    Attributes:
        id: Unique identifier
        job_id: Owning job
        description: What needs doing
        position: Zero-based ordering key within the job
        is_optional: Optional tasks do not gate completion
        is_completed: Whether the worker ticked it off
        completed_at: When it was completed
        completed_by: Who completed it
        due_time: Optional deadline for this item
        location: Optional location for this item
        bonus_amount: Optional bonus for completing it
        estimated_duration: Optional estimate in minutes
        notes: Free-form notes
        created_at: When the task was added
    """

    id: str
    job_id: str
    description: str
    position: int = 0
    is_optional: bool = False
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    due_time: Optional[datetime] = None
    location: Optional[str] = None
    bonus_amount: Optional[Decimal] = None
    estimated_duration: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.description or not self.description.strip():
            raise ValueError("Task description cannot be empty")
        if self.position < 0:
            raise ValueError("Position must be non-negative")
        if self.bonus_amount is not None:
            self.bonus_amount = to_money(self.bonus_amount)
            if self.bonus_amount < 0:
                raise ValueError("Bonus amount cannot be negative")
        if self.estimated_duration is not None and self.estimated_duration <= 0:
            raise ValueError("Estimated duration must be positive")

    @property
    def is_required(self) -> bool:
        return not self.is_optional

    @property
    def is_outstanding(self) -> bool:
        """Required and not yet done."""
        return self.is_required and not self.is_completed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "description": self.description,
            "position": self.position,
            "is_optional": self.is_optional,
            "is_completed": self.is_completed,
            "completed_at": format_datetime(self.completed_at),
            "completed_by": self.completed_by,
            "due_time": format_datetime(self.due_time),
            "location": self.location,
            "bonus_amount": money_to_float(self.bonus_amount),
            "estimated_duration": self.estimated_duration,
            "notes": self.notes,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            description=data["description"],
            position=int(data.get("position", 0)),
            is_optional=bool(data.get("is_optional", False)),
            is_completed=bool(data.get("is_completed", False)),
            completed_at=parse_datetime(data.get("completed_at")),
            completed_by=data.get("completed_by"),
            due_time=parse_datetime(data.get("due_time")),
            location=data.get("location"),
            bonus_amount=data.get("bonus_amount"),
            estimated_duration=data.get("estimated_duration"),
            notes=data.get("notes"),
            created_at=parse_datetime(data.get("created_at")),
        )


@dataclass
class TaskDraft:
    """Poster-supplied fields for a new task."""

    description: str
    is_optional: bool = False
    due_time: Optional[datetime] = None
    location: Optional[str] = None
    bonus_amount: Optional[Decimal] = None
    estimated_duration: Optional[int] = None
    notes: Optional[str] = None


# Fields a poster may patch; position and completion go through reorder/complete.
EDITABLE_TASK_FIELDS = frozenset(
    {"description", "is_optional", "due_time", "location", "bonus_amount", "estimated_duration", "notes"}
)
