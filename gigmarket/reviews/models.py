"""Review models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from gigmarket.types import format_datetime, parse_datetime

MIN_RATING = 1
MAX_RATING = 5


@dataclass
class Review:
    """A rating left by one party of a completed job for the other."""

    id: str
    job_id: str
    reviewer_id: str
    reviewee_id: str
    rating: int
    comment: Optional[str] = None
    date_reviewed: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.rating, bool) or not isinstance(self.rating, int):
            raise ValueError("Rating must be an integer")
        if not MIN_RATING <= self.rating <= MAX_RATING:
            raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
        if self.reviewer_id == self.reviewee_id:
            raise ValueError("Cannot review yourself")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "reviewer_id": self.reviewer_id,
            "reviewee_id": self.reviewee_id,
            "rating": self.rating,
            "comment": self.comment,
            "date_reviewed": format_datetime(self.date_reviewed),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Review":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            reviewer_id=data["reviewer_id"],
            reviewee_id=data["reviewee_id"],
            rating=int(data["rating"]),
            comment=data.get("comment"),
            date_reviewed=parse_datetime(data.get("date_reviewed")),
        )
