"""Earning records created when a worker completes a job."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from gigmarket.types import format_datetime, money_to_float, parse_datetime, to_money


class EarningStatus(str, Enum):
    PENDING = "pending"  # Transfer not yet confirmed by the gateway
    PAID = "paid"  # Gateway confirmed the transfer


@dataclass
class Earning:
    """What a worker is owed for a completed job.

    Attributes:
        id: Unique identifier
        job_id: Completed job
        worker_id: Worker being paid
        amount: Worker's payment (the job's payment amount)
        service_fee: Platform fee recorded for reporting
        status: pending or paid
        date_earned: When the job was completed
        date_paid: When the transfer was confirmed
        transaction_id: Gateway transfer id
        description: Human readable label
    """

    id: str
    job_id: str
    worker_id: str
    amount: Decimal
    service_fee: Decimal = Decimal("0")
    status: str = EarningStatus.PENDING.value
    date_earned: Optional[datetime] = None
    date_paid: Optional[datetime] = None
    transaction_id: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.status, EarningStatus):
            self.status = self.status.value
        valid_statuses = {s.value for s in EarningStatus}
        if self.status not in valid_statuses:
            raise ValueError(f"Invalid status: {self.status}. Must be one of {valid_statuses}")
        self.amount = to_money(self.amount)
        self.service_fee = to_money(self.service_fee)
        if self.amount <= 0:
            raise ValueError("Amount must be positive")

    @property
    def is_pending(self) -> bool:
        return self.status == EarningStatus.PENDING.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "worker_id": self.worker_id,
            "amount": money_to_float(self.amount),
            "service_fee": money_to_float(self.service_fee),
            "status": self.status,
            "date_earned": format_datetime(self.date_earned),
            "date_paid": format_datetime(self.date_paid),
            "transaction_id": self.transaction_id,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Earning":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            worker_id=data["worker_id"],
            amount=data["amount"],
            service_fee=data.get("service_fee", 0),
            status=data.get("status", EarningStatus.PENDING.value),
            date_earned=parse_datetime(data.get("date_earned")),
            date_paid=parse_datetime(data.get("date_paid")),
            transaction_id=data.get("transaction_id"),
            description=data.get("description"),
        )
