"""Payment ledger records.

Every money movement requested from the gateway (charge, transfer, refund) is
recorded, whether it succeeded or not.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from gigmarket.types import format_datetime, money_to_float, parse_datetime, to_money


class PaymentKind(str, Enum):
    CHARGE = "charge"  # Poster charged for a job
    TRANSFER = "transfer"  # Worker paid out
    REFUND = "refund"  # Charge returned to the poster


class PaymentStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Payment:
    id: str
    job_id: str
    payer_id: Optional[str]
    kind: str
    amount: Decimal
    status: str
    payee_id: Optional[str] = None
    service_fee: Decimal = Decimal("0")
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.kind, PaymentKind):
            self.kind = self.kind.value
        if isinstance(self.status, PaymentStatus):
            self.status = self.status.value
        if self.kind not in {k.value for k in PaymentKind}:
            raise ValueError(f"Invalid payment kind: {self.kind}")
        if self.status not in {s.value for s in PaymentStatus}:
            raise ValueError(f"Invalid status: {self.status}")
        self.amount = to_money(self.amount)
        self.service_fee = to_money(self.service_fee)

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.SUCCEEDED.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "payer_id": self.payer_id,
            "payee_id": self.payee_id,
            "kind": self.kind,
            "amount": money_to_float(self.amount),
            "service_fee": money_to_float(self.service_fee),
            "status": self.status,
            "transaction_id": self.transaction_id,
            "error": self.error,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Payment":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            payer_id=data.get("payer_id"),
            payee_id=data.get("payee_id"),
            kind=data["kind"],
            amount=data["amount"],
            service_fee=data.get("service_fee", 0),
            status=data["status"],
            transaction_id=data.get("transaction_id"),
            error=data.get("error"),
            created_at=parse_datetime(data.get("created_at")),
        )
