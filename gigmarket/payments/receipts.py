"""Receipts for charged jobs."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from gigmarket.jobs.models import Job
from gigmarket.payments.models import Payment
from gigmarket.types import format_datetime, money_to_float


@dataclass
class Receipt:
    receipt_number: str
    job_id: str
    job_title: str
    poster_id: str
    worker_id: Optional[str]
    payment_amount: Decimal
    service_fee: Decimal
    total_amount: Decimal
    currency: str
    transaction_id: Optional[str]
    paid_at: Optional[datetime]
    job_status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "receipt_number": self.receipt_number,
            "job_id": self.job_id,
            "job_title": self.job_title,
            "poster_id": self.poster_id,
            "worker_id": self.worker_id,
            "payment_amount": money_to_float(self.payment_amount),
            "service_fee": money_to_float(self.service_fee),
            "total_amount": money_to_float(self.total_amount),
            "currency": self.currency,
            "transaction_id": self.transaction_id,
            "paid_at": format_datetime(self.paid_at),
            "job_status": self.job_status,
        }

    def render_text(self) -> str:
        lines = [
            f"Receipt {self.receipt_number}",
            f"Job: {self.job_title} ({self.job_id})",
            f"Worker payment: {self.payment_amount} {self.currency.upper()}",
            f"Service fee:    {self.service_fee} {self.currency.upper()}",
            f"Total charged:  {self.total_amount} {self.currency.upper()}",
        ]
        if self.transaction_id:
            lines.append(f"Transaction: {self.transaction_id}")
        if self.paid_at:
            lines.append(f"Paid: {self.paid_at:%Y-%m-%d %H:%M} UTC")
        return "\n".join(lines)


def build_receipt(job: Job, charge: Payment, currency: str = "usd") -> Receipt:
    """Receipt for the poster's charge on a job."""
    return Receipt(
        receipt_number=f"R-{job.id.split('-')[0].upper()}",
        job_id=job.id,
        job_title=job.title,
        poster_id=job.poster_id,
        worker_id=job.worker_id,
        payment_amount=job.payment_amount,
        service_fee=charge.service_fee,
        total_amount=charge.amount,
        currency=currency,
        transaction_id=charge.transaction_id,
        paid_at=charge.created_at,
        job_status=job.status,
    )
