"""Payment ledger: records every gateway money movement per job."""

import logging
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from gigmarket.jobs.models import Job
from gigmarket.payments.gateway import GatewayResult
from gigmarket.payments.models import Payment, PaymentKind, PaymentStatus
from gigmarket.types import utc_now

if TYPE_CHECKING:
    from gigmarket.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)


class PaymentLedger:
    def __init__(self, storage: "MarketplaceStorage"):
        self.storage = storage

    def record(
        self,
        job: Job,
        kind: PaymentKind,
        result: GatewayResult,
        amount: Decimal,
        payer_id: Optional[str] = None,
        payee_id: Optional[str] = None,
        transaction_id: Optional[str] = None,
    ) -> Payment:
        """Record a gateway call's outcome.

        Refunds pass the refunded charge's ``transaction_id`` so the charge
        can be matched to its reversal.
        """
        payment = Payment(
            id=str(uuid.uuid4()),
            job_id=job.id,
            payer_id=payer_id,
            payee_id=payee_id,
            kind=kind,
            amount=amount,
            service_fee=job.service_fee if kind == PaymentKind.CHARGE else Decimal("0"),
            status=PaymentStatus.SUCCEEDED if result.success else PaymentStatus.FAILED,
            transaction_id=transaction_id or result.transaction_id,
            error=result.error,
            created_at=utc_now(),
        )
        self.storage.save_payment(payment)
        logger.debug(f"Recorded {payment.kind} {payment.status} for job {job.id} ({payment.amount})")
        return payment

    def list_for_job(self, job_id: str) -> List[Payment]:
        return self.storage.list_payments(job_id)

    def successful_charge(self, job_id: str, include_refunded: bool = False) -> Optional[Payment]:
        """Latest succeeded charge that was not refunded.

        With ``include_refunded`` a refunded charge is returned when no live
        one exists (receipts of canceled jobs).
        """
        payments = self.storage.list_payments(job_id)
        refunded = {p.transaction_id for p in payments if p.kind == PaymentKind.REFUND.value and p.succeeded}
        charges = [p for p in payments if p.kind == PaymentKind.CHARGE.value and p.succeeded]
        live = [p for p in charges if p.transaction_id not in refunded]
        if live:
            return live[-1]
        if include_refunded and charges:
            return charges[-1]
        return None
