"""Payments subsystem.

Modules:
- gateway.py: PaymentGateway protocol plus in-memory and HTTP implementations
- ledger.py: Records of every charge, transfer and refund
- receipts.py: Receipts built from a job's charge
"""

from gigmarket.payments.gateway import (
    GatewayResult,
    HttpPaymentGateway,
    InMemoryPaymentGateway,
    PaymentGateway,
    PayoutAccountStatus,
    create_gateway,
)
from gigmarket.payments.ledger import PaymentLedger
from gigmarket.payments.models import Payment, PaymentKind, PaymentStatus
from gigmarket.payments.receipts import Receipt, build_receipt

__all__ = [
    # Gateway
    "PaymentGateway",
    "GatewayResult",
    "PayoutAccountStatus",
    "InMemoryPaymentGateway",
    "HttpPaymentGateway",
    "create_gateway",
    # Ledger
    "Payment",
    "PaymentKind",
    "PaymentStatus",
    "PaymentLedger",
    # Receipts
    "Receipt",
    "build_receipt",
]
