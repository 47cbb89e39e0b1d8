"""Payment gateway adapter.

The lifecycle controller talks to the payment processor only through the
PaymentGateway protocol:

- create_connect_account / get_connect_account_status: worker payout accounts
- process_payment: charge the poster for a job
- pay_worker: transfer a worker's earning to their payout account
- cancel_payment: refund or void a previous charge

Money-moving calls never raise for processor-side failures; they return a
GatewayResult with ``success=False``. Account calls raise PaymentGatewayError.
Retrying is the adapter's business, not the caller's.
"""

import itertools
import logging
import threading
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

import httpx

from gigmarket.errors import PaymentGatewayError
from gigmarket.types import to_cents, to_money

logger = logging.getLogger(__name__)


@dataclass
class GatewayResult:
    """Outcome of a money-moving gateway call."""

    success: bool
    transaction_id: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[Decimal] = None

    # Error info (populated if success=False)
    error: Optional[str] = None
    error_code: Optional[str] = None

    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: str, error_code: Optional[str] = None, **kwargs) -> "GatewayResult":
        return cls(success=False, status="failed", error=error, error_code=error_code, **kwargs)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "transaction_id": self.transaction_id,
            "status": self.status,
            "amount": str(self.amount) if self.amount is not None else None,
            "error": self.error,
            "error_code": self.error_code,
        }


@dataclass
class PayoutAccountStatus:
    """Verification state of a worker's payout account, as reported by the processor."""

    user_id: str
    account_id: Optional[str] = None
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    requirements_currently_due: List[str] = field(default_factory=list)

    @property
    def is_verified(self) -> bool:
        return bool(
            self.account_id
            and self.charges_enabled
            and self.payouts_enabled
            and not self.requirements_currently_due
        )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "account_id": self.account_id,
            "charges_enabled": self.charges_enabled,
            "payouts_enabled": self.payouts_enabled,
            "details_submitted": self.details_submitted,
            "requirements": {"currently_due": list(self.requirements_currently_due)},
            "is_verified": self.is_verified,
        }

    @classmethod
    def from_dict(cls, user_id: str, data: Dict[str, Any]) -> "PayoutAccountStatus":
        requirements = data.get("requirements") or {}
        return cls(
            user_id=user_id,
            account_id=data.get("account_id") or data.get("id"),
            charges_enabled=bool(data.get("charges_enabled", False)),
            payouts_enabled=bool(data.get("payouts_enabled", False)),
            details_submitted=bool(data.get("details_submitted", False)),
            requirements_currently_due=list(requirements.get("currently_due") or []),
        )


class PaymentGateway(Protocol):
    """Protocol for payment processors."""

    def create_connect_account(self, user_id: str, email: Optional[str] = None) -> PayoutAccountStatus:
        ...

    def get_connect_account_status(self, user_id: str) -> PayoutAccountStatus:
        ...

    def process_payment(
        self, job_id: str, payer_id: str, payment_method_id: str, amount: Decimal
    ) -> GatewayResult:
        ...

    def pay_worker(self, job_id: str, worker_id: str, amount: Decimal) -> GatewayResult:
        ...

    def cancel_payment(self, transaction_id: str) -> GatewayResult:
        ...


# Payment method ids the in-memory gateway always declines
DECLINED_PAYMENT_METHODS = frozenset({"pm_card_chargeDeclined", "pm_card_insufficientFunds"})


class InMemoryPaymentGateway:
    """Local payment processor for development and tests.

    Payout accounts start unverified and become verified through
    ``verify_account`` (the equivalent of finishing onboarding). Failures are
    injected with the ``fail_*`` flags or ``unavailable``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self.accounts: Dict[str, PayoutAccountStatus] = {}
        self.charges: Dict[str, Dict[str, Any]] = {}
        self.transfers: Dict[str, Dict[str, Any]] = {}
        self.refunds: Dict[str, Dict[str, Any]] = {}
        self.fail_payments = False
        self.fail_payouts = False
        self.fail_refunds = False
        self.unavailable = False

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids):06d}"

    def _check_available(self) -> None:
        if self.unavailable:
            raise PaymentGatewayError("Payment service unavailable", error_code="unavailable")

    def create_connect_account(self, user_id: str, email: Optional[str] = None) -> PayoutAccountStatus:
        self._check_available()
        with self._lock:
            account = self.accounts.get(user_id)
            if account is None:
                account = PayoutAccountStatus(
                    user_id=user_id,
                    account_id=self._next_id("acct"),
                    requirements_currently_due=["external_account", "individual.verification.document"],
                )
                self.accounts[user_id] = account
                logger.info(f"Created payout account {account.account_id} for {user_id}")
            return account

    def verify_account(self, user_id: str) -> PayoutAccountStatus:
        account = self.create_connect_account(user_id)
        with self._lock:
            account.charges_enabled = True
            account.payouts_enabled = True
            account.details_submitted = True
            account.requirements_currently_due = []
        return account

    def get_connect_account_status(self, user_id: str) -> PayoutAccountStatus:
        self._check_available()
        with self._lock:
            account = self.accounts.get(user_id)
            if account is None:
                return PayoutAccountStatus(user_id=user_id, requirements_currently_due=["account"])
            return replace(account, requirements_currently_due=list(account.requirements_currently_due))

    def process_payment(
        self, job_id: str, payer_id: str, payment_method_id: str, amount: Decimal
    ) -> GatewayResult:
        self._check_available()
        amount = to_money(amount)
        if amount <= 0:
            return GatewayResult.failure("Amount must be positive", "invalid_amount")
        if self.fail_payments or payment_method_id in DECLINED_PAYMENT_METHODS:
            return GatewayResult.failure("Your card was declined", "card_declined", amount=amount)
        with self._lock:
            charge_id = self._next_id("pi")
            self.charges[charge_id] = {
                "job_id": job_id,
                "payer_id": payer_id,
                "payment_method_id": payment_method_id,
                "amount": amount,
                "status": "succeeded",
            }
        return GatewayResult(success=True, transaction_id=charge_id, status="succeeded", amount=amount)

    def pay_worker(self, job_id: str, worker_id: str, amount: Decimal) -> GatewayResult:
        self._check_available()
        amount = to_money(amount)
        if self.fail_payouts:
            return GatewayResult.failure("Transfer failed", "transfer_failed", amount=amount)
        with self._lock:
            account = self.accounts.get(worker_id)
            if account is None or not account.is_verified:
                return GatewayResult.failure(
                    "Worker payout account is not ready", "account_not_ready", amount=amount
                )
            transfer_id = self._next_id("tr")
            self.transfers[transfer_id] = {
                "job_id": job_id,
                "worker_id": worker_id,
                "destination": account.account_id,
                "amount": amount,
            }
        return GatewayResult(success=True, transaction_id=transfer_id, status="paid", amount=amount)

    def cancel_payment(self, transaction_id: str) -> GatewayResult:
        self._check_available()
        if self.fail_refunds:
            return GatewayResult.failure("Refund failed", "refund_failed")
        with self._lock:
            charge = self.charges.get(transaction_id)
            if charge is None:
                return GatewayResult.failure(f"No such payment: {transaction_id}", "resource_missing")
            if charge["status"] == "refunded":
                return GatewayResult.failure("Payment already refunded", "charge_already_refunded")
            charge["status"] = "refunded"
            refund_id = self._next_id("re")
            self.refunds[refund_id] = {"charge": transaction_id, "amount": charge["amount"]}
        return GatewayResult(success=True, transaction_id=refund_id, status="refunded", amount=charge["amount"])


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"Payment service returned HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        message = error or body.get("message") or body.get("detail")
        if message:
            return str(message)
    return f"Payment service returned HTTP {response.status_code}"


class HttpPaymentGateway:
    """Gateway backed by the payments service's JSON API.

    Amounts are sent in minor units (cents). ``client`` may be injected, e.g.
    an httpx.Client with a MockTransport in tests.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        currency: str = "usd",
        client: Optional[httpx.Client] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.currency = currency
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout, headers=headers)

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise PaymentGatewayError(
                _error_message(e.response), error_code=f"http_{e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Payment service unreachable: {e}", error_code="transport_error") from e
        except ValueError as e:
            raise PaymentGatewayError("Payment service returned invalid JSON", error_code="invalid_response") from e
        if not isinstance(data, dict):
            raise PaymentGatewayError("Payment service returned invalid JSON", error_code="invalid_response")
        return data

    def _money_call(self, path: str, payload: dict, ok_statuses: frozenset, amount: Optional[Decimal]) -> GatewayResult:
        try:
            data = self._request("POST", path, payload)
        except PaymentGatewayError as e:
            logger.warning(f"Payment service call {path} failed: {e}")
            return GatewayResult.failure(str(e), e.error_code, amount=amount)

        status = data.get("status")
        if status not in ok_statuses:
            return GatewayResult.failure(
                data.get("error") or f"Payment status: {status}",
                data.get("error_code") or status,
                transaction_id=data.get("id"),
                amount=amount,
                raw=data,
            )
        return GatewayResult(success=True, transaction_id=data.get("id"), status=status, amount=amount, raw=data)

    def create_connect_account(self, user_id: str, email: Optional[str] = None) -> PayoutAccountStatus:
        data = self._request("POST", "/connect/accounts", {"user_id": user_id, "email": email})
        return PayoutAccountStatus.from_dict(user_id, data)

    def get_connect_account_status(self, user_id: str) -> PayoutAccountStatus:
        data = self._request("GET", f"/connect/accounts/{user_id}")
        return PayoutAccountStatus.from_dict(user_id, data)

    def process_payment(
        self, job_id: str, payer_id: str, payment_method_id: str, amount: Decimal
    ) -> GatewayResult:
        amount = to_money(amount)
        payload = {
            "job_id": job_id,
            "payer_id": payer_id,
            "payment_method_id": payment_method_id,
            "amount": to_cents(amount),
            "currency": self.currency,
        }
        return self._money_call("/payments", payload, frozenset({"succeeded"}), amount)

    def pay_worker(self, job_id: str, worker_id: str, amount: Decimal) -> GatewayResult:
        amount = to_money(amount)
        payload = {
            "job_id": job_id,
            "worker_id": worker_id,
            "amount": to_cents(amount),
            "currency": self.currency,
        }
        return self._money_call("/transfers", payload, frozenset({"paid", "succeeded"}), amount)

    def cancel_payment(self, transaction_id: str) -> GatewayResult:
        return self._money_call(
            f"/payments/{transaction_id}/cancel", {}, frozenset({"refunded", "canceled", "succeeded"}), None
        )


def create_gateway(config) -> PaymentGateway:
    """HTTP gateway when a payments service is configured, in-memory otherwise."""
    if config.payments_base_url:
        return HttpPaymentGateway(
            config.payments_base_url,
            api_key=config.payments_api_key,
            timeout=config.payments_timeout,
            currency=config.currency,
        )
    logger.warning("No payments service configured; using in-memory payment gateway")
    return InMemoryPaymentGateway()
