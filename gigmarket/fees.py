"""Platform service-fee policy."""

from dataclasses import dataclass
from decimal import Decimal

from gigmarket.config import MarketplaceConfig
from gigmarket.types import to_money


@dataclass(frozen=True)
class FeePolicy:
    """Fee charged to the poster on top of the worker's payment.

    fee = max(flat + rate * payment_amount, minimum)

    The default policy is the flat $2.50 used at checkout; the percentage
    component is off unless configured.
    """

    flat: Decimal = Decimal("2.50")
    rate: Decimal = Decimal("0")
    minimum: Decimal = Decimal("0")

    @classmethod
    def from_config(cls, config: MarketplaceConfig) -> "FeePolicy":
        return cls(
            flat=config.service_fee_flat,
            rate=config.service_fee_rate,
            minimum=config.service_fee_minimum,
        )

    def service_fee(self, payment_amount) -> Decimal:
        amount = to_money(payment_amount)
        if amount <= 0:
            raise ValueError("Payment amount must be positive")
        fee = to_money(self.flat) + to_money(amount * Decimal(str(self.rate)))
        return max(fee, to_money(self.minimum))
