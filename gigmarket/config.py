"""
Marketplace configuration.

Defaults match the production marketplace: a flat $2.50 platform fee on top
of the worker's payment, upfront charging for fixed-price jobs and a verified
payout account before a worker may apply.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Optional

from gigmarket.types import to_money

ENV_PREFIX = "GIGMARKET_"
_TRUTHY = {"1", "true", "yes", "on"}


def _env(name: str) -> Optional[str]:
    value = os.environ.get(f"{ENV_PREFIX}{name}")
    if value is None or not value.strip():
        return None
    return value.strip()


def default_db_path() -> Path:
    return Path.home() / ".gigmarket" / "marketplace.db"


@dataclass
class MarketplaceConfig:
    """Runtime settings for stores, controller and payment adapter."""

    service_fee_flat: Decimal = Decimal("2.50")
    service_fee_rate: Decimal = Decimal("0")
    service_fee_minimum: Decimal = Decimal("0")
    minimum_payment: Decimal = Decimal("10.00")
    currency: str = "usd"
    require_upfront_payment: bool = True
    require_payout_account: bool = True
    db_path: Path = field(default_factory=default_db_path)
    payments_base_url: Optional[str] = None
    payments_api_key: Optional[str] = None
    payments_timeout: float = 30.0

    def __post_init__(self):
        self.service_fee_flat = to_money(self.service_fee_flat)
        self.service_fee_minimum = to_money(self.service_fee_minimum)
        self.minimum_payment = to_money(self.minimum_payment)
        self.service_fee_rate = Decimal(str(self.service_fee_rate))
        self.db_path = Path(self.db_path).expanduser()
        self.currency = self.currency.lower()

        if self.service_fee_flat < 0:
            raise ValueError("service_fee_flat cannot be negative")
        if self.service_fee_minimum < 0:
            raise ValueError("service_fee_minimum cannot be negative")
        if not (Decimal("0") <= self.service_fee_rate < Decimal("1")):
            raise ValueError("service_fee_rate must be in [0, 1)")
        if self.minimum_payment < 0:
            raise ValueError("minimum_payment cannot be negative")
        if self.payments_timeout <= 0:
            raise ValueError("payments_timeout must be positive")

    @classmethod
    def from_env(cls, **overrides) -> "MarketplaceConfig":
        """Build a config from GIGMARKET_* environment variables.

        Explicit keyword overrides win over the environment.
        """
        values = {}
        for key in ("service_fee_flat", "service_fee_rate", "service_fee_minimum", "minimum_payment"):
            raw = _env(key.upper())
            if raw is not None:
                values[key] = Decimal(raw)
        for key in ("require_upfront_payment", "require_payout_account"):
            raw = _env(key.upper())
            if raw is not None:
                values[key] = raw.lower() in _TRUTHY
        for key in ("currency", "db_path", "payments_base_url", "payments_api_key"):
            raw = _env(key.upper())
            if raw is not None:
                values[key] = raw
        raw_timeout = _env("PAYMENTS_TIMEOUT")
        if raw_timeout is not None:
            values["payments_timeout"] = float(raw_timeout)

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
