"""Storage and controller wiring for the API."""

from typing import Annotated

from fastapi import Depends

from gigmarket.config import MarketplaceConfig
from gigmarket.lifecycle import LifecycleController
from gigmarket.payments.gateway import create_gateway
from gigmarket.storage import InMemoryStorage, SQLiteStorage

from .config import Settings, get_settings

_controller: LifecycleController | None = None


def build_config(settings: Settings) -> MarketplaceConfig:
    """Marketplace policy from API settings."""
    return MarketplaceConfig(
        service_fee_flat=settings.service_fee_flat,
        service_fee_rate=settings.service_fee_rate,
        service_fee_minimum=settings.service_fee_minimum,
        minimum_payment=settings.minimum_payment,
        currency=settings.currency,
        require_upfront_payment=settings.require_upfront_payment,
        require_payout_account=settings.require_payout_account,
        **({"db_path": settings.database_path} if settings.database_path else {}),
        payments_base_url=settings.payments_base_url,
        payments_api_key=settings.payments_api_key,
        payments_timeout=settings.payments_timeout,
    )


def build_controller(settings: Settings) -> LifecycleController:
    config = build_config(settings)
    if settings.storage_backend == "memory":
        storage = InMemoryStorage()
    else:
        storage = SQLiteStorage(config.db_path)
    return LifecycleController(storage, create_gateway(config), config)


def get_lifecycle_controller(settings: Settings | None = None) -> LifecycleController:
    """Get the process-wide controller, building it on first use."""
    global _controller
    if _controller is None:
        _controller = build_controller(settings or get_settings())
    return _controller


def reset_lifecycle_controller() -> None:
    global _controller
    _controller = None


def get_controller(settings: Annotated[Settings, Depends(get_settings)]) -> LifecycleController:
    """FastAPI dependency for the lifecycle controller."""
    return get_lifecycle_controller(settings)


# Type alias for dependency injection
Controller = Annotated[LifecycleController, Depends(get_controller)]
