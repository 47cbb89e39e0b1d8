"""Configuration settings for the Gigmarket backend."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # JWT (tokens are issued by the identity service, verified here)
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24  # 1 day

    # Storage
    storage_backend: Literal["sqlite", "memory"] = "sqlite"
    database_path: str | None = None  # Defaults to ~/.gigmarket/marketplace.db

    # Payments micro-service; unset means the in-memory gateway
    payments_base_url: str | None = None
    payments_api_key: str | None = None
    payments_timeout: float = 30.0

    # Marketplace policy
    service_fee_flat: float = 2.50
    service_fee_rate: float = 0.0
    service_fee_minimum: float = 0.0
    minimum_payment: float = 10.00
    currency: str = "usd"
    require_upfront_payment: bool = True
    require_payout_account: bool = True

    # Rate limiting (disable for load tests and local scripts)
    rate_limit_enabled: bool = True

    # App
    debug: bool = False
    log_level: str = "INFO"
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
