"""
Centralized configuration management with Pydantic Settings.
All environment variables are validated and typed.
"""
from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "OrderDesk API"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = Field(default="development", pattern="^(development|staging|production|test)$")

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database (postgresql:// in production, sqlite+aiosqlite:// for local runs)
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_echo: bool = False

    # Security
    secret_key: str = Field(min_length=32)
    jwt_algorithm: str = "HS256"
    jwt_expiration_hours: int = 24

    # CORS - stored as comma-separated string to avoid JSON parsing issues
    allowed_origins_str: str = Field(default="http://localhost:5173", alias="ALLOWED_ORIGINS")

    @property
    def allowed_origins(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins_str.split(",") if origin.strip()]

    # Razorpay (payments disabled without key id/secret)
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    razorpay_webhook_secret: Optional[str] = None
    razorpay_api_url: str = "https://api.razorpay.com/v1"
    razorpay_timeout_seconds: float = 10.0
    # Refuse to start without a webhook secret (set in production)
    require_webhook_secret: bool = False
    # Re-fetch the payment from the gateway before marking an order paid
    corroborate_payments: bool = True

    currency: str = "INR"

    # Manual UPI transfers (staff can override both at runtime)
    upi_id: str = ""
    upi_merchant_name: str = "Store"

    # Fees
    platform_fee_kind: str = Field(default="fixed", pattern="^(fixed|percentage)$")
    platform_fee_value: Decimal = Decimal("0")
    tax_rate_percent: Decimal = Decimal("0")
    delivery_fee_base: Decimal = Decimal("30")
    delivery_fee_per_km: Decimal = Decimal("5")
    free_delivery_threshold: Decimal = Decimal("500")
    delivery_radius_km: float = 10.0
    store_lat: float = 28.6139
    store_lng: float = 77.2090

    # Customers may cancel an unaccepted order within this window
    cancel_window_seconds: int = 30

    # Observability
    sentry_dsn: Optional[str] = None
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
