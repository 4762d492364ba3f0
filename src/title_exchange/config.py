"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup — if a setting is malformed, the app fails fast with a clear
error message.

Usage:
    from title_exchange.config import get_settings
    settings = get_settings()
    print(settings.marketplace_fee_rate)
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Title Exchange."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database (event stream persistence) ---
    database_url: str = (
        "postgresql+asyncpg://title_exchange:title_exchange_dev"
        "@localhost:5432/title_exchange"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Marketplace ---
    marketplace_fee_rate: Decimal = Field(default=Decimal("0.025"), ge=0, lt=1)
    marketplace_fee_recipient: str = "fee-recipient"
    marketplace_min_bid_increment: Decimal = Field(default=Decimal("0.01"), gt=0, lt=1)
    marketplace_payment_window_seconds: int = Field(default=86400, gt=0)  # 24 hours
    marketplace_max_confirmation_window_seconds: int = Field(default=604800, gt=0)  # 7 days
    marketplace_custody_account: str = "custody"
    # Comma-separated lists
    marketplace_admins: str = "admin"
    marketplace_accepted_assets: str = "NATIVE"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def admin_list(self) -> list[str]:
        """Parse comma-separated admin participants into a list."""
        return _split_csv(self.marketplace_admins)

    @property
    def accepted_asset_list(self) -> list[str]:
        """Parse comma-separated accepted asset ids into a list."""
        return _split_csv(self.marketplace_accepted_assets)


def _split_csv(raw: str) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
