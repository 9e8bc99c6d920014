"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup — if a setting is malformed, the app fails fast with a clear
error message.

Usage:
    from arbitrated_escrow.config import get_settings
    settings = get_settings()
    print(settings.store_backend)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the arbitrated escrow service."""

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

    # --- Document store ---
    # "memory" keeps everything in-process (demos, tests); "sql" uses database_url.
    store_backend: Literal["memory", "sql"] = "sql"

    # --- Database (PostgreSQL in production, SQLite for local runs) ---
    database_url: str = (
        "postgresql+asyncpg://escrow:escrow_dev"
        "@localhost:5432/arbitrated_escrow"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis (create idempotency keys) ---
    redis_url: str = "redis://localhost:6379/0"
    redis_idempotency_ttl_seconds: int = 86400  # 24 hours

    # --- Escrow ---
    escrow_wallet_address: str = "bc1qsjk265qpnpzndl8439tmelxzgd8qnnwewrkrf7"
    supported_currencies: str = "BTC,BCH,ETH"
    arbitrator_emails: str = "admin@escrow.com"
    transaction_id_prefix: str = "TX"

    # --- Side effects (audit + notifications) ---
    side_effect_max_attempts: int = 3
    side_effect_backoff_seconds: float = 0.5
    side_effect_backoff_max_seconds: float = 5.0

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def supported_currency_list(self) -> list[str]:
        """Parse comma-separated currency codes into an upper-case list."""
        return [c.strip().upper() for c in self.supported_currencies.split(",") if c.strip()]

    @property
    def arbitrator_email_set(self) -> frozenset[str]:
        """Emails that are granted the arbitrator role on registration."""
        return frozenset(
            e.strip().lower() for e in self.arbitrator_emails.split(",") if e.strip()
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
