"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development")
    app_debug: bool = Field(default=False)
    app_log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Ledger API
    ledger_api_url: str = Field(default="https://api.ynab.com/v1")
    ledger_access_token: Optional[str] = Field(default=None)
    ledger_timeout_seconds: float = Field(default=30.0)

    # Matching Parameters
    date_tolerance_days: int = Field(default=5)
    amount_tolerance_cents: int = Field(default=1)
    description_similarity_threshold: float = Field(default=0.8)
    auto_match_threshold: int = Field(default=90)
    suggestion_threshold: int = Field(default=60)

    # Execution Parameters
    dry_run: bool = Field(default=True)
    auto_create_transactions: bool = Field(default=False)
    auto_update_cleared_status: bool = Field(default=False)
    auto_unclear_missing: bool = Field(default=True)
    auto_adjust_dates: bool = Field(default=False)

    # Currency used when the ledger does not report one
    default_currency: str = Field(default="USD")

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
