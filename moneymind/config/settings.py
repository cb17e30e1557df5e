"""
Configuration Management for MoneyMind

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Engine thresholds (summary window, series length, recurrence guard) are
product rules with fixed defaults; they live here so tests and
deployments can see them in one place.
"""

from datetime import date, datetime
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    timezone: str = Field(
        default="UTC",
        description="IANA timezone used to decide what 'today' is"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Fail at startup rather than on the first date computation."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator('log_level')
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper()


class EngineSettings(BaseSettings):
    """Ledger engine thresholds."""

    model_config = SettingsConfigDict(
        env_prefix="MONEYMIND_",
        extra="ignore"
    )

    summary_window_days: int = Field(
        default=30,
        ge=1,
        description="Days covered by the narrative summary"
    )
    summary_min_transactions: int = Field(
        default=5,
        ge=0,
        description="Below this many transactions in the window the summary is withheld"
    )
    series_months: int = Field(
        default=6,
        ge=1,
        le=60,
        description="Months in the income/expense series (current month included)"
    )
    max_recurring_occurrences: int = Field(
        default=20000,
        ge=1,
        description="Upper bound on occurrences walked per rule in one refresh"
    )


class StorageSettings(BaseSettings):
    """Ledger document storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MONEYMIND_STORAGE_",
        extra="ignore"
    )

    ledger_path: Optional[str] = Field(
        default=None,
        description="Path of the JSON ledger document; in-memory storage when unset"
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a storage write before giving up"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def app(self) -> AppSettings:
        return AppSettings()

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def local_today() -> date:
    """Today's date in the configured timezone."""
    tz = ZoneInfo(get_settings().app.timezone)
    return datetime.now(tz).date()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("app", "engine", "storage"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
