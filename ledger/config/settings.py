"""
Configuration Management for Household Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Statutory constants (flat tax rate, progressive threshold) and the defaults
used when a settings row is created lazily live in one place, so changing
the tax regime never means hunting through calculators.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Financial constants and defaults for the derivation engine."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Tax regime
    flat_tax_rate: Decimal = Field(
        default=Decimal("0.06"),
        ge=0,
        le=1,
        description="Flat income tax rate applied to taxable income"
    )
    progressive_threshold: Decimal = Field(
        default=Decimal("300000"),
        ge=0,
        description="Annual taxable income above which the surcharge applies"
    )
    default_extra_rate: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        le=1,
        description="Surcharge rate used when tax settings are first created"
    )
    default_annual_fixed_levy: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Fixed annual insurance levy used when tax settings are first created"
    )

    # Savings
    default_goal_amount: Decimal = Field(
        default=Decimal("1000000"),
        gt=0,
        description="Savings goal used when savings settings are first created"
    )
    default_target_monthly: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Monthly savings target used when savings settings are first created"
    )
    mirror_savings_entries: bool = Field(
        default=True,
        description="Record every savings contribution as an expense transaction"
    )

    # Budget
    planned_monthly_income: Optional[Decimal] = Field(
        default=None,
        description="Planned income for the month; actual income is used when unset"
    )

    # Input sanity
    max_amount: Decimal = Field(
        default=Decimal("100000000"),
        gt=0,
        description="Largest amount accepted from user input"
    )

    # Display
    currency_symbol: str = Field(
        default="₽",
        max_length=5,
        description="Currency symbol appended to formatted amounts"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets record store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


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
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for structured logs"
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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("ledger", "google_sheets", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
