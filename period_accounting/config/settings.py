"""
Configuration Management for the Period Accounting Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Store credentials and engine tunables (highlight cap, heat percentile,
weekly carryover) are read once and validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

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

    # Sheet names within the spreadsheet
    budgets_sheet_name: str = Field(
        default="Budgets",
        description="Name of the sheet for monthly allocations"
    )
    weekly_budgets_sheet_name: str = Field(
        default="WeeklyBudgets",
        description="Name of the sheet for weekly allocations"
    )
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the (read-only) transactions sheet"
    )
    highlights_sheet_name: str = Field(
        default="Highlights",
        description="Name of the sheet for highlighted budgets"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the engine."
            )
        return v


class EngineSettings(BaseSettings):
    """
    Tunables of the accounting engine.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Highlights
    highlight_limit: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Maximum number of pinned budgets per owner"
    )

    # Calendar heatmap
    heat_percentile: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Percentile of expense days used as the heat threshold"
    )

    # Weekly budgets
    weekly_carryover_enabled: bool = Field(
        default=True,
        description="Copy flagged weekly allocations into the following week"
    )

    # Display
    unassigned_label: str = Field(
        default="Uncategorized",
        min_length=1,
        description="Label for allocations without a category"
    )
    generic_error_message: str = Field(
        default="Something went wrong. Please try again.",
        description="Message shown for unexpected internal errors"
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
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus an
    `<name>_error` entry for each section that failed to load.
    """
    results = {}

    settings = get_settings()

    sections = {
        "google_sheets": lambda: settings.google_sheets,
        "engine": lambda: settings.engine,
    }
    for name, load in sections.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
