"""
Configuration Management for the Register of Cash in Bank

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what the ledger can be tuned on and which
external services it talks to.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Ledger engine behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="RCB_",
        extra="ignore"
    )

    # The printed register has room for three sub-account columns per kind
    max_accounts_per_kind: int = Field(
        default=3,
        ge=1,
        le=12,
        description="Maximum number of sub-account columns per kind"
    )
    autosave_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        le=300.0,
        description="Quiet period before unsaved changes are saved automatically"
    )

    default_mooe_accounts: list[str] = Field(
        default_factory=lambda: ["Travelling Expenses", "Maintenance/Other Operating"],
        description="MOOE columns of a newly created period"
    )
    default_co_accounts: list[str] = Field(
        default_factory=lambda: ["Office Equipment"],
        description="Capital Outlay columns of a newly created period"
    )
    default_withholding_types: list[str] = Field(
        default_factory=lambda: ["Type 1", "Type 2"],
        description="Withholding tax columns of a newly created period"
    )


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
    ledger_sheet_name: str = Field(
        default="RCB",
        description="Name of the sheet holding one row per period"
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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Which persistence gateway to use"
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

    # Loaded lazily so Google Sheets can stay unconfigured in local use

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

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the ones that failed.
    """
    results = {}

    settings = get_settings()

    for name in ("ledger", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
