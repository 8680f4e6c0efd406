"""Configuration package."""

from rcb.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    LedgerSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "LedgerSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
