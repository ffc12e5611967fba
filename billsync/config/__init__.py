"""Configuration package."""

from billsync.config.settings import (
    AppSettings,
    FetchSettings,
    GoogleSheetsSettings,
    ProviderSettings,
    SecuritySettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "FetchSettings",
    "GoogleSheetsSettings",
    "ProviderSettings",
    "SecuritySettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
