"""
Configuration Management for billsync

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Fetch tuning (rate limit, retries, cache TTLs, failure policy) lives in
FetchSettings so the orchestrators never hard-code those numbers.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FetchSettings(BaseSettings):
    """Bill fetch orchestration tuning."""

    model_config = SettingsConfigDict(
        env_prefix="BILLSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Token bucket shared by all outbound provider calls
    rate_limit_requests: int = Field(
        default=100,
        ge=1,
        description="Tokens per rate limit interval"
    )
    rate_limit_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Rate limit interval in seconds"
    )

    # Read path
    fetch_max_attempts: int = Field(default=3, ge=1, le=10)
    fetch_backoff_base_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Backoff before retry n is base * 2^(n-1)"
    )
    bill_cache_ttl_seconds: int = Field(default=3600, ge=1)
    max_concurrent_fetches: int = Field(
        default=16,
        ge=1,
        description="Upper bound on concurrent per-account tasks"
    )
    fetch_failure_policy: Literal["strict", "lenient"] = Field(
        default="strict",
        description="strict: one failed account fails the call; lenient: it contributes no bills"
    )

    # Refresh path
    refresh_max_attempts: int = Field(default=3, ge=1, le=10)
    refresh_backoff_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Linear backoff step between refresh attempts"
    )
    refresh_cache_ttl_seconds: int = Field(default=86400, ge=1)

    # Background refresh
    periodic_refresh_enabled: bool = False
    periodic_refresh_interval_seconds: float = Field(default=86400.0, gt=0)


class ProviderSettings(BaseSettings):
    """Provider adapter configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PROVIDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    mock_base_url: str = Field(
        default="http://localhost:8083",
        description="Base URL of the mock provider server"
    )
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    simulated_failure_rate: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Failure probability of the in-process simulated provider"
    )


class SecuritySettings(BaseSettings):
    """Credential encryption configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SECURITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    secret_key: str = Field(
        default="default-secret-key-change-in-production",
        min_length=8,
        description="Key material for encrypting linked account credentials"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
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

    # Worksheet names within the spreadsheet
    users_sheet_name: str = "Users"
    providers_sheet_name: str = "Providers"
    accounts_sheet_name: str = "LinkedAccounts"
    bills_sheet_name: str = "Bills"
    audit_sheet_name: str = "AuditLog"

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
    debug_mode: bool = False
    storage_backend: Literal["memory", "google_sheets"] = Field(
        default="memory",
        description="Repository backend"
    )
    provider_backend: Literal["simulated", "http"] = Field(
        default="simulated",
        description="Adapter used for the built-in mock provider"
    )
    api_host: str = "0.0.0.0"
    api_port: int = Field(default=8080, ge=1, le=65535)
    mock_provider_port: int = Field(default=8083, ge=1, le=65535)

    # Per-client throttling of API requests
    request_throttling_enabled: bool = True
    request_rate_limit: int = Field(
        default=100,
        ge=1,
        description="Requests a client may send per window"
    )
    request_rate_window_seconds: float = Field(default=60.0, gt=0)


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
    # (Google Sheets is only required when that backend is selected)

    @property
    def fetch(self) -> FetchSettings:
        return FetchSettings()

    @property
    def providers(self) -> ProviderSettings:
        return ProviderSettings()

    @property
    def security(self) -> SecuritySettings:
        return SecuritySettings()

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
    results: dict = {}
    settings = get_settings()

    sections: dict[str, Optional[str]] = {
        "fetch": None,
        "providers": None,
        "security": None,
        "app": None,
    }
    if settings.app.storage_backend == "google_sheets":
        sections["google_sheets"] = None

    for name in sections:
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
