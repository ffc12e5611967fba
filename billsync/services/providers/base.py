"""
Abstract base class for bill providers

Defines the common interface that all provider adapters must implement.
The orchestration core only ever sees this contract; which adapter serves
a linked account is decided by the ProviderRegistry.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any

from billsync.models.bill import Bill, LinkedAccount, Provider


class ProviderError(Exception):
    """
    Base exception for provider failures.

    Provider errors are transient by default: the orchestrators retry
    any of them with backoff.
    """
    pass


class ProviderTimeoutError(ProviderError):
    """The provider did not answer in time."""
    pass


class ProviderAPIError(ProviderError):
    """The provider answered with a non-success status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"Provider returned {status_code}: {message}")


class ProviderResponseError(ProviderError):
    """The provider answered with a payload we cannot interpret."""
    pass


class ProviderNotFoundError(ProviderError):
    """No adapter (or catalog entry) exists for a provider id."""

    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Provider not found: {provider_id}")


class InvalidCredentialsError(ProviderError):
    """The provider rejected the supplied credentials."""
    pass


class BaseBillProvider(ABC):
    """
    Abstract base class for provider adapters.

    All concrete adapters (HTTP, simulated, per-provider integrations)
    must implement these methods so the fetch pipeline behaves the same
    regardless of which provider a linked account points at.
    """

    def __init__(self, provider: Provider):
        """
        Args:
            provider: Catalog entry this adapter serves
        """
        self.provider = provider

    @abstractmethod
    async def fetch_bills(self, account: LinkedAccount) -> list[Bill]:
        """
        Fetch the current bills for one linked account.

        Returned bills carry the account's id and provider id.

        Raises:
            ProviderError: Any failure; callers treat it as retryable
        """

    @abstractmethod
    async def validate_credentials(self, credentials: str) -> None:
        """
        Check plaintext credentials against the provider.

        Raises:
            InvalidCredentialsError: If the provider rejects them
        """

    def get_provider_info(self) -> Provider:
        """Catalog information about the provider this adapter serves."""
        return self.provider.model_copy()

    @staticmethod
    def parse_date(value: Any) -> date:
        """
        Parse a provider date value.

        Accepts dates, datetimes and ISO-8601 strings with or without
        a time part (RFC 3339 'Z' suffix included).
        """
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            text = value.strip()
            if len(text) > 10:
                return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
            return date.fromisoformat(text)
        raise ValueError(f"Unsupported date value: {value!r}")
