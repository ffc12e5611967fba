"""
Bill Provider Implementations

Abstract base class, concrete adapters and the registry that dispatches
linked accounts to them.
"""

from billsync.services.providers.base import (
    BaseBillProvider,
    InvalidCredentialsError,
    ProviderAPIError,
    ProviderError,
    ProviderNotFoundError,
    ProviderResponseError,
    ProviderTimeoutError,
)
from billsync.services.providers.http_provider import HTTPBillProvider
from billsync.services.providers.registry import ProviderRegistry
from billsync.services.providers.simulated import SimulatedBillProvider

__all__ = [
    "BaseBillProvider",
    "HTTPBillProvider",
    "InvalidCredentialsError",
    "ProviderAPIError",
    "ProviderError",
    "ProviderNotFoundError",
    "ProviderRegistry",
    "ProviderResponseError",
    "ProviderTimeoutError",
    "SimulatedBillProvider",
]
