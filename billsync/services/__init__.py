"""Services package."""

from billsync.services.cache import (
    BillCache,
    CacheStoreInterface,
    InMemoryCacheStore,
    bills_cache_key,
)
from billsync.services.providers import (
    BaseBillProvider,
    HTTPBillProvider,
    InvalidCredentialsError,
    ProviderAPIError,
    ProviderError,
    ProviderNotFoundError,
    ProviderRegistry,
    ProviderResponseError,
    ProviderTimeoutError,
    SimulatedBillProvider,
)
from billsync.services.security import CredentialDecryptionError, CredentialEncryption
from billsync.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRepository,
    InMemoryAuditStorage,
    InMemoryRepository,
    NotFoundError,
    RepositoryInterface,
    StorageError,
)

__all__ = [
    # Cache
    "BillCache",
    "CacheStoreInterface",
    "InMemoryCacheStore",
    "bills_cache_key",
    # Providers
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
    # Security
    "CredentialDecryptionError",
    "CredentialEncryption",
    # Storage
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRepository",
    "InMemoryAuditStorage",
    "InMemoryRepository",
    "NotFoundError",
    "RepositoryInterface",
    "StorageError",
]
