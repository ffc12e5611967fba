"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
In-memory storage is the default; Google Sheets is available as a
persistent backend.
"""

from billsync.services.storage.interface import (
    AuditStorageInterface,
    BillStorageInterface,
    ConnectionError,
    DuplicateError,
    LinkedAccountStorageInterface,
    NotFoundError,
    ProviderStorageInterface,
    RepositoryInterface,
    StorageError,
    UserStorageInterface,
)
from billsync.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRepository,
)
from billsync.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRepository,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BillStorageInterface",
    "LinkedAccountStorageInterface",
    "ProviderStorageInterface",
    "RepositoryInterface",
    "UserStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRepository",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRepository",
]
