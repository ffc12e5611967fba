"""
Abstract Storage Interface

DESIGN DECISION: The orchestration core never talks to a database directly.
It consumes these narrow interfaces, which allows us to:
1. Use in-memory storage for tests and local runs
2. Keep Google Sheets (or a real database) swappable
3. Keep fetch/refresh logic decoupled from persistence

Implementations must be safe for concurrent use from many asyncio tasks.
"""

from abc import ABC, abstractmethod
from typing import Optional

from billsync.models.audit import AuditEvent
from billsync.models.bill import Bill, LinkedAccount, Provider, User


class UserStorageInterface(ABC):
    """User records."""

    @abstractmethod
    async def create_user(self, user: User) -> User:
        """
        Create a user.

        Raises:
            DuplicateError: If the id or email already exists
        """

    @abstractmethod
    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    async def update_user(self, user: User) -> User:
        """
        Raises:
            NotFoundError: If the user doesn't exist
        """

    @abstractmethod
    async def delete_user(self, user_id: str) -> bool:
        """Returns True if a user was deleted."""

    @abstractmethod
    async def list_users(self) -> list[User]:
        pass


class ProviderStorageInterface(ABC):
    """Provider catalog."""

    @abstractmethod
    async def create_provider(self, provider: Provider) -> Provider:
        """
        Raises:
            DuplicateError: If the id or name already exists
        """

    @abstractmethod
    async def get_provider_by_id(self, provider_id: str) -> Optional[Provider]:
        pass

    @abstractmethod
    async def get_provider_by_name(self, name: str) -> Optional[Provider]:
        pass

    @abstractmethod
    async def list_providers(self) -> list[Provider]:
        pass

    @abstractmethod
    async def update_provider(self, provider: Provider) -> Provider:
        pass

    @abstractmethod
    async def delete_provider(self, provider_id: str) -> bool:
        pass


class LinkedAccountStorageInterface(ABC):
    """Linked accounts (credentials stay encrypted at this layer)."""

    @abstractmethod
    async def create_linked_account(self, account: LinkedAccount) -> LinkedAccount:
        pass

    @abstractmethod
    async def get_linked_account_by_id(self, account_id: str) -> Optional[LinkedAccount]:
        pass

    @abstractmethod
    async def get_linked_accounts_by_user_id(self, user_id: str) -> list[LinkedAccount]:
        """
        All accounts a user has linked.

        Returns an empty list (not an error) for users with no accounts.
        """

    @abstractmethod
    async def get_linked_accounts_by_provider_id(self, provider_id: str) -> list[LinkedAccount]:
        pass

    @abstractmethod
    async def update_linked_account(self, account: LinkedAccount) -> LinkedAccount:
        pass

    @abstractmethod
    async def delete_linked_account(self, account_id: str) -> bool:
        pass


class BillStorageInterface(ABC):
    """
    Bill persistence.

    Used by the refresh path to write fetched bills back, and by the
    summary reader. Last write wins for a given bill id.
    """

    @abstractmethod
    async def create_bill(self, bill: Bill) -> Bill:
        """
        Save a new bill. The bill must already have an id.

        Raises:
            DuplicateError: If a bill with this id exists
            StorageError: If the write fails
        """

    @abstractmethod
    async def get_bill_by_id(self, bill_id: str) -> Optional[Bill]:
        pass

    @abstractmethod
    async def get_bills_by_linked_account_id(self, linked_account_id: str) -> list[Bill]:
        pass

    @abstractmethod
    async def get_bills_by_user_id(self, user_id: str) -> list[Bill]:
        """Bills of every account the user has linked."""

    @abstractmethod
    async def update_bill(self, bill: Bill) -> Bill:
        """
        Raises:
            NotFoundError: If the bill doesn't exist
        """

    @abstractmethod
    async def delete_bill(self, bill_id: str) -> bool:
        pass


class RepositoryInterface(
    UserStorageInterface,
    ProviderStorageInterface,
    LinkedAccountStorageInterface,
    BillStorageInterface,
):
    """The full repository the application is wired with."""


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Returns True if logged successfully."""

    @abstractmethod
    async def get_events_by_correlation_id(self, correlation_id) -> list[AuditEvent]:
        """Events of one top-level call, in chronological order."""

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Most recent events, newest first."""


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
