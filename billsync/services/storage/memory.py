"""
In-Memory Storage Implementation

Default backend for local runs and tests. Each collection is a dict of
model copies guarded by an asyncio.Lock, so callers can never mutate
stored state through a returned object.
"""

import asyncio
from typing import Optional

from billsync.models.audit import AuditEvent
from billsync.models.bill import Bill, LinkedAccount, Provider, User, utcnow
from billsync.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    RepositoryInterface,
)


class InMemoryRepository(RepositoryInterface):
    """Dict-backed repository."""

    def __init__(self):
        self._users: dict[str, User] = {}
        self._providers: dict[str, Provider] = {}
        self._accounts: dict[str, LinkedAccount] = {}
        self._bills: dict[str, Bill] = {}
        self._lock = asyncio.Lock()

    # -- users ---------------------------------------------------------------

    async def create_user(self, user: User) -> User:
        async with self._lock:
            if user.id in self._users:
                raise DuplicateError(f"User already exists: {user.id}")
            if any(u.email.lower() == user.email.lower() for u in self._users.values()):
                raise DuplicateError(f"Email already registered: {user.email}")
            self._users[user.id] = user.model_copy()
            return user.model_copy()

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        return user.model_copy() if user else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        for user in self._users.values():
            if user.email.lower() == email.lower():
                return user.model_copy()
        return None

    async def update_user(self, user: User) -> User:
        async with self._lock:
            if user.id not in self._users:
                raise NotFoundError(f"User not found: {user.id}")
            self._users[user.id] = user.model_copy()
            return user.model_copy()

    async def delete_user(self, user_id: str) -> bool:
        async with self._lock:
            return self._users.pop(user_id, None) is not None

    async def list_users(self) -> list[User]:
        return [user.model_copy() for user in self._users.values()]

    # -- providers -----------------------------------------------------------

    async def create_provider(self, provider: Provider) -> Provider:
        async with self._lock:
            if provider.id in self._providers:
                raise DuplicateError(f"Provider already exists: {provider.id}")
            if any(p.name == provider.name for p in self._providers.values()):
                raise DuplicateError(f"Provider name already taken: {provider.name}")
            self._providers[provider.id] = provider.model_copy()
            return provider.model_copy()

    async def get_provider_by_id(self, provider_id: str) -> Optional[Provider]:
        provider = self._providers.get(provider_id)
        return provider.model_copy() if provider else None

    async def get_provider_by_name(self, name: str) -> Optional[Provider]:
        for provider in self._providers.values():
            if provider.name == name:
                return provider.model_copy()
        return None

    async def list_providers(self) -> list[Provider]:
        return sorted(
            (p.model_copy() for p in self._providers.values()),
            key=lambda p: p.name,
        )

    async def update_provider(self, provider: Provider) -> Provider:
        async with self._lock:
            if provider.id not in self._providers:
                raise NotFoundError(f"Provider not found: {provider.id}")
            provider = provider.model_copy(update={"updated_at": utcnow()})
            self._providers[provider.id] = provider
            return provider.model_copy()

    async def delete_provider(self, provider_id: str) -> bool:
        async with self._lock:
            return self._providers.pop(provider_id, None) is not None

    # -- linked accounts -----------------------------------------------------

    async def create_linked_account(self, account: LinkedAccount) -> LinkedAccount:
        async with self._lock:
            if account.id in self._accounts:
                raise DuplicateError(f"Linked account already exists: {account.id}")
            self._accounts[account.id] = account.model_copy()
            return account.model_copy()

    async def get_linked_account_by_id(self, account_id: str) -> Optional[LinkedAccount]:
        account = self._accounts.get(account_id)
        return account.model_copy() if account else None

    async def get_linked_accounts_by_user_id(self, user_id: str) -> list[LinkedAccount]:
        return [a.model_copy() for a in self._accounts.values() if a.user_id == user_id]

    async def get_linked_accounts_by_provider_id(self, provider_id: str) -> list[LinkedAccount]:
        return [a.model_copy() for a in self._accounts.values() if a.provider_id == provider_id]

    async def update_linked_account(self, account: LinkedAccount) -> LinkedAccount:
        async with self._lock:
            if account.id not in self._accounts:
                raise NotFoundError(f"Linked account not found: {account.id}")
            account = account.model_copy(update={"updated_at": utcnow()})
            self._accounts[account.id] = account
            return account.model_copy()

    async def delete_linked_account(self, account_id: str) -> bool:
        async with self._lock:
            return self._accounts.pop(account_id, None) is not None

    # -- bills ---------------------------------------------------------------

    async def create_bill(self, bill: Bill) -> Bill:
        if not bill.id:
            raise ValueError("Bill must have an id before it is stored")
        async with self._lock:
            if bill.id in self._bills:
                raise DuplicateError(f"Bill already exists: {bill.id}")
            self._bills[bill.id] = bill.model_copy()
            return bill.model_copy()

    async def get_bill_by_id(self, bill_id: str) -> Optional[Bill]:
        bill = self._bills.get(bill_id)
        return bill.model_copy() if bill else None

    async def get_bills_by_linked_account_id(self, linked_account_id: str) -> list[Bill]:
        return [
            b.model_copy() for b in self._bills.values()
            if b.linked_account_id == linked_account_id
        ]

    async def get_bills_by_user_id(self, user_id: str) -> list[Bill]:
        account_ids = {a.id for a in self._accounts.values() if a.user_id == user_id}
        return [
            b.model_copy() for b in self._bills.values()
            if b.linked_account_id in account_ids
        ]

    async def update_bill(self, bill: Bill) -> Bill:
        async with self._lock:
            if not bill.id or bill.id not in self._bills:
                raise NotFoundError(f"Bill not found: {bill.id}")
            bill = bill.model_copy(update={"updated_at": utcnow()})
            self._bills[bill.id] = bill
            return bill.model_copy()

    async def delete_bill(self, bill_id: str) -> bool:
        async with self._lock:
            return self._bills.pop(bill_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)
