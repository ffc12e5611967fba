"""
Shared fixtures and fakes

No real provider, network or Google API is touched in tests. Backoff
sleeps are recorded instead of slept.
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

import pytest

from billsync.audit import AuditLogger
from billsync.config import FetchSettings
from billsync.models.bill import (
    AuthType,
    Bill,
    BillStatus,
    LinkedAccount,
    Provider,
    User,
)
from billsync.orchestrator import BillFetchOrchestrator, BillRefreshOrchestrator
from billsync.rate_limiter import TokenBucketRateLimiter
from billsync.services.cache import BillCache, InMemoryCacheStore
from billsync.services.providers import (
    BaseBillProvider,
    InvalidCredentialsError,
    ProviderRegistry,
)
from billsync.services.security import CredentialEncryption
from billsync.services.storage import InMemoryAuditStorage, InMemoryRepository


TEST_SECRET_KEY = "test-secret-key-for-credentials"

# Scripted outcome that blocks until the caller is cancelled
HANG = object()


class RecordingSleep:
    """Async sleep that records the requested delays and returns at once."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProvider(BaseBillProvider):
    """
    Provider adapter that replays a script per linked account.

    Each account's script is a list of outcomes consumed one per call;
    the last outcome repeats. An outcome is a list of bills, an
    exception to raise, or HANG.
    """

    def __init__(self, provider: Provider, script: Optional[dict] = None):
        super().__init__(provider)
        self.script: dict[str, list] = script or {}
        self.calls: list[str] = []
        self.cancelled: list[str] = []
        self.hanging = asyncio.Event()

    def set_script(self, account_id: str, *outcomes) -> None:
        self.script[account_id] = list(outcomes)

    def call_count(self, account_id: str) -> int:
        return self.calls.count(account_id)

    async def fetch_bills(self, account: LinkedAccount) -> list[Bill]:
        self.calls.append(account.id)

        outcomes = self.script.get(account.id, [[]])
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]

        if outcome is HANG:
            self.hanging.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled.append(account.id)
                raise
        if isinstance(outcome, BaseException):
            raise outcome
        return [bill.model_copy() for bill in outcome]

    async def validate_credentials(self, credentials: str) -> None:
        if credentials == "bad-credentials":
            raise InvalidCredentialsError("Provider rejected the credentials")


def make_bill(
    amount: str,
    status: BillStatus = BillStatus.UNPAID,
    bill_id: Optional[str] = None,
    linked_account_id: str = "",
    provider_id: str = "",
    due_in_days: int = 10,
) -> Bill:
    today = date.today()
    return Bill(
        id=bill_id,
        linked_account_id=linked_account_id,
        provider_id=provider_id,
        amount=Decimal(amount),
        due_date=today + timedelta(days=due_in_days),
        bill_date=today,
        status=status,
    )


@pytest.fixture
def fetch_settings() -> FetchSettings:
    return FetchSettings(
        rate_limit_requests=100,
        rate_limit_interval_seconds=60.0,
        fetch_max_attempts=3,
        fetch_backoff_base_seconds=1.0,
        max_concurrent_fetches=16,
        fetch_failure_policy="strict",
        refresh_max_attempts=3,
        refresh_backoff_seconds=2.0,
    )


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def cache() -> BillCache:
    return BillCache(InMemoryCacheStore())


@pytest.fixture
def rate_limiter() -> TokenBucketRateLimiter:
    return TokenBucketRateLimiter(rate=100, interval_seconds=60.0)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def encryption() -> CredentialEncryption:
    return CredentialEncryption(TEST_SECRET_KEY)


@pytest.fixture
def provider() -> Provider:
    return Provider(
        id="electricity-co",
        name="Electricity Co",
        api_endpoint="http://electricity.test",
        auth_type=AuthType.API_KEY,
    )


@pytest.fixture
def scripted_provider(provider) -> ScriptedProvider:
    return ScriptedProvider(provider)


@pytest.fixture
def registry(scripted_provider) -> ProviderRegistry:
    return ProviderRegistry({scripted_provider.provider.id: scripted_provider})


@pytest.fixture
async def user(repository) -> User:
    return await repository.create_user(User(id="user-1", email="user1@example.com", name="User One"))


@pytest.fixture
def link(repository, provider):
    """Create a linked account for a user."""

    async def _link(user_id: str = "user-1", provider_id: Optional[str] = None, account_id: str = "ACC-1"):
        return await repository.create_linked_account(LinkedAccount(
            user_id=user_id,
            provider_id=provider_id or provider.id,
            account_id=account_id,
        ))

    return _link


@pytest.fixture
def fetch_orchestrator(
    repository, registry, cache, rate_limiter, audit_logger, fetch_settings, sleep
) -> BillFetchOrchestrator:
    return BillFetchOrchestrator(
        repository=repository,
        providers=registry,
        cache=cache,
        rate_limiter=rate_limiter,
        audit_logger=audit_logger,
        settings=fetch_settings,
        sleep=sleep,
    )


@pytest.fixture
def refresh_orchestrator(
    repository, registry, cache, rate_limiter, audit_logger, fetch_settings, sleep
) -> BillRefreshOrchestrator:
    return BillRefreshOrchestrator(
        repository=repository,
        providers=registry,
        cache=cache,
        rate_limiter=rate_limiter,
        audit_logger=audit_logger,
        settings=fetch_settings,
        sleep=sleep,
    )
