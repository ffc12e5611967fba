"""
Bill Fetch Orchestration for billsync

This module ties together the repository, the bill cache, the provider
registry and the rate limiter, and defines the flows for:
1. Fetch (accounts → cache or provider → validate → cache → summary)
2. Refresh (accounts → skip fresh → provider → validate → persist → cache)
3. Periodic refresh of every user

DESIGN DECISION: Work fans out to one task per linked account and fans
back in. The orchestrators enforce the boundaries:
- At most `max_concurrent_fetches` accounts are in flight
- Every provider call goes through the shared rate limiter
- A provider call is attempted a bounded number of times with backoff
- Cancellation of the caller cancels every in-flight account

CRITICAL: asyncio.CancelledError is never retried, never wrapped and
never swallowed. Every other per-account failure is turned into a
BillFetchError and handled according to the failure policy.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import UUID

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_incrementing,
)
from tenacity.wait import wait_base

from billsync.accounts import AccountLinkingFlow
from billsync.audit import AuditLogger, create_correlation_id
from billsync.config import FetchSettings, Settings, get_settings
from billsync.models.bill import AuthType, Bill, BillSummary, LinkedAccount, Provider, new_id
from billsync.queries import BillSummaryReader
from billsync.rate_limiter import RequestThrottle, TokenBucketRateLimiter
from billsync.services.cache import BillCache, InMemoryCacheStore, bills_cache_key
from billsync.services.providers import (
    BaseBillProvider,
    HTTPBillProvider,
    ProviderRegistry,
    SimulatedBillProvider,
)
from billsync.services.security import CredentialDecryptionError, CredentialEncryption
from billsync.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRepository,
    InMemoryAuditStorage,
    InMemoryRepository,
    RepositoryInterface,
)
from billsync.validation import BillValidator


logger = structlog.get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]

# Catalog entry for the bundled mock provider
MOCK_PROVIDER_ID = "mock-provider"


class FailurePolicy(str, Enum):
    """
    How a fan-out reacts to a failed account.

    STRICT: the first failure cancels the remaining accounts and the
    whole call fails. No partial summary is ever returned.
    LENIENT: failed accounts contribute zero bills.
    """
    STRICT = "strict"
    LENIENT = "lenient"


class BillFetchError(Exception):
    """Bills for one linked account could not be obtained."""

    def __init__(
        self,
        account_id: str,
        cause: Optional[BaseException] = None,
        message: Optional[str] = None,
    ):
        self.account_id = account_id
        self.cause = cause
        super().__init__(
            message or f"Failed to fetch bills for account {account_id}: {cause}"
        )


class InvalidBillDataError(BillFetchError):
    """A provider returned bills that do not belong to the account."""
    pass


class _AccountFanOut:
    """
    Shared per-account machinery of the fetch and refresh flows.

    Holds the bounded worker pool and the retried provider call.
    """

    def __init__(
        self,
        repository: RepositoryInterface,
        providers: ProviderRegistry,
        cache: BillCache,
        rate_limiter: TokenBucketRateLimiter,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[BillValidator] = None,
        settings: Optional[FetchSettings] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self._repository = repository
        self._providers = providers
        self._cache = cache
        self._rate_limiter = rate_limiter
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or BillValidator()
        self._settings = settings or get_settings().fetch
        self._sleep = sleep
        self._pool = asyncio.Semaphore(self._settings.max_concurrent_fetches)

    async def _call_provider(
        self,
        account: LinkedAccount,
        max_attempts: int,
        wait: wait_base,
        correlation_id: UUID,
    ) -> list[Bill]:
        """
        Fetch from the account's provider with bounded retries.

        The adapter lookup happens once, outside the retry loop: an
        unknown provider fails immediately. Stored credentials that no
        longer decrypt fail immediately as well.

        Raises:
            BillFetchError: Unknown provider, or every attempt failed
        """
        try:
            adapter = self._providers.get(account.provider_id)
        except Exception as e:
            raise BillFetchError(account.id, e) from e

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait,
            retry=(
                retry_if_exception_type(Exception)
                & retry_if_not_exception_type(CredentialDecryptionError)
            ),
            sleep=self._sleep,
            reraise=True,
        )

        bills: list[Bill] = []
        try:
            async for attempt in retrying:
                with attempt:
                    try:
                        bills = await adapter.fetch_bills(account)
                    except Exception as e:
                        await self._audit_logger.log_provider_call_failed(
                            account_id=account.id,
                            provider_id=account.provider_id,
                            attempt=attempt.retry_state.attempt_number,
                            error_message=str(e),
                            correlation_id=correlation_id,
                        )
                        raise
        except Exception as e:
            raise BillFetchError(account.id, e) from e

        return bills

    def _validated(self, account: LinkedAccount, bills: list[Bill]) -> list[Bill]:
        """
        Raises:
            InvalidBillDataError: If any bill breaks ownership rules
        """
        result = self._validator.validate(account, bills)
        if result.has_errors:
            raise InvalidBillDataError(
                account.id,
                message=(
                    f"Invalid bill data for account {account.id}: "
                    f"{self._validator.get_error_summary(result)}"
                ),
            )
        return result.bills

    async def _gather(
        self,
        accounts: list[LinkedAccount],
        worker: Callable[[LinkedAccount], Awaitable[T]],
        policy: FailurePolicy,
    ) -> list:
        """
        Run `worker` for every account and join.

        STRICT returns every result or raises the first failure after
        cancelling the rest. LENIENT returns results and exceptions in
        account order.
        """
        tasks = [asyncio.create_task(worker(account)) for account in accounts]

        if policy is FailurePolicy.LENIENT:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException) and not isinstance(result, Exception):
                    raise result
            return results

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                if task.cancelled():
                    raise asyncio.CancelledError()
                if task.exception() is not None:
                    raise task.exception()
            return [task.result() for task in tasks]
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise


class BillFetchOrchestrator(_AccountFanOut):
    """
    Orchestrates the cache-first bill fetch.

    Flow per account:
    1. Cache → non-empty cached list is returned as is
    2. Rate limit → one token per provider fetch
    3. Provider → retried with exponential backoff (1s, 2s, ...)
    4. Validate → bills must belong to the account
    5. Cache → write with TTL
    """

    async def fetch_bills(
        self,
        user_id: str,
        policy: Optional[FailurePolicy] = None,
    ) -> BillSummary:
        """
        Fetch and aggregate bills across all of a user's linked accounts.

        Raises:
            BillFetchError: Under STRICT, if any account failed
            StorageError: If the user's accounts cannot be loaded
        """
        accounts = await self._repository.get_linked_accounts_by_user_id(user_id)
        return await self._fetch_for_accounts(user_id, accounts, policy)

    async def fetch_bills_by_provider(
        self,
        user_id: str,
        provider_id: str,
        policy: Optional[FailurePolicy] = None,
    ) -> BillSummary:
        """Same as fetch_bills, restricted to one provider's accounts."""
        accounts = await self._repository.get_linked_accounts_by_user_id(user_id)
        matching = [account for account in accounts if account.provider_id == provider_id]
        return await self._fetch_for_accounts(user_id, matching, policy, provider_id)

    async def _fetch_for_accounts(
        self,
        user_id: str,
        accounts: list[LinkedAccount],
        policy: Optional[FailurePolicy],
        provider_id: Optional[str] = None,
    ) -> BillSummary:
        if not accounts:
            return BillSummary.empty()

        policy = policy or FailurePolicy(self._settings.fetch_failure_policy)
        correlation_id = create_correlation_id()

        await self._audit_logger.log_fetch_started(
            user_id=user_id,
            account_count=len(accounts),
            provider_id=provider_id,
            correlation_id=correlation_id,
        )

        async def worker(account: LinkedAccount) -> list[Bill]:
            return await self._fetch_account(account, correlation_id)

        try:
            results = await self._gather(accounts, worker, policy)
        except BillFetchError as e:
            await self._audit_logger.log_fetch_failed(
                user_id=user_id,
                account_id=e.account_id,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        bills: list[Bill] = []
        failed = 0
        for result in results:
            if isinstance(result, Exception):
                failed += 1
            else:
                bills.extend(result)

        summary = BillSummary.from_bills(bills)

        await self._audit_logger.log_fetch_completed(
            user_id=user_id,
            bill_count=summary.bill_count,
            total_due=str(summary.total_due),
            failed_accounts=failed,
            correlation_id=correlation_id,
        )

        return summary

    async def _fetch_account(
        self,
        account: LinkedAccount,
        correlation_id: UUID,
    ) -> list[Bill]:
        """
        Raises:
            BillFetchError: For any failure of this account
        """
        async with self._pool:
            key = bills_cache_key(account.id)

            cached = await self._cache.get_bills(key)
            if cached:
                await self._audit_logger.log_cache_hit(
                    account_id=account.id,
                    bill_count=len(cached),
                    correlation_id=correlation_id,
                )
                return cached

            try:
                await self._rate_limiter.wait()
                bills = await self._call_provider(
                    account,
                    max_attempts=self._settings.fetch_max_attempts,
                    wait=wait_exponential(multiplier=self._settings.fetch_backoff_base_seconds),
                    correlation_id=correlation_id,
                )
                bills = self._validated(account, bills)
            except Exception as e:
                await self._audit_logger.log_account_failed(
                    account_id=account.id,
                    provider_id=account.provider_id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                if isinstance(e, BillFetchError):
                    raise
                raise BillFetchError(account.id, e) from e

            await self._cache.cache_bills(key, bills, self._settings.bill_cache_ttl_seconds)
            return bills


class BillRefreshOrchestrator(_AccountFanOut):
    """
    Orchestrates the background refresh into the repository.

    Flow per account:
    1. Cache → any cached list (even empty) means fresh, skip
    2. Rate limit, provider (linear backoff 2s, 4s, ...), validate
    3. Assign ids to bills the provider left without one
    4. Persist → update existing bills, create new ones
    5. Cache → write with the long refresh TTL

    Per-account failures are logged and swallowed. Only a failure to
    load the user's accounts fails the call.
    """

    async def refresh_bills(self, user_id: str) -> None:
        """
        Raises:
            StorageError: If the user's accounts cannot be loaded
        """
        accounts = await self._repository.get_linked_accounts_by_user_id(user_id)
        correlation_id = create_correlation_id()

        async def worker(account: LinkedAccount) -> str:
            return await self._refresh_account(account, correlation_id)

        outcomes = await self._gather(accounts, worker, FailurePolicy.LENIENT)

        await self._audit_logger.log_refresh_completed(
            user_id=user_id,
            refreshed=outcomes.count("refreshed"),
            skipped=outcomes.count("skipped"),
            failed=len(outcomes) - outcomes.count("refreshed") - outcomes.count("skipped"),
            correlation_id=correlation_id,
        )

    async def _refresh_account(
        self,
        account: LinkedAccount,
        correlation_id: UUID,
    ) -> str:
        async with self._pool:
            key = bills_cache_key(account.id)

            if await self._cache.get_bills(key) is not None:
                await self._audit_logger.log_refresh_skipped(
                    account_id=account.id,
                    correlation_id=correlation_id,
                )
                return "skipped"

            try:
                await self._rate_limiter.wait()
                bills = await self._call_provider(
                    account,
                    max_attempts=self._settings.refresh_max_attempts,
                    wait=wait_incrementing(
                        start=self._settings.refresh_backoff_seconds,
                        increment=self._settings.refresh_backoff_seconds,
                    ),
                    correlation_id=correlation_id,
                )
                bills = self._validated(account, bills)
                bills = [
                    bill if bill.id else bill.model_copy(update={"id": new_id()})
                    for bill in bills
                ]
                created, updated = await self._persist(bills)
            except Exception as e:
                await self._audit_logger.log_account_failed(
                    account_id=account.id,
                    provider_id=account.provider_id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                    refresh=True,
                )
                return "failed"

            await self._audit_logger.log_bills_persisted(
                account_id=account.id,
                created=created,
                updated=updated,
                correlation_id=correlation_id,
            )
            await self._cache.cache_bills(key, bills, self._settings.refresh_cache_ttl_seconds)
            return "refreshed"

    async def _persist(self, bills: list[Bill]) -> tuple[int, int]:
        """Upsert bills by id. Returns (created, updated)."""
        created = updated = 0
        for bill in bills:
            existing = await self._repository.get_bill_by_id(bill.id)
            if existing is None:
                await self._repository.create_bill(bill)
                created += 1
            else:
                await self._repository.update_bill(
                    bill.model_copy(update={"created_at": existing.created_at})
                )
                updated += 1
        return created, updated


class PeriodicRefreshScheduler:
    """
    Refreshes every user's bills on a fixed interval.

    A tick never stops on a single user's failure; the failure is
    logged and the next user is refreshed.
    """

    def __init__(
        self,
        refresh_orchestrator: BillRefreshOrchestrator,
        repository: RepositoryInterface,
        interval_seconds: float,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._refresh = refresh_orchestrator
        self._repository = repository
        self._interval = interval_seconds
        self._audit_logger = audit_logger or AuditLogger()
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """
        Refresh every user once.

        Returns the number of users refreshed without error.
        """
        correlation_id = create_correlation_id()

        try:
            users = await self._repository.list_users()
        except Exception as e:
            await self._audit_logger.log_external_service_error(
                service="repository",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return 0

        failed = 0
        for user in users:
            try:
                await self._refresh.refresh_bills(user.id)
            except Exception as e:
                failed += 1
                await self._audit_logger.log_error(
                    error_type="periodic_refresh_user",
                    error_message=str(e),
                    details={"user_id": user.id},
                    correlation_id=correlation_id,
                )

        await self._audit_logger.log_periodic_tick(
            user_count=len(users),
            failed_users=failed,
            correlation_id=correlation_id,
        )
        return len(users) - failed

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Wait one interval, tick, repeat until stopped or cancelled."""
        stop_event = stop_event or asyncio.Event()
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                await self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run(self._stop_event))
        logger.info("periodic_refresh_started", interval_seconds=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await self._task
        finally:
            self._task = None
            self._stop_event = None
            logger.info("periodic_refresh_stopped")


# =============================================================================
# COMPONENT FACTORY
# =============================================================================

@dataclass
class AppComponents:
    """Everything the API layer needs, wired together."""
    settings: Settings
    repository: RepositoryInterface
    audit_logger: AuditLogger
    cache: BillCache
    rate_limiter: TokenBucketRateLimiter
    providers: ProviderRegistry
    encryption: CredentialEncryption
    fetch_orchestrator: BillFetchOrchestrator
    refresh_orchestrator: BillRefreshOrchestrator
    scheduler: PeriodicRefreshScheduler
    summary_reader: BillSummaryReader
    account_flow: AccountLinkingFlow
    request_throttle: Optional[RequestThrottle] = None

    def build_adapter(self, provider: Provider) -> BaseBillProvider:
        """Adapter for a catalog entry."""
        provider_settings = self.settings.providers
        if (
            provider.id == MOCK_PROVIDER_ID
            and self.settings.app.provider_backend == "simulated"
        ):
            return SimulatedBillProvider(
                provider,
                failure_rate=provider_settings.simulated_failure_rate,
            )
        return HTTPBillProvider(
            provider,
            encryption=self.encryption,
            timeout=provider_settings.request_timeout_seconds,
        )

    def register_provider(self, provider: Provider) -> None:
        if not self.providers.has(provider.id):
            self.providers.register(provider.id, self.build_adapter(provider))

    def replace_provider(self, provider: Provider) -> None:
        """Rebuild the adapter after its catalog entry changed."""
        self.providers.register(provider.id, self.build_adapter(provider))

    def unregister_provider(self, provider_id: str) -> None:
        self.providers.unregister(provider_id)

    async def bootstrap(self) -> None:
        """
        Seed the mock provider and register adapters for the catalog.

        Call once at startup, inside the event loop.
        """
        if await self.repository.get_provider_by_id(MOCK_PROVIDER_ID) is None:
            await self.repository.create_provider(Provider(
                id=MOCK_PROVIDER_ID,
                name="Mock Provider",
                api_endpoint=self.settings.providers.mock_base_url,
                auth_type=AuthType.NONE,
            ))
        for provider in await self.repository.list_providers():
            self.register_provider(provider)


def create_app_components(
    settings: Optional[Settings] = None,
    repository: Optional[RepositoryInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    providers: Optional[ProviderRegistry] = None,
    sleep: Sleep = asyncio.sleep,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (defaults to get_settings())
        repository: Repository override. Defaults to the configured backend.
        audit_storage: Audit storage override
        providers: Provider registry override (tests inject scripted adapters)
        sleep: Backoff sleep, injectable for tests

    Returns:
        AppComponents with one rate limiter shared by both orchestrators
    """
    settings = settings or get_settings()
    app_settings = settings.app
    fetch_settings = settings.fetch

    if repository is None:
        if app_settings.storage_backend == "google_sheets":
            sheets_client = GoogleSheetsClient()
            repository = GoogleSheetsRepository(sheets_client)
            audit_storage = audit_storage or GoogleSheetsAuditStorage(sheets_client)
        else:
            repository = InMemoryRepository()
    audit_storage = audit_storage or InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)
    cache = BillCache(InMemoryCacheStore())
    rate_limiter = TokenBucketRateLimiter(
        rate=fetch_settings.rate_limit_requests,
        interval_seconds=fetch_settings.rate_limit_interval_seconds,
    )
    providers = providers if providers is not None else ProviderRegistry()
    encryption = CredentialEncryption(settings.security.secret_key)
    validator = BillValidator()

    shared = dict(
        repository=repository,
        providers=providers,
        cache=cache,
        rate_limiter=rate_limiter,
        audit_logger=audit_logger,
        validator=validator,
        settings=fetch_settings,
        sleep=sleep,
    )
    fetch_orchestrator = BillFetchOrchestrator(**shared)
    refresh_orchestrator = BillRefreshOrchestrator(**shared)

    request_throttle = None
    if app_settings.request_throttling_enabled:
        request_throttle = RequestThrottle(
            limit=app_settings.request_rate_limit,
            window_seconds=app_settings.request_rate_window_seconds,
        )

    scheduler = PeriodicRefreshScheduler(
        refresh_orchestrator,
        repository,
        interval_seconds=fetch_settings.periodic_refresh_interval_seconds,
        audit_logger=audit_logger,
    )

    return AppComponents(
        settings=settings,
        repository=repository,
        audit_logger=audit_logger,
        cache=cache,
        rate_limiter=rate_limiter,
        providers=providers,
        encryption=encryption,
        fetch_orchestrator=fetch_orchestrator,
        refresh_orchestrator=refresh_orchestrator,
        scheduler=scheduler,
        summary_reader=BillSummaryReader(repository),
        account_flow=AccountLinkingFlow(
            repository=repository,
            providers=providers,
            encryption=encryption,
            cache=cache,
            audit_logger=audit_logger,
        ),
        request_throttle=request_throttle,
    )
