"""
Tests for the refresh orchestrator and the periodic scheduler

Refresh never fails because of one account; it persists what it
fetched and caches it.
"""

import asyncio
from typing import Optional

import pytest

from billsync.models.audit import AuditEventType
from billsync.models.bill import LinkedAccount, User
from billsync.orchestrator import BillRefreshOrchestrator, PeriodicRefreshScheduler
from billsync.services.cache import bills_cache_key
from billsync.services.providers import ProviderTimeoutError
from billsync.services.storage import InMemoryRepository, StorageError

from conftest import make_bill


class FailingBillRepository(InMemoryRepository):
    """Repository whose bill writes fail."""

    async def create_bill(self, bill):
        raise StorageError("bills sheet is read-only")


class FailingAccountsRepository(InMemoryRepository):

    async def get_linked_accounts_by_user_id(self, user_id):
        raise StorageError("connection lost")


class TestRefreshBills:
    """Tests for refresh_bills."""

    async def test_persists_and_caches_fetched_bills(self, refresh_orchestrator, scripted_provider, link, repository, cache):
        account = await link()
        scripted_provider.set_script(account.id, [make_bill("10.00"), make_bill("15.00")])

        await refresh_orchestrator.refresh_bills("user-1")

        stored = await repository.get_bills_by_linked_account_id(account.id)
        assert len(stored) == 2
        assert all(bill.id for bill in stored)
        cached = await cache.get_bills(bills_cache_key(account.id))
        assert sorted(bill.id for bill in cached) == sorted(bill.id for bill in stored)

    async def test_second_refresh_skips_provider(self, refresh_orchestrator, scripted_provider, link, audit_storage):
        account = await link()
        scripted_provider.set_script(account.id, [make_bill("10.00")])

        await refresh_orchestrator.refresh_bills("user-1")
        await refresh_orchestrator.refresh_bills("user-1")

        assert scripted_provider.call_count(account.id) == 1
        types = [event.event_type for event in audit_storage.events]
        assert AuditEventType.ACCOUNT_REFRESH_SKIPPED in types

    async def test_empty_cached_list_counts_as_fresh(self, refresh_orchestrator, scripted_provider, link, cache):
        account = await link()
        await cache.cache_bills(bills_cache_key(account.id), [], 3600)

        await refresh_orchestrator.refresh_bills("user-1")

        assert scripted_provider.calls == []

    async def test_provider_ids_are_kept(self, refresh_orchestrator, scripted_provider, link, repository):
        account = await link()
        scripted_provider.set_script(account.id, [make_bill("10.00", bill_id="BILL-7")])

        await refresh_orchestrator.refresh_bills("user-1")

        assert await repository.get_bill_by_id("BILL-7") is not None

    async def test_existing_bill_is_updated(self, refresh_orchestrator, scripted_provider, link, repository, cache):
        account = await link()
        original = await repository.create_bill(
            make_bill("10.00", bill_id="BILL-7", linked_account_id=account.id, provider_id=account.provider_id)
        )
        scripted_provider.set_script(account.id, [make_bill("12.00", bill_id="BILL-7")])

        await refresh_orchestrator.refresh_bills("user-1")

        stored = await repository.get_bills_by_linked_account_id(account.id)
        assert len(stored) == 1
        assert str(stored[0].amount) == "12.00"
        assert stored[0].created_at == original.created_at

    async def test_failing_account_is_swallowed(self, refresh_orchestrator, scripted_provider, link, repository, sleep, audit_storage):
        bad = await link(account_id="BAD")
        good = await link(account_id="GOOD")
        scripted_provider.set_script(bad.id, ProviderTimeoutError("provider API timeout"))
        scripted_provider.set_script(good.id, [make_bill("5.00")])

        await refresh_orchestrator.refresh_bills("user-1")

        assert scripted_provider.call_count(bad.id) == 3
        assert sleep.calls == [2, 4]
        assert len(await repository.get_bills_by_linked_account_id(good.id)) == 1
        failed = [
            event for event in audit_storage.events
            if event.event_type == AuditEventType.ACCOUNT_REFRESH_FAILED
        ]
        assert [event.entity_id for event in failed] == [bad.id]

    async def test_repository_error_skips_cache_write(
        self, registry, scripted_provider, cache, rate_limiter, audit_logger, fetch_settings, sleep, provider
    ):
        repository = FailingBillRepository()
        await repository.create_user(User(id="user-1", email="u@example.com"))
        account = await repository.create_linked_account(
            LinkedAccount(user_id="user-1", provider_id=provider.id, account_id="ACC-1")
        )
        scripted_provider.set_script(account.id, [make_bill("10.00")])
        orchestrator = BillRefreshOrchestrator(
            repository=repository,
            providers=registry,
            cache=cache,
            rate_limiter=rate_limiter,
            audit_logger=audit_logger,
            settings=fetch_settings,
            sleep=sleep,
        )

        await orchestrator.refresh_bills("user-1")

        assert await cache.get_bills(bills_cache_key(account.id)) is None

    async def test_account_load_failure_propagates(
        self, registry, cache, rate_limiter, audit_logger, fetch_settings, sleep
    ):
        orchestrator = BillRefreshOrchestrator(
            repository=FailingAccountsRepository(),
            providers=registry,
            cache=cache,
            rate_limiter=rate_limiter,
            audit_logger=audit_logger,
            settings=fetch_settings,
            sleep=sleep,
        )

        with pytest.raises(StorageError):
            await orchestrator.refresh_bills("user-1")


class StubRefresh:
    """Records refreshed users; fails for the configured one."""

    def __init__(self, failing_user: Optional[str] = None, on_call=None):
        self.refreshed: list[str] = []
        self._failing_user = failing_user
        self._on_call = on_call

    async def refresh_bills(self, user_id: str) -> None:
        self.refreshed.append(user_id)
        if self._on_call:
            self._on_call()
        if user_id == self._failing_user:
            raise StorageError("accounts unavailable")


class TestPeriodicRefreshScheduler:
    """Tests for the periodic variant."""

    @pytest.fixture
    async def users(self, repository):
        for i in range(3):
            await repository.create_user(User(id=f"user-{i}", email=f"user{i}@example.com"))

    async def test_tick_refreshes_every_user(self, repository, users, audit_logger, audit_storage):
        refresh = StubRefresh(failing_user="user-1")
        scheduler = PeriodicRefreshScheduler(refresh, repository, 60.0, audit_logger)

        succeeded = await scheduler.run_once()

        assert sorted(refresh.refreshed) == ["user-0", "user-1", "user-2"]
        assert succeeded == 2
        ticks = [
            event for event in audit_storage.events
            if event.event_type == AuditEventType.PERIODIC_REFRESH_TICK
        ]
        assert ticks[0].details == {"user_count": 3, "failed_users": 1}

    async def test_run_waits_interval_and_stops(self, repository, users, audit_logger):
        stop_event = asyncio.Event()
        refresh = StubRefresh(on_call=stop_event.set)
        scheduler = PeriodicRefreshScheduler(refresh, repository, 0.01, audit_logger)

        await asyncio.wait_for(scheduler.run(stop_event), timeout=2.0)

        assert len(refresh.refreshed) == 3

    async def test_run_returns_immediately_when_stopped(self, repository, users, audit_logger):
        stop_event = asyncio.Event()
        stop_event.set()
        refresh = StubRefresh()
        scheduler = PeriodicRefreshScheduler(refresh, repository, 3600.0, audit_logger)

        await asyncio.wait_for(scheduler.run(stop_event), timeout=1.0)

        assert refresh.refreshed == []

    async def test_start_and_stop(self, repository, audit_logger):
        scheduler = PeriodicRefreshScheduler(StubRefresh(), repository, 3600.0, audit_logger)

        scheduler.start()
        assert scheduler.running
        await scheduler.stop()

        assert not scheduler.running

    async def test_user_listing_failure_skips_tick(self, audit_logger, audit_storage):
        class NoUsersRepository(InMemoryRepository):
            async def list_users(self):
                raise StorageError("users sheet unavailable")

        refresh = StubRefresh()
        scheduler = PeriodicRefreshScheduler(refresh, NoUsersRepository(), 60.0, audit_logger)

        assert await scheduler.run_once() == 0
        assert refresh.refreshed == []
        types = [event.event_type for event in audit_storage.events]
        assert AuditEventType.EXTERNAL_SERVICE_ERROR in types
