"""Tests for the bill cache."""

from decimal import Decimal

from billsync.services.cache import BillCache, CacheStoreInterface, InMemoryCacheStore, bills_cache_key

from conftest import FakeClock, make_bill


class BrokenStore(CacheStoreInterface):
    """Store whose every operation fails."""

    async def get(self, key):
        raise RuntimeError("cache unavailable")

    async def set(self, key, value, ttl_seconds):
        raise RuntimeError("cache unavailable")

    async def delete(self, key):
        raise RuntimeError("cache unavailable")


class TestInMemoryCacheStore:

    async def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        store = InMemoryCacheStore(clock=clock)
        await store.set("k", "v", ttl_seconds=10)

        clock.advance(9.9)
        assert await store.get("k") == "v"

        clock.advance(0.1)
        assert await store.get("k") is None

    async def test_delete(self):
        store = InMemoryCacheStore()
        await store.set("k", "v", ttl_seconds=10)
        await store.delete("k")
        assert await store.get("k") is None


class TestBillCache:

    def test_key_format(self):
        assert bills_cache_key("acc-42") == "bills:acc-42"

    async def test_cached_bills_are_returned(self, cache):
        bills = [make_bill("19.99", bill_id="b-1", linked_account_id="acc", provider_id="p")]

        assert await cache.cache_bills("bills:acc", bills, 3600) is True
        cached = await cache.get_bills("bills:acc")

        assert cached == bills
        assert cached[0].amount == Decimal("19.99")

    async def test_missing_key_is_none(self, cache):
        assert await cache.get_bills("bills:nothing") is None

    async def test_empty_list_is_distinct_from_miss(self, cache):
        await cache.cache_bills("bills:acc", [], 3600)
        assert await cache.get_bills("bills:acc") == []

    async def test_corrupt_payload_is_a_miss(self):
        store = InMemoryCacheStore()
        await store.set("bills:acc", "{not json", 3600)
        cache = BillCache(store)

        assert await cache.get_bills("bills:acc") is None

    async def test_wrong_shape_is_a_miss(self):
        store = InMemoryCacheStore()
        await store.set("bills:acc", '[{"amount": "-5"}]', 3600)
        cache = BillCache(store)

        assert await cache.get_bills("bills:acc") is None

    async def test_store_failures_never_raise(self):
        cache = BillCache(BrokenStore())

        assert await cache.get_bills("bills:acc") is None
        assert await cache.cache_bills("bills:acc", [make_bill("1.00")], 60) is False
        await cache.invalidate("bills:acc")

    async def test_invalidate(self, cache):
        await cache.cache_bills("bills:acc", [make_bill("1.00")], 60)
        await cache.invalidate("bills:acc")
        assert await cache.get_bills("bills:acc") is None
