"""Bill cache package."""

from billsync.services.cache.interface import (
    BillCache,
    CacheStoreInterface,
    InMemoryCacheStore,
    bills_cache_key,
)

__all__ = [
    "BillCache",
    "CacheStoreInterface",
    "InMemoryCacheStore",
    "bills_cache_key",
]
