"""
Cache Interfaces

DESIGN DECISION: The cache is BEST-EFFORT. A miss, an unavailable store
or a payload that no longer deserializes all mean the same thing to the
orchestrators: "go fetch live". Nothing in here raises to the caller.
"""

import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import structlog
from pydantic import TypeAdapter, ValidationError

from billsync.models.bill import Bill


logger = structlog.get_logger(__name__)

_BILL_LIST = TypeAdapter(list[Bill])


def bills_cache_key(account_id: str) -> str:
    """Cache key for the bill list of one linked account."""
    return f"bills:{account_id}"


class CacheStoreInterface(ABC):
    """Raw key-value store with per-entry TTL."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if missing or expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass


class InMemoryCacheStore(CacheStoreInterface):
    """
    Process-local TTL store.

    Expiry is checked lazily on read against a monotonic clock.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, tuple[str, float]] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class BillCache:
    """
    Typed bill-list cache on top of a raw store.

    get_bills() returns None for every kind of miss, including store
    errors and payloads that fail validation.
    """

    def __init__(self, store: CacheStoreInterface):
        self._store = store

    async def get_bills(self, key: str) -> Optional[list[Bill]]:
        try:
            raw = await self._store.get(key)
        except Exception as e:
            logger.warning("cache_get_failed", key=key, error=str(e))
            return None

        if raw is None:
            return None

        try:
            return _BILL_LIST.validate_json(raw)
        except ValidationError as e:
            logger.warning("cache_payload_invalid", key=key, error=str(e))
            return None

    async def cache_bills(self, key: str, bills: list[Bill], ttl_seconds: float) -> bool:
        """Store a bill list. Returns False (and logs) on failure."""
        try:
            payload = _BILL_LIST.dump_json(bills).decode()
            await self._store.set(key, payload, ttl_seconds)
            return True
        except Exception as e:
            logger.warning("cache_set_failed", key=key, error=str(e))
            return False

    async def invalidate(self, key: str) -> None:
        try:
            await self._store.delete(key)
        except Exception as e:
            logger.warning("cache_delete_failed", key=key, error=str(e))
