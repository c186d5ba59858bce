"""In-memory TTL cache with single-flight population."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    stored_at: float


class TTLCache:
    """Key -> value cache whose entries expire *ttl* seconds after storing.

    The cache is an ordinary object owned by whoever creates it, so its
    lifetime is explicit: create one per process (or per test), pass it to
    the code that needs it, and ``clear()`` it to reset.

    Args:
        ttl: Entry lifetime in seconds.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}
        self._locks: dict[Hashable, asyncio.Lock] = {}

    def __contains__(self, key: Hashable) -> bool:
        return self._fresh_entry(key) is not None

    def __len__(self) -> int:
        return sum(1 for key in list(self._entries) if self._fresh_entry(key))

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value for *key*, or *default* if absent or stale."""
        entry = self._fresh_entry(key)
        return entry.value if entry is not None else default

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def invalidate(self, key: Hashable) -> bool:
        """Drop *key*; return whether anything was removed."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()
        self._locks.clear()

    async def get_or_create(
        self,
        key: Hashable,
        factory: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return the cached value, running *factory* at most once per miss.

        Concurrent callers for the same key wait for the first caller's
        factory instead of starting their own.  If the factory raises,
        nothing is cached and the exception propagates to that caller;
        the next waiter then tries again.
        """
        entry = self._fresh_entry(key)
        if entry is not None:
            return entry.value

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            entry = self._fresh_entry(key)
            if entry is not None:
                logger.debug("Cache filled while waiting for %r", key)
                return entry.value

            logger.debug("Cache miss for %r", key)
            value = await factory()
            self.set(key, value)
            return value

    def _fresh_entry(self, key: Hashable) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl:
            del self._entries[key]
            return None
        return entry
