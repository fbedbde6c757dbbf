"""
Time-bounded result cache with single-flight computation.
"""

import asyncio
import threading
import time
from typing import Awaitable, Callable, Generic, Hashable, Optional, TypeVar

T = TypeVar("T")


class TTLCache(Generic[T]):
    """
    Bounded in-memory cache whose entries expire after a fixed lifetime.

    ``get_or_compute`` holds a per-key asyncio lock while computing, so
    concurrent callers for the same key wait for one computation instead
    of repeating it. When full, the oldest insertion is evicted.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, T]] = {}
        self._key_locks: dict[Hashable, tuple[asyncio.Lock, int]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[T]:
        """Return a live entry, dropping it if it has expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def put(self, key: Hashable, value: T) -> None:
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
            self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def get_or_compute(
        self,
        key: Hashable,
        compute: Callable[[], Awaitable[T]],
        cacheable: Callable[[T], bool] = lambda value: True,
    ) -> tuple[T, bool]:
        """
        Return the cached value for a key, computing it at most once at a time.

        Args:
            key: Cache key
            compute: Coroutine factory producing the value on a miss
            cacheable: Predicate deciding whether a computed value is stored

        Returns:
            Tuple of (value, hit) where hit is True if the value came from cache
        """
        value = self.get(key)
        if value is not None:
            return value, True

        lock, waiters = self._key_locks.get(key, (asyncio.Lock(), 0))
        self._key_locks[key] = (lock, waiters + 1)
        try:
            async with lock:
                value = self.get(key)
                if value is not None:
                    return value, True

                value = await compute()
                if cacheable(value):
                    self.put(key, value)
                return value, False
        finally:
            lock, waiters = self._key_locks[key]
            if waiters == 1:
                del self._key_locks[key]
            else:
                self._key_locks[key] = (lock, waiters - 1)

