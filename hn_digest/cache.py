"""
In-process TTL cache with request de-duplication.

MemoryCache stores values for a bounded time, optionally caps the number of
entries (oldest insertion evicted first), and lets concurrent callers for the
same key share one in-flight coroutine instead of issuing duplicates.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import time
from typing import Any, Awaitable, Callable, Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")
T = TypeVar("T")


@dataclass
class CacheEntry(Generic[V]):
    """A cached value with its creation time and lifetime (seconds).

    Attributes:
        data: The cached value
        created_at: Clock reading when the value was stored
        ttl: Lifetime in seconds
    """
    data: V
    created_at: float
    ttl: float

    def is_live(self, now: float) -> bool:
        return now - self.created_at < self.ttl


@dataclass
class CacheStats:
    total_entries: int
    active_entries: int
    expired_entries: int
    pending_requests: int


class MemoryCache(Generic[K, V]):
    """Time-boxed key-value cache with single-flight de-duplication.

    Args:
        default_ttl: Lifetime in seconds used when set() is called without a ttl
        max_entries: Optional capacity; the oldest inserted entry is evicted when exceeded
        clock: Time source returning seconds, injectable for tests
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[K, CacheEntry[V]] = {}
        self._inflight: dict[K, asyncio.Future[Any]] = {}

    def get(self, key: K) -> V | None:
        """Return the live value for key, or None. Expired entries are dropped."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_live(self._clock()):
            del self._entries[key]
            return None
        return entry.data

    def set(self, key: K, value: V, ttl: float | None = None) -> None:
        """Insert or overwrite key, then sweep expired entries and enforce capacity."""
        self._entries[key] = CacheEntry(
            data=value,
            created_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        self._sweep_expired()
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]

    def has(self, key: K) -> bool:
        return self.get(key) is not None

    def delete(self, key: K) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._inflight.clear()

    def keys(self) -> list[K]:
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> CacheStats:
        now = self._clock()
        active = sum(1 for entry in self._entries.values() if entry.is_live(now))
        return CacheStats(
            total_entries=len(self._entries),
            active_entries=active,
            expired_entries=len(self._entries) - active,
            pending_requests=len(self._inflight),
        )

    async def with_deduplication(self, key: K, factory: Callable[[], Awaitable[T]]) -> T:
        """Run factory once for all concurrent callers of the same key.

        The first caller starts the factory; callers arriving while it is in
        flight await the same result (or exception). The in-flight marker is
        removed as soon as the factory settles.
        """
        existing = self._inflight.get(key)
        if existing is not None:
            return await asyncio.shield(existing)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await factory()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            if not future.done():
                future.set_exception(exc)
                future.exception()  # marks the exception as retrieved
            raise
        else:
            if not future.done():
                future.set_result(result)
            return result
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    def _sweep_expired(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if not entry.is_live(now)]
        for key in expired:
            del self._entries[key]
