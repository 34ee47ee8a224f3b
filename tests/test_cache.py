"""Tests for the in-process TTL cache and its request de-duplication."""

from __future__ import annotations

import asyncio

import pytest

from hn_digest.cache import MemoryCache


class _Clock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl():
    clock = _Clock()
    cache: MemoryCache[str, int] = MemoryCache(default_ttl=10, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=30)

    clock.now = 9.9
    assert cache.get("a") == 1

    clock.now = 10.0
    assert cache.get("a") is None
    assert cache.has("b")
    assert "a" not in cache.keys()


def test_set_sweeps_expired_and_enforces_capacity():
    clock = _Clock()
    cache: MemoryCache[str, int] = MemoryCache(default_ttl=5, max_entries=2, clock=clock)
    cache.set("old", 0, ttl=1)
    clock.now = 2
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.keys() == ["a", "b"]

    cache.set("c", 3)
    assert cache.keys() == ["b", "c"]
    assert len(cache) == 2


def test_stats_counts_expired_entries():
    clock = _Clock()
    cache: MemoryCache[str, int] = MemoryCache(default_ttl=5, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=100)
    clock.now = 6

    stats = cache.stats()
    assert stats.total_entries == 2
    assert stats.active_entries == 1
    assert stats.expired_entries == 1
    assert stats.pending_requests == 0


def test_concurrent_callers_share_one_factory_call():
    cache: MemoryCache[str, str] = MemoryCache()
    calls = 0

    async def factory() -> str:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return "value"

    async def main():
        results = await asyncio.gather(*(cache.with_deduplication("k", factory) for _ in range(3)))
        return results, cache.stats().pending_requests

    results, pending = asyncio.run(main())
    assert results == ["value", "value", "value"]
    assert calls == 1
    assert pending == 0


def test_failed_factory_is_shared_and_not_remembered():
    cache: MemoryCache[str, str] = MemoryCache()
    calls = 0

    async def failing() -> str:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        raise RuntimeError("boom")

    async def main():
        first = await asyncio.gather(
            cache.with_deduplication("k", failing),
            cache.with_deduplication("k", failing),
            return_exceptions=True,
        )
        with pytest.raises(RuntimeError):
            await cache.with_deduplication("k", failing)
        return first

    first = asyncio.run(main())
    assert all(isinstance(exc, RuntimeError) for exc in first)
    assert calls == 2
