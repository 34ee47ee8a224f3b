"""
Persisted, content-addressed cache of generated summaries.

Records are stored one per key (``summary_cache_<hash>``) in the durable
key-value store, next to an index of known hashes and aggregate usage
statistics. The index and statistics are held in memory after ``load()`` and
written back on every change.

Reads fail open: any storage error is logged and reported as a miss. Writes
fail closed: storage errors from ``put`` and ``clear`` propagate.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import hashlib
import json
import logging
from typing import Any, Callable

from ..core.types import SummaryMetadata, SummaryRecord, SummaryResponse, utcnow
from ..logging_utils import log_event
from ..storage import KeyValueStore, StorageError

CACHE_PREFIX = "summary_cache_"
STATS_KEY = "summarization_stats"
CACHE_INDEX_KEY = "cache_index"
STATS_SAMPLE_SIZE = 10
EVICTION_FRACTION = 0.1


def generate_content_hash(content: str, title: str) -> str:
    """SHA-256 hex digest of "{title}:{content}"."""
    return hashlib.sha256(f"{title}:{content}".encode("utf-8")).hexdigest()


def default_stats() -> dict[str, Any]:
    return {
        "totalSummaries": 0,
        "successfulSummaries": 0,
        "failedSummaries": 0,
        "cachedSummaries": 0,
        "totalCost": 0.0,
        "averageProcessingTime": 0.0,
        "cacheHitRate": 0.0,
        "averageQualityScore": 0.0,
    }


@dataclass
class SummaryCacheStats:
    """Snapshot returned by SummaryCache.stats().

    Attributes:
        size: Number of hashes in the index
        max_size: Configured capacity
        hit_rate: cachedSummaries / totalSummaries as a percentage
        oldest_entry: Earliest creation time among the sampled records
        newest_entry: Latest creation time among the sampled records
    """
    size: int
    max_size: int
    hit_rate: float
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None


class SummaryCache:
    """Summary cache with usage-aware eviction.

    Args:
        store: Durable key-value backend
        max_cache_size: Capacity; reaching it triggers eviction before insert
        expiry_days: Records older than this (by creation time) are discarded
        logger: Optional logger for cache events
        clock: Source of timezone-aware "now", injectable for tests
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_cache_size: int = 500,
        expiry_days: float = 7,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.max_cache_size = max_cache_size
        self.expiry_days = expiry_days
        self.logger = logger
        self._clock = clock
        self._index: list[str] = []
        self._stats: dict[str, Any] = default_stats()

    generate_content_hash = staticmethod(generate_content_hash)

    def configure(self, max_cache_size: int, expiry_days: float) -> None:
        self.max_cache_size = max_cache_size
        self.expiry_days = expiry_days

    async def load(self) -> None:
        """Restore the hash index and statistics. Unreadable data starts empty."""
        try:
            raw_index = await self.store.get_item(CACHE_INDEX_KEY)
            self._index = list(dict.fromkeys(json.loads(raw_index))) if raw_index else []
        except (StorageError, ValueError, TypeError):
            if self.logger:
                self.logger.exception("Failed to load summary cache index")
            self._index = []
        try:
            raw_stats = await self.store.get_item(STATS_KEY)
            self._stats = {**default_stats(), **json.loads(raw_stats)} if raw_stats else default_stats()
        except (StorageError, ValueError, TypeError):
            if self.logger:
                self.logger.exception("Failed to load summarization stats")
            self._stats = default_stats()

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, content_hash: str) -> bool:
        return content_hash in self._index

    async def get(self, content_hash: str) -> SummaryResponse | None:
        """Return the cached summary as a response with cached=True, or None."""
        try:
            record = await self._read_record(content_hash)
        except (StorageError, ValueError, KeyError, TypeError):
            if self.logger:
                self.logger.exception("Failed to read cached summary")
            return None
        if record is None:
            return None

        now = self._clock()
        if now - record.created_at > timedelta(days=self.expiry_days):
            await self.remove(content_hash)
            log_event(self.logger, "Cached summary expired", event="summary_cache_expired", content_hash=content_hash)
            return None

        record.access_count += 1
        record.last_accessed = now
        try:
            await self.store.set_item(_record_key(content_hash), json.dumps(record.to_dict()))
        except StorageError:
            if self.logger:
                self.logger.exception("Failed to update summary access tracking")

        self._stats["cachedSummaries"] += 1
        await self._save_stats()
        log_event(self.logger, "Summary cache hit", event="summary_cache_hit", content_hash=content_hash)

        return SummaryResponse(
            summary=record.summary,
            word_count=len(record.summary.split(" ")),
            confidence=record.metadata.quality_score,
            tokens_used=0,
            processing_time=0,
            cached=True,
            model="cached",
            metadata=record.metadata,
        )

    async def put(self, content_hash: str, summary: str, metadata: SummaryMetadata, version: str = "1.0") -> None:
        """Store a summary, evicting first when the index is at capacity.

        Raises:
            StorageError: When the record or the index cannot be written
        """
        now = self._clock()
        record = SummaryRecord(
            content_hash=content_hash,
            summary=summary,
            created_at=now,
            last_accessed=now,
            access_count=0,
            metadata=metadata,
            schema_version=version,
        )
        if content_hash not in self._index and len(self._index) >= self.max_cache_size:
            await self._evict()

        await self.store.set_item(_record_key(content_hash), json.dumps(record.to_dict()))
        added = content_hash not in self._index
        if added:
            self._index.append(content_hash)
        try:
            await self._save_index()
        except StorageError:
            if added:
                self._index.remove(content_hash)
            raise

        self._stats["totalSummaries"] += 1
        await self._save_stats()

    async def remove(self, content_hash: str) -> None:
        try:
            await self.store.remove_item(_record_key(content_hash))
            if content_hash in self._index:
                self._index.remove(content_hash)
            await self._save_index()
        except StorageError:
            if self.logger:
                self.logger.exception("Failed to remove cached summary")

    async def clear(self) -> None:
        """Drop every cached summary and reset hit counters.

        Raises:
            StorageError: When the backend fails to remove or rewrite keys
        """
        await self.store.multi_remove([_record_key(h) for h in self._index])
        self._index = []
        await self._save_index()
        self._stats["totalSummaries"] = 0
        self._stats["cachedSummaries"] = 0
        await self._save_stats()

    async def stats(self) -> SummaryCacheStats:
        total = self._stats["totalSummaries"]
        hit_rate = (self._stats["cachedSummaries"] / total) * 100 if total > 0 else 0.0

        timestamps: list[datetime] = []
        for content_hash in self._index[:STATS_SAMPLE_SIZE]:
            try:
                record = await self._read_record(content_hash)
            except (StorageError, ValueError, KeyError, TypeError):
                continue
            if record is not None:
                timestamps.append(record.created_at)
        timestamps.sort()

        return SummaryCacheStats(
            size=len(self._index),
            max_size=self.max_cache_size,
            hit_rate=hit_rate,
            oldest_entry=timestamps[0] if timestamps else None,
            newest_entry=timestamps[-1] if timestamps else None,
        )

    def detailed_stats(self) -> dict[str, Any]:
        return dict(self._stats)

    async def reset_stats(self) -> None:
        self._stats = default_stats()
        await self._save_stats()

    async def record_outcome(
        self,
        success: bool,
        cost: float = 0.0,
        processing_time: float = 0.0,
        quality_score: float | None = None,
    ) -> None:
        """Fold one fresh summarization result into the aggregate statistics."""
        stats = self._stats
        if not success:
            stats["failedSummaries"] += 1
            await self._save_stats()
            return
        count = stats["successfulSummaries"] + 1
        stats["successfulSummaries"] = count
        stats["totalCost"] += cost
        stats["averageProcessingTime"] += (processing_time - stats["averageProcessingTime"]) / count
        if quality_score is not None:
            stats["averageQualityScore"] += (quality_score - stats["averageQualityScore"]) / count
        await self._save_stats()

    async def _evict(self) -> None:
        """Remove the most disposable 10% of capacity (at least one entry)."""
        to_remove = max(1, int(self.max_cache_size * EVICTION_FRACTION))
        now = self._clock()
        scored: list[tuple[float, str]] = []
        for content_hash in self._index:
            try:
                record = await self._read_record(content_hash)
            except (StorageError, ValueError, KeyError, TypeError):
                record = None
            if record is None:
                scored.append((float("inf"), content_hash))
                continue
            age_ms = (now - record.last_accessed).total_seconds() * 1000
            scored.append((record.access_count * 0.3 + age_ms * 0.7, content_hash))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        victims = [content_hash for _, content_hash in scored[:to_remove]]
        await self.store.multi_remove([_record_key(h) for h in victims])
        victim_set = set(victims)
        self._index = [h for h in self._index if h not in victim_set]
        await self._save_index()
        log_event(self.logger, "Summary cache evicted entries", event="summary_cache_evict", removed=len(victims))

    async def _read_record(self, content_hash: str) -> SummaryRecord | None:
        raw = await self.store.get_item(_record_key(content_hash))
        if not raw:
            return None
        return SummaryRecord.from_dict(json.loads(raw))

    async def _save_index(self) -> None:
        await self.store.set_item(CACHE_INDEX_KEY, json.dumps(self._index))

    async def _save_stats(self) -> None:
        total = self._stats["totalSummaries"]
        self._stats["cacheHitRate"] = (self._stats["cachedSummaries"] / total) * 100 if total > 0 else 0.0
        try:
            await self.store.set_item(STATS_KEY, json.dumps(self._stats))
        except StorageError:
            if self.logger:
                self.logger.exception("Failed to save summarization stats")


def _record_key(content_hash: str) -> str:
    return f"{CACHE_PREFIX}{content_hash}"
