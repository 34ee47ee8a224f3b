"""
Persisted priority queue that drives article summarization.

Items are kept sorted by priority class at insertion time (high, normal, low;
ties keep submission order). A single driver loop pulls up to
``max_concurrent`` pending items per batch, runs them concurrently, waits for
the whole batch, then sleeps briefly before the next one. Failed items go to
the back of the queue until their retries are exhausted.

The full item list and the queue state are written to the durable store after
every mutation. Storage failures are logged and never stop the driver.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import string
import time
from typing import Any, Callable

from .config import QueueConfig
from .core.types import (
    PRIORITY_ORDER,
    ExtractedContent,
    QueueItem,
    QueueProgress,
    QueueState,
    QueueStatus,
    SummaryRequest,
    utcnow,
)
from .logging_utils import log_event
from .storage import KeyValueStore, StorageError

QUEUE_KEY = "summary_queue"
QUEUE_STATE_KEY = "queue_state"
MIN_CONCURRENT = 1
MAX_CONCURRENT = 10

ProgressCallback = Callable[[QueueProgress], Any]


def generate_queue_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"queue_{int(time.time() * 1000)}_{suffix}"


def clamp_concurrency(value: int) -> int:
    return max(MIN_CONCURRENT, min(value, MAX_CONCURRENT))


class SummaryQueue:
    """Priority Queue / Job Runner for summarization work.

    Args:
        summarizer: Object with ``async summarize_article(content, title, url, priority)``
            returning a SummaryResponse or raising
        store: Durable key-value backend for the queue and its state
        cfg: Concurrency, retry, batching and restart settings
        logger: Optional logger for queue events
        clock: Monotonic time source for the remaining-time estimate
    """

    def __init__(
        self,
        summarizer: Any,
        store: KeyValueStore,
        cfg: QueueConfig | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.summarizer = summarizer
        self.store = store
        self.cfg = cfg or QueueConfig()
        self.logger = logger
        self._clock = clock
        self._items: list[QueueItem] = []
        self._state = QueueState()
        self._callbacks: list[ProgressCallback] = []
        self._max_concurrent = clamp_concurrency(self.cfg.max_concurrent)
        self._processing_started: float | None = None
        self._paused = False
        self._loop_active = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._tasks: set[asyncio.Task[None]] = set()

    # -- submission ---------------------------------------------------------

    async def submit(self, articles: list[ExtractedContent], priority: str = "normal") -> list[str]:
        """Queue extracted articles for summarization and return their item ids."""
        items = [
            self._new_item(SummaryRequest(content=a.content, title=a.title, url=a.url, priority=priority))  # type: ignore[arg-type]
            for a in articles
        ]
        for item in items:
            self._insert_by_priority(item)
        await self._persist()
        self._notify()
        self._maybe_start()
        return [item.id for item in items]

    async def submit_one(self, content: str, title: str, url: str = "", priority: str = "normal") -> str:
        item = self._new_item(SummaryRequest(content=content, title=title, url=url, priority=priority))  # type: ignore[arg-type]
        self._insert_by_priority(item)
        await self._persist()
        self._notify()
        self._maybe_start()
        return item.id

    def _new_item(self, request: SummaryRequest) -> QueueItem:
        if request.priority not in PRIORITY_ORDER:
            raise ValueError(f"Unknown priority: {request.priority}")
        return QueueItem(
            id=generate_queue_id(),
            request=request,
            created_at=utcnow(),
            max_retries=self.cfg.max_retries,
        )

    def _insert_by_priority(self, item: QueueItem) -> None:
        rank = PRIORITY_ORDER[item.request.priority]
        index = len(self._items)
        for i, existing in enumerate(self._items):
            if rank < PRIORITY_ORDER[existing.request.priority]:
                index = i
                break
        self._items.insert(index, item)

    # -- driver -------------------------------------------------------------

    async def start_processing(self) -> None:
        """Run the driver loop until no pending work remains or it is paused.

        Calling this while the loop is already running is a no-op. Calling it
        while a paused loop is still finishing its batch keeps that loop going.
        """
        if self._state.is_processing:
            return
        self._paused = False
        if self._loop_active:
            self._state.is_processing = True
            return

        self._loop_active = True
        self._idle.clear()
        self._state.is_processing = True
        self._processing_started = self._clock()
        await self._persist()
        self._notify()
        log_event(self.logger, "Queue processing started", event="queue_start", pending=self._count("pending"))

        try:
            while self._has_pending() and self._state.is_processing:
                await self._process_next_batch()
                await asyncio.sleep(self.cfg.batch_delay_seconds)
        finally:
            self._loop_active = False
            self._state.is_processing = False
            self._state.current_processing = []
            self._state.last_processed_at = utcnow()
            await self._persist()
            self._notify()
            self._idle.set()
            log_event(
                self.logger,
                "Queue processing stopped",
                event="queue_stop",
                pending=self._count("pending"),
                completed=self._count("completed"),
                failed=self._count("failed"),
            )

    async def _process_next_batch(self) -> None:
        slots = self._max_concurrent - len(self._state.current_processing)
        if slots <= 0:
            return
        batch = [item for item in self._items if item.status == "pending"][:slots]
        if not batch:
            return
        for item in batch:
            item.status = "processing"
            item.started_at = utcnow()
            self._state.current_processing.append(item.id)
        await asyncio.gather(*(self._process_item(item) for item in batch), return_exceptions=True)

    async def _process_item(self, item: QueueItem) -> None:
        try:
            await self._persist()
            self._notify()
            response = await self.summarizer.summarize_article(
                item.request.content,
                item.request.title,
                item.request.url,
                item.request.priority,
            )
        except Exception as exc:  # noqa: BLE001
            item.retry_count += 1
            if item.retry_count < item.max_retries:
                item.status = "pending"
                item.error = None
                self._move_to_end(item)
                log_event(
                    self.logger,
                    "Queue item will be retried",
                    level=logging.WARNING,
                    event="queue_item_retry",
                    item_id=item.id,
                    retry_count=item.retry_count,
                    error=str(exc),
                )
            else:
                item.status = "failed"
                item.error = str(exc) or type(exc).__name__
                self._state.total_failed += 1
                log_event(
                    self.logger,
                    "Queue item failed",
                    level=logging.ERROR,
                    event="queue_item_failed",
                    item_id=item.id,
                    retry_count=item.retry_count,
                    error=item.error,
                )
        else:
            item.status = "completed"
            item.completed_at = utcnow()
            item.response = response
            self._state.total_processed += 1
            log_event(self.logger, "Queue item completed", event="queue_item_completed", item_id=item.id)
        finally:
            if item.id in self._state.current_processing:
                self._state.current_processing.remove(item.id)
            await self._persist()
            self._notify()

    def _move_to_end(self, item: QueueItem) -> None:
        self._items.remove(item)
        self._items.append(item)

    def _maybe_start(self) -> None:
        if self.cfg.auto_start and not self._paused:
            self._ensure_driver()

    def _ensure_driver(self) -> None:
        if self._state.is_processing:
            return
        task = asyncio.ensure_future(self.start_processing())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_until_idle(self) -> None:
        """Wait until no driver loop is running."""
        while self._tasks or self._loop_active:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await self._idle.wait()

    # -- control ------------------------------------------------------------

    async def pause(self) -> None:
        """Stop launching new batches. The in-flight batch still completes."""
        self._paused = True
        self._state.is_processing = False
        await self._persist()
        self._notify()

    async def resume(self) -> None:
        self._paused = False
        if not self._has_pending():
            return
        self._ensure_driver()
        self._notify()

    async def clear(self) -> None:
        """Stop the driver and drop pending and failed items."""
        self._state.is_processing = False
        self._items = [item for item in self._items if item.status in ("completed", "processing")]
        await self._persist()
        self._notify()

    async def clear_completed(self) -> None:
        self._items = [item for item in self._items if item.status != "completed"]
        await self._persist()
        self._notify()

    async def retry_failed(self) -> int:
        """Reset failed items to fresh pending items. Returns how many were reset."""
        failed = [item for item in self._items if item.status == "failed"]
        for item in failed:
            item.status = "pending"
            item.retry_count = 0
            item.error = None
            item.started_at = None
            item.completed_at = None
            item.response = None
        self._paused = False
        await self._persist()
        self._notify()
        if failed:
            self._ensure_driver()
        return len(failed)

    async def remove(self, item_id: str) -> bool:
        """Remove an item unless it is currently processing."""
        item = self.get_item(item_id)
        if item is None or item.status == "processing":
            return False
        self._items.remove(item)
        await self._persist()
        self._notify()
        return True

    def set_max_concurrent(self, value: int) -> None:
        self._max_concurrent = clamp_concurrency(value)

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def paused(self) -> bool:
        return self._paused

    # -- inspection ---------------------------------------------------------

    def get_item(self, item_id: str) -> QueueItem | None:
        return next((item for item in self._items if item.id == item_id), None)

    def items(self, status: QueueStatus | None = None) -> list[QueueItem]:
        if status is None:
            return list(self._items)
        return [item for item in self._items if item.status == status]

    def state(self) -> QueueState:
        return QueueState(
            is_processing=self._state.is_processing,
            current_processing=list(self._state.current_processing),
            total_processed=self._state.total_processed,
            total_failed=self._state.total_failed,
            last_processed_at=self._state.last_processed_at,
        )

    def progress(self) -> QueueProgress:
        completed = self._count("completed")
        pending = self._count("pending")
        processing = len(self._state.current_processing)
        eta: int | None = None
        if self._processing_started is not None and completed > 0:
            elapsed = self._clock() - self._processing_started
            eta = round((pending + processing) * elapsed / completed)
        return QueueProgress(
            total=len(self._items),
            completed=completed,
            failed=self._count("failed"),
            pending=pending,
            currently_processing=processing,
            estimated_time_remaining=eta,
        )

    def stats(self) -> dict[str, Any]:
        total_ever = self._state.total_processed + self._state.total_failed
        success_rate = (self._state.total_processed / total_ever) * 100 if total_ever > 0 else 0.0
        durations = [
            (item.completed_at - item.started_at).total_seconds() * 1000
            for item in self._items
            if item.status == "completed" and item.started_at and item.completed_at
        ]
        pending = [item.created_at for item in self._items if item.status == "pending"]
        return {
            "totalItemsEver": total_ever,
            "successRate": success_rate,
            "averageProcessingTime": sum(durations) / len(durations) if durations else 0.0,
            "queueSize": len(self._items),
            "oldestPendingItem": min(pending) if pending else None,
        }

    def on_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        """Subscribe to progress snapshots. Returns an unsubscribe function."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.progress()
        for callback in list(self._callbacks):
            try:
                callback(snapshot)
            except Exception:  # noqa: BLE001
                if self.logger:
                    self.logger.exception("Progress callback error")

    def _has_pending(self) -> bool:
        return any(item.status == "pending" for item in self._items)

    def _count(self, status: QueueStatus) -> int:
        return sum(1 for item in self._items if item.status == status)

    # -- persistence --------------------------------------------------------

    async def load(self) -> None:
        """Restore items and counters saved by a previous process.

        The driver flags are always reset. Items left in "processing" are
        returned to "pending" when recover_interrupted is enabled.
        """
        try:
            raw_items = await self.store.get_item(QUEUE_KEY)
            self._items = [QueueItem.from_dict(data) for data in json.loads(raw_items)] if raw_items else []
        except (StorageError, ValueError, KeyError, TypeError):
            if self.logger:
                self.logger.exception("Error loading queue")
            self._items = []
        try:
            raw_state = await self.store.get_item(QUEUE_STATE_KEY)
            self._state = QueueState.from_dict(json.loads(raw_state)) if raw_state else QueueState()
        except (StorageError, ValueError, TypeError):
            if self.logger:
                self.logger.exception("Error loading queue state")
            self._state = QueueState()

        self._state.is_processing = False
        self._state.current_processing = []
        if self.cfg.recover_interrupted:
            recovered = 0
            for item in self._items:
                if item.status == "processing":
                    item.status = "pending"
                    item.started_at = None
                    recovered += 1
            if recovered:
                log_event(self.logger, "Recovered interrupted queue items", event="queue_recovered", count=recovered)
                await self._persist()

    async def _persist(self) -> None:
        try:
            await self.store.set_item(QUEUE_KEY, json.dumps([item.to_dict() for item in self._items]))
            await self.store.set_item(QUEUE_STATE_KEY, json.dumps(self._state.to_dict()))
        except StorageError:
            if self.logger:
                self.logger.exception("Error saving queue")
