"""Tests for the persisted summary queue."""

from __future__ import annotations

import asyncio
import json

import pytest

from hn_digest.config import QueueConfig
from hn_digest.core.types import QueueItem, SummaryMetadata, SummaryRequest, SummaryResponse
from hn_digest.queue import QUEUE_KEY, QUEUE_STATE_KEY, SummaryQueue, clamp_concurrency
from hn_digest.storage import MemoryStore


class _DummySummarizer:
    """Records calls, tracks concurrency and fails titles a set number of times."""

    def __init__(self, failures: dict[str, int] | None = None, delay: float = 0.0):
        self.failures = dict(failures or {})
        self.delay = delay
        self.titles: list[str] = []
        self.active = 0
        self.max_active = 0
        self.on_call = None

    async def summarize_article(self, content, title, url="", priority="normal"):  # noqa: ANN001
        self.titles.append(title)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.on_call is not None:
                await self.on_call(title)
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.failures.get(title, 0) > 0:
                self.failures[title] -= 1
                raise RuntimeError(f"summary failed for {title}")
            return SummaryResponse(
                summary=f"Summary of {title}.",
                word_count=3,
                confidence=0.8,
                tokens_used=10,
                processing_time=5,
                cached=False,
                model="dummy",
                metadata=SummaryMetadata(quality_score=0.8),
            )
        finally:
            self.active -= 1


def _cfg(**overrides) -> QueueConfig:
    values = {"batch_delay_seconds": 0, "auto_start": False}
    values.update(overrides)
    return QueueConfig(**values)


def test_items_are_processed_in_priority_order():
    summarizer = _DummySummarizer()

    async def main():
        queue = SummaryQueue(summarizer, MemoryStore(), _cfg(max_concurrent=1))
        await queue.submit_one("c", "low-1", priority="low")
        await queue.submit_one("c", "normal-1")
        await queue.submit_one("c", "high-1", priority="high")
        await queue.submit_one("c", "normal-2")
        await queue.start_processing()
        return queue

    queue = asyncio.run(main())

    assert summarizer.titles == ["high-1", "normal-1", "normal-2", "low-1"]
    assert queue.state().total_processed == 4
    assert not queue.state().is_processing


def test_concurrency_never_exceeds_limit():
    summarizer = _DummySummarizer(delay=0.01)

    async def main():
        queue = SummaryQueue(summarizer, MemoryStore(), _cfg(max_concurrent=2))
        await queue.submit_one("c", "a")
        await queue.submit_one("c", "b")
        await queue.submit_one("c", "c")
        await queue.submit_one("c", "d")
        await queue.submit_one("c", "e")
        await queue.start_processing()
        return queue

    queue = asyncio.run(main())

    assert summarizer.max_active == 2
    assert len(queue.items("completed")) == 5


def test_item_fails_after_max_retries():
    summarizer = _DummySummarizer(failures={"broken": 10, "flaky": 1})

    async def main():
        queue = SummaryQueue(summarizer, MemoryStore(), _cfg(max_retries=3))
        broken = await queue.submit_one("c", "broken")
        flaky = await queue.submit_one("c", "flaky")
        await queue.start_processing()
        return queue, broken, flaky

    queue, broken_id, flaky_id = asyncio.run(main())

    broken = queue.get_item(broken_id)
    flaky = queue.get_item(flaky_id)
    assert broken.status == "failed"
    assert broken.retry_count == 3
    assert broken.error == "summary failed for broken"
    assert summarizer.titles.count("broken") == 3
    assert flaky.status == "completed"
    assert flaky.retry_count == 1
    assert queue.state().total_failed == 1
    assert queue.stats()["successRate"] == 50.0


def test_retry_failed_resets_items_and_processes_them():
    summarizer = _DummySummarizer(failures={"broken": 3})

    async def main():
        queue = SummaryQueue(summarizer, MemoryStore(), _cfg(max_retries=3))
        item_id = await queue.submit_one("c", "broken")
        await queue.start_processing()
        failed_status = queue.get_item(item_id).status
        reset = await queue.retry_failed()
        await queue.wait_until_idle()
        return failed_status, reset, queue.get_item(item_id)

    failed_status, reset, item = asyncio.run(main())

    assert failed_status == "failed"
    assert reset == 1
    assert item.status == "completed"
    assert item.retry_count == 0


def test_pause_stops_new_batches_and_resume_continues():
    summarizer = _DummySummarizer()

    async def main():
        queue = SummaryQueue(summarizer, MemoryStore(), _cfg(max_concurrent=1))

        async def pause_on_first(title):
            if title == "first":
                await queue.pause()

        summarizer.on_call = pause_on_first
        for title in ("first", "second", "third"):
            await queue.submit_one("c", title)
        await queue.start_processing()
        paused = (queue.paused, queue.progress().completed, queue.progress().pending)

        await queue.resume()
        await queue.wait_until_idle()
        return paused, queue

    paused, queue = asyncio.run(main())

    assert paused == (True, 1, 2)
    assert not queue.paused
    assert len(queue.items("completed")) == 3


def test_auto_start_processes_on_submit():
    summarizer = _DummySummarizer()

    async def main():
        queue = SummaryQueue(summarizer, MemoryStore(), _cfg(auto_start=True))
        await queue.submit_one("c", "one")
        await queue.submit_one("c", "two")
        await queue.wait_until_idle()
        return queue

    queue = asyncio.run(main())

    assert sorted(summarizer.titles) == ["one", "two"]
    assert queue.progress().completed == 2


def test_state_is_persisted_and_interrupted_items_recovered():
    store = MemoryStore()
    interrupted = QueueItem(id="queue_1_abc", request=SummaryRequest(content="c", title="t"), status="processing")
    done = QueueItem(id="queue_2_def", request=SummaryRequest(content="c", title="u"), status="completed")

    async def main(recover: bool):
        await store.set_item(QUEUE_KEY, json.dumps([interrupted.to_dict(), done.to_dict()]))
        await store.set_item(
            QUEUE_STATE_KEY,
            json.dumps({"isProcessing": True, "currentProcessing": ["queue_1_abc"], "totalProcessed": 4}),
        )
        queue = SummaryQueue(_DummySummarizer(), store, _cfg(recover_interrupted=recover))
        await queue.load()
        return queue

    recovered = asyncio.run(main(True))
    assert recovered.get_item("queue_1_abc").status == "pending"
    assert recovered.get_item("queue_2_def").status == "completed"
    state = recovered.state()
    assert not state.is_processing
    assert state.current_processing == []
    assert state.total_processed == 4
    saved = json.loads(asyncio.run(store.get_item(QUEUE_KEY)))
    assert saved[0]["status"] == "pending"

    kept = asyncio.run(main(False))
    assert kept.get_item("queue_1_abc").status == "processing"


def test_progress_callbacks_survive_errors_and_unsubscribe():
    snapshots = []

    def broken(progress):  # noqa: ANN001
        raise RuntimeError("callback bug")

    async def main():
        queue = SummaryQueue(_DummySummarizer(), MemoryStore(), _cfg())
        queue.on_progress(broken)
        unsubscribe = queue.on_progress(snapshots.append)
        await queue.submit_one("c", "one")
        await queue.start_processing()
        unsubscribe()
        count = len(snapshots)
        await queue.submit_one("c", "two")
        return queue, count

    queue, count = asyncio.run(main())

    assert count == len(snapshots)
    assert snapshots[-1].completed == 1
    assert snapshots[-1].pending == 0
    assert queue.progress().pending == 1


def test_clear_remove_and_limits():
    async def main():
        queue = SummaryQueue(_DummySummarizer(), MemoryStore(), _cfg())
        first = await queue.submit_one("c", "one")
        await queue.start_processing()
        second = await queue.submit_one("c", "two")
        removed_unknown = await queue.remove("queue_missing")
        removed = await queue.remove(second)
        await queue.submit_one("c", "three")
        await queue.clear()
        after_clear = [item.id for item in queue.items()]
        await queue.clear_completed()
        return first, removed_unknown, removed, after_clear, queue

    first, removed_unknown, removed, after_clear, queue = asyncio.run(main())

    assert not removed_unknown
    assert removed
    assert after_clear == [first]
    assert queue.items() == []


def test_submit_rejects_unknown_priority_and_clamps_concurrency():
    async def main():
        queue = SummaryQueue(_DummySummarizer(), MemoryStore(), _cfg(max_concurrent=50))
        assert queue.max_concurrent == 10
        queue.set_max_concurrent(0)
        assert queue.max_concurrent == 1
        with pytest.raises(ValueError, match="Unknown priority"):
            await queue.submit_one("c", "t", priority="urgent")

    asyncio.run(main())
    assert clamp_concurrency(4) == 4
