"""
Pipeline composition and orchestration for HN Digest.

This module wires the components together and runs the workflow:
1. Fetch stories from the Hacker News feed
2. Extract article content concurrently (cached per URL)
3. Queue successful extractions for summarization
4. Wait for the queue and assemble one StoryCard per story

Failed stories are kept as cards with an error rather than dropped.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Callable

import httpx
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)

from .config import AppConfig
from .core.types import ExtractedContent, QueueProgress, Story, StoryCard
from .feed.client import HackerNewsClient
from .fetch.extractor import ContentExtractor
from .llm.providers.base import SummaryProvider
from .llm.providers.factory import create_provider
from .logging_utils import log_event, setup_logging
from .queue import SummaryQueue
from .storage import KeyValueStore, create_store
from .summarize.cache import SummaryCache
from .summarize.service import Summarizer


@dataclass
class PipelineStats:
    """Counters collected during one pipeline run.

    Attributes:
        total: Stories processed
        no_url: Text posts without an external article
        extracted: Successful extractions
        extraction_failed: Extractions that exhausted every strategy
        summarized: Completed summaries (fresh or cached)
        summary_failed: Summaries that failed after retries
        cache_hits: Summaries served from the summary cache
    """
    total: int = 0
    no_url: int = 0
    extracted: int = 0
    extraction_failed: int = 0
    summarized: int = 0
    summary_failed: int = 0
    cache_hits: int = 0


class DigestPipeline:
    """Feed -> extraction -> queue -> summarization over shared components.

    One instance owns one extractor, summary cache, summarizer and queue;
    the CLI builds it once per process through build_pipeline().
    """

    def __init__(
        self,
        feed: HackerNewsClient,
        extractor: ContentExtractor,
        summary_cache: SummaryCache,
        summarizer: Summarizer,
        queue: SummaryQueue,
        cfg: AppConfig,
        logger: logging.Logger | None = None,
    ):
        self.feed = feed
        self.extractor = extractor
        self.summary_cache = summary_cache
        self.summarizer = summarizer
        self.queue = queue
        self.cfg = cfg
        self.logger = logger
        self.stats = PipelineStats()

    async def load(self) -> None:
        """Restore persisted summary cache index and queue contents."""
        await self.summary_cache.load()
        await self.queue.load()

    async def run(
        self,
        kind: str = "top",
        limit: int | None = None,
        priority: str = "normal",
        on_extracted: Callable[[Story, ExtractedContent], None] | None = None,
    ) -> list[StoryCard]:
        stories = await self.feed.stories(kind, limit)
        log_event(self.logger, "Stories loaded", event="feed_loaded", kind=kind, count=len(stories))
        return await self.process(stories, priority=priority, on_extracted=on_extracted)

    async def process(
        self,
        stories: list[Story],
        priority: str = "normal",
        on_extracted: Callable[[Story, ExtractedContent], None] | None = None,
    ) -> list[StoryCard]:
        """Extract, summarize and return one card per story."""
        self.stats = PipelineStats(total=len(stories))

        semaphore = asyncio.Semaphore(max(1, self.cfg.extract.concurrency))

        async def _extract(story: Story) -> ExtractedContent | None:
            if not story.url:
                return None
            async with semaphore:
                result = await self.extractor.extract(story.url)
            if on_extracted is not None:
                on_extracted(story, result)
            return result

        extractions = await asyncio.gather(*(_extract(story) for story in stories))

        cards: list[StoryCard] = []
        for story, extraction in zip(stories, extractions):
            if extraction is None:
                self.stats.no_url += 1
                cards.append(StoryCard(story=story, status="no_url"))
            elif not extraction.success:
                self.stats.extraction_failed += 1
                cards.append(
                    StoryCard(story=story, status="extraction_failed", extraction=extraction, error=extraction.error)
                )
            else:
                self.stats.extracted += 1
                item_id = await self.queue.submit_one(extraction.content, extraction.title, extraction.url, priority)
                cards.append(StoryCard(story=story, status="queued", extraction=extraction, queue_item_id=item_id))

        if any(card.queue_item_id for card in cards):
            if not self.cfg.queue.auto_start:
                await self.queue.start_processing()
            await self.queue.wait_until_idle()

        for card in cards:
            if card.queue_item_id is not None:
                self._settle(card)

        log_event(
            self.logger,
            "Pipeline finished",
            event="pipeline_done",
            total=self.stats.total,
            summarized=self.stats.summarized,
            extraction_failed=self.stats.extraction_failed,
            summary_failed=self.stats.summary_failed,
        )
        return cards

    def _settle(self, card: StoryCard) -> None:
        item = self.queue.get_item(card.queue_item_id or "")
        if item is not None and item.status == "completed" and item.response is not None:
            card.status = "summarized"
            card.summary = item.response
            self.stats.summarized += 1
            if item.response.cached:
                self.stats.cache_hits += 1
            return
        card.status = "summary_failed"
        if item is None:
            card.error = "Queue item was removed"
        elif item.status == "failed":
            card.error = item.error
        else:
            card.error = f"Summary not completed (status: {item.status})"
        self.stats.summary_failed += 1


def build_pipeline(
    cfg: AppConfig,
    client: httpx.AsyncClient,
    logger: logging.Logger | None = None,
    store: KeyValueStore | None = None,
    provider: SummaryProvider | None = None,
) -> DigestPipeline:
    """Create every component once and wire them over one storage backend.

    When no provider is passed one is built from cfg.provider; a missing API
    key is logged and leaves the summarizer without a provider, so every
    summary fails with AUTH_ERROR instead of aborting the run.
    """
    store = store or create_store(cfg.storage)
    if provider is None:
        try:
            provider = create_provider(cfg.provider, cfg.summary, logger)
        except ValueError as exc:
            log_event(logger, "LLM provider unavailable", level=logging.WARNING, event="provider_unavailable", error=str(exc))

    summary_cache = SummaryCache(
        store,
        max_cache_size=cfg.cache.max_cache_size,
        expiry_days=cfg.cache.expiry_days,
        logger=logger,
    )
    summarizer = Summarizer(provider, summary_cache, cfg.summary, cfg.provider, logger=logger)
    queue = SummaryQueue(summarizer, store, cfg.queue, logger=logger)
    return DigestPipeline(
        feed=HackerNewsClient(client, cfg.feed, logger=logger),
        extractor=ContentExtractor(client, cfg.extract, cfg.fetch, logger=logger),
        summary_cache=summary_cache,
        summarizer=summarizer,
        queue=queue,
        cfg=cfg,
        logger=logger,
    )


def run_pipeline(
    cfg: AppConfig,
    kind: str = "top",
    limit: int | None = None,
    priority: str = "normal",
    show_progress: bool = True,
    console: Console | None = None,
) -> tuple[list[StoryCard], PipelineStats]:
    """Run the complete digest pipeline synchronously.

    Args:
        cfg: Application configuration
        kind: Story list to read ("top", "best" or "new")
        limit: Number of stories; defaults to cfg.feed.default_story_limit
        priority: Queue priority for this run's summaries
        show_progress: Whether to display progress bars
        console: Rich console for output (creates default if None)

    Returns:
        The story cards and the run statistics
    """
    console = console or Console()
    logger = setup_logging(cfg.logging, Path(cfg.storage.directory))
    return asyncio.run(_run_async(cfg, kind, limit, priority, show_progress, console, logger))


async def _run_async(
    cfg: AppConfig,
    kind: str,
    limit: int | None,
    priority: str,
    show_progress: bool,
    console: Console,
    logger: logging.Logger,
) -> tuple[list[StoryCard], PipelineStats]:
    async with httpx.AsyncClient(trust_env=cfg.fetch.trust_env) as client:
        pipeline = build_pipeline(cfg, client, logger)
        await pipeline.load()

        if not show_progress:
            cards = await pipeline.run(kind, limit, priority)
            return cards, pipeline.stats

        with Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeRemainingColumn(),
            console=console,
        ) as progress:
            extract_task = progress.add_task("Extract", total=None)
            summary_task = progress.add_task("Summarize", total=None)

            def _on_extracted(story: Story, result: ExtractedContent) -> None:
                progress.advance(extract_task, 1)

            def _on_queue(snapshot: QueueProgress) -> None:
                progress.update(
                    summary_task,
                    total=snapshot.total,
                    completed=snapshot.completed + snapshot.failed,
                )

            unsubscribe = pipeline.queue.on_progress(_on_queue)
            try:
                stories = await pipeline.feed.stories(kind, limit)
                progress.update(extract_task, total=sum(1 for s in stories if s.url))
                cards = await pipeline.process(stories, priority=priority, on_extracted=_on_extracted)
            finally:
                unsubscribe()
        return cards, pipeline.stats
