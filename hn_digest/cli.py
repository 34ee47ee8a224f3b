"""
Command-line interface for HN Digest.

Uses Typer to expose the pipeline plus maintenance commands for the summary
cache and the summary queue. Loads .env files for API key configuration.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from dotenv import load_dotenv
import httpx
from rich.console import Console
from rich.table import Table
import typer

from .config import AppConfig, load_config
from .fetch.extractor import ContentExtractor, analyze_url
from .logging_utils import setup_logging
from .queue import SummaryQueue
from .runner import build_pipeline, run_pipeline
from .storage import create_store
from .summarize.cache import SummaryCache

app = typer.Typer(add_completion=False)
console = Console()

ConfigOption = typer.Option(None, "--config", "-c", exists=True, help="YAML config file.")


def _load(config: Path | None, log_level: str | None = None) -> AppConfig:
    load_dotenv()
    cfg = load_config(str(config) if config else None)
    if log_level:
        cfg.logging.level = log_level
    return cfg


@app.command()
def run(
    kind: str = typer.Option("top", "--kind", "-k", help="Story list: top, best or new."),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Number of stories."),
    priority: str = typer.Option("normal", "--priority", help="Queue priority: high, normal or low."),
    config: Path | None = ConfigOption,
    progress: bool = typer.Option(True, "--progress/--no-progress"),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
    log_file: bool | None = typer.Option(None, "--log-file/--no-log-file", help="Enable or disable file logging."),
    storage_dir: Path | None = typer.Option(None, "--storage-dir", help="Directory for persisted state."),
    api_key: str | None = typer.Option(None, "--api-key", help="Override provider API key."),
):
    """Fetch stories, extract articles and summarize them."""
    cfg = _load(config, log_level)
    if log_file is not None:
        cfg.logging.file = log_file
    if storage_dir is not None:
        cfg.storage.directory = str(storage_dir)
    if api_key:
        cfg.provider.api_key = api_key

    cards, stats = run_pipeline(cfg, kind=kind, limit=limit, priority=priority, show_progress=progress, console=console)

    for card in cards:
        story = card.story
        console.print(f"[bold]{story.title}[/bold] [dim]({story.domain or 'news.ycombinator.com'}, {story.score} points)[/dim]")
        if card.summary is not None:
            tag = " [dim](cached)[/dim]" if card.summary.cached else ""
            console.print(f"  {card.summary.summary}{tag}")
        elif card.status == "no_url":
            console.print(f"  [dim]Discussion: {story.comments_url}[/dim]")
        else:
            console.print(f"  [yellow]{card.status}[/yellow]: {card.error}")
            console.print(f"  [dim]View original: {story.url}[/dim]")

    console.print(
        f"Stories: {stats.total} | summarized: {stats.summarized} (cached {stats.cache_hits}) | "
        f"extraction failed: {stats.extraction_failed} | summary failed: {stats.summary_failed} | "
        f"no url: {stats.no_url}"
    )


@app.command()
def extract(
    url: str = typer.Argument(..., help="Article URL."),
    config: Path | None = ConfigOption,
    show_content: bool = typer.Option(False, "--content", help="Print the extracted text."),
):
    """Run the extraction cascade against one URL."""
    cfg = _load(config)
    logger = setup_logging(cfg.logging, None)

    async def _extract():
        async with httpx.AsyncClient(trust_env=cfg.fetch.trust_env) as client:
            return await ContentExtractor(client, cfg.extract, cfg.fetch, logger=logger).extract(url)

    analysis = analyze_url(url)
    result = asyncio.run(_extract())

    table = Table(show_header=False)
    table.add_row("Type", f"{analysis.type} ({analysis.estimated_difficulty})")
    table.add_row("Method", result.extraction_method)
    table.add_row("Success", str(result.success))
    table.add_row("Title", result.title)
    table.add_row("Site", result.site_name or "")
    table.add_row("Author", result.author or "")
    table.add_row("Words", str(result.word_count))
    if result.error:
        table.add_row("Error", result.error)
    console.print(table)
    if show_content:
        console.print(result.content)
    if not result.success:
        raise typer.Exit(code=1)


@app.command("cache-stats")
def cache_stats(config: Path | None = ConfigOption):
    """Show summary cache statistics."""
    cfg = _load(config)

    async def _stats():
        cache = SummaryCache(create_store(cfg.storage), cfg.cache.max_cache_size, cfg.cache.expiry_days)
        await cache.load()
        return await cache.stats(), cache.detailed_stats()

    stats, detailed = asyncio.run(_stats())
    table = Table(title="Summary cache")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Entries", f"{stats.size} / {stats.max_size}")
    table.add_row("Hit rate", f"{stats.hit_rate:.1f}%")
    table.add_row("Oldest (sampled)", str(stats.oldest_entry or "-"))
    table.add_row("Newest (sampled)", str(stats.newest_entry or "-"))
    for key in ("totalSummaries", "cachedSummaries", "successfulSummaries", "failedSummaries"):
        table.add_row(key, str(detailed[key]))
    table.add_row("totalCost", f"${detailed['totalCost']:.4f}")
    console.print(table)


@app.command("cache-clear")
def cache_clear(
    config: Path | None = ConfigOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
):
    """Delete every cached summary and reset hit counters."""
    cfg = _load(config)
    if not yes:
        typer.confirm("Clear the summary cache?", abort=True)

    async def _clear() -> int:
        cache = SummaryCache(create_store(cfg.storage), cfg.cache.max_cache_size, cfg.cache.expiry_days)
        await cache.load()
        removed = len(cache)
        await cache.clear()
        return removed

    removed = asyncio.run(_clear())
    console.print(f"Removed {removed} cached summaries")


@app.command("queue-status")
def queue_status(config: Path | None = ConfigOption):
    """Show persisted queue contents and lifetime counters."""
    cfg = _load(config)

    async def _status():
        queue = SummaryQueue(None, create_store(cfg.storage), cfg.queue)
        await queue.load()
        return queue.progress(), queue.stats(), queue.items()

    progress, stats, items = asyncio.run(_status())
    console.print(
        f"Total {progress.total} | pending {progress.pending} | completed {progress.completed} | "
        f"failed {progress.failed}"
    )
    console.print(
        f"Lifetime items: {stats['totalItemsEver']} | success rate {stats['successRate']:.1f}% | "
        f"avg processing {stats['averageProcessingTime']:.0f} ms"
    )
    table = Table()
    table.add_column("Id")
    table.add_column("Priority")
    table.add_column("Status")
    table.add_column("Retries", justify="right")
    table.add_column("Title")
    for item in items:
        table.add_row(item.id, item.request.priority, item.status, str(item.retry_count), item.request.title[:60])
    console.print(table)


@app.command("queue-retry")
def queue_retry(
    config: Path | None = ConfigOption,
    api_key: str | None = typer.Option(None, "--api-key", help="Override provider API key."),
):
    """Reset failed queue items and process them again."""
    cfg = _load(config)
    if api_key:
        cfg.provider.api_key = api_key
    logger = setup_logging(cfg.logging, Path(cfg.storage.directory))

    async def _retry() -> tuple[int, int]:
        async with httpx.AsyncClient(trust_env=cfg.fetch.trust_env) as client:
            pipeline = build_pipeline(cfg, client, logger)
            await pipeline.load()
            reset = await pipeline.queue.retry_failed()
            await pipeline.queue.wait_until_idle()
            return reset, len(pipeline.queue.items("failed"))

    reset, still_failed = asyncio.run(_retry())
    console.print(f"Retried {reset} items; {still_failed} still failed")


@app.command("queue-clear")
def queue_clear(
    config: Path | None = ConfigOption,
    completed: bool = typer.Option(False, "--completed", help="Drop completed items instead of pending/failed."),
):
    """Drop pending and failed queue items (or completed ones with --completed)."""
    cfg = _load(config)

    async def _clear() -> int:
        queue = SummaryQueue(None, create_store(cfg.storage), cfg.queue)
        await queue.load()
        before = len(queue.items())
        if completed:
            await queue.clear_completed()
        else:
            await queue.clear()
        return before - len(queue.items())

    removed = asyncio.run(_clear())
    console.print(f"Removed {removed} queue items")


if __name__ == "__main__":
    app()
