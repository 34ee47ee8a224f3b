"""
Async client for the Hacker News Firebase API.

Responses are cached in a MemoryCache with per-endpoint TTLs, concurrent
requests for the same resource share one HTTP call, and all requests pass
through a sliding one-minute rate limiter. Failed requests are retried with
exponential backoff plus jitter; a timed-out request is not retried.
"""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime, timezone
import logging
import random
import time
from typing import Any, Callable

import httpx

from ..cache import MemoryCache
from ..config import FeedConfig
from ..core.types import Story
from ..fetch.extractor import extract_domain
from ..logging_utils import log_event

STORY_LISTS = {
    "top": "topstories",
    "best": "beststories",
    "new": "newstories",
}
COMMENTS_URL = "https://news.ycombinator.com/item?id={id}"


class FeedError(Exception):
    """Raised when a Hacker News API call fails after retries or is rate limited."""


class RateLimiter:
    """Sliding-window request counter."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: deque[float] = deque()

    def can_make_request(self) -> bool:
        self._prune()
        return len(self._requests) < self.max_requests

    def record_request(self) -> None:
        self._requests.append(self._clock())

    def stats(self) -> dict[str, Any]:
        self._prune()
        return {
            "requests_in_window": len(self._requests),
            "max_requests": self.max_requests,
            "can_make_request": len(self._requests) < self.max_requests,
        }

    def _prune(self) -> None:
        window_start = self._clock() - self.window_seconds
        while self._requests and self._requests[0] <= window_start:
            self._requests.popleft()


def time_ago(unix_time: int, now: float | None = None) -> str:
    """Format a Unix timestamp relative to now ("Just now", "5m ago", "3h ago", "2d ago")."""
    now = time.time() if now is None else now
    minutes = int((now - unix_time) // 60)
    hours = minutes // 60
    days = hours // 24
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return datetime.fromtimestamp(unix_time, tz=timezone.utc).strftime("%Y-%m-%d")


def to_story(item: dict[str, Any], now: float | None = None) -> Story:
    """Build a Story from a raw API item, adding domain, comments link and age."""
    url = item.get("url")
    return Story(
        id=int(item["id"]),
        title=item.get("title", "[no title]"),
        url=url,
        by=item.get("by", "[deleted]"),
        time=int(item.get("time", 0)),
        score=int(item.get("score", 0)),
        descendants=int(item.get("descendants", 0)),
        type=item.get("type", "story"),
        text=item.get("text"),
        domain=extract_domain(url) if url else None,
        comments_url=COMMENTS_URL.format(id=item["id"]),
        time_ago=time_ago(int(item.get("time", 0)), now),
    )


class HackerNewsClient:
    """Story Feed Client for the Hacker News API.

    Args:
        client: Shared async HTTP client
        cfg: Endpoint, retry, rate limit and cache TTL settings
        logger: Optional logger for request events
        clock: Monotonic time source for the cache and rate limiter
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cfg: FeedConfig | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.cfg = cfg or FeedConfig()
        self.logger = logger
        self.rate_limiter = RateLimiter(self.cfg.rate_limit_per_minute, clock=clock)
        self._cache: MemoryCache[str, Any] = MemoryCache(
            default_ttl=self.cfg.story_details_ttl_seconds, clock=clock
        )

    async def top_story_ids(self, limit: int | None = None) -> list[int]:
        return await self.story_ids("top", limit)

    async def best_story_ids(self, limit: int | None = None) -> list[int]:
        return await self.story_ids("best", limit)

    async def new_story_ids(self, limit: int | None = None) -> list[int]:
        return await self.story_ids("new", limit)

    async def story_ids(self, kind: str, limit: int | None = None) -> list[int]:
        if kind not in STORY_LISTS:
            raise ValueError(f"Unknown story list: {kind}. Supported: {', '.join(STORY_LISTS)}")
        key = f"{kind}_stories_{limit if limit is not None else 'all'}"

        async def load() -> list[int]:
            ids = await self._request(f"{STORY_LISTS[kind]}.json") or []
            if limit:
                ids = ids[:limit]
            self._cache.set(key, ids, self.cfg.story_list_ttl_seconds)
            return ids

        return await self._cached(key, load)

    async def item(self, item_id: int) -> dict[str, Any] | None:
        """Fetch a raw item. Returns None when the API has no such item."""
        key = f"story_{item_id}"

        async def load() -> dict[str, Any] | None:
            data = await self._request(f"item/{item_id}.json")
            if data:
                self._cache.set(key, data, self.cfg.story_details_ttl_seconds)
            return data

        return await self._cached(key, load)

    async def user(self, username: str) -> dict[str, Any] | None:
        key = f"user_{username}"

        async def load() -> dict[str, Any] | None:
            data = await self._request(f"user/{username}.json")
            if data:
                self._cache.set(key, data, self.cfg.user_details_ttl_seconds)
            return data

        return await self._cached(key, load)

    async def stories(self, kind: str = "top", limit: int | None = None) -> list[Story]:
        """Fetch story IDs then item details concurrently, keeping only stories.

        Raises:
            FeedError: When the ID list cannot be loaded, or no story loads at all
        """
        limit = min(limit or self.cfg.default_story_limit, self.cfg.max_story_limit)
        ids = await self.story_ids(kind, limit)
        results = await asyncio.gather(*(self.item(item_id) for item_id in ids), return_exceptions=True)

        now = time.time()
        stories: list[Story] = []
        errors: list[str] = []
        for result in results:
            if isinstance(result, BaseException):
                errors.append(str(result))
            elif result and result.get("type") == "story":
                stories.append(to_story(result, now))

        if ids and not stories and errors:
            raise FeedError(f"No stories could be loaded. Errors: {', '.join(errors[:3])}")
        if errors:
            log_event(
                self.logger,
                "Some stories failed to load",
                level=logging.WARNING,
                event="feed_partial_failure",
                failed=len(errors),
                loaded=len(stories),
            )
        return stories

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _cached(self, key: str, load: Callable[[], Any]) -> Any:
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        return await self._cache.with_deduplication(key, load)

    async def _request(self, path: str) -> Any:
        if not self.rate_limiter.can_make_request():
            raise FeedError("Rate limit exceeded. Please try again later.")

        url = f"{self.cfg.base_url.rstrip('/')}/{path}"
        last_error = "Unknown error occurred"
        for attempt in range(self.cfg.max_retries + 1):
            self.rate_limiter.record_request()
            log_event(
                self.logger,
                "HN API request",
                level=logging.DEBUG,
                event="feed_request",
                url=url,
                attempt=attempt + 1,
            )
            try:
                resp = await asyncio.wait_for(
                    self.client.get(url, headers={"Accept": "application/json"}),
                    timeout=self.cfg.timeout_seconds,
                )
                resp.raise_for_status()
                return resp.json()
            except asyncio.TimeoutError:
                last_error = "Request timed out"
                break
            except httpx.HTTPStatusError as exc:
                last_error = _status_message(exc.response.status_code, exc.response.reason_phrase)
            except (httpx.HTTPError, ValueError) as exc:
                last_error = f"Network error: {exc}"

            log_event(
                self.logger,
                "HN API attempt failed",
                level=logging.WARNING,
                event="feed_request_failed",
                url=url,
                attempt=attempt + 1,
                error=last_error,
            )
            if attempt < self.cfg.max_retries:
                delay = min(
                    self.cfg.retry_delay_seconds * (2**attempt) + random.random(),
                    self.cfg.max_retry_delay_seconds,
                )
                await asyncio.sleep(delay)

        raise FeedError(last_error)


def _status_message(status: int, reason: str) -> str:
    if status == 404:
        return "Item not found"
    if status == 429:
        return "Too many requests - please slow down"
    return f"HTTP {status}: {reason}"
