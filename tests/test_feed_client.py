"""Tests for the Hacker News API client."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from hn_digest.config import FeedConfig
from hn_digest.feed.client import FeedError, HackerNewsClient, RateLimiter, time_ago, to_story

BASE = "https://hn.test/v0"

ITEMS = {
    1: {"id": 1, "type": "story", "title": "Show HN: A tiny database", "url": "https://www.example.com/db",
        "by": "alice", "time": 1_700_000_000, "score": 120, "descendants": 33},
    2: {"id": 2, "type": "job", "title": "Example is hiring", "time": 1_700_000_000},
    3: {"id": 3, "type": "story", "title": "Ask HN: How do you take notes?", "by": "bob",
        "time": 1_700_000_000, "score": 40, "text": "<p>Curious.</p>"},
}


class _Api:
    def __init__(self, overrides: dict[str, httpx.Response] | None = None):
        self.overrides = overrides or {}
        self.paths: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/v0/")
        self.paths.append(path)
        if path in self.overrides:
            return self.overrides[path]
        if path == "topstories.json":
            return httpx.Response(200, json=[1, 2, 3])
        if path.startswith("item/"):
            item_id = int(path.split("/")[1].split(".")[0])
            return httpx.Response(200, json=ITEMS.get(item_id))
        if path == "user/alice.json":
            return httpx.Response(200, json={"id": "alice", "karma": 1000})
        return httpx.Response(404)


def _client(api: _Api, **overrides) -> HackerNewsClient:
    cfg = FeedConfig(base_url=BASE, retry_delay_seconds=0, max_retry_delay_seconds=0, **overrides)
    return HackerNewsClient(httpx.AsyncClient(transport=httpx.MockTransport(api)), cfg)


def test_stories_keeps_only_story_items_and_enriches_them():
    api = _Api()
    client = _client(api)

    stories = asyncio.run(client.stories("top", 3))

    assert [story.id for story in stories] == [1, 3]
    db, ask = stories
    assert db.domain == "example.com"
    assert db.comments_url == "https://news.ycombinator.com/item?id=1"
    assert db.score == 120
    assert ask.url is None
    assert ask.domain is None
    assert ask.text == "<p>Curious.</p>"


def test_responses_are_cached_per_resource():
    api = _Api()
    client = _client(api)

    async def main():
        await client.stories("top", 3)
        await client.stories("top", 3)
        await client.user("alice")
        return await client.user("alice")

    user = asyncio.run(main())

    assert user == {"id": "alice", "karma": 1000}
    assert api.paths.count("topstories.json") == 1
    assert api.paths.count("item/1.json") == 1
    assert api.paths.count("user/alice.json") == 1


def test_story_ids_applies_limit_and_rejects_unknown_lists():
    client = _client(_Api())

    assert asyncio.run(client.top_story_ids(2)) == [1, 2]
    with pytest.raises(ValueError, match="Unknown story list"):
        asyncio.run(client.story_ids("ask"))


def test_missing_item_maps_to_not_found_after_retries():
    api = _Api({"item/99.json": httpx.Response(404)})
    client = _client(api, max_retries=2)

    with pytest.raises(FeedError, match="Item not found"):
        asyncio.run(client.item(99))
    assert api.paths.count("item/99.json") == 3


def test_rate_limit_blocks_requests_before_sending():
    api = _Api()
    client = _client(api, rate_limit_per_minute=1)

    with pytest.raises(FeedError, match="No stories could be loaded"):
        asyncio.run(client.stories("top", 3))
    assert api.paths == ["topstories.json"]


def test_partial_item_failures_are_tolerated():
    api = _Api({"item/3.json": httpx.Response(500)})
    client = _client(api, max_retries=0)

    stories = asyncio.run(client.stories("top", 3))

    assert [story.id for story in stories] == [1]


def test_rate_limiter_uses_sliding_window():
    now = [0.0]
    limiter = RateLimiter(2, window_seconds=60, clock=lambda: now[0])

    limiter.record_request()
    now[0] = 30
    limiter.record_request()
    assert not limiter.can_make_request()

    now[0] = 60
    assert limiter.can_make_request()
    assert limiter.stats()["requests_in_window"] == 1


def test_time_ago_formats_relative_age():
    now = 1_700_000_000
    assert time_ago(now - 30, now) == "Just now"
    assert time_ago(now - 300, now) == "5m ago"
    assert time_ago(now - 7200, now) == "2h ago"
    assert time_ago(now - 3 * 86400, now) == "3d ago"
    assert time_ago(now - 10 * 86400, now) == "2023-11-04"


def test_to_story_fills_defaults():
    story = to_story({"id": 7, "time": 0}, now=0)

    assert story.title == "[no title]"
    assert story.by == "[deleted]"
    assert story.time_ago == "Just now"
