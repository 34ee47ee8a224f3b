"""Tests for the summarization service."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from hn_digest.config import SummaryConfig
from hn_digest.core.types import SummaryRequest
from hn_digest.llm.providers.base import Completion, SummaryProvider
from hn_digest.storage import MemoryStore
from hn_digest.summarize.cache import SummaryCache
from hn_digest.summarize.service import (
    RETRY_MODEL,
    SummaryError,
    Summarizer,
    calculate_cost,
    classify_error,
    truncate_content,
)

SUMMARY = "The article explains a new compiler release. It focuses on faster builds for large projects."
CONTENT = "The compiler team shipped version five with incremental builds. " * 20


class _DummyProvider(SummaryProvider):
    """Scripted provider: returns outcomes in order, repeating the last one."""

    name = "dummy"

    def __init__(self, *outcomes, delay: float = 0.0):
        self.outcomes = list(outcomes) or [SUMMARY]
        self.delay = delay
        self.calls: list[dict] = []

    async def complete(self, system_prompt, prompt, max_tokens, temperature, model=None):  # noqa: ANN001
        self.calls.append({"prompt": prompt, "max_tokens": max_tokens, "model": model})
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes[min(len(self.calls), len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, Completion):
            return outcome
        return Completion(text=outcome, tokens_used=200, model=model or "gpt-4o-mini")


class _Sleeps:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _summarizer(provider, cfg: SummaryConfig | None = None, sleep=None) -> Summarizer:
    return Summarizer(provider, SummaryCache(MemoryStore()), cfg or SummaryConfig(), sleep=sleep or _Sleeps())


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://llm.test/v1/chat/completions")
    return httpx.HTTPStatusError("error", request=request, response=httpx.Response(status, request=request))


def test_fresh_summary_is_cached_for_identical_content():
    provider = _DummyProvider()
    summarizer = _summarizer(provider)

    async def main():
        first = await summarizer.summarize_article(CONTENT, "Compiler 5.0", "https://example.com")
        second = await summarizer.summarize_article(CONTENT, "Compiler 5.0", "https://example.com")
        return first, second

    first, second = asyncio.run(main())

    assert not first.cached
    assert first.summary == SUMMARY
    assert first.tokens_used == 200
    assert first.cost == pytest.approx(calculate_cost(200, "gpt-4o-mini"))
    assert first.confidence == 1.0
    assert second.cached
    assert second.summary == SUMMARY
    assert len(provider.calls) == 1
    stats = summarizer.cache.detailed_stats()
    assert stats["successfulSummaries"] == 1
    assert stats["cachedSummaries"] == 1


def test_concurrent_requests_share_one_provider_call():
    provider = _DummyProvider(delay=0.01)
    summarizer = _summarizer(provider)

    async def main():
        return await asyncio.gather(*(summarizer.summarize_article(CONTENT, "Compiler 5.0") for _ in range(3)))

    results = asyncio.run(main())

    assert len(provider.calls) == 1
    assert {result.summary for result in results} == {SUMMARY}


def test_transient_errors_are_retried_with_backoff():
    sleeps = _Sleeps()
    provider = _DummyProvider(httpx.ConnectError("refused"), _status_error(503), SUMMARY)
    summarizer = _summarizer(provider, SummaryConfig(retry_attempts=3), sleeps)

    result = asyncio.run(summarizer.summarize_article(CONTENT, "Compiler 5.0"))

    assert result.summary == SUMMARY
    assert len(provider.calls) == 3
    assert sleeps.delays == [1.0, 2.0]


def test_auth_errors_are_not_retried():
    provider = _DummyProvider(_status_error(401))
    summarizer = _summarizer(provider)

    with pytest.raises(SummaryError) as excinfo:
        asyncio.run(summarizer.summarize_article(CONTENT, "Compiler 5.0"))

    assert excinfo.value.code == "AUTH_ERROR"
    assert not excinfo.value.retryable
    assert len(provider.calls) == 1
    assert summarizer.cache.detailed_stats()["failedSummaries"] == 1


def test_cost_limit_stops_immediately():
    provider = _DummyProvider(Completion(text=SUMMARY, tokens_used=100_000, model="gpt-4o-mini"))
    summarizer = _summarizer(provider)

    with pytest.raises(SummaryError) as excinfo:
        asyncio.run(summarizer.summarize_article(CONTENT, "Compiler 5.0"))

    assert excinfo.value.code == "COST_LIMIT_ERROR"
    assert len(provider.calls) == 1
    assert len(summarizer.cache) == 0


def test_quality_validation_rejects_refusals_without_backoff():
    sleeps = _Sleeps()
    refusal = "I cannot summarize this article because the content is not available to me right now."
    provider = _DummyProvider(refusal)
    summarizer = _summarizer(provider, SummaryConfig(enable_quality_validation=True), sleeps)

    with pytest.raises(SummaryError) as excinfo:
        asyncio.run(summarizer.summarize_article(CONTENT, "Compiler 5.0"))

    assert excinfo.value.code == "QUALITY_ERROR"
    assert len(provider.calls) == 3
    assert sleeps.delays == []


def test_invalid_input_and_missing_provider():
    with pytest.raises(SummaryError) as excinfo:
        asyncio.run(_summarizer(_DummyProvider()).summarize_article("   ", "Title"))
    assert excinfo.value.code == "INVALID_INPUT"

    with pytest.raises(SummaryError) as excinfo:
        asyncio.run(_summarizer(None).summarize_article(CONTENT, "Title"))
    assert excinfo.value.code == "AUTH_ERROR"
    assert str(excinfo.value) == "AUTH_ERROR: API key not configured"


def test_empty_completion_is_a_provider_error():
    provider = _DummyProvider("   ")
    summarizer = _summarizer(provider, SummaryConfig(retry_attempts=2))

    with pytest.raises(SummaryError) as excinfo:
        asyncio.run(summarizer.summarize_article(CONTENT, "Compiler 5.0"))

    assert excinfo.value.code == "PROVIDER_ERROR"
    assert len(provider.calls) == 2


def test_retry_failed_summary_uses_cheap_settings_and_skips_cache():
    provider = _DummyProvider()
    summarizer = _summarizer(provider)

    result = asyncio.run(summarizer.retry_failed_summary("x" * 5000, "Compiler 5.0"))

    assert result.summary == SUMMARY
    call = provider.calls[0]
    assert call["model"] == RETRY_MODEL
    assert call["max_tokens"] == 100
    assert "x" * 2000 in call["prompt"]
    assert "x" * 2001 not in call["prompt"]
    assert len(summarizer.cache) == 0


def test_technical_titles_use_technical_prompt():
    provider = _DummyProvider()
    summarizer = _summarizer(provider)

    asyncio.run(summarizer.summarize_article(CONTENT, "Rust framework architecture for GPU databases"))

    assert "software developers and engineers" in provider.calls[0]["prompt"]


def test_classify_error_maps_transport_failures():
    assert classify_error(asyncio.TimeoutError()).code == "TIMEOUT_ERROR"
    assert classify_error(_status_error(429)).code == "RATE_LIMIT_ERROR"
    assert classify_error(_status_error(500)).code == "PROVIDER_ERROR"
    unknown = classify_error(RuntimeError("odd"))
    assert unknown.code == "UNKNOWN_ERROR"
    assert not unknown.retryable


def test_calculate_cost_and_truncation():
    assert calculate_cost(1000, "gpt-4o") == pytest.approx(0.008)
    assert calculate_cost(1000, "unknown-model") == calculate_cost(1000, "gpt-4o-mini")

    text = "First sentence here. " * 10
    truncated = truncate_content(text, 100)
    assert truncated.endswith(".")
    assert len(truncated) <= 100
    assert truncate_content("a" * 150, 100) == "a" * 100 + "..."
    assert truncate_content("short", 100) == "short"


def test_provider_removed_mid_run_fails_as_auth_error():
    provider = _DummyProvider()
    summarizer = _summarizer(provider, SummaryConfig(retry_attempts=3))
    summarizer.provider = None

    with pytest.raises(SummaryError) as excinfo:
        asyncio.run(summarizer._perform(SummaryRequest(content=CONTENT, title="Compiler 5.0"), 0.0))

    assert excinfo.value.code == "AUTH_ERROR"
    assert provider.calls == []
