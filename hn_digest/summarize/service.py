"""
Summarization service: cache lookup, single-flight, retries and quality checks.

summarize_article() is the Summarization Call used by the summary queue. It
checks the summary cache by content hash first, shares one provider call
between concurrent requests for the same content, and stores fresh results
back into the cache.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
import logging
import math
import re
import time
from typing import Awaitable, Callable

import httpx

from ..cache import MemoryCache
from ..config import ProviderConfig, SummaryConfig
from ..core.types import SummaryMetadata, SummaryRequest, SummaryResponse, utcnow
from ..llm.prompts import PROMPT_MAX_TOKENS, build_summary_prompt, select_prompt, system_prompt
from ..llm.providers.base import SummaryProvider
from ..logging_utils import log_event
from .cache import SummaryCache, generate_content_hash

# USD per 1K tokens
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o-mini": (0.00015, 0.0006),
    "gpt-4o": (0.005, 0.015),
    "gpt-4": (0.03, 0.06),
    "gpt-3.5-turbo": (0.0005, 0.0015),
}
DEFAULT_PRICING_MODEL = "gpt-4o-mini"

REFUSAL_PATTERNS = [
    "I cannot",
    "I'm unable to",
    "I don't have access",
    "As an AI",
    "I'm not able",
    "Sorry, but",
]

RETRY_CONTENT_CHARS = 2000
RETRY_MODEL = "gpt-4o-mini"
RETRY_MAX_TOKENS = 100

_SENTENCE_SPLIT = re.compile(r"[.!?]+")

RETRYABLE_CODES = {"TIMEOUT_ERROR", "RATE_LIMIT_ERROR", "PROVIDER_ERROR", "QUALITY_ERROR"}


class SummaryError(Exception):
    """Summarization failure with a machine-readable code.

    Attributes:
        code: One of INVALID_INPUT, AUTH_ERROR, TIMEOUT_ERROR, RATE_LIMIT_ERROR,
            COST_LIMIT_ERROR, QUALITY_ERROR, PROVIDER_ERROR, UNKNOWN_ERROR
        message: Human-readable description
        retryable: Whether a later attempt could succeed
    """

    def __init__(self, code: str, message: str, retryable: bool | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = code in RETRYABLE_CODES if retryable is None else retryable
        self.timestamp = utcnow()

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


def calculate_cost(tokens_used: int, model: str) -> float:
    """Estimate USD cost assuming a 70/30 split of input and output tokens."""
    input_price, output_price = MODEL_PRICING.get(model, MODEL_PRICING[DEFAULT_PRICING_MODEL])
    input_tokens = math.floor(tokens_used * 0.7)
    output_tokens = math.ceil(tokens_used * 0.3)
    return (input_tokens * input_price + output_tokens * output_price) / 1000


def truncate_content(content: str, max_length: int) -> str:
    """Cut content to max_length, preferring the last sentence end past 70%."""
    if len(content) <= max_length:
        return content
    truncated = content[:max_length]
    last_period = truncated.rfind(".")
    if last_period > max_length * 0.7:
        return truncated[: last_period + 1]
    return truncated + "..."


def count_summary_words(summary: str) -> int:
    return len(summary.split(" "))


def classify_error(exc: BaseException) -> SummaryError:
    """Map a provider or runtime exception onto a SummaryError."""
    if isinstance(exc, SummaryError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return SummaryError("TIMEOUT_ERROR", "Request timeout")
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status in (401, 403):
            return SummaryError("AUTH_ERROR", f"Provider rejected the API key (HTTP {status})")
        if status == 429:
            return SummaryError("RATE_LIMIT_ERROR", "Provider rate limit exceeded")
        return SummaryError("PROVIDER_ERROR", f"HTTP {status}: {exc.response.reason_phrase}")
    if isinstance(exc, httpx.HTTPError):
        return SummaryError("PROVIDER_ERROR", f"{type(exc).__name__}: {exc}")
    return SummaryError("UNKNOWN_ERROR", str(exc) or "Unknown error occurred", retryable=False)


class Summarizer:
    """Summarization service over a provider and the summary cache.

    Args:
        provider: LLM backend, or None when no API key is configured
        cache: Summary cache shared with the rest of the pipeline
        cfg: Token, retry, cost and quality settings
        provider_cfg: Supplies the default model name
        logger: Optional logger for summarization events
        sleep: Awaitable delay used between attempts, injectable for tests
    """

    def __init__(
        self,
        provider: SummaryProvider | None,
        cache: SummaryCache,
        cfg: SummaryConfig | None = None,
        provider_cfg: ProviderConfig | None = None,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.cache = cache
        self.cfg = cfg or SummaryConfig()
        self.model = (provider_cfg or ProviderConfig()).model
        self.logger = logger
        self._sleep = sleep
        self._active: MemoryCache[str, SummaryResponse] = MemoryCache()

    async def summarize_article(
        self,
        content: str,
        title: str,
        url: str = "",
        priority: str = "normal",
    ) -> SummaryResponse:
        """Summarize one article, serving from cache when possible.

        Raises:
            SummaryError: Invalid input, missing credentials, or every attempt failed
        """
        started = time.monotonic()
        if not content.strip() or not title.strip():
            raise SummaryError("INVALID_INPUT", "Content and title are required", retryable=False)
        if self.provider is None:
            raise SummaryError("AUTH_ERROR", "API key not configured", retryable=False)

        content_hash = generate_content_hash(content, title)
        cached = await self.cache.get(content_hash)
        if cached is not None:
            return cached

        request = SummaryRequest(
            content=content,
            title=title,
            url=url,
            priority=priority,  # type: ignore[arg-type]
            max_tokens=self.cfg.max_tokens,
            model=self.model,
        )

        async def produce() -> SummaryResponse:
            try:
                result = await self._perform(request, started)
            except SummaryError as exc:
                await self.cache.record_outcome(success=False)
                log_event(
                    self.logger,
                    "Summarization failed",
                    level=logging.WARNING,
                    event="summary_failed",
                    title=title,
                    code=exc.code,
                    error=exc.message,
                )
                raise
            await self.cache.put(content_hash, result.summary, result.metadata)
            await self.cache.record_outcome(
                success=True,
                cost=result.cost or 0.0,
                processing_time=result.processing_time,
                quality_score=result.metadata.quality_score,
            )
            return result

        return await self._active.with_deduplication(content_hash, produce)

    async def retry_failed_summary(self, content: str, title: str) -> SummaryResponse:
        """Retry with shorter content, the cheapest model and fewer tokens. Not cached."""
        if self.provider is None:
            raise SummaryError("AUTH_ERROR", "API key not configured", retryable=False)
        request = SummaryRequest(
            content=content[:RETRY_CONTENT_CHARS],
            title=title,
            priority="low",
            model=RETRY_MODEL,
            max_tokens=RETRY_MAX_TOKENS,
        )
        return await self._perform(request, time.monotonic(), prompt_name="fallback")

    def validate_summary_quality(self, summary: str) -> bool:
        """Word-range and refusal-pattern check."""
        words = count_summary_words(summary)
        if words < self.cfg.min_summary_words or words > self.cfg.max_summary_words:
            return False
        lower = summary.lower()
        return not any(pattern.lower() in lower for pattern in REFUSAL_PATTERNS)

    def summary_metadata(self, summary: str) -> SummaryMetadata:
        """qualityScore = 0.5, +0.3 within the word range, +0.2 for 2-3 sentences."""
        words = count_summary_words(summary)
        quality = 0.5
        if self.cfg.min_summary_words <= words <= self.cfg.max_summary_words:
            quality += 0.3
        sentences = [s for s in _SENTENCE_SPLIT.split(summary) if s.strip()]
        if 2 <= len(sentences) <= 3:
            quality += 0.2
        return SummaryMetadata(
            quality_score=min(quality, 1.0),
            extracted_date=datetime.now().astimezone().isoformat(),
        )

    async def _perform(
        self, request: SummaryRequest, started: float, prompt_name: str | None = None
    ) -> SummaryResponse:
        attempts = max(1, self.cfg.retry_attempts)
        last_error = SummaryError("UNKNOWN_ERROR", "Summarization failed")

        for attempt in range(1, attempts + 1):
            try:
                result = await self._call_provider(request, started, prompt_name)
                if self.cfg.enable_quality_validation and not self.validate_summary_quality(result.summary):
                    raise SummaryError("QUALITY_ERROR", "Summary failed quality validation")
                return result
            except Exception as exc:  # noqa: BLE001
                last_error = classify_error(exc)

            log_event(
                self.logger,
                "Summarization attempt failed",
                level=logging.WARNING,
                event="summary_attempt_failed",
                title=request.title,
                attempt=attempt,
                code=last_error.code,
                error=last_error.message,
            )
            if not last_error.retryable:
                break
            if attempt < attempts and last_error.code != "QUALITY_ERROR":
                delay = min(
                    self.cfg.retry_base_delay_seconds * (2 ** (attempt - 1)),
                    self.cfg.max_retry_delay_seconds,
                )
                await self._sleep(delay)

        raise last_error

    async def _call_provider(
        self, request: SummaryRequest, started: float, prompt_name: str | None = None
    ) -> SummaryResponse:
        provider = self.provider
        if provider is None:
            raise SummaryError("AUTH_ERROR", "API key not configured", retryable=False)
        prompt_name = prompt_name or select_prompt(request.title, request.content)
        content = truncate_content(request.content, self.cfg.max_input_chars)
        prompt = build_summary_prompt(prompt_name, request.title, content)
        model = request.model or self.model
        max_tokens = request.max_tokens or PROMPT_MAX_TOKENS.get(prompt_name, self.cfg.max_tokens)

        completion = await asyncio.wait_for(
            provider.complete(
                system_prompt(),
                prompt,
                max_tokens=max_tokens,
                temperature=self.cfg.temperature,
                model=model,
            ),
            timeout=self.cfg.timeout_seconds,
        )
        summary = completion.text.strip()
        if not summary:
            raise SummaryError("PROVIDER_ERROR", "No summary generated by provider")

        cost = calculate_cost(completion.tokens_used, model)
        if cost > self.cfg.cost_limit_per_summary:
            raise SummaryError(
                "COST_LIMIT_ERROR",
                f"Summary cost (${cost:.4f}) exceeds limit (${self.cfg.cost_limit_per_summary})",
                retryable=False,
            )

        metadata = self.summary_metadata(summary)
        log_event(
            self.logger,
            "Summary generated",
            event="summary_generated",
            title=request.title,
            prompt=prompt_name,
            model=model,
            tokens=completion.tokens_used,
        )
        return SummaryResponse(
            summary=summary,
            word_count=count_summary_words(summary),
            confidence=metadata.quality_score,
            tokens_used=completion.tokens_used,
            processing_time=int((time.monotonic() - started) * 1000),
            cached=False,
            model=model,
            metadata=metadata,
            cost=cost,
        )
