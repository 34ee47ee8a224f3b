"""
Article extraction from arbitrary URLs with a cascade of strategies.

Strategies are tried in a fixed order and the first successful result wins:
1. metadata: og/twitter/meta description, accepted at a loose score > 30
2. basic: main content container or concatenated paragraphs, validated at 60
3. fallback: page title plus the first substantial paragraph

Every result (success or terminal failure) is cached per URL, and concurrent
extractions of the same URL share a single cascade.
"""

from __future__ import annotations

from dataclasses import replace
import logging
import re
import time
from typing import Awaitable, Callable
from urllib.parse import urlparse

from bs4 import BeautifulSoup
import httpx

from ..cache import MemoryCache
from ..config import ExtractConfig, FetchConfig
from ..core.types import ContentType, ExtractedContent, ExtractionOptions, URLAnalysis
from ..core.validator import count_words, validate_content
from ..logging_utils import log_event
from .fetcher import fetch_url

UNSUPPORTED_SCHEMES = ("data:", "javascript:", "mailto:")
MIN_METADATA_LENGTH = 50
METADATA_SCORE_BAR = 30
MIN_PARAGRAPH_LENGTH = 20
MIN_FALLBACK_PARAGRAPH_LENGTH = 50

_NOISE_TAGS = ["script", "style", "nav", "footer", "aside"]
_CONTENT_CLASS = re.compile(r"content|post|article|entry")
_STORY_CLASS = re.compile(r"story")
_WHITESPACE = re.compile(r"\s+")

_TITLE_META = [("property", "og:title"), ("name", "twitter:title")]
_DESCRIPTION_META = [
    ("property", "og:description"),
    ("name", "twitter:description"),
    ("name", "description"),
]
_AUTHOR_META = [("name", "author"), ("property", "article:author")]


class FetchError(Exception):
    """Raised when every fetch attempt for a strategy has failed."""


def extract_domain(url: str) -> str:
    """Hostname of url without a leading "www.", or "unknown-domain"."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        host = None
    if not host:
        return "unknown-domain"
    return host[4:] if host.startswith("www.") else host


def analyze_url(url: str) -> URLAnalysis:
    """Classify a URL by pattern matching on its domain and path."""
    domain = extract_domain(url)
    requires_special_handling = False
    content_type: ContentType

    if "github.com" in url:
        content_type, difficulty, requires_special_handling = "github", "medium", True
    elif "youtube.com" in url or "youtu.be" in url:
        content_type, difficulty, requires_special_handling = "video", "medium", True
    elif url.endswith(".pdf"):
        content_type, difficulty, requires_special_handling = "pdf", "hard", True
    elif "twitter.com" in domain or "linkedin.com" in domain:
        content_type, difficulty = "social", "hard"
    elif "arxiv.org" in domain or "doi.org" in domain:
        content_type, difficulty = "academic", "medium"
    elif "docs." in domain or "/docs/" in url:
        content_type, difficulty = "documentation", "easy"
    else:
        content_type, difficulty = "article", "easy"

    is_extractable = True
    if any(scheme in url for scheme in UNSUPPORTED_SCHEMES):
        is_extractable = False
        difficulty = "impossible"

    return URLAnalysis(
        type=content_type,
        domain=domain,
        is_extractable=is_extractable,
        requires_special_handling=requires_special_handling,
        estimated_difficulty=difficulty,
    )


def detect_content_type(url: str) -> ContentType:
    return analyze_url(url).type


def failed_result(url: str, error: str) -> ExtractedContent:
    domain = extract_domain(url)
    return ExtractedContent(
        title=domain,
        content=f"Content from {domain} - {error}",
        url=url,
        word_count=0,
        extraction_method="failed",
        success=False,
        site_name=domain,
        error=error,
    )


class ContentExtractor:
    """Cascading article extractor with a per-URL result cache.

    Args:
        client: Shared async HTTP client used for page fetches
        extract_cfg: Extraction defaults and cache policy
        fetch_cfg: Retry count, delay and User-Agent pool for page fetches
        logger: Optional logger for structured extraction events
        clock: Time source for the result cache, injectable for tests
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        extract_cfg: ExtractConfig | None = None,
        fetch_cfg: FetchConfig | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.extract_cfg = extract_cfg or ExtractConfig()
        self.fetch_cfg = fetch_cfg or FetchConfig()
        self.logger = logger
        self._cache: MemoryCache[str, ExtractedContent] = MemoryCache(
            default_ttl=self.extract_cfg.cache_ttl_hours * 3600,
            max_entries=self.extract_cfg.cache_max_entries,
            clock=clock,
        )

    def default_options(self) -> ExtractionOptions:
        cfg = self.extract_cfg
        return ExtractionOptions(
            timeout_seconds=cfg.timeout_seconds,
            max_content_length=cfg.max_content_length,
            min_content_length=cfg.min_content_length,
            include_images=cfg.include_images,
            user_agent=cfg.user_agent,
        )

    async def extract(self, url: str, options: ExtractionOptions | None = None) -> ExtractedContent:
        """Extract readable article text from url. Never raises for page failures."""
        cached = self._cache.get(url)
        if cached is not None:
            log_event(self.logger, "Extraction cache hit", event="extract_cache_hit", url=url)
            return cached

        analysis = analyze_url(url)
        if analysis.estimated_difficulty == "impossible":
            return failed_result(url, "URL type not supported for extraction")

        opts = options or self.default_options()
        return await self._cache.with_deduplication(url, lambda: self._run_cascade(url, opts))

    async def _run_cascade(self, url: str, options: ExtractionOptions) -> ExtractedContent:
        log_event(self.logger, "Extraction started", event="extract_start", url=url)
        page = _PageLoader(self, url, options)
        strategies: list[tuple[str, Callable[[], Awaitable[ExtractedContent]]]] = [
            ("metadata", lambda: self._extract_metadata(page)),
            ("basic", lambda: self._extract_basic(page)),
            ("fallback", lambda: self._extract_fallback(page)),
        ]

        last_error = "Unknown extraction error"
        for name, strategy in strategies:
            try:
                result = await strategy()
            except Exception as exc:  # noqa: BLE001
                last_error = str(exc)
                log_event(
                    self.logger,
                    "Extraction strategy failed",
                    level=logging.DEBUG,
                    event="extract_strategy_failed",
                    url=url,
                    strategy=name,
                    error=last_error,
                )
                continue
            if result.success:
                self._cache.set(url, result)
                log_event(
                    self.logger,
                    "Extraction succeeded",
                    event="extract_success",
                    url=url,
                    method=result.extraction_method,
                    word_count=result.word_count,
                )
                return result
            last_error = result.error or "Unknown extraction error"
            log_event(
                self.logger,
                "Extraction strategy rejected",
                level=logging.DEBUG,
                event="extract_strategy_failed",
                url=url,
                strategy=name,
                error=last_error,
            )

        result = failed_result(url, last_error)
        self._cache.set(url, result)
        log_event(
            self.logger,
            "Extraction failed",
            level=logging.WARNING,
            event="extract_failed",
            url=url,
            error=last_error,
        )
        return result

    async def _extract_metadata(self, page: _PageLoader) -> ExtractedContent:
        soup = BeautifulSoup(await page.html(), "html.parser")
        domain = extract_domain(page.url)

        title = _first_meta(soup, _TITLE_META) or _title_text(soup) or domain
        description = _first_meta(soup, _DESCRIPTION_META) or ""
        author = _first_meta(soup, _AUTHOR_META)
        site_name = _first_meta(soup, [("property", "og:site_name")]) or domain

        if len(description) < MIN_METADATA_LENGTH:
            return failed_result(page.url, "Insufficient metadata content")

        validation = validate_content(title, description, page.url)
        passed = validation.score > METADATA_SCORE_BAR
        return ExtractedContent(
            title=title,
            content=description,
            url=page.url,
            word_count=validation.word_count,
            extraction_method="metadata",
            success=passed,
            author=author,
            site_name=site_name,
            error=None if passed else "Low quality metadata content",
        )

    async def _extract_basic(self, page: _PageLoader) -> ExtractedContent:
        soup = BeautifulSoup(await page.html(), "html.parser")
        for tag in soup(_NOISE_TAGS):
            tag.decompose()

        options = page.options
        h1 = soup.find("h1")
        title = (_clean(h1.get_text()) if h1 else "") or _title_text(soup) or "Untitled"

        containers = [
            lambda: soup.find("article"),
            lambda: soup.find("div", class_=_CONTENT_CLASS),
            lambda: soup.find("main"),
            lambda: soup.find("div", class_=_STORY_CLASS),
        ]
        content = ""
        for find in containers:
            node = find()
            if node is None:
                continue
            content = _clean(node.get_text(" "))
            if len(content) > options.min_content_length:
                break

        if len(content) < options.min_content_length:
            paragraphs = [_clean(p.get_text(" ")) for p in soup.find_all("p")]
            content = " ".join(p for p in paragraphs if len(p) > MIN_PARAGRAPH_LENGTH)
            content = content[: options.max_content_length]

        if len(content) < options.min_content_length:
            return failed_result(page.url, "Insufficient content found")

        validation = validate_content(title, content, page.url)
        return ExtractedContent(
            title=title,
            content=content,
            url=page.url,
            word_count=validation.word_count,
            extraction_method="basic",
            success=validation.is_valid,
            site_name=extract_domain(page.url),
            error=None if validation.is_valid else ", ".join(validation.issues),
        )

    async def _extract_fallback(self, page: _PageLoader) -> ExtractedContent:
        domain = extract_domain(page.url)
        try:
            html = await page.html()
        except Exception:  # noqa: BLE001
            html = None

        if html is not None:
            soup = BeautifulSoup(html, "html.parser")
            title = _title_text(soup) or domain
            for p in soup.find_all("p"):
                text = _clean(p.get_text(" "))
                if len(text) > MIN_FALLBACK_PARAGRAPH_LENGTH:
                    return ExtractedContent(
                        title=title,
                        content=text,
                        url=page.url,
                        word_count=count_words(text),
                        extraction_method="fallback",
                        success=True,
                        site_name=domain,
                    )

        return ExtractedContent(
            title=domain,
            content=f"Content from {domain} - view original link",
            url=page.url,
            word_count=5,
            extraction_method="fallback",
            success=False,
            site_name=domain,
            error="All extraction methods failed",
        )

    async def fetch_html(self, url: str, options: ExtractionOptions) -> str:
        """Fetch raw HTML for url, raising FetchError when all attempts fail."""
        result = await fetch_url(
            self.client,
            url,
            timeout=options.timeout_seconds,
            retries=self.fetch_cfg.retries,
            user_agents=self.fetch_cfg.user_agents,
            retry_delay=self.fetch_cfg.retry_delay_seconds,
            user_agent=options.user_agent,
        )
        if result.text is None:
            raise FetchError(result.error or "Failed to fetch after retries")
        return result.text

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> dict[str, object]:
        return {"size": len(self._cache), "keys": self._cache.keys()[:10]}

    def with_options(self, **overrides: object) -> ExtractionOptions:
        return replace(self.default_options(), **overrides)


class _PageLoader:
    """Fetches a page at most once per successful download within one cascade."""

    def __init__(self, extractor: ContentExtractor, url: str, options: ExtractionOptions):
        self._extractor = extractor
        self.url = url
        self.options = options
        self._html: str | None = None

    async def html(self) -> str:
        if self._html is None:
            self._html = await self._extractor.fetch_html(self.url, self.options)
        return self._html


def _clean(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _title_text(soup: BeautifulSoup) -> str | None:
    if soup.title is None:
        return None
    return _clean(soup.title.get_text()) or None


def _first_meta(soup: BeautifulSoup, candidates: list[tuple[str, str]]) -> str | None:
    for attr, value in candidates:
        tag = soup.find("meta", attrs={attr: value})
        if tag is None:
            continue
        content = _clean(tag.get("content") or "")
        if content:
            return content
    return None
