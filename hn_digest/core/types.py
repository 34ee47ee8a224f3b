"""
Core data types for the HN Digest pipeline.

This module defines the data structures passed between pipeline stages:
- Story: Story metadata from the Hacker News feed
- URLAnalysis: Classification of a candidate article URL
- ExtractedContent: Result of one extraction attempt
- ValidationResult: Content Validator verdict
- SummaryRequest / SummaryResponse: Summarization input and output
- SummaryRecord: Persisted summary cache record
- QueueItem / QueueState / QueueProgress: Summary queue bookkeeping
- StoryCard: Final per-story result handed to the UI layer

Timestamps inside persisted types are timezone-aware UTC datetimes and are
serialized as ISO 8601 strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

Priority = Literal["high", "normal", "low"]
QueueStatus = Literal["pending", "processing", "completed", "failed"]
ExtractionMethod = Literal["metadata", "basic", "fallback", "failed"]
ContentType = Literal[
    "article", "github", "pdf", "video", "social", "academic", "documentation", "unknown"
]
Difficulty = Literal["easy", "medium", "hard", "impossible"]

PRIORITY_ORDER: dict[str, int] = {"high": 0, "normal": 1, "low": 2}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Story:
    """Story metadata from the Hacker News API.

    Attributes:
        id: Hacker News item id
        title: Story headline
        url: External article URL; None for text posts (Ask HN etc.)
        by: Submitter username
        time: Unix timestamp of submission
        score: Story points
        descendants: Comment count
        type: Item type reported by the API
        text: Self-post HTML body, if any
        domain: Hostname of url without a leading "www."
        comments_url: Link to the discussion page
        time_ago: Human-readable age ("5m ago", "3h ago", ...)
    """
    id: int
    title: str
    url: str | None = None
    by: str = ""
    time: int = 0
    score: int = 0
    descendants: int = 0
    type: str = "story"
    text: str | None = None
    domain: str | None = None
    comments_url: str = ""
    time_ago: str = ""


@dataclass
class URLAnalysis:
    type: ContentType
    domain: str
    is_extractable: bool
    requires_special_handling: bool
    estimated_difficulty: Difficulty


@dataclass
class ExtractionOptions:
    """Per-call extraction options.

    Attributes:
        timeout_seconds: Hard deadline for one fetch attempt
        max_content_length: Maximum characters kept from paragraph extraction
        min_content_length: Minimum characters for a content container to qualify
        include_images: Kept for API compatibility, unused downstream
        user_agent: Fixed User-Agent; None rotates through the fetch pool
    """
    timeout_seconds: float = 10.0
    max_content_length: int = 50000
    min_content_length: int = 100
    include_images: bool = False
    user_agent: str | None = None


@dataclass(frozen=True)
class ExtractedContent:
    """Result of one extraction call. Immutable once returned.

    Attributes:
        title: Article title (falls back to the domain)
        content: Extracted readable text, or a stub message on failure
        url: The URL that was extracted
        word_count: Words in content
        extraction_method: Strategy that produced the result
        success: True when content passed the strategy's quality bar
        author: Author from page metadata, if any
        site_name: Publication name or domain
        error: Failure reason when success is False
    """
    title: str
    content: str
    url: str
    word_count: int
    extraction_method: ExtractionMethod
    success: bool
    author: str | None = None
    site_name: str | None = None
    error: str | None = None


@dataclass
class ValidationResult:
    is_valid: bool
    score: float
    issues: list[str]
    word_count: int
    readability_score: float


@dataclass
class SummaryMetadata:
    quality_score: float
    extracted_date: str | None = None
    readability_score: float | None = None
    categories: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "qualityScore": self.quality_score,
            "extractedDate": self.extracted_date,
            "readabilityScore": self.readability_score,
            "categories": list(self.categories),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SummaryMetadata:
        data = data or {}
        return cls(
            quality_score=float(data.get("qualityScore", 0.0)),
            extracted_date=data.get("extractedDate"),
            readability_score=data.get("readabilityScore"),
            categories=list(data.get("categories") or []),
        )


@dataclass
class SummaryRequest:
    content: str
    title: str
    url: str = ""
    priority: Priority = "normal"
    max_tokens: int | None = None
    model: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "title": self.title,
            "url": self.url,
            "priority": self.priority,
            "maxTokens": self.max_tokens,
            "model": self.model,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SummaryRequest:
        return cls(
            content=data.get("content", ""),
            title=data.get("title", ""),
            url=data.get("url", ""),
            priority=data.get("priority", "normal"),
            max_tokens=data.get("maxTokens"),
            model=data.get("model"),
        )


@dataclass
class SummaryResponse:
    """Summarization output, either freshly generated or served from cache.

    Attributes:
        summary: The summary text
        word_count: Words in summary
        confidence: Quality score in [0, 1]
        tokens_used: Provider tokens consumed (0 when cached)
        processing_time: Milliseconds spent producing the response
        cached: True when served from the summary cache
        model: Model that produced the summary, "cached" for cache hits
        metadata: Quality metadata stored alongside the summary
        cost: Estimated USD cost, None for cache hits
    """
    summary: str
    word_count: int
    confidence: float
    tokens_used: int
    processing_time: int
    cached: bool
    model: str
    metadata: SummaryMetadata
    cost: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "wordCount": self.word_count,
            "confidence": self.confidence,
            "tokensUsed": self.tokens_used,
            "processingTime": self.processing_time,
            "cached": self.cached,
            "model": self.model,
            "cost": self.cost,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SummaryResponse:
        return cls(
            summary=data.get("summary", ""),
            word_count=int(data.get("wordCount", 0)),
            confidence=float(data.get("confidence", 0.0)),
            tokens_used=int(data.get("tokensUsed", 0)),
            processing_time=int(data.get("processingTime", 0)),
            cached=bool(data.get("cached", False)),
            model=data.get("model", ""),
            cost=data.get("cost"),
            metadata=SummaryMetadata.from_dict(data.get("metadata")),
        )


@dataclass
class SummaryRecord:
    """Persisted summary cache record, keyed by content hash."""
    content_hash: str
    summary: str
    created_at: datetime
    last_accessed: datetime
    access_count: int
    metadata: SummaryMetadata
    schema_version: str = "1.0"

    def to_dict(self) -> dict[str, Any]:
        return {
            "contentHash": self.content_hash,
            "summary": self.summary,
            "createdAt": _iso(self.created_at),
            "lastAccessed": _iso(self.last_accessed),
            "accessCount": self.access_count,
            "metadata": self.metadata.to_dict(),
            "version": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SummaryRecord:
        return cls(
            content_hash=data["contentHash"],
            summary=data["summary"],
            created_at=_parse_dt(data["createdAt"]),
            last_accessed=_parse_dt(data.get("lastAccessed") or data["createdAt"]),
            access_count=int(data.get("accessCount", 0)),
            metadata=SummaryMetadata.from_dict(data.get("metadata")),
            schema_version=data.get("version", "1.0"),
        )


@dataclass
class QueueItem:
    """A unit of summarization work tracked by the summary queue."""
    id: str
    request: SummaryRequest
    status: QueueStatus = "pending"
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    response: SummaryResponse | None = None
    error: str | None = None
    retry_count: int = 0
    max_retries: int = 3

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "request": self.request.to_dict(),
            "status": self.status,
            "createdAt": _iso(self.created_at),
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "response": self.response.to_dict() if self.response else None,
            "error": self.error,
            "retryCount": self.retry_count,
            "maxRetries": self.max_retries,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueueItem:
        response = data.get("response")
        return cls(
            id=data["id"],
            request=SummaryRequest.from_dict(data["request"]),
            status=data.get("status", "pending"),
            created_at=_parse_dt(data.get("createdAt")) or utcnow(),
            started_at=_parse_dt(data.get("startedAt")),
            completed_at=_parse_dt(data.get("completedAt")),
            response=SummaryResponse.from_dict(response) if response else None,
            error=data.get("error"),
            retry_count=int(data.get("retryCount", 0)),
            max_retries=int(data.get("maxRetries", 3)),
        )


@dataclass
class QueueState:
    is_processing: bool = False
    current_processing: list[str] = field(default_factory=list)
    total_processed: int = 0
    total_failed: int = 0
    last_processed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "isProcessing": self.is_processing,
            "currentProcessing": list(self.current_processing),
            "totalProcessed": self.total_processed,
            "totalFailed": self.total_failed,
            "lastProcessedAt": _iso(self.last_processed_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueueState:
        return cls(
            is_processing=bool(data.get("isProcessing", False)),
            current_processing=list(data.get("currentProcessing") or []),
            total_processed=int(data.get("totalProcessed", 0)),
            total_failed=int(data.get("totalFailed", 0)),
            last_processed_at=_parse_dt(data.get("lastProcessedAt")),
        )


@dataclass
class QueueProgress:
    total: int
    completed: int
    failed: int
    pending: int
    currently_processing: int
    estimated_time_remaining: int | None = None


@dataclass
class StoryCard:
    """Per-story pipeline outcome consumed by the presentation layer.

    Attributes:
        story: Story metadata
        status: "summarized", "extraction_failed", "summary_failed" or "no_url"
        extraction: Extraction result, None for stories without a URL
        queue_item_id: Id of the summary queue item, if one was submitted
        summary: Summary response when summarization completed
        error: Failure reason for failed cards
    """
    story: Story
    status: str
    extraction: ExtractedContent | None = None
    queue_item_id: str | None = None
    summary: SummaryResponse | None = None
    error: str | None = None
