"""
Core domain models and business logic.

This package contains data types and pure logic that is independent of
networking, storage, and any specific pipeline stage.
"""

from .types import (
    ExtractedContent,
    ExtractionOptions,
    QueueItem,
    QueueProgress,
    QueueState,
    Story,
    StoryCard,
    SummaryMetadata,
    SummaryRecord,
    SummaryRequest,
    SummaryResponse,
    URLAnalysis,
    ValidationResult,
)
from .validator import count_words, validate_content

__all__ = [
    "ExtractedContent",
    "ExtractionOptions",
    "QueueItem",
    "QueueProgress",
    "QueueState",
    "Story",
    "StoryCard",
    "SummaryMetadata",
    "SummaryRecord",
    "SummaryRequest",
    "SummaryResponse",
    "URLAnalysis",
    "ValidationResult",
    "count_words",
    "validate_content",
]
