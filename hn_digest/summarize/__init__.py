"""Article summarization and the persisted summary cache."""

from .cache import SummaryCache, SummaryCacheStats, generate_content_hash
from .service import SummaryError, Summarizer, calculate_cost, truncate_content

__all__ = [
    "SummaryCache",
    "SummaryCacheStats",
    "SummaryError",
    "Summarizer",
    "calculate_cost",
    "generate_content_hash",
    "truncate_content",
]
