"""Page fetching and article extraction."""

from .extractor import ContentExtractor, FetchError, analyze_url, detect_content_type, extract_domain
from .fetcher import FetchResult, fetch_url

__all__ = [
    "ContentExtractor",
    "FetchError",
    "FetchResult",
    "analyze_url",
    "detect_content_type",
    "extract_domain",
    "fetch_url",
]
