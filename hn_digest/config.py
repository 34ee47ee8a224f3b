"""
Configuration management using YAML files and dataclasses.

This module defines all configuration dataclasses and provides loading
from YAML files with defaults. Configuration sections:
- FeedConfig: Hacker News API client settings
- FetchConfig: Raw HTML fetching settings
- ExtractConfig: Content extraction settings
- SummaryConfig: LLM summarization settings
- CacheConfig: Summary cache capacity and expiry
- QueueConfig: Summary queue concurrency and retry settings
- StorageConfig: Durable key-value storage backend
- ProviderConfig: LLM provider settings
- LoggingConfig: Logging behavior
- AppConfig: Root configuration container
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
import os
from typing import Any

import yaml


@dataclass
class FeedConfig:
    """Configuration for the Hacker News story feed client.

    Attributes:
        base_url: Base URL of the Hacker News Firebase API
        timeout_seconds: Per-request timeout
        max_retries: Retry attempts after the initial request
        retry_delay_seconds: Base delay for exponential backoff
        max_retry_delay_seconds: Upper bound for a single backoff delay
        rate_limit_per_minute: Maximum requests in any one-minute window
        story_list_ttl_seconds: Cache lifetime for story ID lists
        story_details_ttl_seconds: Cache lifetime for individual items
        user_details_ttl_seconds: Cache lifetime for user profiles
        default_story_limit: Number of stories fetched when no limit is given
        max_story_limit: Hard cap on stories fetched in one call
    """

    base_url: str = "https://hacker-news.firebaseio.com/v0"
    timeout_seconds: float = 5.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    max_retry_delay_seconds: float = 5.0
    rate_limit_per_minute: int = 100
    story_list_ttl_seconds: float = 300.0
    story_details_ttl_seconds: float = 600.0
    user_details_ttl_seconds: float = 1800.0
    default_story_limit: int = 30
    max_story_limit: int = 100


@dataclass
class FetchConfig:
    """Configuration for raw HTML fetching used by the extractor.

    Attributes:
        retries: Number of attempts per strategy fetch
        retry_delay_seconds: Delay multiplier between attempts (attempt index x delay)
        trust_env: Whether to respect system proxy settings
        user_agents: Pool of User-Agent strings, one is picked at random per attempt
    """

    retries: int = 2
    retry_delay_seconds: float = 1.0
    trust_env: bool = True
    user_agents: list[str] = field(
        default_factory=lambda: [
            "Mozilla/5.0 (iPhone; CPU iPhone OS 14_7_1 like Mac OS X) AppleWebKit/605.1.15",
            "Mozilla/5.0 (iPad; CPU OS 14_7_1 like Mac OS X) AppleWebKit/605.1.15",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
        ]
    )


@dataclass
class ExtractConfig:
    """Configuration for article content extraction.

    Attributes:
        timeout_seconds: Hard deadline for a single fetch attempt
        max_content_length: Maximum characters kept from paragraph extraction
        min_content_length: Minimum characters for a content container to qualify
        include_images: Whether image references are kept (unused downstream)
        user_agent: Fixed User-Agent; when None the fetch pool is rotated
        cache_ttl_hours: Lifetime of cached extraction results
        cache_max_entries: Capacity of the extraction cache
        concurrency: Maximum concurrent extractions in the pipeline
    """

    timeout_seconds: float = 10.0
    max_content_length: int = 50000
    min_content_length: int = 100
    include_images: bool = False
    user_agent: str | None = None
    cache_ttl_hours: float = 24.0
    cache_max_entries: int = 500
    concurrency: int = 5


@dataclass
class SummaryConfig:
    """Configuration for LLM summarization.

    Attributes:
        max_tokens: Completion token budget per summary
        temperature: Sampling temperature
        timeout_seconds: Deadline for one provider call
        retry_attempts: Attempts per summarization before giving up
        retry_base_delay_seconds: Base delay for exponential backoff
        max_retry_delay_seconds: Upper bound for a single backoff delay
        max_input_chars: Article characters sent to the provider
        cost_limit_per_summary: Maximum estimated USD cost of one summary
        enable_quality_validation: Whether summaries are checked before acceptance
        min_summary_words: Lower bound of an acceptable summary
        max_summary_words: Upper bound of an acceptable summary
    """

    max_tokens: int = 150
    temperature: float = 0.3
    timeout_seconds: float = 30.0
    retry_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    max_retry_delay_seconds: float = 10.0
    max_input_chars: int = 4000
    cost_limit_per_summary: float = 0.01
    enable_quality_validation: bool = False
    min_summary_words: int = 10
    max_summary_words: int = 100


@dataclass
class CacheConfig:
    """Configuration for the persisted summary cache.

    Attributes:
        max_cache_size: Maximum number of cached summaries
        expiry_days: Age after which a cached summary is discarded
    """

    max_cache_size: int = 500
    expiry_days: float = 7


@dataclass
class QueueConfig:
    """Configuration for the summary queue.

    Attributes:
        max_concurrent: Items processed at once (clamped to 1-10)
        max_retries: Attempts per item before it is marked failed
        batch_delay_seconds: Pause between processing batches
        auto_start: Start the driver automatically on submission
        recover_interrupted: Return items left in "processing" to "pending" on load
    """

    max_concurrent: int = 3
    max_retries: int = 3
    batch_delay_seconds: float = 0.1
    auto_start: bool = True
    recover_interrupted: bool = True


@dataclass
class StorageConfig:
    """Configuration for durable key-value storage.

    Attributes:
        backend: "file" for JSON files on disk, "memory" for a process-local store
        directory: Directory used by the file backend
    """

    backend: str = "file"
    directory: str = ".hn_digest"


@dataclass
class ProviderConfig:
    """Configuration for the LLM provider.

    Attributes:
        name: Provider name ("openai", "openai_compatible" or "gemini")
        model: Model identifier
        api_key_env: Environment variable name containing the API key
        base_url: Base URL for the provider API
        api_key: Optional inline API key (overrides env var)
        trust_env: Whether to respect system proxy settings for API requests
    """

    name: str = "openai"
    model: str = "gpt-4o-mini"
    api_key_env: str = "OPENAI_API_KEY"
    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    trust_env: bool = True


@dataclass
class LoggingConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
        console: Whether to log to console
        file: Whether to log to file
        format: Log file format ("jsonl" or "plain")
        filename: Name of the main log file
    """

    level: str = "INFO"
    console: bool = True
    file: bool = False
    format: str = "jsonl"
    filename: str = "run.jsonl"


@dataclass
class AppConfig:
    """Root configuration container aggregating all config sections."""

    feed: FeedConfig = field(default_factory=FeedConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    extract: ExtractConfig = field(default_factory=ExtractConfig)
    summary: SummaryConfig = field(default_factory=SummaryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | None) -> AppConfig:
    """Load configuration from a YAML file with defaults."""
    if not path:
        return AppConfig()

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    return _merge_config(AppConfig(), raw)


def _merge_config(base: AppConfig, raw: dict[str, Any]) -> AppConfig:
    """Merge raw YAML config into base AppConfig.

    Unknown sections and unknown keys inside a section are ignored.
    """
    data = asdict(base)
    for key, value in raw.items():
        if key not in data:
            continue
        if isinstance(value, dict) and isinstance(data[key], dict):
            known = {k: v for k, v in value.items() if k in data[key]}
            data[key].update(known)
    return _fromdict(data)


def _fromdict(data: dict[str, Any]) -> AppConfig:
    """Reconstruct AppConfig from nested dictionary."""
    sections = {}
    for section in fields(AppConfig):
        section_cls = section.default_factory  # type: ignore[misc]
        sections[section.name] = section_cls(**data[section.name])
    return AppConfig(**sections)


def get_api_key(cfg: ProviderConfig) -> str | None:
    """Get API key from inline config or environment variable."""
    if cfg.api_key:
        return cfg.api_key
    return os.getenv(cfg.api_key_env)
