"""
HN Digest - Hacker News reader with AI-generated article summaries.

This package reads story lists from the Hacker News API, extracts article
content through a metadata/basic/fallback cascade, and summarizes the
articles through a persisted priority queue backed by a summary cache.

Main entry point is the CLI via `hn-digest run` command.

Example:
    $ hn-digest run --kind top --limit 20
"""

__all__ = ["__version__", "AppConfig", "load_config", "DigestPipeline", "build_pipeline", "run_pipeline"]
__version__ = "0.1.0"

from .config import AppConfig, load_config
from .runner import DigestPipeline, build_pipeline, run_pipeline
