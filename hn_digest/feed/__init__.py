"""Hacker News story feed."""

from .client import FeedError, HackerNewsClient, RateLimiter, time_ago, to_story

__all__ = ["FeedError", "HackerNewsClient", "RateLimiter", "time_ago", "to_story"]
