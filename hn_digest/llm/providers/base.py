"""Abstract interface for LLM summarization backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class Completion:
    """Text returned by a provider plus its token usage.

    Attributes:
        text: Generated text, stripped
        tokens_used: Total prompt + completion tokens reported by the provider
        model: Model that produced the text
    """
    text: str
    tokens_used: int
    model: str


class SummaryProvider(ABC):
    """Provider interface for single-turn summary completions.

    Implementations raise httpx errors for transport and HTTP status
    failures; the summarization service classifies them.
    """

    name: str = "base"

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
        model: str | None = None,
    ) -> Completion:
        """Return the completion for one system + user prompt pair."""
        raise NotImplementedError
