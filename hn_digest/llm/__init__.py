"""LLM prompts and providers."""

from .prompts import build_summary_prompt, select_prompt, system_prompt
from .providers import (
    Completion,
    GeminiProvider,
    OpenAICompatibleProvider,
    SummaryProvider,
    available_providers,
    create_provider,
)

__all__ = [
    "Completion",
    "SummaryProvider",
    "GeminiProvider",
    "OpenAICompatibleProvider",
    "create_provider",
    "available_providers",
    "build_summary_prompt",
    "select_prompt",
    "system_prompt",
]
