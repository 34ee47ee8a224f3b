"""Summary provider registry.

Providers are looked up by ``provider.name`` from the config. Names are
case-insensitive and ``_`` / ``-`` are interchangeable, so ``openai_compatible``
and ``OpenAI-Compatible`` resolve to the same backend.
"""

from __future__ import annotations

import logging

from ...config import ProviderConfig, SummaryConfig, get_api_key
from .base import SummaryProvider
from .gemini import GeminiProvider
from .openai_compatible import OpenAICompatibleProvider


ProviderBuilder = type[SummaryProvider]

_PROVIDER_REGISTRY: dict[str, ProviderBuilder] = {
    "gemini": GeminiProvider,
    "openai": OpenAICompatibleProvider,
    "openai-compatible": OpenAICompatibleProvider,
}


def _normalize(name: str) -> str:
    return name.strip().lower().replace("_", "-")


def register_provider(name: str, builder: ProviderBuilder) -> None:
    """Add or replace a backend under ``name``."""
    _PROVIDER_REGISTRY[_normalize(name)] = builder


def available_providers() -> list[str]:
    return sorted(_PROVIDER_REGISTRY)


def create_provider(
    provider_cfg: ProviderConfig,
    summary_cfg: SummaryConfig,
    llm_logger: logging.Logger | None = None,
) -> SummaryProvider:
    """Instantiate the configured provider.

    Raises:
        ValueError: Unknown provider name, or no API key in config or environment
    """
    builder = _PROVIDER_REGISTRY.get(_normalize(provider_cfg.name))
    if builder is None:
        raise ValueError(
            f"Unsupported provider: {provider_cfg.name}. "
            f"Supported: {', '.join(available_providers())}"
        )
    return builder(provider_cfg, summary_cfg, get_api_key(provider_cfg), llm_logger)
