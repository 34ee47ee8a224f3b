"""Google Gemini provider for article summaries."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ...config import ProviderConfig, SummaryConfig
from ...logging_utils import log_event, redact_urls, truncate_text
from .base import Completion, SummaryProvider


class GeminiProvider(SummaryProvider):
    """Gemini-backed provider using the generateContent endpoint."""

    name = "gemini"

    def __init__(
        self,
        cfg: ProviderConfig,
        summary_cfg: SummaryConfig,
        api_key: str | None,
        llm_logger: logging.Logger | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise ValueError("Missing Google API key")
        self.cfg = cfg
        self.summary_cfg = summary_cfg
        self.api_key = api_key
        self.llm_logger = llm_logger
        self._transport = transport

    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
        model: str | None = None,
    ) -> Completion:
        model = model or self.cfg.model
        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        data = await self._post(model, payload)
        text = _extract_text(data)
        usage = data.get("usageMetadata") or {}
        log_event(
            self.llm_logger,
            "LLM response",
            level=logging.DEBUG,
            event="llm_response",
            provider=self.name,
            model=model,
            raw_response=truncate_text(redact_urls(text)),
        )
        return Completion(text=text.strip(), tokens_used=int(usage.get("totalTokenCount") or 0), model=model)

    async def _post(self, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.cfg.base_url.rstrip('/')}/v1beta/models/{model}:generateContent"
        params = {"key": self.api_key}
        async with httpx.AsyncClient(
            timeout=self.summary_cfg.timeout_seconds,
            trust_env=self.cfg.trust_env,
            transport=self._transport,
        ) as client:
            resp = await client.post(url, params=params, json=payload)
            resp.raise_for_status()
            return resp.json()


def _extract_text(data: dict[str, Any]) -> str:
    try:
        return data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return ""
