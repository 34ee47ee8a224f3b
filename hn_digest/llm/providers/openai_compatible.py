"""OpenAI-compatible chat completions provider."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ...config import ProviderConfig, SummaryConfig
from ...logging_utils import log_event, redact_urls, truncate_text
from .base import Completion, SummaryProvider


class OpenAICompatibleProvider(SummaryProvider):
    """Provider for OpenAI and any server exposing /chat/completions."""

    name = "openai"

    def __init__(
        self,
        cfg: ProviderConfig,
        summary_cfg: SummaryConfig,
        api_key: str | None,
        llm_logger: logging.Logger | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise ValueError(f"Missing API key (set {cfg.api_key_env})")
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
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "top_p": 1,
            "frequency_penalty": 0,
            "presence_penalty": 0,
        }
        data = await self._post(payload)
        text = _extract_text(data)
        usage = data.get("usage") or {}
        log_event(
            self.llm_logger,
            "LLM response",
            level=logging.DEBUG,
            event="llm_response",
            provider=self.name,
            model=model,
            raw_response=truncate_text(redact_urls(text)),
        )
        return Completion(text=text.strip(), tokens_used=int(usage.get("total_tokens") or 0), model=model)

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.cfg.base_url.rstrip('/')}/chat/completions"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        async with httpx.AsyncClient(
            timeout=self.summary_cfg.timeout_seconds,
            trust_env=self.cfg.trust_env,
            transport=self._transport,
        ) as client:
            resp = await client.post(url, headers=headers, json=payload)
            resp.raise_for_status()
            return resp.json()


def _extract_text(data: dict[str, Any]) -> str:
    try:
        return data["choices"][0]["message"]["content"] or ""
    except (KeyError, IndexError, TypeError):
        return ""
