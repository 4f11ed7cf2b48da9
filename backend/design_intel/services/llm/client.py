"""Provider invocation boundary.

``ProviderClient`` is what the executor depends on; ``SDKProviderClient``
is the production implementation dispatching to the vendor SDKs.
"""
from __future__ import annotations

import json
import re
from typing import Dict, Optional, Protocol

from design_intel.config import Settings, get_settings
from design_intel.services.llm.providers.anthropic_provider import AnthropicProvider
from design_intel.services.llm.providers.gemini_provider import GeminiProvider
from design_intel.services.llm.providers.openai_provider import OpenAIProvider, together_provider
from design_intel.services.llm.types import LLMProvider, LLMProviderError, ProviderResponse

SUGGESTIONS_KEY = "follow_up_suggestions"

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class ProviderClient(Protocol):
    def invoke(self, provider: LLMProvider, prompt: str, *, timeout_seconds: float) -> ProviderResponse:
        ...


def parse_provider_text(text: str) -> ProviderResponse:
    cleaned = _FENCE_RE.sub("", str(text or "").strip()).strip()
    if not cleaned:
        raise LLMProviderError("Provider returned an empty response", retryable=True)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise LLMProviderError(f"Provider returned invalid JSON: {exc}", retryable=False) from exc
    if not isinstance(payload, dict):
        raise LLMProviderError("Provider returned a non-object JSON payload", retryable=False)

    raw_suggestions = payload.pop(SUGGESTIONS_KEY, None) or []
    if not isinstance(raw_suggestions, list):
        raw_suggestions = [raw_suggestions]
    suggestions = [str(item) for item in raw_suggestions if str(item).strip()]
    return ProviderResponse(payload=payload, suggestions=suggestions)


class SDKProviderClient:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._backends: Dict[str, object] = {}

    def _backend(self, name: str):
        key = str(name or "").strip().lower()
        if key in self._backends:
            return self._backends[key]
        if key == "gemini":
            instance = GeminiProvider(self._settings)
        elif key == "openai":
            instance = OpenAIProvider(self._settings)
        elif key == "anthropic":
            instance = AnthropicProvider(self._settings)
        elif key == "together":
            instance = together_provider(self._settings)
        else:
            raise LLMProviderError(f"Unsupported LLM backend: {name}", retryable=False)
        self._backends[key] = instance
        return instance

    def invoke(self, provider: LLMProvider, prompt: str, *, timeout_seconds: float) -> ProviderResponse:
        backend = self._backend(provider.backend)
        text = backend.generate(
            model=provider.model,
            prompt=prompt,
            timeout_seconds=max(1.0, float(timeout_seconds)),
            max_tokens=min(4000, provider.max_tokens),
        )
        return parse_provider_text(text)
