from __future__ import annotations

from typing import Optional

from design_intel.config import Settings, get_settings
from design_intel.services.llm.types import LLMProviderError

try:
    from anthropic import Anthropic
except Exception:  # pragma: no cover - import guard
    Anthropic = None


class AnthropicProvider:
    name = "anthropic"

    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        if not settings.anthropic_api_key:
            raise LLMProviderError("ANTHROPIC_API_KEY not configured", retryable=False)
        if Anthropic is None:
            raise LLMProviderError("anthropic SDK unavailable", retryable=False)
        self._client = Anthropic(api_key=settings.anthropic_api_key)

    def generate(self, *, model: str, prompt: str, timeout_seconds: float, max_tokens: int = 4000) -> str:
        try:
            response = self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout_seconds,
            )
            text_parts = []
            for block in getattr(response, "content", []) or []:
                value = getattr(block, "text", None)
                if value:
                    text_parts.append(str(value))
            return "\n".join(text_parts).strip()
        except Exception as exc:
            raise LLMProviderError(str(exc), retryable=True) from exc
