from __future__ import annotations

from typing import Optional

from design_intel.config import Settings, get_settings
from design_intel.services.llm.types import LLMProviderError

try:
    from openai import OpenAI
except Exception:  # pragma: no cover - import guard
    OpenAI = None


class OpenAIProvider:
    """Chat-completions backend. Also serves OpenAI-compatible hosts (Together)."""

    name = "openai"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        key_name: str = "OPENAI_API_KEY",
    ) -> None:
        settings = settings or get_settings()
        key = api_key if api_key is not None else settings.openai_api_key
        if not key:
            raise LLMProviderError(f"{key_name} not configured", retryable=False)
        if OpenAI is None:
            raise LLMProviderError("openai SDK unavailable", retryable=False)
        if base_url:
            self._client = OpenAI(api_key=key, base_url=base_url)
        else:
            self._client = OpenAI(api_key=key)

    def generate(self, *, model: str, prompt: str, timeout_seconds: float, max_tokens: int = 4000) -> str:
        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                timeout=timeout_seconds,
            )
            content = response.choices[0].message.content if response.choices else ""
            return str(content or "").strip()
        except Exception as exc:
            raise LLMProviderError(str(exc), retryable=True) from exc


def together_provider(settings: Optional[Settings] = None) -> OpenAIProvider:
    settings = settings or get_settings()
    return OpenAIProvider(
        settings,
        api_key=settings.together_api_key,
        base_url=settings.together_base_url,
        key_name="TOGETHER_API_KEY",
    )
