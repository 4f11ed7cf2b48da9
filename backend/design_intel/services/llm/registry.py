from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from design_intel.config import Settings, get_settings
from design_intel.errors import InvalidInputError, NotFoundError
from design_intel.services.llm.types import (
    LLMCapability,
    LLMProvider,
    NoEligibleProviderError,
    Priority,
    TaskContext,
    TaskType,
)

logger = logging.getLogger(__name__)

REQUIRED_CAPABILITIES: Dict[TaskType, List[LLMCapability]] = {
    TaskType.component_selection: [LLMCapability.design_analysis, LLMCapability.pattern_recognition],
    TaskType.design_generation: [LLMCapability.code_generation, LLMCapability.creative_ideation],
    TaskType.trend_analysis: [LLMCapability.pattern_recognition, LLMCapability.strategic_reasoning],
    TaskType.optimization: [LLMCapability.technical_precision, LLMCapability.code_generation],
    TaskType.quality_assessment: [LLMCapability.design_analysis, LLMCapability.strategic_reasoning],
}

BUDGET_COST_PENALTY = 20.0
BUDGET_LATENCY_PENALTY = 15.0
CAPABILITY_MATCH_WEIGHT = 10.0


def required_capabilities(task_type: TaskType) -> List[LLMCapability]:
    return list(REQUIRED_CAPABILITIES[TaskType(task_type)])


class ProviderRegistry:
    """Named providers in registration order.

    Re-registering a name replaces the descriptor but keeps its original
    position, so selection tie-breaks stay stable.
    """

    def __init__(self, providers: Optional[Iterable[LLMProvider]] = None) -> None:
        self._providers: Dict[str, LLMProvider] = {}
        for provider in providers or []:
            self.register(provider)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ProviderRegistry":
        settings = settings or get_settings()
        return cls.from_catalog(settings.provider_catalog())

    @classmethod
    def from_catalog(cls, entries: List[Dict[str, Any]]) -> "ProviderRegistry":
        registry = cls()
        for entry in entries:
            registry.register(LLMProvider.model_validate(entry))
        return registry

    def register(self, provider: LLMProvider) -> None:
        if not isinstance(provider, LLMProvider):
            raise InvalidInputError(f"Expected LLMProvider, got {type(provider).__name__}")
        self._providers[provider.name] = provider

    def get(self, name: str) -> LLMProvider:
        provider = self._providers.get(name)
        if provider is None:
            raise NotFoundError("provider", name)
        return provider

    def providers(self) -> List[LLMProvider]:
        return list(self._providers.values())

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)


class ProviderSelector:
    def __init__(self, registry: ProviderRegistry, settings: Optional[Settings] = None) -> None:
        self._registry = registry
        self._settings = settings or get_settings()

    def eligible(self, task_type: TaskType, exclude: Iterable[str] = ()) -> List[LLMProvider]:
        required = required_capabilities(task_type)
        excluded = set(exclude)
        return [
            provider
            for provider in self._registry.providers()
            if provider.name not in excluded and all(provider.has_capability(cap) for cap in required)
        ]

    def score_provider(self, provider: LLMProvider, context: TaskContext) -> float:
        required = required_capabilities(context.task_type)
        score = 4 * provider.quality_score

        if context.priority == Priority.critical:
            score += 2 * provider.quality_score
            score -= 2 * provider.response_time_seconds
        elif context.priority == Priority.low:
            score += (1 / provider.cost_per_token) * 0.001
            score -= 0.5 * provider.quality_score

        budget = context.budget_constraints
        if budget is not None:
            estimated_cost = provider.cost_per_token * self._settings.task_nominal_tokens
            if budget.max_cost_per_task is not None and estimated_cost > budget.max_cost_per_task:
                score -= BUDGET_COST_PENALTY
            if (
                budget.max_response_time_seconds is not None
                and provider.response_time_seconds > budget.max_response_time_seconds
            ):
                score -= BUDGET_LATENCY_PENALTY

        if required:
            matched = sum(1 for cap in required if provider.has_capability(cap))
            score += (matched / len(required)) * CAPABILITY_MATCH_WEIGHT
        return score

    def select(self, context: TaskContext, exclude: Iterable[str] = ()) -> LLMProvider:
        candidates = self.eligible(context.task_type, exclude)
        if not candidates:
            raise NoEligibleProviderError(context.task_type, required_capabilities(context.task_type))

        best = candidates[0]
        best_score = self.score_provider(best, context)
        for provider in candidates[1:]:
            score = self.score_provider(provider, context)
            # strictly greater: earlier registration wins ties
            if score > best_score:
                best, best_score = provider, score

        logger.info(
            "Selected provider %s for %s (priority=%s, score=%.3f, candidates=%d)",
            best.name,
            context.task_type.value,
            context.priority.value,
            best_score,
            len(candidates),
        )
        return best
