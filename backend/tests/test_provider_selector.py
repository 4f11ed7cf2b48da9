import pytest
from pydantic import ValidationError

from design_intel.config import DEFAULT_PROVIDERS
from design_intel.errors import NotFoundError
from design_intel.services.llm.registry import (
    ProviderRegistry,
    ProviderSelector,
    required_capabilities,
)
from design_intel.services.llm.types import (
    LLMCapability,
    LLMProvider,
    NoEligibleProviderError,
    TaskContext,
    TaskType,
)


def _provider(name, **overrides):
    data = {
        "name": name,
        "backend": "openai",
        "model": f"{name}-model",
        "capabilities": ["design_analysis", "pattern_recognition"],
        "cost_per_token": 0.00001,
        "max_tokens": 8000,
        "response_time_seconds": 2.0,
        "quality_score": 8,
    }
    data.update(overrides)
    return LLMProvider.model_validate(data)


@pytest.fixture
def selector(settings):
    return ProviderSelector(ProviderRegistry.from_catalog(DEFAULT_PROVIDERS), settings)


def test_required_capabilities_table():
    assert required_capabilities(TaskType.trend_analysis) == [
        LLMCapability.pattern_recognition,
        LLMCapability.strategic_reasoning,
    ]
    assert required_capabilities("optimization") == [
        LLMCapability.technical_precision,
        LLMCapability.code_generation,
    ]


def test_providers_missing_a_capability_are_ineligible(selector):
    eligible = selector.eligible(TaskType.component_selection)
    assert [p.name for p in eligible] == ["claude-sonnet", "gpt-4o"]


def test_medium_priority_prefers_quality(selector):
    context = TaskContext(task_type=TaskType.optimization)
    assert selector.score_provider(selector.eligible(TaskType.optimization)[0], context) == pytest.approx(50.0)
    assert selector.select(context).name == "claude-sonnet"


def test_budget_penalties_shift_selection(selector):
    cost_capped = TaskContext(
        task_type=TaskType.optimization,
        budget_constraints={"max_cost_per_task": 0.01},
    )
    assert selector.select(cost_capped).name == "gpt-4o"

    cost_and_latency_capped = TaskContext(
        task_type=TaskType.optimization,
        budget_constraints={"max_cost_per_task": 0.01, "max_response_time_seconds": 1.8},
    )
    assert selector.select(cost_and_latency_capped).name == "llama-3.1-70b"


def test_critical_priority_rewards_quality_and_speed(settings):
    registry = ProviderRegistry(
        [
            _provider("slow-smart", quality_score=9, response_time_seconds=6.0),
            _provider("fast-good", quality_score=8, response_time_seconds=1.0),
        ]
    )
    selector = ProviderSelector(registry, settings)
    medium = TaskContext(task_type=TaskType.component_selection)
    critical = TaskContext(task_type=TaskType.component_selection, priority="critical")

    assert selector.select(medium).name == "slow-smart"
    assert selector.select(critical).name == "fast-good"


def test_low_priority_rewards_cheap_providers(settings):
    registry = ProviderRegistry(
        [
            _provider("premium", quality_score=9, cost_per_token=0.00003),
            _provider("budget", quality_score=6, cost_per_token=0.0000001),
        ]
    )
    selector = ProviderSelector(registry, settings)

    assert selector.select(TaskContext(task_type=TaskType.component_selection)).name == "premium"
    assert selector.select(TaskContext(task_type=TaskType.component_selection, priority="low")).name == "budget"


def test_ties_go_to_the_first_registered_provider(settings):
    registry = ProviderRegistry([_provider("first"), _provider("second")])
    selector = ProviderSelector(registry, settings)
    context = TaskContext(task_type=TaskType.component_selection)

    picks = {selector.select(context).name for _ in range(5)}

    assert picks == {"first"}


def test_register_replaces_by_name_and_keeps_position(settings):
    registry = ProviderRegistry([_provider("first", quality_score=5), _provider("second", quality_score=5)])
    registry.register(_provider("first", quality_score=7))

    assert [p.name for p in registry.providers()] == ["first", "second"]
    assert registry.get("first").quality_score == 7
    assert len(registry) == 2
    with pytest.raises(NotFoundError):
        registry.get("third")


def test_no_eligible_provider_is_a_distinct_error(selector):
    context = TaskContext(task_type=TaskType.trend_analysis)
    assert selector.select(context).name == "claude-sonnet"

    with pytest.raises(NoEligibleProviderError) as excinfo:
        selector.select(context, exclude=["claude-sonnet"])
    assert excinfo.value.task_type == TaskType.trend_analysis


def test_provider_descriptors_are_validated():
    with pytest.raises(ValidationError):
        _provider("free", cost_per_token=0)
    with pytest.raises(ValidationError):
        _provider("bad-quality", quality_score=11)


def test_registry_from_settings_override(settings):
    settings.llm_providers_json = (
        '[{"name": "only", "backend": "together", "model": "m", "capabilities": ["code_generation"],'
        ' "cost_per_token": 0.000001, "max_tokens": 1000, "response_time_seconds": 1, "quality_score": 5}]'
    )
    registry = ProviderRegistry.from_settings(settings)
    assert [p.name for p in registry.providers()] == ["only"]
