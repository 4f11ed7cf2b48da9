from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class LLMCapability(str, Enum):
    code_generation = "code_generation"
    design_analysis = "design_analysis"
    strategic_reasoning = "strategic_reasoning"
    visual_understanding = "visual_understanding"
    speed_optimization = "speed_optimization"
    cost_efficiency = "cost_efficiency"
    pattern_recognition = "pattern_recognition"
    creative_ideation = "creative_ideation"
    technical_precision = "technical_precision"
    content_generation = "content_generation"


class TaskType(str, Enum):
    component_selection = "component_selection"
    design_generation = "design_generation"
    trend_analysis = "trend_analysis"
    optimization = "optimization"
    quality_assessment = "quality_assessment"


class Priority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class LLMProvider(BaseModel):
    """Static provider descriptor, loaded once from configuration."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    display_name: str = ""
    backend: Literal["openai", "anthropic", "gemini", "together"]
    model: str = Field(min_length=1)
    capabilities: List[LLMCapability]
    cost_per_token: float = Field(gt=0)
    max_tokens: int = Field(gt=0)
    response_time_seconds: float = Field(ge=0)
    quality_score: float = Field(ge=1, le=10)

    def has_capability(self, capability: LLMCapability) -> bool:
        return capability in self.capabilities


class PerformanceTargets(BaseModel):
    conversion_rate: Optional[float] = None
    load_time: Optional[float] = None
    aesthetic_score: Optional[float] = None


class BudgetConstraints(BaseModel):
    max_cost_per_task: Optional[float] = Field(default=None, gt=0)
    max_response_time_seconds: Optional[float] = Field(default=None, gt=0)


class TaskContext(BaseModel):
    task_type: TaskType
    priority: Priority = Priority.medium
    industry: str = ""
    business_goal: str = ""
    technical_requirements: List[str] = Field(default_factory=list)
    performance_targets: PerformanceTargets = Field(default_factory=PerformanceTargets)
    budget_constraints: Optional[BudgetConstraints] = None


# ============================================================================
# Tagged result payloads, one per task kind
# ============================================================================

class SelectedComponent(BaseModel):
    id: str
    type: Optional[str] = None
    aesthetic_score: Optional[float] = None
    reasoning: str = ""


class ComponentSelectionResult(BaseModel):
    kind: Literal["component_selection"] = "component_selection"
    selected_components: List[SelectedComponent] = Field(default_factory=list)
    confidence_score: float = Field(default=0.0, ge=0, le=100)
    reasoning: str = ""


class DesignGenerationResult(BaseModel):
    kind: Literal["design_generation"] = "design_generation"
    html_code: str
    css_code: str = ""
    js_code: str = ""
    design_rationale: str = ""
    estimated_aesthetic_score: Optional[float] = None


class TrendAnalysisResult(BaseModel):
    kind: Literal["trend_analysis"] = "trend_analysis"
    trending_patterns: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0, le=100)


class OptimizationResult(BaseModel):
    kind: Literal["optimization"] = "optimization"
    changes: List[str] = Field(default_factory=list)
    expected_improvement: Optional[float] = None
    rationale: str = ""


class QualityAssessmentResult(BaseModel):
    kind: Literal["quality_assessment"] = "quality_assessment"
    score: float = Field(ge=0, le=100)
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    recommendation: str = ""


TaskResult = Annotated[
    Union[
        ComponentSelectionResult,
        DesignGenerationResult,
        TrendAnalysisResult,
        OptimizationResult,
        QualityAssessmentResult,
    ],
    Field(discriminator="kind"),
]

_task_result_adapter = TypeAdapter(TaskResult)


def parse_task_result(task_type: TaskType, payload: Dict[str, Any]):
    data = dict(payload or {})
    data.setdefault("kind", task_type.value)
    if data["kind"] != task_type.value:
        raise LLMProviderError(
            f"Provider returned a {data['kind']} payload for a {task_type.value} task",
            retryable=False,
        )
    try:
        return _task_result_adapter.validate_python(data)
    except ValidationError as exc:
        raise LLMProviderError(f"Malformed {task_type.value} payload: {exc}", retryable=False) from exc


@dataclass
class ProviderResponse:
    payload: Dict[str, Any]
    suggestions: List[str] = field(default_factory=list)


# ============================================================================
# Errors
# ============================================================================

class LLMProviderError(RuntimeError):
    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ProviderTimeoutError(LLMProviderError):
    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=True)


class NoEligibleProviderError(RuntimeError):
    def __init__(self, task_type: TaskType, required: List[LLMCapability]) -> None:
        caps = ", ".join(cap.value for cap in required)
        super().__init__(f"No eligible provider for {task_type.value} (requires: {caps})")
        self.task_type = task_type
        self.required = required


def classify_retryable_error(exc: Exception) -> bool:
    text = str(exc).lower()
    if "rate limit" in text or "429" in text:
        return True
    if "timeout" in text or "timed out" in text:
        return True
    if "connection reset" in text or "connection aborted" in text:
        return True
    if "502" in text or "503" in text or "504" in text:
        return True
    return False
