"""Task execution API routes."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from typing import Optional, List, Dict, Any
from datetime import datetime

from design_intel.api.deps import get_index, get_provider_client, get_registry
from design_intel.models.base import get_db
from design_intel.services.embeddings import EmbeddingIndex
from design_intel.services.llm.executor import TaskExecutor
from design_intel.services.llm.registry import ProviderRegistry
from design_intel.services.llm.types import TaskContext, TaskType

router = APIRouter()


class TaskRequest(BaseModel):
    task_type: TaskType
    prompt: str = Field(min_length=1)
    context: Optional[TaskContext] = None
    exclude_providers: List[str] = Field(default_factory=list)
    component_id: Optional[str] = None
    enrich: bool = True


class TaskResponse(BaseModel):
    id: str
    task_type: str
    priority: str
    provider_name: str
    model: str
    success: bool
    result: Optional[Dict[str, Any]] = None
    suggestions: List[str] = Field(default_factory=list)
    cost: float
    estimated_tokens: int
    response_time_ms: int
    created_at: datetime
    completed_at: Optional[datetime] = None


class ProviderResponse(BaseModel):
    name: str
    display_name: str
    backend: str
    model: str
    capabilities: List[str]
    cost_per_token: float
    max_tokens: int
    response_time_seconds: float
    quality_score: float


def _executor(db: Session, registry: ProviderRegistry, client, index: EmbeddingIndex) -> TaskExecutor:
    return TaskExecutor(db, registry, client, index=index)


@router.post("", response_model=TaskResponse)
def execute_task(
    data: TaskRequest,
    db: Session = Depends(get_db),
    registry: ProviderRegistry = Depends(get_registry),
    client=Depends(get_provider_client),
    index: EmbeddingIndex = Depends(get_index),
):
    """Select a provider, run the task and return its record. Failures surface as 502/504."""
    record = _executor(db, registry, client, index).execute(
        data.task_type,
        data.prompt,
        data.context,
        exclude=data.exclude_providers,
        component_id=data.component_id,
        enrich=data.enrich,
    )
    return TaskResponse(
        id=record.id,
        task_type=record.task_type,
        priority=record.priority,
        provider_name=record.provider_name,
        model=record.model,
        success=record.success,
        result=record.result_json,
        suggestions=record.suggestions_json or [],
        cost=record.cost,
        estimated_tokens=record.estimated_tokens,
        response_time_ms=record.response_time_ms,
        created_at=record.created_at,
        completed_at=record.completed_at,
    )


@router.get("/providers", response_model=List[ProviderResponse])
def list_providers(registry: ProviderRegistry = Depends(get_registry)):
    return [
        ProviderResponse(
            name=p.name,
            display_name=p.display_name or p.name,
            backend=p.backend,
            model=p.model,
            capabilities=[cap.value for cap in p.capabilities],
            cost_per_token=p.cost_per_token,
            max_tokens=p.max_tokens,
            response_time_seconds=p.response_time_seconds,
            quality_score=p.quality_score,
        )
        for p in registry.providers()
    ]


@router.get("/stats")
def orchestrator_stats(
    db: Session = Depends(get_db),
    registry: ProviderRegistry = Depends(get_registry),
    client=Depends(get_provider_client),
    index: EmbeddingIndex = Depends(get_index),
):
    return _executor(db, registry, client, index).orchestrator_stats()
