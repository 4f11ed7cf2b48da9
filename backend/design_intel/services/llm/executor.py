from __future__ import annotations

from collections import Counter
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from functools import lru_cache
import json
import logging
import math
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from design_intel.config import Settings, get_settings
from design_intel.errors import InvalidInputError
from design_intel.models import LearningInsight, TaskRecord, ValidationStatus, utcnow
from design_intel.services.catalog import CatalogStore, parse_input
from design_intel.services.embeddings import EmbeddingIndex
from design_intel.services.llm.client import SUGGESTIONS_KEY, ProviderClient
from design_intel.services.llm.registry import ProviderRegistry, ProviderSelector
from design_intel.services.llm.types import (
    LLMProvider,
    LLMProviderError,
    ProviderResponse,
    ProviderTimeoutError,
    TaskContext,
    TaskType,
    classify_retryable_error,
    parse_task_result,
)
from design_intel.services.trends import TrendAnalyzer

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
ENRICHMENT_MIN_AESTHETIC = 85
ENRICHMENT_COMPONENTS = 10
FREQUENT_TAGS = 5
TRENDING_TAGS = 5
SIMILAR_COMPONENTS = 3
INSIGHTS_IN_PROMPT = 3


@lru_cache
def _provider_pool(max_workers: int) -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="provider-call")


def estimate_tokens(prompt: str, result: Optional[Dict[str, Any]] = None) -> int:
    length = len(prompt or "")
    if result is not None:
        length += len(json.dumps(result, sort_keys=True))
    return int(math.ceil(length / CHARS_PER_TOKEN))


def new_task_id() -> str:
    return f"task_{uuid.uuid4().hex[:16]}"


class TaskExecutor:
    """Runs one task against the best eligible provider and records it.

    Failures are recorded and re-raised; choosing another provider is the
    caller's decision (pass ``exclude`` or a relaxed context).
    """

    def __init__(
        self,
        session: Session,
        registry: ProviderRegistry,
        client: ProviderClient,
        *,
        index: Optional[EmbeddingIndex] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._db = session
        self._settings = settings or get_settings()
        self._client = client
        self._selector = ProviderSelector(registry, self._settings)
        self._catalog = CatalogStore(session, self._settings)
        self._index = index
        self._trends = TrendAnalyzer(session, self._settings)
        self._pool = _provider_pool(max(1, int(self._settings.max_concurrent_provider_calls)))

    @property
    def selector(self) -> ProviderSelector:
        return self._selector

    def execute(
        self,
        task_type: Union[TaskType, str],
        prompt: str,
        context: Union[TaskContext, Dict[str, Any], None] = None,
        *,
        exclude: Iterable[str] = (),
        component_id: Optional[str] = None,
        enrich: bool = True,
    ) -> TaskRecord:
        task_type = TaskType(task_type)
        if not str(prompt or "").strip():
            raise InvalidInputError("prompt must not be empty")
        if isinstance(context, TaskContext):
            ctx = context
        else:
            data = dict(context or {})
            data.setdefault("task_type", task_type.value)
            ctx = parse_input(TaskContext, data)
        if ctx.task_type != task_type:
            raise InvalidInputError(
                f"context is for {ctx.task_type.value}, not {task_type.value}"
            )

        provider = self._selector.select(ctx, exclude=exclude)
        full_prompt = self.build_prompt(task_type, prompt, ctx, component_id=component_id, enrich=enrich)
        timeout = self._timeout_for(ctx)

        record = TaskRecord(
            id=new_task_id(),
            task_type=task_type.value,
            priority=ctx.priority.value,
            industry=ctx.industry or None,
            provider_name=provider.name,
            model=provider.model,
            prompt=full_prompt,
            created_at=utcnow(),
        )

        started = time.perf_counter()
        try:
            response = self._invoke(provider, full_prompt, timeout)
            result = parse_task_result(task_type, response.payload)
        except Exception as exc:
            record.response_time_ms = int((time.perf_counter() - started) * 1000)
            record.estimated_tokens = estimate_tokens(full_prompt)
            record.cost = 0.0
            record.success = False
            record.error_class = exc.__class__.__name__
            record.error_message = str(exc)[:500]
            record.suggestions_json = []
            record.completed_at = utcnow()
            self._db.add(record)
            self._db.commit()
            logger.warning(
                "Task %s (%s) failed on %s: %s", record.id, task_type.value, provider.name, exc
            )
            if isinstance(exc, LLMProviderError):
                raise
            raise LLMProviderError(str(exc), retryable=classify_retryable_error(exc)) from exc

        result_json = result.model_dump(mode="json")
        record.response_time_ms = int((time.perf_counter() - started) * 1000)
        record.estimated_tokens = estimate_tokens(full_prompt, result_json)
        record.cost = provider.cost_per_token * record.estimated_tokens
        record.result_json = result_json
        record.suggestions_json = list(response.suggestions)
        record.success = True
        record.completed_at = utcnow()
        self._db.add(record)
        self._db.commit()
        logger.info(
            "Task %s (%s) completed on %s in %dms, cost=%.6f",
            record.id,
            task_type.value,
            provider.name,
            record.response_time_ms,
            record.cost,
        )
        return record

    def _timeout_for(self, context: TaskContext) -> float:
        budget = context.budget_constraints
        if budget is not None and budget.max_response_time_seconds is not None:
            return float(budget.max_response_time_seconds)
        return float(self._settings.provider_default_timeout_seconds)

    def _invoke(self, provider: LLMProvider, prompt: str, timeout: float) -> ProviderResponse:
        future = self._pool.submit(self._client.invoke, provider, prompt, timeout_seconds=timeout)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout as exc:
            future.cancel()
            raise ProviderTimeoutError(
                f"{provider.name} did not respond within {timeout:g}s"
            ) from exc

    # ------------------------------------------------------------------
    # Prompt enrichment
    # ------------------------------------------------------------------

    def build_prompt(
        self,
        task_type: TaskType,
        prompt: str,
        context: TaskContext,
        *,
        component_id: Optional[str] = None,
        enrich: bool = True,
    ) -> str:
        sections = [prompt.strip()]
        if enrich:
            lines = self._context_lines(context, component_id)
            if lines:
                sections.append("## Design intelligence context\n" + "\n".join(lines))
        sections.append(
            "## Response format\n"
            f"Respond with a single JSON object for a {task_type.value} task. "
            f'Optionally include "{SUGGESTIONS_KEY}": a list of short follow-up suggestions.'
        )
        return "\n\n".join(sections)

    def _context_lines(self, context: TaskContext, component_id: Optional[str]) -> List[str]:
        lines: List[str] = []
        if context.industry:
            lines.append(f"Industry: {context.industry}")
        if context.business_goal:
            lines.append(f"Business goal: {context.business_goal}")
        if context.technical_requirements:
            lines.append("Technical requirements: " + ", ".join(context.technical_requirements))

        if context.industry:
            leaders = self._catalog.search(
                {
                    "industries": [context.industry],
                    "min_aesthetic_score": ENRICHMENT_MIN_AESTHETIC,
                },
                limit=ENRICHMENT_COMPONENTS,
            )
            tag_counts: Counter = Counter()
            for component in leaders:
                tag_counts.update(component.tags or [])
            frequent = [tag for tag, _ in sorted(tag_counts.items(), key=lambda kv: (-kv[1], kv[0]))]
            if frequent:
                lines.append(
                    f"Frequent tags among top {context.industry} components: " + ", ".join(frequent[:FREQUENT_TAGS])
                )
            if leaders:
                lines.append("High-performing components:")
                for component in leaders[:SIMILAR_COMPONENTS]:
                    lines.append(f"- {self._describe(component)}")

        tag_trends = [t for t in self._trends.analyze_trends() if t.axis == "tag"][:TRENDING_TAGS]
        if tag_trends:
            lines.append(
                "Trending tags: "
                + ", ".join(
                    "%s (growth %+.0f%%)" % (t.trend_id.split("_", 1)[1], t.growth_rate) for t in tag_trends
                )
            )

        if component_id and self._index is not None:
            hits = self._index.find_similar(component_id, k=SIMILAR_COMPONENTS)
            if hits:
                lines.append("Similar components:")
                for hit in hits:
                    lines.append(f"- {self._describe(hit.component)} (similarity {hit.similarity:.2f})")

        insights = self._relevant_insights(context.industry)
        if insights:
            lines.append("Learned insights:")
            for insight in insights:
                lines.append(f"- {insight.description} {insight.actionable_recommendation}")
        return lines

    @staticmethod
    def _describe(component) -> str:
        conversion = (
            f", conversion {component.conversion_rate:.1f}%"
            if component.conversion_rate is not None
            else ""
        )
        return f"{component.name} ({component.type}, aesthetic {component.aesthetic_score}{conversion})"

    def _relevant_insights(self, industry: str) -> List[LearningInsight]:
        rows = self._db.scalars(
            select(LearningInsight)
            .where(LearningInsight.validation_status != ValidationStatus.rejected)
            .order_by(LearningInsight.impact_score.desc(), LearningInsight.id.asc())
            .limit(50)
        )
        picked = []
        for insight in rows:
            subject_industry = (insight.subject_json or {}).get("industry")
            if subject_industry and subject_industry != industry:
                continue
            picked.append(insight)
            if len(picked) >= INSIGHTS_IN_PROMPT:
                break
        return picked

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def orchestrator_stats(self) -> Dict[str, Any]:
        total, successes, avg_ms, avg_cost, total_cost = self._db.execute(
            select(
                func.count(TaskRecord.id),
                func.sum(case((TaskRecord.success.is_(True), 1), else_=0)),
                func.avg(TaskRecord.response_time_ms),
                func.avg(TaskRecord.cost),
                func.sum(TaskRecord.cost),
            )
        ).one()
        usage = self._db.execute(
            select(TaskRecord.provider_name, func.count(TaskRecord.id))
            .group_by(TaskRecord.provider_name)
            .order_by(func.count(TaskRecord.id).desc(), TaskRecord.provider_name)
        ).all()
        total = int(total or 0)
        successes = int(successes or 0)
        total_cost = float(total_cost or 0.0)
        return {
            "total_tasks": total,
            "avg_response_time_ms": float(avg_ms or 0.0),
            "avg_cost": float(avg_cost or 0.0),
            "success_rate": (successes / total * 100.0) if total else 0.0,
            "provider_usage": {name: int(count) for name, count in usage},
            "cost_efficiency": (successes / total_cost) if total_cost > 0 else 0.0,
        }
