"""Catalog store: durable CRUD, filtered search and performance aggregation over components."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
import uuid

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from design_intel.config import Settings, get_settings
from design_intel.errors import InvalidInputError, NotFoundError
from design_intel.models import (
    Component,
    ComponentCategory,
    ComponentIndustry,
    ComponentPerformance,
    ComponentTag,
    ComponentType,
    DesignStyle,
    Placement,
    utcnow,
)


COMPLEXITY_RANGE = (1, 10)
SCORE_RANGE = (1, 100)

PERFORMANCE_KEY = ("component_id", "site_id", "placement")
_UPSERT_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}

# Overwritten on conflict; everything else keeps its first-ingested value.
MUTABLE_FIELDS = (
    "name",
    "html_code",
    "css_code",
    "js_code",
    "description",
    "tags",
    "aesthetic_score",
    "performance_score",
)


def generate_component_id() -> str:
    return f"comp_{uuid.uuid4().hex[:16]}"


def clamp_score(value: Any, low: int, high: int) -> int:
    number = float(value)
    if number != number:  # NaN
        raise ValueError("score must be a number")
    return int(round(min(max(number, low), high)))


def normalize_labels(values: Optional[List[str]]) -> List[str]:
    seen: List[str] = []
    for raw in values or []:
        label = str(raw or "").strip().lower()
        if label and label not in seen:
            seen.append(label)
    return seen


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# ============================================================================
# Input schemas
# ============================================================================

class ComponentInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    name: str = Field(min_length=1, max_length=255)
    type: ComponentType
    category: ComponentCategory
    style: DesignStyle
    source: str = "custom"
    html_code: str = ""
    css_code: str = ""
    js_code: Optional[str] = None
    preview_url: Optional[str] = None
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    industries: List[str] = Field(default_factory=list)
    frameworks: List[str] = Field(default_factory=list)
    complexity: int = 1
    aesthetic_score: int = 50
    performance_score: int = 50
    conversion_rate: Optional[float] = None
    usage_count: int = Field(default=0, ge=0)
    mobile_optimized: bool = False
    created_at: Optional[datetime] = None
    scraped_at: Optional[datetime] = None

    @field_validator("complexity", mode="before")
    @classmethod
    def _clamp_complexity(cls, value: Any) -> int:
        return clamp_score(value, *COMPLEXITY_RANGE)

    @field_validator("aesthetic_score", "performance_score", mode="before")
    @classmethod
    def _clamp_scores(cls, value: Any) -> int:
        return clamp_score(value, *SCORE_RANGE)

    @field_validator("tags", "industries", "frameworks")
    @classmethod
    def _normalize(cls, value: List[str]) -> List[str]:
        return normalize_labels(value)

    @field_validator("created_at", "scraped_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(value)


class SearchFilters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Optional[ComponentType] = None
    category: Optional[ComponentCategory] = None
    style: Optional[DesignStyle] = None
    tags: List[str] = Field(default_factory=list)
    industries: List[str] = Field(default_factory=list)
    min_aesthetic_score: Optional[float] = Field(default=None, ge=0, le=100)
    min_conversion_rate: Optional[float] = None

    @field_validator("tags", "industries")
    @classmethod
    def _normalize(cls, value: List[str]) -> List[str]:
        return normalize_labels(value)


class ABTestData(BaseModel):
    variant_a_performance: float
    variant_b_performance: float
    confidence_level: float = Field(ge=0, le=100)
    sample_size: int = Field(ge=0)


class PerformanceInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    component_id: str = Field(min_length=1)
    site_id: str = Field(min_length=1)
    placement: Placement
    conversion_impact: Optional[float] = None
    click_through_rate: Optional[float] = Field(default=None, ge=0)
    time_on_element: Optional[float] = Field(default=None, ge=0)
    scroll_depth_at_element: Optional[float] = Field(default=None, ge=0)
    interaction_rate: Optional[float] = Field(default=None, ge=0)
    ab_test: Optional[ABTestData] = None
    recorded_at: Optional[datetime] = None

    @field_validator("recorded_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(value)


def parse_input(model: type, data: Any):
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidInputError(str(exc)) from exc


# ============================================================================
# Store
# ============================================================================

class CatalogStore:
    def __init__(self, session: Session, settings: Optional[Settings] = None) -> None:
        self._db = session
        self._settings = settings or get_settings()

    def get(self, component_id: str) -> Component:
        component = self._db.get(Component, component_id)
        if component is None:
            raise NotFoundError("component", component_id)
        return component

    def insert_or_update(self, data: Union[ComponentInput, Dict[str, Any]]) -> Component:
        """Idempotent upsert keyed by id; created_at survives overwrites."""
        payload = parse_input(ComponentInput, data)
        component_id = payload.id or generate_component_id()
        now = utcnow()

        component = self._db.get(Component, component_id)
        if component is None:
            component = Component(
                id=component_id,
                name=payload.name,
                type=payload.type.value,
                category=payload.category.value,
                style=payload.style.value,
                source=payload.source,
                html_code=payload.html_code,
                css_code=payload.css_code,
                js_code=payload.js_code,
                preview_url=payload.preview_url,
                description=payload.description,
                tags=list(payload.tags),
                industries=list(payload.industries),
                frameworks=list(payload.frameworks),
                complexity=payload.complexity,
                aesthetic_score=payload.aesthetic_score,
                performance_score=payload.performance_score,
                conversion_rate=payload.conversion_rate,
                usage_count=payload.usage_count,
                mobile_optimized=payload.mobile_optimized,
                created_at=payload.created_at or now,
                updated_at=now,
                scraped_at=payload.scraped_at or now,
            )
            self._db.add(component)
        else:
            for field_name in MUTABLE_FIELDS:
                setattr(component, field_name, getattr(payload, field_name))
            component.tags = list(payload.tags)
            component.updated_at = now

        self._sync_label_index(component)
        self._db.commit()
        return component

    def _sync_label_index(self, component: Component) -> None:
        wanted_tags = set(component.tags or [])
        for row in list(component.tag_rows):
            if row.tag not in wanted_tags:
                component.tag_rows.remove(row)
        present = {row.tag for row in component.tag_rows}
        for tag in component.tags or []:
            if tag not in present:
                component.tag_rows.append(ComponentTag(component_id=component.id, tag=tag))

        wanted_industries = set(component.industries or [])
        for row in list(component.industry_rows):
            if row.industry not in wanted_industries:
                component.industry_rows.remove(row)
        present = {row.industry for row in component.industry_rows}
        for industry in component.industries or []:
            if industry not in present:
                component.industry_rows.append(
                    ComponentIndustry(component_id=component.id, industry=industry)
                )

    def resolve_limit(self, limit: Optional[int], default: Optional[int] = None) -> int:
        if limit is None:
            return int(default or self._settings.catalog_default_limit)
        if int(limit) < 1:
            raise InvalidInputError(f"limit must be positive, got {limit}")
        return min(int(limit), int(self._settings.catalog_max_limit))

    def apply_filters(self, stmt, filters: SearchFilters):
        if filters.type is not None:
            stmt = stmt.where(Component.type == filters.type.value)
        if filters.category is not None:
            stmt = stmt.where(Component.category == filters.category.value)
        if filters.style is not None:
            stmt = stmt.where(Component.style == filters.style.value)
        if filters.tags:
            stmt = stmt.where(
                Component.id.in_(
                    select(ComponentTag.component_id).where(ComponentTag.tag.in_(filters.tags))
                )
            )
        if filters.industries:
            stmt = stmt.where(
                Component.id.in_(
                    select(ComponentIndustry.component_id).where(
                        ComponentIndustry.industry.in_(filters.industries)
                    )
                )
            )
        if filters.min_aesthetic_score is not None:
            stmt = stmt.where(Component.aesthetic_score >= filters.min_aesthetic_score)
        if filters.min_conversion_rate is not None:
            stmt = stmt.where(Component.conversion_rate >= filters.min_conversion_rate)
        return stmt

    @staticmethod
    def quality_order(stmt):
        """aesthetic desc, conversion desc with nulls last, id for a stable total order."""
        return stmt.order_by(
            Component.aesthetic_score.desc(),
            Component.conversion_rate.is_(None),
            Component.conversion_rate.desc(),
            Component.id.asc(),
        )

    def search(
        self,
        filters: Union[SearchFilters, Dict[str, Any], None] = None,
        limit: Optional[int] = None,
    ) -> List[Component]:
        parsed = parse_input(SearchFilters, filters or {})
        stmt = self.apply_filters(select(Component), parsed)
        stmt = self.quality_order(stmt).limit(self.resolve_limit(limit))
        return list(self._db.scalars(stmt))

    def top_performing(self, limit: Optional[int] = 20) -> List[Component]:
        stmt = (
            select(Component)
            .where(Component.conversion_rate.is_not(None))
            .order_by(
                Component.conversion_rate.desc(),
                Component.aesthetic_score.desc(),
                Component.id.asc(),
            )
            .limit(self.resolve_limit(limit, default=20))
        )
        return list(self._db.scalars(stmt))

    def record_performance(self, data: Union[PerformanceInput, Dict[str, Any]]) -> ComponentPerformance:
        """Upsert keyed by (component, site, placement), then re-aggregate the component.

        On PostgreSQL and SQLite this is a single ``INSERT ... ON CONFLICT DO
        UPDATE``, so two writers racing on the same key both land and the
        later one wins instead of one failing on the unique constraint.
        """
        payload = parse_input(PerformanceInput, data)
        self.get(payload.component_id)

        ab = payload.ab_test
        key = {
            "component_id": payload.component_id,
            "site_id": payload.site_id,
            "placement": payload.placement.value,
        }
        values = {
            "conversion_impact": payload.conversion_impact,
            "click_through_rate": payload.click_through_rate,
            "time_on_element": payload.time_on_element,
            "scroll_depth_at_element": payload.scroll_depth_at_element,
            "interaction_rate": payload.interaction_rate,
            "ab_variant_a_performance": ab.variant_a_performance if ab else None,
            "ab_variant_b_performance": ab.variant_b_performance if ab else None,
            "ab_test_winner": (ab.variant_b_performance > ab.variant_a_performance) if ab else None,
            "ab_test_confidence": ab.confidence_level if ab else None,
            "ab_test_sample_size": ab.sample_size if ab else None,
            "recorded_at": payload.recorded_at or utcnow(),
        }

        insert = _UPSERT_INSERTS.get(self._db.get_bind().dialect.name)
        if insert is not None:
            stmt = insert(ComponentPerformance).values(**key, **values)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(PERFORMANCE_KEY),
                set_={name: stmt.excluded[name] for name in values},
            )
            self._db.execute(stmt)
        else:
            existing = self._performance_record(key)
            if existing is None:
                self._db.add(ComponentPerformance(**key, **values))
            else:
                for name, value in values.items():
                    setattr(existing, name, value)
            self._db.flush()

        record = self._performance_record(key, refresh=True)
        self.recompute_metrics(payload.component_id)
        self._db.commit()
        return record

    def _performance_record(self, key: Dict[str, Any], refresh: bool = False) -> Optional[ComponentPerformance]:
        stmt = select(ComponentPerformance).where(
            *(getattr(ComponentPerformance, name) == value for name, value in key.items())
        )
        if refresh:
            # the upsert bypasses the identity map
            stmt = stmt.execution_options(populate_existing=True)
        return self._db.scalar(stmt)

    def recompute_metrics(self, component_id: str) -> Component:
        """conversion_rate = mean of positive impacts, usage_count = number of records."""
        component = self.get(component_id)
        positive_avg = self._db.scalar(
            select(func.avg(ComponentPerformance.conversion_impact)).where(
                ComponentPerformance.component_id == component_id,
                ComponentPerformance.conversion_impact > 0,
            )
        )
        record_count = self._db.scalar(
            select(func.count(ComponentPerformance.id)).where(
                ComponentPerformance.component_id == component_id
            )
        )
        component.conversion_rate = float(positive_avg) if positive_avg is not None else None
        component.usage_count = int(record_count or 0)
        component.updated_at = utcnow()
        self._db.flush()
        return component

    def stats(self) -> Dict[str, Any]:
        total = self._db.scalar(select(func.count(Component.id))) or 0
        by_source = self._db.execute(
            select(Component.source, func.count(Component.id))
            .group_by(Component.source)
            .order_by(func.count(Component.id).desc(), Component.source)
        ).all()
        by_type = self._db.execute(
            select(Component.type, func.count(Component.id))
            .group_by(Component.type)
            .order_by(func.count(Component.id).desc(), Component.type)
        ).all()
        avg_aesthetic = self._db.scalar(select(func.avg(Component.aesthetic_score)))
        top_tags = self._db.execute(
            select(ComponentTag.tag, func.count(ComponentTag.component_id))
            .group_by(ComponentTag.tag)
            .order_by(func.count(ComponentTag.component_id).desc(), ComponentTag.tag)
            .limit(10)
        ).all()
        return {
            "total": int(total),
            "by_source": {source: int(count) for source, count in by_source},
            "by_type": {type_: int(count) for type_, count in by_type},
            "avg_aesthetic_score": float(avg_aesthetic or 0.0),
            "top_tags": [{"tag": tag, "count": int(count)} for tag, count in top_tags],
        }
