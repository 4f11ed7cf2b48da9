"""Continuous learning loop.

Feeds site performance back into the catalog, scores and promotes
components extracted from onboarded sites, and mines performance records
for insights.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import threading
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from design_intel.config import Settings, get_settings
from design_intel.errors import InvalidInputError, InvalidTransitionError, NotFoundError, check_cancelled
from design_intel.models import (
    Component,
    ComponentPerformance,
    ComponentType,
    ExtractedComponent,
    LearningInsight,
    LearningPattern,
    OnboardingSite,
    PromotionStatus,
    ValidationStatus,
    utcnow,
)
from design_intel.services import heuristics
from design_intel.services.catalog import CatalogStore, PerformanceInput, parse_input
from design_intel.services.embeddings import EmbeddingIndex
from design_intel.services.ingestion import ComponentIngestor

logger = logging.getLogger(__name__)

PROMOTION_MIN_AESTHETIC = 85
PROMOTION_MIN_UNIQUENESS = 70
PROMOTION_MIN_PERFORMANCE = 80


def should_promote(aesthetic_score: int, uniqueness_score: int, performance_score: int) -> bool:
    return (
        aesthetic_score >= PROMOTION_MIN_AESTHETIC
        and uniqueness_score >= PROMOTION_MIN_UNIQUENESS
        and performance_score >= PROMOTION_MIN_PERFORMANCE
    )


class SiteInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: Optional[str] = None
    domain: str = Field(min_length=1, max_length=255)
    industry: str = Field(min_length=1, max_length=120)
    business_type: str = "startup"
    primary_goal: str = "conversion"
    initial_conversion_rate: Optional[float] = Field(default=None, ge=0)
    bounce_rate: Optional[float] = Field(default=None, ge=0, le=100)
    page_load_time: Optional[float] = Field(default=None, ge=0)
    mobile_score: Optional[int] = Field(default=None, ge=0, le=100)
    accessibility_score: Optional[int] = Field(default=None, ge=0, le=100)


@dataclass
class _Observation:
    component_id: str
    component_type: str
    style: str
    tags: List[str]
    aesthetic_score: int
    component_created_at: datetime
    site_id: str
    placement: str
    impact: float


def _mean(values: Iterable[float]) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0


class ContinuousLearningLoop:
    def __init__(
        self,
        session: Session,
        index: Optional[EmbeddingIndex] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._db = session
        self._settings = settings or get_settings()
        self._catalog = CatalogStore(session, self._settings)
        self._index = index or EmbeddingIndex(session, settings=self._settings)
        self._ingestor = ComponentIngestor(self._catalog, self._index)

    # ------------------------------------------------------------------
    # Sites and performance
    # ------------------------------------------------------------------

    def onboard_site(self, data: Union[SiteInput, Dict[str, Any]]) -> OnboardingSite:
        payload = parse_input(SiteInput, data)
        site_id = payload.id or f"site_{uuid.uuid4().hex[:16]}"
        site = self._db.get(OnboardingSite, site_id)
        if site is None:
            site = OnboardingSite(id=site_id, components_extracted=0)
            self._db.add(site)
        for field_name, value in payload.model_dump(exclude={"id"}).items():
            setattr(site, field_name, value)
        site.industry = payload.industry.strip().lower()
        site.analyzed_at = utcnow()
        self._db.commit()
        return site

    def get_site(self, site_id: str) -> OnboardingSite:
        site = self._db.get(OnboardingSite, site_id)
        if site is None:
            raise NotFoundError("site", site_id)
        return site

    def record_performance(self, data: Union[PerformanceInput, Dict[str, Any]]) -> ComponentPerformance:
        record = self._catalog.record_performance(data)
        component = self._catalog.get(record.component_id)
        logger.info(
            "Recorded performance for %s at %s/%s; conversion_rate=%s usage_count=%d",
            record.component_id,
            record.site_id,
            record.placement,
            component.conversion_rate,
            component.usage_count,
        )
        return record

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------

    def get_candidate(self, candidate_id: str) -> ExtractedComponent:
        candidate = self._db.get(ExtractedComponent, candidate_id)
        if candidate is None:
            raise NotFoundError("candidate", candidate_id)
        return candidate

    def extract_candidate(
        self,
        site_id: str,
        html: str,
        css: str,
        js: Optional[str] = None,
    ) -> ExtractedComponent:
        """Score a raw payload, persist it as a candidate and auto-promote when it clears every threshold."""
        if not str(site_id or "").strip():
            raise InvalidInputError("site_id must not be empty")
        if not str(html or "").strip() and not str(css or "").strip():
            raise InvalidInputError("candidate needs markup or styles")

        cleaned_html = heuristics.clean_code(html)
        cleaned_css = heuristics.clean_code(css)
        cleaned_js = heuristics.clean_code(js)
        component_type = heuristics.detect_component_type(cleaned_html, cleaned_css)

        candidate = ExtractedComponent(
            id=f"ext_{uuid.uuid4().hex[:16]}",
            site_id=site_id,
            original_html=html or "",
            original_css=css or "",
            original_js=js,
            cleaned_html=cleaned_html,
            cleaned_css=cleaned_css,
            cleaned_js=cleaned_js,
            component_type=component_type.value,
            aesthetic_score=heuristics.score_aesthetics(cleaned_html, cleaned_css),
            performance_score=heuristics.assess_performance(cleaned_html, cleaned_css, cleaned_js),
            uniqueness_score=heuristics.uniqueness_score(cleaned_html, cleaned_css),
            promotion_status=PromotionStatus.candidate,
            extracted_at=utcnow(),
        )
        self._db.add(candidate)
        site = self._db.get(OnboardingSite, site_id)
        if site is not None:
            site.components_extracted = (site.components_extracted or 0) + 1
        self._db.commit()

        if should_promote(candidate.aesthetic_score, candidate.uniqueness_score, candidate.performance_score):
            self.promote_candidate(candidate.id)
        return candidate

    def _require_undecided(self, candidate: ExtractedComponent, requested: PromotionStatus) -> None:
        if candidate.promotion_status != PromotionStatus.candidate:
            raise InvalidTransitionError(
                "candidate", candidate.id, candidate.promotion_status.value, requested.value
            )

    def promote_candidate(self, candidate_id: str) -> Component:
        candidate = self.get_candidate(candidate_id)
        self._require_undecided(candidate, PromotionStatus.promoted)

        component_type = ComponentType(candidate.component_type)
        site = self._db.get(OnboardingSite, candidate.site_id)
        html, css, js = candidate.cleaned_html, candidate.cleaned_css, candidate.cleaned_js
        component = self._ingestor.ingest(
            {
                "name": f"Extracted {component_type.value.capitalize()} Component",
                "type": component_type,
                "category": heuristics.category_for_type(component_type),
                "style": heuristics.detect_style(css),
                "source": "custom",
                "html_code": html,
                "css_code": css,
                "js_code": js or None,
                "description": f"Component extracted from site {candidate.site_id}",
                "tags": heuristics.extract_tags(html, css),
                "industries": [site.industry] if site is not None else [],
                "frameworks": heuristics.detect_frameworks(html, css, js or ""),
                "complexity": heuristics.analyze_complexity(html, css, js),
                "aesthetic_score": candidate.aesthetic_score,
                "performance_score": candidate.performance_score,
                "usage_count": 0,
                "mobile_optimized": heuristics.is_mobile_optimized(css),
            }
        )

        candidate.promotion_status = PromotionStatus.promoted
        candidate.promoted_component_id = component.id
        candidate.decided_at = utcnow()
        self._db.commit()
        logger.info(
            "Promoted candidate %s to component %s (aesthetic=%d uniqueness=%d performance=%d)",
            candidate.id,
            component.id,
            candidate.aesthetic_score,
            candidate.uniqueness_score,
            candidate.performance_score,
        )
        return component

    def reject_candidate(self, candidate_id: str) -> ExtractedComponent:
        candidate = self.get_candidate(candidate_id)
        self._require_undecided(candidate, PromotionStatus.rejected)
        candidate.promotion_status = PromotionStatus.rejected
        candidate.decided_at = utcnow()
        self._db.commit()
        logger.info("Rejected candidate %s", candidate.id)
        return candidate

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    def _observations(self) -> List[_Observation]:
        rows = self._db.execute(
            select(ComponentPerformance, Component)
            .join(Component, Component.id == ComponentPerformance.component_id)
            .where(ComponentPerformance.conversion_impact.is_not(None))
            .order_by(ComponentPerformance.component_id, ComponentPerformance.site_id, ComponentPerformance.placement)
        ).all()
        return [
            _Observation(
                component_id=component.id,
                component_type=component.type,
                style=component.style,
                tags=list(component.tags or []),
                aesthetic_score=component.aesthetic_score,
                component_created_at=component.created_at,
                site_id=record.site_id,
                placement=record.placement,
                # negative effects count as no lift
                impact=max(float(record.conversion_impact), 0.0),
            )
            for record, component in rows
        ]

    def generate_insights(
        self,
        persist: bool = False,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[LearningInsight]:
        """Run the four analyses over one snapshot; nothing is written if cancelled midway."""
        now = now or utcnow()
        observations = self._observations()
        site_industries = dict(self._db.execute(select(OnboardingSite.id, OnboardingSite.industry)).all())

        check_cancelled(cancel_event, "industry performance analysis")
        industry_rows = self._industry_component_performance(observations, site_industries)
        insights = [insight for insight, _ in industry_rows]
        check_cancelled(cancel_event, "trending pattern analysis")
        insights.extend(self._trending_patterns(observations, now))
        check_cancelled(cancel_event, "underperforming pattern analysis")
        insights.extend(self._underperforming_patterns(observations))
        check_cancelled(cancel_event, "placement analysis")
        insights.extend(self._optimal_placements(observations))

        if persist:
            check_cancelled(cancel_event, "insight persistence")
            insights = self._persist(insights, now)
            for insight, sites in industry_rows:
                self._upsert_pattern(insight, sites, now)
            self._db.commit()
        logger.info("Generated %d learning insights (persist=%s)", len(insights), persist)
        return insights

    def _industry_component_performance(
        self,
        observations: List[_Observation],
        site_industries: Dict[str, str],
    ) -> List[Tuple[LearningInsight, int]]:
        groups: Dict[Tuple[str, str], List[_Observation]] = defaultdict(list)
        for obs in observations:
            industry = site_industries.get(obs.site_id)
            if industry:
                groups[(industry, obs.component_type)].append(obs)

        scored = []
        for (industry, component_type), members in groups.items():
            avg = _mean(m.impact for m in members)
            if len(members) >= 3 and avg > 10:
                scored.append((industry, component_type, members, avg))
        scored.sort(key=lambda item: (-item[3], item[0], item[1]))

        results = []
        for industry, component_type, members, avg in scored[:10]:
            insight = LearningInsight(
                insight_type="industry_component_performance",
                confidence_score=float(min(len(members) * 10, 100)),
                impact_score=float(min(avg * 5, 100)),
                description=(
                    f"{component_type} components perform exceptionally well in {industry} "
                    f"(avg +{avg:.1f}% conversion across {len(members)} placements)"
                ),
                actionable_recommendation=f"Prioritize {component_type} components for {industry} websites",
                data_points=len(members),
                subject_json={"industry": industry, "component_type": component_type},
                validation_status=ValidationStatus.pending,
            )
            results.append((insight, len({m.site_id for m in members})))
        return results

    def _trending_patterns(self, observations: List[_Observation], now: datetime) -> List[LearningInsight]:
        since = now - timedelta(days=int(self._settings.insight_pattern_window_days))
        groups: Dict[str, List[float]] = defaultdict(list)
        for obs in observations:
            if obs.component_created_at < since or obs.impact <= 5:
                continue
            for tag in set(obs.tags):
                groups[tag].append(obs.impact)

        scored = [
            (tag, impacts, _mean(impacts))
            for tag, impacts in groups.items()
            if len(impacts) >= 5 and _mean(impacts) > 15
        ]
        scored.sort(key=lambda item: (-item[2], item[0]))
        return [
            LearningInsight(
                insight_type="trending_pattern",
                confidence_score=float(min(len(impacts) * 5, 100)),
                impact_score=float(min(avg * 4, 100)),
                description=(
                    f'"{tag}" pattern shows strong performance '
                    f"(+{avg:.1f}% conversion across {len(impacts)} implementations)"
                ),
                actionable_recommendation=f'Incorporate the "{tag}" pattern in new components',
                data_points=len(impacts),
                subject_json={"tag": tag},
                validation_status=ValidationStatus.pending,
            )
            for tag, impacts, avg in scored[:5]
        ]

    def _underperforming_patterns(self, observations: List[_Observation]) -> List[LearningInsight]:
        groups: Dict[Tuple[str, str], List[float]] = defaultdict(list)
        for obs in observations:
            if obs.impact < 5 and obs.aesthetic_score < 80:
                groups[(obs.component_type, obs.style)].append(obs.impact)

        scored = [
            (component_type, style, impacts, _mean(impacts))
            for (component_type, style), impacts in groups.items()
            if len(impacts) >= 3
        ]
        scored.sort(key=lambda item: (item[3], item[0], item[1]))
        return [
            LearningInsight(
                insight_type="underperforming_pattern",
                confidence_score=float(min(len(impacts) * 15, 100)),
                impact_score=float(min(max(100 - avg * 10, 20), 100)),
                description=(
                    f"{style} {component_type} components underperform "
                    f"(avg {avg:.1f}% conversion impact over {len(impacts)} placements)"
                ),
                actionable_recommendation=(
                    f"Avoid {style} {component_type} components or redesign them with stronger patterns"
                ),
                data_points=len(impacts),
                subject_json={"component_type": component_type, "style": style},
                validation_status=ValidationStatus.pending,
            )
            for component_type, style, impacts, avg in scored[:5]
        ]

    def _optimal_placements(self, observations: List[_Observation]) -> List[LearningInsight]:
        groups: Dict[Tuple[str, str], List[float]] = defaultdict(list)
        for obs in observations:
            groups[(obs.component_type, obs.placement)].append(obs.impact)

        best: Dict[str, Tuple[str, List[float], float]] = {}
        for (component_type, placement), impacts in sorted(groups.items()):
            if len(impacts) < 3:
                continue
            avg = _mean(impacts)
            if component_type not in best or avg > best[component_type][2]:
                best[component_type] = (placement, impacts, avg)

        return [
            LearningInsight(
                insight_type="optimal_placement",
                confidence_score=float(min(len(impacts) * 12, 100)),
                impact_score=float(min(avg * 6, 100)),
                description=(
                    f"{component_type} components perform best in {placement} placement "
                    f"(+{avg:.1f}% avg conversion)"
                ),
                actionable_recommendation=f"Place {component_type} components in {placement} for optimal results",
                data_points=len(impacts),
                subject_json={"component_type": component_type, "placement": placement},
                validation_status=ValidationStatus.pending,
            )
            for component_type, (placement, impacts, avg) in sorted(best.items())
        ]

    def _persist(self, insights: List[LearningInsight], now: datetime) -> List[LearningInsight]:
        """Refresh pending insights with the same subject; decided ones are left untouched."""
        stored: Dict[Tuple[str, str], LearningInsight] = {}
        for existing in self._db.scalars(select(LearningInsight).order_by(LearningInsight.id)):
            key = (existing.insight_type, _subject_key(existing.subject_json))
            stored.setdefault(key, existing)

        persisted = []
        for insight in insights:
            existing = stored.get((insight.insight_type, _subject_key(insight.subject_json)))
            if existing is None:
                insight.discovered_at = now
                self._db.add(insight)
                persisted.append(insight)
            elif existing.validation_status == ValidationStatus.pending:
                existing.confidence_score = insight.confidence_score
                existing.impact_score = insight.impact_score
                existing.description = insight.description
                existing.actionable_recommendation = insight.actionable_recommendation
                existing.data_points = insight.data_points
                existing.discovered_at = now
                persisted.append(existing)
            else:
                persisted.append(existing)
        self._db.flush()
        return persisted

    def _upsert_pattern(self, insight: LearningInsight, sites_observed: int, now: datetime) -> None:
        subject = insight.subject_json or {}
        name = f"{subject['industry']}:{subject['component_type']}"
        pattern = self._db.scalar(select(LearningPattern).where(LearningPattern.pattern_name == name))
        if pattern is None:
            pattern = LearningPattern(pattern_name=name, discovered_at=now)
            self._db.add(pattern)
        pattern.industry = subject["industry"]
        pattern.component_types = [subject["component_type"]]
        pattern.sites_observed = sites_observed
        pattern.avg_improvement = insight.impact_score / 5
        pattern.confidence_level = insight.confidence_score
        pattern.pattern_data = {"data_points": insight.data_points}
        pattern.last_updated = now

    def list_insights(
        self,
        status: Optional[ValidationStatus] = None,
        limit: int = 50,
    ) -> List[LearningInsight]:
        stmt = select(LearningInsight)
        if status is not None:
            stmt = stmt.where(LearningInsight.validation_status == status)
        stmt = stmt.order_by(LearningInsight.impact_score.desc(), LearningInsight.id.asc()).limit(
            self._catalog.resolve_limit(limit)
        )
        return list(self._db.scalars(stmt))

    def set_insight_validation(
        self,
        insight_id: int,
        status: Union[ValidationStatus, str],
    ) -> LearningInsight:
        try:
            requested = ValidationStatus(status)
        except ValueError as exc:
            raise InvalidInputError(f"unknown validation status: {status}") from exc
        if requested == ValidationStatus.pending:
            raise InvalidInputError("insights cannot be moved back to pending")

        insight = self._db.get(LearningInsight, insight_id)
        if insight is None:
            raise NotFoundError("insight", insight_id)
        if insight.validation_status != ValidationStatus.pending:
            raise InvalidTransitionError(
                "insight", insight_id, insight.validation_status.value, requested.value
            )
        insight.validation_status = requested
        self._db.commit()
        return insight

    def learning_stats(self) -> Dict[str, Any]:
        total_sites = self._db.scalar(select(func.count(OnboardingSite.id))) or 0
        total_extracted = self._db.scalar(select(func.count(ExtractedComponent.id))) or 0
        total_promoted = self._db.scalar(
            select(func.count(ExtractedComponent.id)).where(
                ExtractedComponent.promotion_status == PromotionStatus.promoted
            )
        ) or 0
        avg_improvement = self._db.scalar(
            select(func.avg(ComponentPerformance.conversion_impact)).where(
                ComponentPerformance.conversion_impact > 0
            )
        )
        total_insights = self._db.scalar(select(func.count(LearningInsight.id))) or 0
        validated = self._db.scalar(
            select(func.count(LearningInsight.id)).where(
                LearningInsight.validation_status == ValidationStatus.validated
            )
        ) or 0
        return {
            "total_sites": int(total_sites),
            "total_extracted": int(total_extracted),
            "total_promoted": int(total_promoted),
            "avg_improvement": float(avg_improvement or 0.0),
            "total_insights": int(total_insights),
            "validated_insights": int(validated),
        }


def _subject_key(subject: Optional[Dict[str, Any]]) -> str:
    return "|".join(f"{key}={value}" for key, value in sorted((subject or {}).items()))
