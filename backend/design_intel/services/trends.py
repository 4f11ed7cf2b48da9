"""Trend analysis over sliding windows of catalog activity.

Three axes are grouped: design style, component type and free-form tag.
Every call reads one snapshot of the catalog and is side-effect free, so
repeated calls over unchanged data (and a fixed ``now``) are identical.
"""
from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from design_intel.config import Settings, get_settings
from design_intel.errors import InvalidInputError, NotFoundError, check_cancelled
from design_intel.models import Component, utcnow
from design_intel.services.catalog import CatalogStore

logger = logging.getLogger(__name__)

MIN_GROUP_SAMPLE = {"style": 3, "type": 3, "tag": 5}
BREAKING_MIN_SAMPLE = 3
TOP_COMPONENTS = 5
MAX_PATTERNS = 5


@dataclass
class TrendMetric:
    trend_id: str
    axis: str
    name: str
    popularity_score: float
    growth_rate: float
    component_count: int
    avg_aesthetic_score: float
    top_components: List[Component] = field(default_factory=list)
    emerging_patterns: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "trend_id": self.trend_id,
            "axis": self.axis,
            "name": self.name,
            "popularity_score": self.popularity_score,
            "growth_rate": self.growth_rate,
            "component_count": self.component_count,
            "avg_aesthetic_score": self.avg_aesthetic_score,
            "top_components": [
                {"id": c.id, "name": c.name, "aesthetic_score": c.aesthetic_score}
                for c in self.top_components
            ],
            "emerging_patterns": list(self.emerging_patterns),
        }


@dataclass
class TrendPrediction:
    trend: TrendMetric
    next_period_growth: float
    confidence_score: float
    market_impact: str
    recommendation: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "trend": self.trend.as_dict(),
            "prediction": {
                "next_period_growth": self.next_period_growth,
                "confidence_score": self.confidence_score,
                "market_impact": self.market_impact,
                "recommendation": self.recommendation,
            },
        }


@dataclass
class _Snapshot:
    component_id: str
    type: str
    style: str
    tags: List[str]
    aesthetic_score: float
    conversion_rate: Optional[float]
    created_at: datetime


def popularity_score(
    component_count: int,
    avg_aesthetic_score: float,
    avg_conversion_rate: Optional[float],
) -> float:
    """Group size (max 40) + aesthetic (max 30) + conversion (max 30, 15 when unknown)."""
    score = min(component_count * 2, 40)
    score += (avg_aesthetic_score / 100.0) * 30
    if avg_conversion_rate is None:
        score += 15
    else:
        score += min(avg_conversion_rate * 6, 30)
    return min(score, 100.0)


def growth_rate(current_count: int, previous_count: int) -> float:
    if previous_count == 0:
        return 100.0 if current_count > 0 else 0.0
    return ((current_count - previous_count) / previous_count) * 100.0


def market_impact(popularity: float) -> str:
    if popularity > 80:
        return "high"
    if popularity > 60:
        return "medium"
    return "low"


class TrendAnalyzer:
    def __init__(self, session: Session, settings: Optional[Settings] = None) -> None:
        self._db = session
        self._settings = settings or get_settings()
        self._catalog = CatalogStore(session, self._settings)

    def _load(self, since: datetime, until: datetime) -> List[_Snapshot]:
        rows = self._db.execute(
            select(
                Component.id,
                Component.type,
                Component.style,
                Component.tags,
                Component.aesthetic_score,
                Component.conversion_rate,
                Component.created_at,
            )
            .where(Component.created_at >= since, Component.created_at <= until)
            .order_by(Component.id)
        ).all()
        return [
            _Snapshot(
                component_id=row.id,
                type=row.type,
                style=row.style,
                tags=list(row.tags or []),
                aesthetic_score=float(row.aesthetic_score or 0),
                conversion_rate=row.conversion_rate,
                created_at=row.created_at,
            )
            for row in rows
        ]

    def analyze_trends(
        self,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[TrendMetric]:
        days = int(window_days or self._settings.trend_window_days)
        if days < 1:
            raise InvalidInputError(f"window must be at least one day, got {days}")
        now = now or utcnow()
        window = timedelta(days=days)
        snapshot = self._load(now - 2 * window, now)
        current = [s for s in snapshot if s.created_at >= now - window]
        previous = [s for s in snapshot if s.created_at < now - window]

        axes: List[Tuple[str, Callable[[_Snapshot], List[str]]]] = [
            ("style", lambda s: [s.style]),
            ("type", lambda s: [s.type]),
            ("tag", lambda s: s.tags),
        ]
        trends: List[TrendMetric] = []
        for axis, keys_of in axes:
            check_cancelled(cancel_event, f"{axis} axis")
            trends.extend(self._analyze_axis(axis, keys_of, current, previous))

        trends.sort(key=lambda t: (-t.popularity_score, t.trend_id))
        logger.info("Analyzed %d trends over %d days", len(trends), days)
        return trends

    def _analyze_axis(
        self,
        axis: str,
        keys_of: Callable[[_Snapshot], List[str]],
        current: List[_Snapshot],
        previous: List[_Snapshot],
    ) -> List[TrendMetric]:
        groups: Dict[str, List[_Snapshot]] = defaultdict(list)
        for item in current:
            for key in keys_of(item):
                groups[key].append(item)
        previous_counts: Counter = Counter()
        for item in previous:
            for key in set(keys_of(item)):
                previous_counts[key] += 1

        trends = []
        for key in sorted(groups):
            members = groups[key]
            if len(members) < MIN_GROUP_SAMPLE[axis]:
                continue
            avg_aesthetic = sum(m.aesthetic_score for m in members) / len(members)
            rates = [m.conversion_rate for m in members if m.conversion_rate is not None]
            avg_conversion = sum(rates) / len(rates) if rates else None
            trends.append(
                TrendMetric(
                    trend_id=f"{axis}_{key}",
                    axis=axis,
                    name=self._trend_name(axis, key),
                    popularity_score=popularity_score(len(members), avg_aesthetic, avg_conversion),
                    growth_rate=growth_rate(len(members), previous_counts.get(key, 0)),
                    component_count=len(members),
                    avg_aesthetic_score=avg_aesthetic,
                    top_components=self._top_components(axis, key),
                    emerging_patterns=self._co_occurring_tags(key, members),
                )
            )
        return trends

    @staticmethod
    def _trend_name(axis: str, key: str) -> str:
        if axis == "style":
            return f"{key.capitalize()} Design Style"
        if axis == "type":
            return f"{key.capitalize()} Components"
        return f'"{key}" Design Pattern'

    def _top_components(self, axis: str, key: str) -> List[Component]:
        if axis == "tag":
            return self._catalog.search({"tags": [key]}, limit=TOP_COMPONENTS)
        return self._catalog.search({axis: key}, limit=TOP_COMPONENTS)

    @staticmethod
    def _co_occurring_tags(key: str, members: List[_Snapshot]) -> List[str]:
        counts: Counter = Counter()
        for member in members:
            for tag in set(member.tags):
                if tag != key:
                    counts[tag] += 1
        ranked = sorted((item for item in counts.items() if item[1] >= 2), key=lambda kv: (-kv[1], kv[0]))
        return [tag for tag, _ in ranked[:MAX_PATTERNS]]

    def detect_breaking_trends(
        self,
        min_growth_rate: Optional[float] = None,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[TrendMetric]:
        """Re-run analysis over half the standard window and keep fast growers with enough samples."""
        threshold = self._settings.trend_breaking_min_growth if min_growth_rate is None else min_growth_rate
        days = window_days or max(1, int(self._settings.trend_window_days) // 2)
        return [
            trend
            for trend in self.analyze_trends(window_days=days, now=now, cancel_event=cancel_event)
            if trend.growth_rate >= threshold and trend.component_count >= BREAKING_MIN_SAMPLE
        ]

    def predict_trajectory(
        self,
        trend_id: str,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> TrendPrediction:
        trend = next(
            (t for t in self.analyze_trends(window_days=window_days, now=now) if t.trend_id == trend_id),
            None,
        )
        if trend is None:
            raise NotFoundError("trend", trend_id)

        impact = market_impact(trend.popularity_score)
        recommendation = "Monitor for further development"
        if impact == "high" and trend.growth_rate > 30:
            recommendation = "Strongly recommend adoption: high impact trend with strong growth"
        elif impact == "medium" and trend.growth_rate > 20:
            recommendation = "Consider early adoption: emerging trend with good potential"

        return TrendPrediction(
            trend=trend,
            next_period_growth=trend.growth_rate * 0.8,
            confidence_score=float(min(trend.component_count * 10, 100)),
            market_impact=impact,
            recommendation=recommendation,
        )

    def generate_trend_report(
        self,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, Any]:
        now = now or utcnow()
        top_trends = self.analyze_trends(now=now, cancel_event=cancel_event)[:10]
        breaking = self.detect_breaking_trends(
            min_growth_rate=self._settings.trend_report_breaking_min_growth,
            now=now,
            cancel_event=cancel_event,
        )
        return {
            "generated_at": now.isoformat(),
            "summary": self._summary(top_trends, breaking),
            "top_trends": [t.as_dict() for t in top_trends],
            "breaking_trends": [t.as_dict() for t in breaking],
            "recommendations": self._recommendations(top_trends, breaking),
        }

    @staticmethod
    def _summary(top_trends: List[TrendMetric], breaking: List[TrendMetric]) -> str:
        if not top_trends:
            return "Not enough recent components to identify trends."
        total = sum(t.component_count for t in top_trends)
        avg_aesthetic = sum(t.avg_aesthetic_score for t in top_trends) / len(top_trends)
        return (
            f"Analysis of {total} component observations reveals {len(top_trends)} major trends "
            f"with average aesthetic score of {avg_aesthetic:.1f}/100. "
            f"{len(breaking)} breaking trends identified with significant growth potential."
        )

    @staticmethod
    def _recommendations(top_trends: List[TrendMetric], breaking: List[TrendMetric]) -> List[str]:
        recommendations = []
        top_style = next((t for t in top_trends if t.axis == "style"), None)
        if top_style and top_style.avg_aesthetic_score > 85:
            recommendations.append(
                f"Prioritize {top_style.name}: highest aesthetic scores "
                f"({top_style.avg_aesthetic_score:.1f}/100)"
            )
        if breaking:
            recommendations.append(
                f"Early adoption opportunity: {breaking[0].name} showing {breaking[0].growth_rate:.1f}% growth"
            )
        top_type = next((t for t in top_trends if t.axis == "type"), None)
        if top_type and top_type.component_count > 5:
            recommendations.append(
                f"Focus on {top_type.name}: high demand with {top_type.component_count} components"
            )
        return recommendations
