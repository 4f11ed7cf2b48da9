import threading

import pytest

from design_intel.errors import AnalysisCancelled, InvalidInputError, InvalidTransitionError, NotFoundError
from design_intel.models import (
    Component,
    ComponentEmbedding,
    LearningInsight,
    LearningPattern,
    PromotionStatus,
    ValidationStatus,
)
from design_intel.services import heuristics
from design_intel.services.catalog import CatalogStore
from design_intel.services.learning import ContinuousLearningLoop, should_promote

BUTTON_HTML = "<button class='btn primary'>Start trial</button>"
BUTTON_CSS = ".btn { background: linear-gradient(#fff, #000); border-radius: 8px; }"


def _patch_scores(monkeypatch, aesthetic, uniqueness, performance):
    monkeypatch.setattr(heuristics, "score_aesthetics", lambda html, css: aesthetic)
    monkeypatch.setattr(heuristics, "uniqueness_score", lambda html, css: uniqueness)
    monkeypatch.setattr(heuristics, "assess_performance", lambda html, css, js: performance)


@pytest.fixture
def loop(db, settings):
    return ContinuousLearningLoop(db, settings=settings)


def test_promotion_thresholds():
    assert should_promote(90, 80, 85) is True
    assert should_promote(84, 90, 90) is False
    assert should_promote(85, 70, 80) is True
    assert should_promote(95, 69, 95) is False


def test_onboard_site_upserts_by_id(loop):
    loop.onboard_site({"id": "site_1", "domain": "acme.test", "industry": "SaaS"})
    site = loop.onboard_site({"id": "site_1", "domain": "acme.io", "industry": "saas", "bounce_rate": 40})

    assert site.domain == "acme.io"
    assert site.industry == "saas"
    assert site.bounce_rate == 40
    with pytest.raises(InvalidInputError):
        loop.onboard_site({"domain": "x.test", "industry": "saas", "bounce_rate": 140})


def test_candidate_clearing_every_threshold_is_promoted(db, loop, monkeypatch):
    _patch_scores(monkeypatch, aesthetic=90, uniqueness=80, performance=85)
    loop.onboard_site({"id": "site_1", "domain": "acme.test", "industry": "fintech"})

    candidate = loop.extract_candidate("site_1", BUTTON_HTML, BUTTON_CSS)

    assert candidate.promotion_status == PromotionStatus.promoted
    assert candidate.decided_at is not None
    component = db.get(Component, candidate.promoted_component_id)
    assert component.name == "Extracted Button Component"
    assert component.type == "button"
    assert component.category == "interaction"
    assert component.industries == ["fintech"]
    assert component.usage_count == 0
    assert component.aesthetic_score == 90
    assert db.get(ComponentEmbedding, component.id) is not None
    assert loop.get_site("site_1").components_extracted == 1


def test_candidate_just_below_aesthetic_threshold_stays_candidate(db, loop, monkeypatch):
    _patch_scores(monkeypatch, aesthetic=84, uniqueness=90, performance=90)

    candidate = loop.extract_candidate("site_1", BUTTON_HTML, BUTTON_CSS)

    assert candidate.promotion_status == PromotionStatus.candidate
    assert candidate.promoted_component_id is None
    assert db.query(Component).count() == 0


def test_extract_candidate_scores_cleaned_payload(loop):
    candidate = loop.extract_candidate("site_1", "  <nav class='menu'>\n\n  <a>Home</a></nav>  ", "\t.menu { display: flex; }")

    assert candidate.cleaned_html == "<nav class='menu'>\n<a>Home</a></nav>"
    assert candidate.cleaned_css == ".menu { display: flex; }"
    assert candidate.component_type == "navigation"
    assert 1 <= candidate.aesthetic_score <= 100
    assert 10 <= candidate.performance_score <= 100
    with pytest.raises(InvalidInputError):
        loop.extract_candidate("site_1", "", "  ")


def test_decided_candidates_are_immutable(loop, monkeypatch):
    _patch_scores(monkeypatch, aesthetic=50, uniqueness=50, performance=50)
    rejected = loop.extract_candidate("site_1", BUTTON_HTML, BUTTON_CSS)
    promoted = loop.extract_candidate("site_1", BUTTON_HTML, BUTTON_CSS)

    assert loop.reject_candidate(rejected.id).promotion_status == PromotionStatus.rejected
    component = loop.promote_candidate(promoted.id)
    assert component.industries == []

    with pytest.raises(InvalidTransitionError):
        loop.promote_candidate(rejected.id)
    with pytest.raises(InvalidTransitionError):
        loop.reject_candidate(promoted.id)
    with pytest.raises(InvalidTransitionError):
        loop.promote_candidate(promoted.id)
    with pytest.raises(NotFoundError):
        loop.reject_candidate("ext_missing")


def test_record_performance_recomputes_component_metrics(db, settings, loop, component_data):
    CatalogStore(db, settings).insert_or_update(
        component_data(id="comp_a", type="button", category="interaction", aesthetic_score=70)
    )

    loop.record_performance({"component_id": "comp_a", "site_id": "s1", "placement": "hero", "conversion_impact": 20})
    loop.record_performance({"component_id": "comp_a", "site_id": "s2", "placement": "hero", "conversion_impact": 10})
    loop.record_performance({"component_id": "comp_a", "site_id": "s1", "placement": "footer", "conversion_impact": 0})

    component = db.get(Component, "comp_a")
    assert component.conversion_rate == pytest.approx(15.0)
    assert component.usage_count == 3


def _seed_insight_data(db, settings, loop, component_data):
    catalog = CatalogStore(db, settings)
    for site_id in ("s1", "s2", "s3"):
        loop.onboard_site({"id": site_id, "domain": f"{site_id}.test", "industry": "saas"})
    catalog.insert_or_update(
        component_data(id="comp_btn", type="button", category="interaction", style="gradient", aesthetic_score=88)
    )
    catalog.insert_or_update(
        component_data(id="comp_card", type="card", category="display", style="minimal", aesthetic_score=60)
    )
    for site_id, impact in (("s1", 20), ("s2", 15), ("s3", 12)):
        loop.record_performance(
            {"component_id": "comp_btn", "site_id": site_id, "placement": "hero", "conversion_impact": impact}
        )
    for site_id, placement, impact in (("s1", "hero", 1), ("s2", "hero", 2), ("s3", "footer", -4)):
        loop.record_performance(
            {"component_id": "comp_card", "site_id": site_id, "placement": placement, "conversion_impact": impact}
        )
    # no onboarded site: ignored by the industry analysis
    loop.record_performance(
        {"component_id": "comp_btn", "site_id": "unknown", "placement": "footer", "conversion_impact": 50}
    )


def test_generate_insights_runs_independent_analyses(db, settings, loop, component_data):
    _seed_insight_data(db, settings, loop, component_data)

    insights = loop.generate_insights()
    by_type = {}
    for insight in insights:
        by_type.setdefault(insight.insight_type, []).append(insight)

    industry = by_type["industry_component_performance"]
    assert [i.subject_json for i in industry] == [{"industry": "saas", "component_type": "button"}]
    assert industry[0].confidence_score == 30.0
    assert industry[0].impact_score == pytest.approx(min((47 / 3) * 5, 100))

    under = by_type["underperforming_pattern"]
    assert under[0].subject_json == {"component_type": "card", "style": "minimal"}
    assert under[0].confidence_score == 45.0
    assert under[0].impact_score == pytest.approx(90.0)

    placements = {i.subject_json["component_type"]: i for i in by_type["optimal_placement"]}
    assert placements["button"].subject_json["placement"] == "hero"
    assert "card" not in placements
    assert "trending_pattern" not in by_type
    assert all(0 <= i.confidence_score <= 100 and 0 <= i.impact_score <= 100 for i in insights)
    assert db.query(LearningInsight).count() == 0


def test_records_without_conversion_impact_yield_no_insights(db, settings, loop, component_data):
    CatalogStore(db, settings).insert_or_update(
        component_data(id="comp_btn", type="button", category="interaction", aesthetic_score=70)
    )
    for site_id in ("s1", "s2", "s3"):
        loop.onboard_site({"id": site_id, "domain": f"{site_id}.test", "industry": "saas"})
        loop.record_performance(
            {"component_id": "comp_btn", "site_id": site_id, "placement": "hero", "click_through_rate": 4.2}
        )

    assert loop.generate_insights() == []


class _TripAfter:
    """Event stand-in that reports set once it has been polled ``polls`` times."""

    def __init__(self, polls):
        self.polls = polls

    def is_set(self):
        self.polls -= 1
        return self.polls < 0


def test_insight_generation_can_be_cancelled_before_any_analysis(db, settings, loop, component_data):
    _seed_insight_data(db, settings, loop, component_data)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(AnalysisCancelled, match="industry performance"):
        loop.generate_insights(persist=True, cancel_event=cancel)
    assert db.query(LearningInsight).count() == 0


def test_cancelled_insight_run_persists_nothing(db, settings, loop, component_data):
    _seed_insight_data(db, settings, loop, component_data)

    # four analysis checkpoints pass, the one guarding persistence trips
    with pytest.raises(AnalysisCancelled, match="persistence"):
        loop.generate_insights(persist=True, cancel_event=_TripAfter(4))
    db.rollback()

    assert db.query(LearningInsight).count() == 0
    assert db.query(LearningPattern).count() == 0
    assert loop.generate_insights(cancel_event=threading.Event())


def test_trending_tag_patterns_need_five_strong_samples(db, settings, loop, component_data):
    catalog = CatalogStore(db, settings)
    catalog.insert_or_update(component_data(id="comp_glow", tags=["glow"], aesthetic_score=90))
    for idx in range(5):
        loop.record_performance(
            {"component_id": "comp_glow", "site_id": f"s{idx}", "placement": "hero", "conversion_impact": 20}
        )

    trending = [i for i in loop.generate_insights() if i.insight_type == "trending_pattern"]

    assert [i.subject_json for i in trending] == [{"tag": "glow"}]
    assert trending[0].confidence_score == 25.0
    assert trending[0].impact_score == 80.0


def test_persisted_insights_and_patterns_are_not_duplicated(db, settings, loop, component_data):
    _seed_insight_data(db, settings, loop, component_data)

    first = loop.generate_insights(persist=True)
    count = db.query(LearningInsight).count()
    loop.generate_insights(persist=True)

    assert count == len(first)
    assert db.query(LearningInsight).count() == count
    pattern = db.query(LearningPattern).one()
    assert pattern.pattern_name == "saas:button"
    assert pattern.sites_observed == 3


def test_insight_validation_transitions(db, settings, loop, component_data):
    _seed_insight_data(db, settings, loop, component_data)
    insight = loop.generate_insights(persist=True)[0]

    validated = loop.set_insight_validation(insight.id, "validated")
    assert validated.validation_status == ValidationStatus.validated

    with pytest.raises(InvalidTransitionError):
        loop.set_insight_validation(insight.id, ValidationStatus.rejected)
    with pytest.raises(InvalidInputError):
        loop.set_insight_validation(insight.id, "pending")
    with pytest.raises(NotFoundError):
        loop.set_insight_validation(99999, "validated")

    loop.generate_insights(persist=True)
    assert db.get(LearningInsight, insight.id).validation_status == ValidationStatus.validated


def test_learning_stats(loop, monkeypatch):
    _patch_scores(monkeypatch, aesthetic=95, uniqueness=95, performance=95)
    loop.onboard_site({"id": "site_1", "domain": "acme.test", "industry": "saas"})
    loop.extract_candidate("site_1", BUTTON_HTML, BUTTON_CSS)

    stats = loop.learning_stats()

    assert stats["total_sites"] == 1
    assert stats["total_extracted"] == 1
    assert stats["total_promoted"] == 1
