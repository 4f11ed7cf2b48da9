import pytest

from design_intel.models import LearningInsight
from design_intel.workers import tasks


@pytest.fixture
def run_with(db, monkeypatch):
    def _configure(settings):
        monkeypatch.setattr(tasks, "get_settings", lambda: settings)
        monkeypatch.setattr(tasks, "get_session_factory", lambda: lambda: db)

    return _configure


def test_spent_budget_cancels_insight_refresh(db, settings, run_with):
    run_with(settings.model_copy(update={"batch_job_budget_seconds": 0}))

    assert tasks.refresh_learning_insights() == {"cancelled": True}
    assert db.query(LearningInsight).count() == 0


def test_spent_budget_cancels_trend_report(settings, run_with):
    run_with(settings.model_copy(update={"batch_job_budget_seconds": 0}))

    assert tasks.refresh_trend_report() == {"cancelled": True}


def test_refresh_within_budget_completes(settings, run_with):
    run_with(settings.model_copy(update={"batch_job_budget_seconds": 60}))

    assert tasks.refresh_learning_insights() == {"insights": 0, "by_type": {}}
    assert "summary" in tasks.refresh_trend_report()
