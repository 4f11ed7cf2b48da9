"""Scheduled batch jobs: trend report and insight refresh.

Both are read-heavy and tolerate concurrent writes; each run reads its
own snapshot through a fresh session. A run that outlives
``batch_job_budget_seconds`` is cancelled at the next analysis boundary,
before the Celery soft time limit hits.
"""
from contextlib import contextmanager
import logging
import threading

from design_intel.config import get_settings
from design_intel.errors import AnalysisCancelled
from design_intel.models.base import get_session_factory
from design_intel.services.learning import ContinuousLearningLoop
from design_intel.services.trends import TrendAnalyzer
from design_intel.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@contextmanager
def _budget(seconds):
    """Yield an event that is set once ``seconds`` have elapsed."""
    cancel_event = threading.Event()
    if seconds <= 0:
        cancel_event.set()
        yield cancel_event
        return
    timer = threading.Timer(seconds, cancel_event.set)
    timer.daemon = True
    timer.start()
    try:
        yield cancel_event
    finally:
        timer.cancel()


@celery_app.task(name="design_intel.workers.tasks.refresh_trend_report")
def refresh_trend_report():
    settings = get_settings()
    db = get_session_factory()()
    try:
        with _budget(settings.batch_job_budget_seconds) as cancel_event:
            report = TrendAnalyzer(db, settings).generate_trend_report(cancel_event=cancel_event)
    except AnalysisCancelled as exc:
        logger.warning("Trend report cancelled: %s", exc)
        return {"cancelled": True}
    finally:
        db.close()
    logger.info(
        "Trend report refreshed: %d top trends, %d breaking",
        len(report["top_trends"]),
        len(report["breaking_trends"]),
    )
    return report


@celery_app.task(name="design_intel.workers.tasks.refresh_learning_insights")
def refresh_learning_insights():
    settings = get_settings()
    db = get_session_factory()()
    try:
        with _budget(settings.batch_job_budget_seconds) as cancel_event:
            insights = ContinuousLearningLoop(db, settings=settings).generate_insights(
                persist=True, cancel_event=cancel_event
            )
        return {
            "insights": len(insights),
            "by_type": _count_by_type(insights),
        }
    except AnalysisCancelled as exc:
        db.rollback()
        logger.warning("Insight refresh cancelled: %s", exc)
        return {"cancelled": True}
    finally:
        db.close()


def _count_by_type(insights):
    counts = {}
    for insight in insights:
        counts[insight.insight_type] = counts.get(insight.insight_type, 0) + 1
    return counts
