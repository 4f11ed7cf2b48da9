from celery import Celery

from design_intel.config import get_settings

settings = get_settings()

celery_app = Celery(
    "design_intel",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["design_intel.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes max per task
    task_soft_time_limit=540,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "refresh-trend-report": {
            "task": "design_intel.workers.tasks.refresh_trend_report",
            "schedule": float(settings.trend_refresh_minutes) * 60.0,
        },
        "refresh-learning-insights": {
            "task": "design_intel.workers.tasks.refresh_learning_insights",
            "schedule": float(settings.trend_refresh_minutes) * 60.0,
        },
    },
)
