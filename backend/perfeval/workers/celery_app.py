from celery import Celery
from perfeval.config import get_settings

settings = get_settings()

celery_app = Celery(
    "perfeval",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["perfeval.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes max per task
    task_soft_time_limit=540,  # Soft limit at 9 minutes
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "perfeval.workers.tasks.validate_evaluation_line_mappings": {"queue": "evaluation.maintenance"},
    },
)

if settings.line_validation_enabled:
    celery_app.conf.beat_schedule = {
        "validate-evaluation-line-mappings": {
            "task": "perfeval.workers.tasks.validate_evaluation_line_mappings",
            "schedule": float(settings.line_validation_interval_seconds),
            "kwargs": {"perform_cleanup": True},
        },
    }
