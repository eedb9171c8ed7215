"""Celery worker configuration."""

from celery import Celery

from scene_engine.config import settings
from scene_engine.logging import setup_logging

# Setup logging before anything else
setup_logging()

# Create Celery app
celery_app = Celery(
    "scene_engine",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # submission retries included
    task_soft_time_limit=270,
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
    # Result backend
    result_expires=3600,
    # Task routing
    task_routes={
        "scenes.submit_job": {"queue": "generation"},
        "scenes.poll_job": {"queue": "generation"},
        "scenes.purge_deleted": {"queue": "default"},
        "scenes.purge_expired": {"queue": "default"},
        "scenes.expire_stale_jobs": {"queue": "default"},
        "events.deliver": {"queue": "low"},
    },
    # Beat scheduler (for periodic sweeps)
    beat_schedule={
        # Hard-delete scenes whose undo window passed without a scheduled purge
        "purge-expired-scenes": {
            "task": "scenes.purge_expired",
            "schedule": settings.sweep_interval_seconds,
            "options": {"queue": "default"},
        },
        # Fail jobs past their deadline and re-dispatch stuck queued scenes
        "expire-stale-jobs": {
            "task": "scenes.expire_stale_jobs",
            "schedule": settings.sweep_interval_seconds,
            "options": {"queue": "default"},
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["scene_engine.jobs"], related_name="scene_tasks")
