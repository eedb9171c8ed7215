"""Celery tasks for scene generation, polling and cleanup.

Tasks are thin: they resolve the process-wide orchestrator and run its async
operations through ``run_async``. Domain errors that retrying cannot fix are
logged and reported in the task result instead of failing the task.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.exc import OperationalError

from scene_engine.domain.errors import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
)
from scene_engine.logging import bound_context, get_logger
from scene_engine.services.events import deliver_event
from scene_engine.services.factory import get_job_tracker, get_orchestrator
from scene_engine.utils import run_async
from scene_engine.worker import celery_app

logger = get_logger(__name__)


@celery_app.task(
    bind=True,
    name="scenes.submit_job",
    max_retries=3,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_backoff_max=60,
)
def submit_job_task(self: Any, scene_id: str) -> dict[str, Any]:
    """Submit a queued scene to the generation service.

    Args:
        scene_id: UUID of the queued scene

    Returns:
        Dict with the outcome and, on success, the external job id
    """
    task_id = self.request.id
    tracker = get_job_tracker()

    with bound_context(scene_id=scene_id, task_id=task_id):
        logger.info("submit_job_started")
        try:
            job_id = run_async(tracker.submit(UUID(scene_id)))
        except (ConflictError, NotFoundError) as e:
            logger.info("submit_job_skipped", reason=str(e))
            return {"success": False, "scene_id": scene_id, "status": "skipped", "reason": str(e)}
        except ExternalServiceError as e:
            # Retries are exhausted and the scene is already in error
            return {"success": False, "scene_id": scene_id, "status": "failed", "reason": str(e)}

        return {"success": True, "scene_id": scene_id, "job_id": job_id}


@celery_app.task(
    bind=True,
    name="scenes.poll_job",
    max_retries=5,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_backoff_max=60,
)
def poll_job_task(self: Any, scene_id: str, job_id: str) -> dict[str, Any]:
    """Check an in-flight job once and reschedule while it is still running."""
    tracker = get_job_tracker()

    with bound_context(scene_id=scene_id, job_id=job_id):
        keep_polling = run_async(tracker.poll(UUID(scene_id), job_id))
        if keep_polling:
            tracker.dispatcher.schedule_poll(
                UUID(scene_id), job_id, countdown=tracker.poll_interval_seconds
            )
        else:
            logger.info("poll_job_finished")

    return {"scene_id": scene_id, "job_id": job_id, "polling": keep_polling}


@celery_app.task(
    bind=True,
    name="scenes.purge_deleted",
    max_retries=3,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
)
def purge_deleted_task(self: Any, scene_id: str) -> dict[str, Any]:
    """Hard-delete a scene once its undo window has passed.

    A scene restored in the meantime is left alone.
    """
    purged = run_async(get_orchestrator().purge_scene(UUID(scene_id)))
    logger.info("purge_deleted_finished", scene_id=scene_id, purged=purged)
    return {"scene_id": scene_id, "purged": purged}


@celery_app.task(bind=True, name="scenes.purge_expired")
def purge_expired_task(self: Any) -> dict[str, Any]:
    """Periodic sweep for soft-deleted scenes past the undo window."""
    count = run_async(get_orchestrator().purge_expired())
    return {"purged": count}


@celery_app.task(bind=True, name="scenes.expire_stale_jobs")
def expire_stale_jobs_task(self: Any) -> dict[str, Any]:
    """Periodic sweep: fail timed-out jobs and re-dispatch stuck queued scenes."""
    tracker = get_job_tracker()
    result = run_async(tracker.expire_stale())

    for scene_id in result.stuck_queued:
        logger.info("stuck_scene_redispatched", scene_id=str(scene_id))
        tracker.dispatcher.submit(scene_id)

    return {
        "expired": [str(s) for s in result.expired],
        "redispatched": [str(s) for s in result.stuck_queued],
    }


@celery_app.task(bind=True, name="events.deliver", max_retries=3)
def deliver_event_task(self: Any, payload: dict[str, Any], webhook_url: str) -> dict[str, Any]:
    """Deliver one analytics event to the webhook; dropped after the last retry."""
    delivered = run_async(deliver_event(payload, webhook_url))
    if not delivered:
        if self.request.retries < self.max_retries:
            raise self.retry(countdown=30 * (self.request.retries + 1))
        logger.warning("event_dropped", event_type=payload.get("type"))
    return {"delivered": delivered, "event_type": payload.get("type")}
