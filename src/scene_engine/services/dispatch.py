"""Hand-off of scene work to background workers."""

from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from scene_engine.logging import get_logger

logger = get_logger(__name__)


def purge_task_id(scene_id: UUID, deleted_at: datetime) -> str:
    """Stable id of the hard-delete task for one soft delete of a scene."""
    return f"scene-purge:{scene_id}:{deleted_at.isoformat()}"


class JobDispatcher(ABC):
    """Schedules submission, polling and purge work for scenes."""

    @abstractmethod
    def submit(self, scene_id: UUID) -> None:
        """Queue submission of a queued scene to the generation service."""
        ...

    @abstractmethod
    def schedule_poll(self, scene_id: UUID, job_id: str, countdown: float) -> None:
        """Queue a status check of ``job_id`` after ``countdown`` seconds."""
        ...

    @abstractmethod
    def schedule_purge(self, scene_id: UUID, deleted_at: datetime, countdown: float) -> None:
        """Queue the hard delete of a soft-deleted scene."""
        ...

    @abstractmethod
    def cancel_purge(self, scene_id: UUID, deleted_at: datetime) -> None:
        """Revoke a scheduled hard delete."""
        ...


class CeleryJobDispatcher(JobDispatcher):
    """Dispatches to the Celery tasks in ``scene_engine.jobs.scene_tasks``."""

    def submit(self, scene_id: UUID) -> None:
        from scene_engine.jobs.scene_tasks import submit_job_task

        result = submit_job_task.delay(str(scene_id))
        logger.info("scene_submit_queued", scene_id=str(scene_id), task_id=result.id)

    def schedule_poll(self, scene_id: UUID, job_id: str, countdown: float) -> None:
        from scene_engine.jobs.scene_tasks import poll_job_task

        poll_job_task.apply_async(args=[str(scene_id), job_id], countdown=countdown)

    def schedule_purge(self, scene_id: UUID, deleted_at: datetime, countdown: float) -> None:
        from scene_engine.jobs.scene_tasks import purge_deleted_task

        task_id = purge_task_id(scene_id, deleted_at)
        purge_deleted_task.apply_async(
            args=[str(scene_id)],
            countdown=countdown,
            task_id=task_id,
        )
        logger.info("scene_purge_scheduled", scene_id=str(scene_id), task_id=task_id)

    def cancel_purge(self, scene_id: UUID, deleted_at: datetime) -> None:
        from scene_engine.worker import celery_app

        task_id = purge_task_id(scene_id, deleted_at)
        celery_app.control.revoke(task_id)
        logger.info("scene_purge_revoked", scene_id=str(scene_id), task_id=task_id)
