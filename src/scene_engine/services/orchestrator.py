"""Scene orchestration facade.

Every collaborator (HTTP routes, CLI, Celery tasks) goes through
``SceneOrchestrator``. Operations return once the state change is committed;
generation work is handed to the dispatcher.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from scene_engine.config import settings
from scene_engine.domain.enums import EventType, ExportFormat, SceneStatus
from scene_engine.domain.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from scene_engine.domain.models import (
    Caller,
    Event,
    ExportEntry,
    ExportManifest,
    Project,
    Scene,
    SceneVersion,
    SignedUrl,
)
from scene_engine.logging import get_logger
from scene_engine.presets.shot_types import DEFAULT_SHOT_TYPE, get_shot_type
from scene_engine.services.dispatch import JobDispatcher
from scene_engine.services.events import EventSink
from scene_engine.services.job_tracker import JobTracker
from scene_engine.services.lifecycle import SceneLifecycleStore
from scene_engine.services.projects import ProjectStore
from scene_engine.services.signed_urls import SignedUrlCache
from scene_engine.services.versions import VersionStore
from scene_engine.utils import utcnow

logger = get_logger(__name__)


def _require_key(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value.strip()


class SceneOrchestrator:
    """Entry point for scene creation, regeneration, deletion and reads."""

    def __init__(
        self,
        projects: ProjectStore,
        lifecycle: SceneLifecycleStore,
        versions: VersionStore,
        tracker: JobTracker,
        url_cache: SignedUrlCache,
        dispatcher: JobDispatcher,
        events: EventSink,
        undo_window_seconds: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.projects = projects
        self.lifecycle = lifecycle
        self.versions = versions
        self.tracker = tracker
        self.url_cache = url_cache
        self.dispatcher = dispatcher
        self.events = events
        self.undo_window = timedelta(
            seconds=undo_window_seconds
            if undo_window_seconds is not None
            else settings.undo_window_seconds
        )
        self._clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_active(caller: Caller) -> None:
        if not caller.is_active:
            raise PermissionDeniedError(caller.user_id, caller.status)

    def _owned_project(self, caller: Caller, project_id: UUID) -> Project:
        self._require_active(caller)
        project = self.projects.get(project_id)
        if project.user_id != caller.user_id:
            raise NotFoundError("Project", project_id)
        return project

    def _owned_scene(self, caller: Caller, scene_id: UUID, include_deleted: bool = False) -> Scene:
        self._require_active(caller)
        scene = self.lifecycle.get(scene_id, include_deleted=include_deleted)
        if scene.user_id != caller.user_id:
            raise NotFoundError("Scene", scene_id)
        return scene

    def _emit(self, event_type: EventType, scene: Scene, **properties: Any) -> None:
        self.events.emit(
            Event(
                type=event_type,
                user_id=scene.user_id,
                occurred_at=self._clock(),
                properties={"scene_id": scene.id, "project_id": scene.project_id, **properties},
            )
        )

    def _dispatch(self, action: str, scene_id: UUID, call: Callable[[], None]) -> None:
        """Run a dispatcher call after the state change has committed.

        Work lost here is picked up again by the periodic sweeps.
        """
        try:
            call()
        except Exception as e:
            logger.error(
                "scene_dispatch_failed", action=action, scene_id=str(scene_id), error=str(e)
            )

    def _dispatch_submit(self, scene: Scene) -> None:
        self._dispatch("submit", scene.id, lambda: self.dispatcher.submit(scene.id))

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def create_project(self, caller: Caller, name: str) -> Project:
        self._require_active(caller)
        return self.projects.create(caller.user_id, name)

    async def list_projects(self, caller: Caller) -> list[Project]:
        self._require_active(caller)
        return self.projects.list_for_user(caller.user_id)

    # ------------------------------------------------------------------
    # Scene writes
    # ------------------------------------------------------------------

    async def create_scene(
        self,
        caller: Caller,
        project_id: UUID,
        start_frame_key: str,
        end_frame_key: str | None = None,
        shot_type: str = DEFAULT_SHOT_TYPE,
        folder_id: str | None = None,
    ) -> Scene:
        """Create a queued scene at the end of the project and queue its generation.

        Raises:
            ValidationError: Missing start frame or unknown shot type
            NotFoundError: Project missing or owned by someone else
            ConflictError: Ordinal contention did not settle
        """
        self._require_active(caller)
        start = _require_key(start_frame_key, "start_frame_key")
        end = end_frame_key.strip() if end_frame_key and end_frame_key.strip() else None
        shot = get_shot_type(shot_type or DEFAULT_SHOT_TYPE)
        self._owned_project(caller, project_id)

        scene = self.lifecycle.create(
            project_id=project_id,
            user_id=caller.user_id,
            start_frame_key=start,
            end_frame_key=end,
            shot_type=shot.name,
            folder_id=folder_id,
            now=self._clock(),
        )
        self._emit(EventType.SCENE_CREATED, scene, ordinal=scene.ordinal, shot_type=shot.name)
        self._dispatch_submit(scene)
        return scene

    async def regenerate(self, caller: Caller, scene_id: UUID) -> Scene:
        """Queue a new generation for a ready or failed scene.

        A scene whose job outlived its deadline is failed first; one with a
        live job is rejected.
        """
        scene = self._owned_scene(caller, scene_id)
        now = self._clock()

        if scene.status == SceneStatus.PROCESSING:
            if not self.tracker.is_past_deadline(scene, now):
                raise ConflictError(
                    f"Scene {scene_id} already has a job in flight",
                    current_status=scene.status,
                )
            await self.tracker.expire(scene, now)

        queued = self.lifecycle.requeue(scene_id, now=now)
        self._emit(
            EventType.SCENE_REGENERATED,
            queued,
            previous_version=queued.version_count,
            shot_type=queued.shot_type,
        )
        self._dispatch_submit(queued)
        return queued

    async def update_frames(
        self,
        caller: Caller,
        scene_id: UUID,
        start_frame_key: str | None = None,
        end_frame_key: str | None = None,
    ) -> Scene:
        """Replace a scene's frames; rejected while a generation is running."""
        if start_frame_key is None and end_frame_key is None:
            raise ValidationError("Nothing to update: give a start or end frame")
        start = end = None
        if start_frame_key is not None:
            start = _require_key(start_frame_key, "start_frame_key")
        if end_frame_key is not None:
            end = _require_key(end_frame_key, "end_frame_key")

        self._owned_scene(caller, scene_id)
        scene = self.lifecycle.update_frames(scene_id, start_frame_key=start, end_frame_key=end)
        logger.info("scene_frames_updated", scene_id=str(scene_id))
        return scene

    async def delete(self, caller: Caller, scene_id: UUID) -> Scene:
        """Soft-delete a scene and schedule its hard delete after the undo window."""
        self._owned_scene(caller, scene_id)
        now = self._clock()
        deleted = self.lifecycle.soft_delete(scene_id, now=now)
        deleted_at = deleted.deleted_at or now

        self._dispatch(
            "schedule_purge",
            scene_id,
            lambda: self.dispatcher.schedule_purge(
                scene_id, deleted_at, countdown=self.undo_window.total_seconds()
            ),
        )

        self._emit(EventType.SCENE_DELETED, deleted, ordinal=deleted.ordinal)
        return deleted

    async def restore(self, caller: Caller, scene_id: UUID) -> Scene:
        """Undo a soft delete within the undo window.

        Raises:
            NotFoundError: Scene unknown, not deleted, or past the window
        """
        scene = self._owned_scene(caller, scene_id, include_deleted=True)
        if scene.deleted_at is None:
            raise NotFoundError("Deleted scene", scene_id)

        restored = self.lifecycle.restore(scene_id, now=self._clock(), undo_window=self.undo_window)

        deleted_at = scene.deleted_at
        # A purge that still runs finds deleted_at cleared and removes nothing
        self._dispatch(
            "cancel_purge", scene_id, lambda: self.dispatcher.cancel_purge(scene_id, deleted_at)
        )

        job_id = restored.external_job_id
        if restored.status == SceneStatus.QUEUED:
            # A submission that ran while the scene was deleted was skipped
            self._dispatch_submit(restored)
        elif restored.status == SceneStatus.PROCESSING and job_id:
            self._dispatch(
                "schedule_poll",
                scene_id,
                lambda: self.dispatcher.schedule_poll(scene_id, job_id, countdown=0),
            )

        self._emit(EventType.SCENE_RESTORED, restored, ordinal=restored.ordinal)
        return restored

    async def purge_scene(self, scene_id: UUID, now: datetime | None = None) -> bool:
        """Hard-delete one scene whose undo window has passed."""
        try:
            scene = self.lifecycle.get(scene_id, include_deleted=True)
        except NotFoundError:
            return False

        cutoff = (now or self._clock()) - self.undo_window
        purged = self.lifecycle.purge(scene_id, deleted_before=cutoff)
        if purged:
            self._emit(EventType.SCENE_PURGED, scene, ordinal=scene.ordinal)
        return purged

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Hard-delete every soft-deleted scene past the undo window.

        Returns:
            Number of scenes removed
        """
        now = now or self._clock()
        purged = 0
        for scene_id in self.lifecycle.list_purgeable(now - self.undo_window):
            if await self.purge_scene(scene_id, now=now):
                purged += 1
        if purged:
            logger.info("expired_scenes_purged", count=purged)
        return purged

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_scene(self, caller: Caller, scene_id: UUID) -> Scene:
        return self._owned_scene(caller, scene_id)

    async def list_scenes(self, caller: Caller, project_id: UUID) -> list[Scene]:
        self._owned_project(caller, project_id)
        return self.lifecycle.list_for_project(project_id)

    async def list_versions(self, caller: Caller, scene_id: UUID) -> list[SceneVersion]:
        self._owned_scene(caller, scene_id)
        return self.versions.list_versions(scene_id)

    async def frame_urls(self, caller: Caller, scene_id: UUID) -> dict[str, SignedUrl]:
        """Signed URLs for the scene's frames, keyed ``start`` and ``end``."""
        scene = self._owned_scene(caller, scene_id)
        keys = {"start": scene.start_frame_key}
        if scene.end_frame_key:
            keys["end"] = scene.end_frame_key
        signed = await self.url_cache.get_urls(keys.values())
        return {role: signed[key] for role, key in keys.items()}

    async def media_url(
        self, caller: Caller, scene_id: UUID, version: int | None = None
    ) -> SignedUrl:
        """Signed URL for a version's media (the current one by default)."""
        scene = self._owned_scene(caller, scene_id)
        if scene.version_count == 0:
            raise NotFoundError("SceneVersion", f"{scene_id}@{version or scene.current_version}")
        record = self.versions.get_version(scene_id, version or scene.current_version)
        if not record.media_ref:
            raise NotFoundError("Media", f"{scene_id}@{record.version}")
        return await self.url_cache.get_url(record.media_ref)

    async def export(
        self,
        caller: Caller,
        project_id: UUID,
        format: ExportFormat = ExportFormat.MP4,
    ) -> ExportManifest:
        """Manifest of signed media URLs for the project's ready scenes, by ordinal."""
        self._owned_project(caller, project_id)
        scenes = [
            s for s in self.lifecycle.list_for_project(project_id) if s.status == SceneStatus.READY
        ]

        current: list[tuple[Scene, SceneVersion]] = []
        for scene in scenes:
            record = self.versions.get_version(scene.id, scene.current_version)
            if record.media_ref:
                current.append((scene, record))

        signed = await self.url_cache.get_urls(record.media_ref for _, record in current)
        manifest = ExportManifest(
            project_id=project_id,
            format=format,
            generated_at=self._clock(),
            entries=[
                ExportEntry(
                    scene_id=scene.id,
                    ordinal=scene.ordinal,
                    version=record.version,
                    shot_type=scene.shot_type,
                    media_ref=record.media_ref,
                    url=signed[record.media_ref].url,
                    expires_at=signed[record.media_ref].expires_at,
                )
                for scene, record in current
                if record.media_ref
            ],
        )

        self.events.emit(
            Event(
                type=EventType.SCENE_EXPORT,
                user_id=caller.user_id,
                occurred_at=manifest.generated_at,
                properties={
                    "project_id": project_id,
                    "format": format.value,
                    "scene_count": manifest.scene_count,
                },
            )
        )
        return manifest
