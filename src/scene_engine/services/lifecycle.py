"""Scene record and its status state machine.

Every transition is a single conditional UPDATE on the expected current state
(``WHERE id = ? AND status IN (...) AND deleted_at IS NULL``). A write that
matches no row is reported as NotFoundError when the scene is gone or
soft-deleted, and as ConflictError when it exists in another state.
"""

from collections.abc import Generator, Iterable
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from scene_engine.config import settings
from scene_engine.db.models import SceneModel
from scene_engine.db.session import get_session_context
from scene_engine.domain.enums import SCENE_TRANSITIONS, JobStatus, SceneStatus
from scene_engine.domain.errors import ConflictError, NotFoundError
from scene_engine.domain.models import Scene
from scene_engine.logging import get_logger
from scene_engine.services.ordinals import OrdinalAllocator, is_ordinal_conflict
from scene_engine.utils import as_utc, utcnow

logger = get_logger(__name__)

# Job fields cleared whenever a scene goes back to the queue
_RESET_JOB_FIELDS: dict[str, Any] = {
    "external_job_id": None,
    "external_job_status": None,
    "external_job_error": None,
    "submit_attempts": 0,
}


def scene_from_model(model: SceneModel) -> Scene:
    """Snapshot an ORM row as an immutable domain object."""
    return Scene(
        id=model.id,
        project_id=model.project_id,
        user_id=model.user_id,
        folder_id=model.folder_id,
        start_frame_key=model.start_frame_key,
        end_frame_key=model.end_frame_key,
        shot_type=model.shot_type,
        ordinal=model.ordinal,
        status=SceneStatus(model.status),
        current_version=model.current_version,
        version_count=model.version_count,
        external_job_id=model.external_job_id,
        external_job_status=(
            JobStatus(model.external_job_status) if model.external_job_status else None
        ),
        external_job_error=model.external_job_error,
        submit_attempts=model.submit_attempts,
        status_changed_at=as_utc(model.status_changed_at),
        deleted_at=as_utc(model.deleted_at),
        created_at=as_utc(model.created_at),
        updated_at=as_utc(model.updated_at),
    )


class SceneLifecycleStore:
    """Owns scene rows; all mutations are compare-and-set."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        allocator: OrdinalAllocator | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.allocator = allocator or OrdinalAllocator(session_factory)

    @contextmanager
    def _unit(self, session: Session | None) -> Generator[Session, None, None]:
        """Join the caller's transaction, or run a new one."""
        if session is not None:
            yield session
            return
        with get_session_context(self.session_factory) as own:
            yield own

    def _load(self, session: Session, scene_id: UUID, include_deleted: bool = False) -> SceneModel:
        query = (
            select(SceneModel)
            .where(SceneModel.id == scene_id)
            .execution_options(populate_existing=True)
        )
        model = session.scalars(query).one_or_none()
        if model is None or (model.deleted_at is not None and not include_deleted):
            raise NotFoundError("Scene", scene_id)
        return model

    def _compare_and_set(
        self,
        session: Session,
        scene_id: UUID,
        expected: Iterable[SceneStatus],
        values: dict[str, Any],
        *guards: ColumnElement[bool],
    ) -> Scene:
        expected = tuple(expected)
        result = session.execute(
            update(SceneModel)
            .where(
                SceneModel.id == scene_id,
                SceneModel.status.in_([s.value for s in expected]),
                SceneModel.deleted_at.is_(None),
                *guards,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = self._load(session, scene_id)
            logger.info(
                "scene_transition_conflict",
                scene_id=str(scene_id),
                expected=[s.value for s in expected],
                current=current.status,
            )
            raise ConflictError(
                f"Scene {scene_id} is {current.status}, expected one of "
                f"{', '.join(s.value for s in expected)}",
                current_status=current.status,
            )
        return scene_from_model(self._load(session, scene_id))

    @staticmethod
    def _check_edge(expected: Iterable[SceneStatus], target: SceneStatus) -> None:
        for status in expected:
            if target not in SCENE_TRANSITIONS[status]:
                raise ValueError(f"Illegal scene transition {status} -> {target}")

    # ------------------------------------------------------------------
    # Creation and reads
    # ------------------------------------------------------------------

    def create(
        self,
        project_id: UUID,
        user_id: UUID,
        start_frame_key: str,
        shot_type: str,
        end_frame_key: str | None = None,
        folder_id: str | None = None,
        now: datetime | None = None,
    ) -> Scene:
        """Insert a queued scene at the next ordinal of its project."""
        now = now or utcnow()

        def write_row(session: Session, ordinal: int) -> Scene:
            model = SceneModel(
                project_id=project_id,
                user_id=user_id,
                folder_id=folder_id,
                start_frame_key=start_frame_key,
                end_frame_key=end_frame_key,
                shot_type=shot_type,
                ordinal=ordinal,
                current_version=1,
                version_count=0,
                status=SceneStatus.QUEUED.value,
                status_changed_at=now,
                submit_attempts=0,
            )
            session.add(model)
            session.flush()
            session.refresh(model)
            return scene_from_model(model)

        scene = self.allocator.allocate(project_id, write_row)
        logger.info(
            "scene_created",
            scene_id=str(scene.id),
            project_id=str(project_id),
            ordinal=scene.ordinal,
        )
        return scene

    def get(
        self,
        scene_id: UUID,
        include_deleted: bool = False,
        session: Session | None = None,
    ) -> Scene:
        with self._unit(session) as s:
            return scene_from_model(self._load(s, scene_id, include_deleted=include_deleted))

    def find_by_job_id(self, job_id: str) -> Scene | None:
        """Scene currently or last attached to an external job, deleted or not."""
        with self._unit(None) as session:
            model = session.scalars(
                select(SceneModel).where(SceneModel.external_job_id == job_id).limit(1)
            ).first()
            return scene_from_model(model) if model else None

    def list_for_project(self, project_id: UUID) -> list[Scene]:
        """Live scenes of a project in ordinal order."""
        with self._unit(None) as session:
            models = session.scalars(
                select(SceneModel)
                .where(SceneModel.project_id == project_id, SceneModel.deleted_at.is_(None))
                .order_by(SceneModel.ordinal)
            ).all()
            return [scene_from_model(m) for m in models]

    def list_stale(self, status: SceneStatus, changed_before: datetime) -> list[Scene]:
        """Live scenes that have been in ``status`` since before the cutoff."""
        with self._unit(None) as session:
            models = session.scalars(
                select(SceneModel)
                .where(
                    SceneModel.status == status.value,
                    SceneModel.deleted_at.is_(None),
                    SceneModel.status_changed_at <= changed_before,
                )
                .order_by(SceneModel.status_changed_at)
            ).all()
            return [scene_from_model(m) for m in models]

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def claim_for_submission(self, scene_id: UUID, now: datetime | None = None) -> Scene:
        """queued -> processing, with a fresh pending job slot."""
        self._check_edge([SceneStatus.QUEUED], SceneStatus.PROCESSING)
        with self._unit(None) as session:
            return self._compare_and_set(
                session,
                scene_id,
                [SceneStatus.QUEUED],
                {
                    **_RESET_JOB_FIELDS,
                    "status": SceneStatus.PROCESSING.value,
                    "external_job_status": JobStatus.PENDING.value,
                    "status_changed_at": now or utcnow(),
                },
            )

    def record_job_id(self, scene_id: UUID, job_id: str, attempts: int) -> Scene:
        """Attach the provider's job id to a claimed scene."""
        with self._unit(None) as session:
            return self._compare_and_set(
                session,
                scene_id,
                [SceneStatus.PROCESSING],
                {"external_job_id": job_id, "submit_attempts": attempts},
                SceneModel.external_job_id.is_(None),
            )

    def record_job_progress(self, scene_id: UUID, job_id: str, job_status: JobStatus) -> Scene:
        """Mirror a non-terminal provider status onto the scene."""
        with self._unit(None) as session:
            return self._compare_and_set(
                session,
                scene_id,
                [SceneStatus.PROCESSING],
                {"external_job_status": job_status.value},
                SceneModel.external_job_id == job_id,
            )

    def mark_ready(
        self,
        session: Session,
        scene_id: UUID,
        job_id: str,
        now: datetime | None = None,
    ) -> Scene:
        """processing -> ready for the job that is still current.

        Runs inside the caller's transaction so the version append commits
        with it.
        """
        self._check_edge([SceneStatus.PROCESSING], SceneStatus.READY)
        return self._compare_and_set(
            session,
            scene_id,
            [SceneStatus.PROCESSING],
            {
                "status": SceneStatus.READY.value,
                "external_job_status": JobStatus.COMPLETED.value,
                "external_job_error": None,
                "status_changed_at": now or utcnow(),
            },
            SceneModel.external_job_id == job_id,
        )

    def mark_error(
        self,
        scene_id: UUID,
        reason: str,
        job_id: str | None = None,
        now: datetime | None = None,
        session: Session | None = None,
    ) -> Scene:
        """processing -> error, recording why.

        With ``job_id`` the write only applies while that job is current.
        """
        self._check_edge([SceneStatus.PROCESSING], SceneStatus.ERROR)
        guards = [SceneModel.external_job_id == job_id] if job_id is not None else []
        with self._unit(session) as s:
            scene = self._compare_and_set(
                s,
                scene_id,
                [SceneStatus.PROCESSING],
                {
                    "status": SceneStatus.ERROR.value,
                    "external_job_status": JobStatus.FAILED.value,
                    "external_job_error": reason or "unknown error",
                    "status_changed_at": now or utcnow(),
                },
                *guards,
            )
        logger.info("scene_marked_error", scene_id=str(scene_id), job_id=job_id, reason=reason)
        return scene

    def requeue(
        self,
        scene_id: UUID,
        expected: Iterable[SceneStatus] = (SceneStatus.READY, SceneStatus.ERROR),
        now: datetime | None = None,
    ) -> Scene:
        """ready|error -> queued; job fields reset, versions kept."""
        expected = tuple(expected)
        self._check_edge(expected, SceneStatus.QUEUED)
        with self._unit(None) as session:
            return self._compare_and_set(
                session,
                scene_id,
                expected,
                {
                    **_RESET_JOB_FIELDS,
                    "status": SceneStatus.QUEUED.value,
                    "status_changed_at": now or utcnow(),
                },
            )

    def update_frames(
        self,
        scene_id: UUID,
        start_frame_key: str | None = None,
        end_frame_key: str | None = None,
    ) -> Scene:
        """Replace frame keys while no generation is running."""
        values: dict[str, Any] = {}
        if start_frame_key is not None:
            values["start_frame_key"] = start_frame_key
        if end_frame_key is not None:
            values["end_frame_key"] = end_frame_key
        with self._unit(None) as session:
            if not values:
                return scene_from_model(self._load(session, scene_id))
            return self._compare_and_set(
                session,
                scene_id,
                [SceneStatus.QUEUED, SceneStatus.READY, SceneStatus.ERROR],
                values,
            )

    # ------------------------------------------------------------------
    # Soft delete, restore and purge
    # ------------------------------------------------------------------

    def soft_delete(self, scene_id: UUID, now: datetime | None = None) -> Scene:
        """Hide a live scene; status and job fields are left untouched."""
        now = now or utcnow()
        with self._unit(None) as session:
            result = session.execute(
                update(SceneModel)
                .where(SceneModel.id == scene_id, SceneModel.deleted_at.is_(None))
                .values(deleted_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError("Scene", scene_id)
            scene = scene_from_model(self._load(session, scene_id, include_deleted=True))
        logger.info("scene_soft_deleted", scene_id=str(scene_id), ordinal=scene.ordinal)
        return scene

    def restore(
        self,
        scene_id: UUID,
        now: datetime | None = None,
        undo_window: timedelta | None = None,
    ) -> Scene:
        """Reverse a soft delete made within the undo window.

        If a scene created meanwhile took the old ordinal, the restored scene
        moves to the next free one.

        Raises:
            NotFoundError: If the scene is missing, not deleted, or past the window
        """
        now = now or utcnow()
        window = undo_window or timedelta(seconds=settings.undo_window_seconds)
        earliest = now - window

        def restore_row(session: Session, ordinal: int | None = None) -> Scene:
            values: dict[str, Any] = {"deleted_at": None}
            if ordinal is not None:
                values["ordinal"] = ordinal
            result = session.execute(
                update(SceneModel)
                .where(
                    SceneModel.id == scene_id,
                    SceneModel.deleted_at.is_not(None),
                    SceneModel.deleted_at >= earliest,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError("Scene", scene_id)
            session.flush()
            return scene_from_model(self._load(session, scene_id))

        try:
            with self._unit(None) as session:
                scene = restore_row(session)
        except IntegrityError as e:
            if not is_ordinal_conflict(e):
                raise
            project_id = self.get(scene_id, include_deleted=True).project_id
            scene = self.allocator.allocate(project_id, restore_row)
            logger.info(
                "scene_restored_with_new_ordinal",
                scene_id=str(scene_id),
                ordinal=scene.ordinal,
            )

        logger.info("scene_restored", scene_id=str(scene_id), ordinal=scene.ordinal)
        return scene

    def list_purgeable(self, deleted_before: datetime) -> list[UUID]:
        with self._unit(None) as session:
            return list(
                session.scalars(
                    select(SceneModel.id).where(
                        SceneModel.deleted_at.is_not(None),
                        SceneModel.deleted_at <= deleted_before,
                    )
                ).all()
            )

    def purge(self, scene_id: UUID, deleted_before: datetime) -> bool:
        """Hard-delete a scene soft-deleted before the cutoff.

        Versions go with it through the foreign key cascade.

        Returns:
            True if the row was removed
        """
        with self._unit(None) as session:
            result = session.execute(
                delete(SceneModel)
                .where(
                    SceneModel.id == scene_id,
                    SceneModel.deleted_at.is_not(None),
                    SceneModel.deleted_at <= deleted_before,
                )
                .execution_options(synchronize_session=False)
            )
            purged = result.rowcount > 0
        if purged:
            logger.info("scene_purged", scene_id=str(scene_id))
        return purged
