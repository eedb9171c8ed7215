"""Append-only, gapless version log per scene.

A version row and the scene's version counter advance together: the append is
a compare-and-set on ``version_count`` followed by the insert, both in the
caller's transaction.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from scene_engine.db.models import SceneModel, SceneVersionModel
from scene_engine.db.session import get_session_context
from scene_engine.domain.errors import ConflictError, NotFoundError
from scene_engine.domain.models import SceneVersion
from scene_engine.logging import get_logger
from scene_engine.utils import as_utc

logger = get_logger(__name__)


def version_from_model(model: SceneVersionModel) -> SceneVersion:
    return SceneVersion(
        scene_id=model.scene_id,
        version=model.version,
        media_ref=model.media_ref,
        metadata=dict(model.metadata_ or {}),
        created_at=as_utc(model.created_at),
    )


class VersionStore:
    """Reads and appends scene versions."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self.session_factory = session_factory

    def append(
        self,
        session: Session,
        scene_id: UUID,
        expected_prior_version: int,
        media_ref: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """Record version ``expected_prior_version + 1``.

        Args:
            session: Open transaction shared with the status transition
            scene_id: Scene receiving the version
            expected_prior_version: Version count the caller last observed
            media_ref: Storage key of the generated media
            metadata: Provider details kept with the version

        Returns:
            The new version number

        Raises:
            ConflictError: If another append advanced the counter first
        """
        new_version = expected_prior_version + 1
        result = session.execute(
            update(SceneModel)
            .where(
                SceneModel.id == scene_id,
                SceneModel.version_count == expected_prior_version,
            )
            .values(version_count=new_version, current_version=new_version)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictError(
                f"Scene {scene_id} version moved past {expected_prior_version}"
            )

        session.add(
            SceneVersionModel(
                scene_id=scene_id,
                version=new_version,
                media_ref=media_ref,
                metadata_=metadata or {},
            )
        )
        session.flush()

        logger.info("scene_version_appended", scene_id=str(scene_id), version=new_version)
        return new_version

    def list_versions(self, scene_id: UUID) -> list[SceneVersion]:
        with get_session_context(self.session_factory) as session:
            models = session.scalars(
                select(SceneVersionModel)
                .where(SceneVersionModel.scene_id == scene_id)
                .order_by(SceneVersionModel.version)
            ).all()
            return [version_from_model(m) for m in models]

    def get_version(self, scene_id: UUID, version: int) -> SceneVersion:
        with get_session_context(self.session_factory) as session:
            model = session.scalars(
                select(SceneVersionModel).where(
                    SceneVersionModel.scene_id == scene_id,
                    SceneVersionModel.version == version,
                )
            ).one_or_none()
            if model is None:
                raise NotFoundError("SceneVersion", f"{scene_id}@{version}")
            return version_from_model(model)
