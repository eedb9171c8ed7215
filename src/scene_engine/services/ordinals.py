"""Per-project scene ordinal allocation.

Ordinals are computed as ``max(live ordinal) + 1`` and written in the same
transaction as the row that carries them. The partial unique index on
``(project_id, ordinal) WHERE deleted_at IS NULL`` rejects a concurrent writer
that computed the same value; that attempt is rolled back and recomputed.
"""

from collections.abc import Callable
from typing import TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from scene_engine.config import settings
from scene_engine.db.models import SceneModel
from scene_engine.db.session import get_session_context
from scene_engine.domain.errors import ConflictError
from scene_engine.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ORDINAL_INDEX_NAME = "uq_scenes_project_ordinal_live"


def is_ordinal_conflict(error: IntegrityError) -> bool:
    """Whether an integrity error came from the live-ordinal unique index."""
    message = str(error.orig) if error.orig is not None else str(error)
    if "uq_scenes_project_ordinal" in message:
        return True
    # SQLite reports the columns rather than the index name
    return "scenes.project_id" in message and "scenes.ordinal" in message


class OrdinalAllocator:
    """Allocates strictly increasing, gap-tolerant ordinals within a project."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.max_attempts = max_attempts or settings.ordinal_max_attempts

    def next_ordinal(self, session: Session, project_id: UUID) -> int:
        """One above the highest ordinal among live scenes, or 1."""
        current = session.scalar(
            select(func.max(SceneModel.ordinal)).where(
                SceneModel.project_id == project_id,
                SceneModel.deleted_at.is_(None),
            )
        )
        return (current or 0) + 1

    def allocate(self, project_id: UUID, write_row: Callable[[Session, int], T]) -> T:
        """Compute an ordinal and persist it through ``write_row``.

        ``write_row`` receives the open session and the candidate ordinal and
        must flush the row carrying it. Each attempt runs in its own
        transaction; a conflict on the ordinal index rolls the attempt back and
        tries again with a recomputed value.

        Raises:
            ConflictError: If every attempt lost to a concurrent writer
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                with get_session_context(self.session_factory) as session:
                    ordinal = self.next_ordinal(session, project_id)
                    result = write_row(session, ordinal)
                    session.flush()
                return result
            except IntegrityError as e:
                if not is_ordinal_conflict(e):
                    raise
                logger.info(
                    "ordinal_conflict_retry",
                    project_id=str(project_id),
                    ordinal=ordinal,
                    attempt=attempt,
                )

        logger.warning(
            "ordinal_allocation_exhausted",
            project_id=str(project_id),
            attempts=self.max_attempts,
        )
        raise ConflictError(
            f"Could not allocate an ordinal in project {project_id} "
            f"after {self.max_attempts} attempts"
        )
