"""Projects and caller identities."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from scene_engine.db.models import ProjectModel, UserProfileModel
from scene_engine.db.session import get_session_context
from scene_engine.domain.enums import CallerStatus, UserRole
from scene_engine.domain.errors import NotFoundError, ValidationError
from scene_engine.domain.models import Caller, Project
from scene_engine.logging import get_logger
from scene_engine.utils import as_utc

logger = get_logger(__name__)

# Profile statuses as written by the identity service
_PROFILE_STATUS_MAP = {
    "approved": CallerStatus.ACTIVE,
    "active": CallerStatus.ACTIVE,
    "pending": CallerStatus.PENDING,
    "rejected": CallerStatus.REJECTED,
}


def project_from_model(model: ProjectModel) -> Project:
    return Project(
        id=model.id,
        user_id=model.user_id,
        name=model.name,
        created_at=as_utc(model.created_at),
    )


def caller_from_profile(profile: UserProfileModel) -> Caller:
    """Build a caller identity from a stored profile; unknown statuses are pending."""
    status = _PROFILE_STATUS_MAP.get((profile.status or "").lower(), CallerStatus.PENDING)
    try:
        role = UserRole(profile.role)
    except ValueError:
        role = UserRole.USER
    return Caller(user_id=profile.id, status=status, role=role, email=profile.email)


class ProjectStore:
    """Project rows and the profiles that own them."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self.session_factory = session_factory

    def create(self, user_id: UUID, name: str) -> Project:
        name = name.strip()
        if not name:
            raise ValidationError("Project name is required", field="name")

        with get_session_context(self.session_factory) as session:
            model = ProjectModel(user_id=user_id, name=name)
            session.add(model)
            session.flush()
            session.refresh(model)
            project = project_from_model(model)

        logger.info("project_created", project_id=str(project.id), user_id=str(user_id))
        return project

    def get(self, project_id: UUID) -> Project:
        with get_session_context(self.session_factory) as session:
            model = session.get(ProjectModel, project_id)
            if model is None:
                raise NotFoundError("Project", project_id)
            return project_from_model(model)

    def list_for_user(self, user_id: UUID) -> list[Project]:
        with get_session_context(self.session_factory) as session:
            models = session.scalars(
                select(ProjectModel)
                .where(ProjectModel.user_id == user_id)
                .order_by(ProjectModel.created_at, ProjectModel.name)
            ).all()
            return [project_from_model(m) for m in models]

    def load_caller(self, user_id: UUID) -> Caller:
        """Resolve a verified user id to its caller identity.

        Raises:
            NotFoundError: If no profile exists for the user
        """
        with get_session_context(self.session_factory) as session:
            profile = session.get(UserProfileModel, user_id)
            if profile is None:
                raise NotFoundError("UserProfile", user_id)
            return caller_from_profile(profile)
