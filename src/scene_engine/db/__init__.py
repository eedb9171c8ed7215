"""Database layer."""

from scene_engine.db.models import (
    Base,
    ProjectModel,
    SceneModel,
    SceneVersionModel,
    UserProfileModel,
)
from scene_engine.db.session import (
    SessionLocal,
    create_db_engine,
    create_session_factory,
    get_session,
    get_session_context,
    init_db,
)

__all__ = [
    "Base",
    "SessionLocal",
    "create_db_engine",
    "create_session_factory",
    "get_session",
    "get_session_context",
    "init_db",
    # Models
    "ProjectModel",
    "SceneModel",
    "SceneVersionModel",
    "UserProfileModel",
]
