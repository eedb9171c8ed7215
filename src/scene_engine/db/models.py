"""SQLAlchemy ORM models."""

from datetime import datetime
from typing import Any
from uuid import UUID as PyUUID
from uuid import uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class UserProfileModel(Base):
    """User profile as mirrored from the identity service."""

    __tablename__ = "user_profiles"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(20), server_default="user")
    status: Mapped[str] = mapped_column(String(20), server_default="pending", index=True)
    # Fernet-encrypted generation service key
    encrypted_api_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    projects: Mapped[list["ProjectModel"]] = relationship(
        "ProjectModel", back_populates="user", cascade="all, delete-orphan"
    )


class ProjectModel(Base):
    """Project (ordered collection of scenes) ORM model."""

    __tablename__ = "projects"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[PyUUID] = mapped_column(
        Uuid, ForeignKey("user_profiles.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    user: Mapped["UserProfileModel"] = relationship("UserProfileModel", back_populates="projects")
    scenes: Mapped[list["SceneModel"]] = relationship(
        "SceneModel", back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )


class SceneModel(Base):
    """Scene (one start/end frame pair + shot type, ordered within a project)."""

    __tablename__ = "scenes"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    project_id: Mapped[PyUUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[PyUUID] = mapped_column(
        Uuid, ForeignKey("user_profiles.id", ondelete="CASCADE"), index=True
    )
    folder_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_frame_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    end_frame_key: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    shot_type: Mapped[str] = mapped_column(String(50), nullable=False)
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False)
    current_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    version_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="queued", index=True)
    status_changed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    external_job_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    external_job_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    external_job_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    submit_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    # Ordinals are unique among live scenes only; soft-deleted rows keep theirs
    __table_args__ = (
        Index(
            "uq_scenes_project_ordinal_live",
            "project_id",
            "ordinal",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    project: Mapped["ProjectModel"] = relationship("ProjectModel", back_populates="scenes")
    versions: Mapped[list["SceneVersionModel"]] = relationship(
        "SceneVersionModel",
        back_populates="scene",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SceneVersionModel.version",
    )


class SceneVersionModel(Base):
    """Append-only record of one successful generation."""

    __tablename__ = "scene_versions"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    scene_id: Mapped[PyUUID] = mapped_column(
        Uuid, ForeignKey("scenes.id", ondelete="CASCADE"), index=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    media_ref: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata_", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (UniqueConstraint("scene_id", "version", name="uq_scene_version"),)

    scene: Mapped["SceneModel"] = relationship("SceneModel", back_populates="versions")
