"""Request and response models shared by the route modules."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from scene_engine.domain.models import Project, Scene, SceneVersion, SignedUrl


class ProjectResponse(BaseModel):
    """Project response model."""

    id: str
    name: str
    created_at: datetime | None


class SceneResponse(BaseModel):
    """Scene response model."""

    id: str
    project_id: str
    folder_id: str | None
    ordinal: int
    shot_type: str
    start_frame_key: str
    end_frame_key: str | None
    status: str
    current_version: int
    version_count: int
    job_status: str | None
    job_error: str | None
    deleted_at: datetime | None
    created_at: datetime | None
    updated_at: datetime | None


class VersionResponse(BaseModel):
    """One generated version of a scene."""

    version: int
    media_ref: str | None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None


class SignedUrlResponse(BaseModel):
    """Time-limited read URL."""

    url: str
    expires_at: datetime


def project_to_response(project: Project) -> ProjectResponse:
    return ProjectResponse(id=str(project.id), name=project.name, created_at=project.created_at)


def scene_to_response(scene: Scene) -> SceneResponse:
    return SceneResponse(
        id=str(scene.id),
        project_id=str(scene.project_id),
        folder_id=scene.folder_id,
        ordinal=scene.ordinal,
        shot_type=scene.shot_type,
        start_frame_key=scene.start_frame_key,
        end_frame_key=scene.end_frame_key,
        status=scene.status.value,
        current_version=scene.current_version,
        version_count=scene.version_count,
        job_status=scene.external_job_status.value if scene.external_job_status else None,
        job_error=scene.external_job_error,
        deleted_at=scene.deleted_at,
        created_at=scene.created_at,
        updated_at=scene.updated_at,
    )


def version_to_response(version: SceneVersion) -> VersionResponse:
    return VersionResponse(
        version=version.version,
        media_ref=version.media_ref,
        metadata=version.metadata,
        created_at=version.created_at,
    )


def url_to_response(signed: SignedUrl) -> SignedUrlResponse:
    return SignedUrlResponse(url=signed.url, expires_at=signed.expires_at)
