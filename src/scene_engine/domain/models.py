"""Domain models - pure Python classes independent of database."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from scene_engine.domain.enums import (
    CallerStatus,
    EventType,
    ExportFormat,
    JobStatus,
    SceneStatus,
    UserRole,
)


@dataclass(frozen=True)
class Caller:
    """Verified caller identity handed over by the identity service."""

    user_id: UUID
    status: CallerStatus
    role: UserRole = UserRole.USER
    email: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == CallerStatus.ACTIVE


@dataclass(frozen=True)
class Project:
    """A user's project grouping ordered scenes."""

    id: UUID
    user_id: UUID
    name: str
    created_at: datetime | None = None


@dataclass(frozen=True)
class Scene:
    """Snapshot of a scene row."""

    id: UUID
    project_id: UUID
    user_id: UUID
    start_frame_key: str
    shot_type: str
    ordinal: int
    status: SceneStatus
    current_version: int = 1
    version_count: int = 0
    folder_id: str | None = None
    end_frame_key: str | None = None
    external_job_id: str | None = None
    external_job_status: JobStatus | None = None
    external_job_error: str | None = None
    submit_attempts: int = 0
    status_changed_at: datetime | None = None
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def deadline(self, timeout: timedelta) -> datetime | None:
        """When the current status is considered stuck."""
        if self.status_changed_at is None:
            return None
        return self.status_changed_at + timeout


@dataclass(frozen=True)
class SceneVersion:
    """One immutable successful generation result."""

    scene_id: UUID
    version: int
    media_ref: str | None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass(frozen=True)
class SignedUrl:
    """A time-limited read URL for a stored object."""

    subject_key: str
    url: str
    issued_at: datetime
    expires_at: datetime

    def remaining(self, now: datetime) -> timedelta:
        return self.expires_at - now


@dataclass(frozen=True)
class ExportEntry:
    """One ready scene in an export manifest."""

    scene_id: UUID
    ordinal: int
    version: int
    shot_type: str
    media_ref: str
    url: str
    expires_at: datetime


@dataclass(frozen=True)
class ExportManifest:
    """Signed media references for a project, ordered by ordinal."""

    project_id: UUID
    format: ExportFormat
    generated_at: datetime
    entries: list[ExportEntry] = field(default_factory=list)

    @property
    def scene_count(self) -> int:
        return len(self.entries)


@dataclass
class Event:
    """Fire-and-forget notification for the analytics sink."""

    type: EventType
    properties: dict[str, Any] = field(default_factory=dict)
    user_id: UUID | None = None
    occurred_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "user_id": str(self.user_id) if self.user_id else None,
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
            "properties": {
                k: str(v) if isinstance(v, UUID | datetime) else v
                for k, v in self.properties.items()
            },
        }
