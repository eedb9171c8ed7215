"""Domain enumerations."""

from enum import StrEnum


class SceneStatus(StrEnum):
    """Lifecycle status of a scene."""

    QUEUED = "queued"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class JobStatus(StrEnum):
    """Status of the external generation job attached to a scene."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class CallerStatus(StrEnum):
    """Account status supplied by the identity service."""

    ACTIVE = "active"
    PENDING = "pending"
    REJECTED = "rejected"


class UserRole(StrEnum):
    """Coarse user roles."""

    USER = "user"
    ADMIN = "admin"


class EventType(StrEnum):
    """Events shipped to the notification/analytics sink."""

    SCENE_CREATED = "scene_created"
    SCENE_REGENERATED = "scene_regenerated"
    SCENE_DELETED = "scene_deleted"
    SCENE_RESTORED = "scene_restored"
    SCENE_PURGED = "scene_purged"
    SCENE_EXPORT = "scene_export"
    JOB_SUBMITTED = "job_submitted"
    JOB_FAILED = "job_failed"
    VERSION_READY = "version_ready"


class ObserveOutcome(StrEnum):
    """What an observation of an external job did to its scene."""

    APPLIED = "applied"  # terminal status recorded
    PENDING = "pending"  # job still running
    IGNORED = "ignored"  # duplicate, superseded, or scene deleted


class ExportFormat(StrEnum):
    """Container formats a collaborator may package an export into."""

    MP4 = "mp4"
    MOV = "mov"
    AVI = "avi"


# Allowed lifecycle edges. Soft delete/restore are orthogonal to status.
SCENE_TRANSITIONS: dict[SceneStatus, frozenset[SceneStatus]] = {
    SceneStatus.QUEUED: frozenset({SceneStatus.PROCESSING}),
    SceneStatus.PROCESSING: frozenset({SceneStatus.READY, SceneStatus.ERROR}),
    SceneStatus.READY: frozenset({SceneStatus.QUEUED}),
    SceneStatus.ERROR: frozenset({SceneStatus.QUEUED}),
}
