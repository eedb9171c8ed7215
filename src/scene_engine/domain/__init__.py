"""Domain models and business logic."""

from scene_engine.domain.enums import (
    CallerStatus,
    EventType,
    ExportFormat,
    JobStatus,
    ObserveOutcome,
    SceneStatus,
    UserRole,
)
from scene_engine.domain.errors import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    SceneEngineError,
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

__all__ = [
    "Caller",
    "CallerStatus",
    "ConflictError",
    "Event",
    "EventType",
    "ExportEntry",
    "ExportFormat",
    "ExportManifest",
    "ExternalServiceError",
    "JobStatus",
    "NotFoundError",
    "ObserveOutcome",
    "PermissionDeniedError",
    "Project",
    "Scene",
    "SceneEngineError",
    "SceneStatus",
    "SceneVersion",
    "SignedUrl",
    "UserRole",
    "ValidationError",
]
