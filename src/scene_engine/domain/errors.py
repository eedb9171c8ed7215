"""Domain exceptions for scene orchestration."""

from uuid import UUID


class SceneEngineError(Exception):
    """Base exception for all orchestration errors."""

    retryable: bool = False


class ValidationError(SceneEngineError):
    """Request rejected before any state was mutated.

    Attributes:
        field: Name of the offending input, when there is one
    """

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class NotFoundError(SceneEngineError):
    """Entity does not exist, is soft-deleted, or is not visible to the caller."""

    def __init__(self, entity: str, entity_id: UUID | str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ConflictError(SceneEngineError):
    """A compare-and-set lost against concurrent state.

    The caller should re-read the current state and decide whether to retry.

    Attributes:
        current_status: Status observed when the conflict was detected, if known
    """

    retryable = True

    def __init__(self, message: str, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(message)


class ExternalServiceError(SceneEngineError):
    """A collaborator (generation service, storage) failed.

    Attributes:
        service: Name of the failing service
        transient: Whether retrying the same call may succeed
        status_code: HTTP status from the service, when available
    """

    def __init__(
        self,
        service: str,
        message: str,
        transient: bool = True,
        status_code: int | None = None,
    ):
        self.service = service
        self.transient = transient
        self.status_code = status_code
        self.retryable = transient
        super().__init__(f"{service}: {message}")


class PermissionDeniedError(SceneEngineError):
    """Caller identity is not active."""

    def __init__(self, user_id: UUID | str, status: str):
        self.user_id = user_id
        self.status = status
        super().__init__(f"User {user_id} is {status}, not active")
