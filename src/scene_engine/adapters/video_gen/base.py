"""Base interface for video generation providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from scene_engine.domain.enums import JobStatus


@dataclass
class GenerationRequest:
    """Request to generate the motion between a start and an end frame."""

    prompt: str
    start_frame_url: str
    end_frame_url: str | None = None
    aspect_ratio: str = "16:9"
    loop: bool = False
    callback_url: str | None = None
    options: dict[str, Any] | None = None


@dataclass
class GenerationStatus:
    """Status of an external generation job as reported by the provider."""

    job_id: str
    state: JobStatus
    media_url: str | None = None
    error_message: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


class VideoGenProvider(ABC):
    """Abstract base class for frame-to-frame video generation providers.

    Implementations:
    - StubVideoGenProvider: In-memory jobs for development and tests
    - LumaProvider: Luma Dream Machine keyframe generations

    Providers raise ExternalServiceError on failure; ``transient`` tells the
    caller whether the same call may succeed when retried.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        ...

    @abstractmethod
    async def submit(self, request: GenerationRequest, api_key: str | None = None) -> str:
        """Submit a generation job.

        Args:
            request: Frames and prompt to generate from
            api_key: Per-call key overriding the provider's configured one

        Returns:
            The provider's job identifier
        """
        ...

    @abstractmethod
    async def get_status(self, job_id: str, api_key: str | None = None) -> GenerationStatus:
        """Query the current status of a job."""
        ...

    async def cancel(self, job_id: str, api_key: str | None = None) -> bool:
        """Best-effort cancellation of a job.

        Returns:
            True if the provider accepted the cancellation
        """
        return False

    @abstractmethod
    def parse_callback(self, payload: dict[str, Any]) -> GenerationStatus:
        """Translate an inbound completion webhook body into a status."""
        ...

    async def health_check(self) -> bool:
        """Check if the provider is available and healthy.

        Returns:
            True if provider is operational, False otherwise
        """
        return True
