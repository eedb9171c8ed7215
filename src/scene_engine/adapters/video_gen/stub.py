"""Stub video generation provider for testing."""

from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from scene_engine.adapters.video_gen.base import (
    GenerationRequest,
    GenerationStatus,
    VideoGenProvider,
)
from scene_engine.domain.enums import JobStatus
from scene_engine.domain.errors import ExternalServiceError
from scene_engine.logging import get_logger

logger = get_logger(__name__)


@dataclass
class StubJob:
    """In-memory record of a simulated generation."""

    job_id: str
    request: GenerationRequest
    api_key: str | None = None
    state: JobStatus = JobStatus.PENDING
    media_url: str | None = None
    error_message: str | None = None
    polls: int = 0
    history: list[str] = field(default_factory=list)


class StubVideoGenProvider(VideoGenProvider):
    """Stub provider that simulates generations without external calls.

    Jobs complete after ``polls_to_complete`` status checks with the media
    reference ``stub/<job_id>.mp4``. Tests can drive jobs explicitly with
    ``complete``/``fail`` and inject submission errors with ``fail_next_submit``.
    """

    def __init__(self, polls_to_complete: int = 1) -> None:
        self.polls_to_complete = polls_to_complete
        self.jobs: dict[str, StubJob] = {}
        self.cancelled: list[str] = []
        self._submit_errors: list[ExternalServiceError] = []

    @property
    def name(self) -> str:
        return "stub"

    def fail_next_submit(self, transient: bool = True, times: int = 1) -> None:
        """Make the next ``times`` submissions raise."""
        for _ in range(times):
            self._submit_errors.append(
                ExternalServiceError(self.name, "simulated submit failure", transient=transient)
            )

    async def submit(self, request: GenerationRequest, api_key: str | None = None) -> str:
        if self._submit_errors:
            raise self._submit_errors.pop(0)

        job_id = f"stub-{uuid4().hex[:12]}"
        self.jobs[job_id] = StubJob(job_id=job_id, request=request, api_key=api_key)
        logger.info(
            "stub_generation_submitted",
            job_id=job_id,
            has_end_frame=request.end_frame_url is not None,
        )
        return job_id

    def complete(self, job_id: str, media_url: str | None = None) -> None:
        job = self.jobs[job_id]
        job.state = JobStatus.COMPLETED
        job.media_url = media_url or f"stub/{job_id}.mp4"

    def fail(self, job_id: str, reason: str = "simulated failure") -> None:
        job = self.jobs[job_id]
        job.state = JobStatus.FAILED
        job.error_message = reason

    def _snapshot(self, job: StubJob) -> GenerationStatus:
        return GenerationStatus(
            job_id=job.job_id,
            state=job.state,
            media_url=job.media_url,
            error_message=job.error_message,
            raw={"id": job.job_id, "state": job.state.value, "polls": job.polls},
        )

    async def get_status(self, job_id: str, api_key: str | None = None) -> GenerationStatus:
        job = self.jobs.get(job_id)
        if job is None:
            raise ExternalServiceError(self.name, f"Unknown job: {job_id}", transient=False)

        job.polls += 1
        if not job.state.is_terminal:
            if job.polls >= self.polls_to_complete:
                self.complete(job_id)
            else:
                job.state = JobStatus.PROCESSING
        return self._snapshot(job)

    async def cancel(self, job_id: str, api_key: str | None = None) -> bool:
        job = self.jobs.get(job_id)
        if job is None or job.state.is_terminal:
            return False
        self.fail(job_id, "cancelled")
        self.cancelled.append(job_id)
        return True

    def parse_callback(self, payload: dict[str, Any]) -> GenerationStatus:
        job_id = payload.get("id")
        if not job_id:
            raise ExternalServiceError(
                self.name, "Callback payload missing job id", transient=False
            )
        try:
            state = JobStatus(payload.get("state", ""))
        except ValueError as e:
            raise ExternalServiceError(
                self.name, f"Unknown job state: {payload.get('state')!r}", transient=False
            ) from e
        return GenerationStatus(
            job_id=str(job_id),
            state=state,
            media_url=payload.get("media_url"),
            error_message=payload.get("error"),
            raw=payload,
        )

    async def health_check(self) -> bool:
        """Stub provider is always healthy."""
        return True
