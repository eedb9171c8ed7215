"""External generation jobs: submission, observation and timeouts.

Polling and inbound callbacks both feed ``observe``; its terminal writes are
compare-and-set on the scene's current job id, so duplicate, late or
superseded deliveries change nothing.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from scene_engine.adapters.storage.base import ObjectStorage
from scene_engine.adapters.video_gen.base import GenerationRequest, VideoGenProvider
from scene_engine.config import settings
from scene_engine.db.session import get_session_context
from scene_engine.domain.enums import EventType, JobStatus, ObserveOutcome, SceneStatus
from scene_engine.domain.errors import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    SceneEngineError,
)
from scene_engine.domain.models import Event, Scene
from scene_engine.logging import bound_context, get_logger
from scene_engine.presets.shot_types import get_shot_type
from scene_engine.services.api_keys import ApiKeyResolver
from scene_engine.services.dispatch import JobDispatcher
from scene_engine.services.events import EventSink
from scene_engine.services.lifecycle import SceneLifecycleStore
from scene_engine.services.signed_urls import SignedUrlCache
from scene_engine.services.versions import VersionStore
from scene_engine.utils import utcnow

logger = get_logger(__name__)


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, ExternalServiceError) and error.transient


def _is_remote_url(ref: str) -> bool:
    return ref.startswith(("http://", "https://"))


@dataclass
class SweepResult:
    """Outcome of one stale-job sweep."""

    expired: list[UUID] = field(default_factory=list)
    stuck_queued: list[UUID] = field(default_factory=list)


class JobTracker:
    """Drives a scene through one external generation job."""

    def __init__(
        self,
        lifecycle: SceneLifecycleStore,
        versions: VersionStore,
        provider: VideoGenProvider,
        storage: ObjectStorage,
        url_cache: SignedUrlCache,
        dispatcher: JobDispatcher,
        events: EventSink,
        api_keys: ApiKeyResolver,
        session_factory: sessionmaker[Session] | None = None,
        max_attempts: int | None = None,
        backoff_base_seconds: float | None = None,
        backoff_max_seconds: float | None = None,
        poll_interval_seconds: float | None = None,
        job_timeout_seconds: float | None = None,
        queued_grace_seconds: float | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.lifecycle = lifecycle
        self.versions = versions
        self.provider = provider
        self.storage = storage
        self.url_cache = url_cache
        self.dispatcher = dispatcher
        self.events = events
        self.api_keys = api_keys
        self.session_factory = session_factory
        self.max_attempts = max_attempts or settings.submit_max_attempts
        self.backoff_base_seconds = (
            backoff_base_seconds
            if backoff_base_seconds is not None
            else settings.submit_backoff_base_seconds
        )
        self.backoff_max_seconds = backoff_max_seconds or settings.submit_backoff_max_seconds
        self.poll_interval_seconds = poll_interval_seconds or settings.poll_interval_seconds
        self.job_timeout = timedelta(seconds=job_timeout_seconds or settings.job_timeout_seconds)
        self.queued_grace = timedelta(
            seconds=queued_grace_seconds or settings.sweep_interval_seconds
        )
        self._clock = clock

    def _emit(self, event_type: EventType, scene: Scene, **properties: Any) -> None:
        self.events.emit(
            Event(
                type=event_type,
                user_id=scene.user_id,
                occurred_at=self._clock(),
                properties={
                    "scene_id": scene.id,
                    "project_id": scene.project_id,
                    **properties,
                },
            )
        )

    def is_past_deadline(self, scene: Scene, now: datetime | None = None) -> bool:
        deadline = scene.deadline(self.job_timeout)
        return deadline is not None and (now or self._clock()) >= deadline

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, scene_id: UUID) -> str:
        """Claim a queued scene and submit its generation job.

        A scene still processing a job past its deadline has that job expired
        first; one within its deadline is rejected.

        Returns:
            The external job id

        Raises:
            ConflictError: If the scene has a live job or is not queued
            NotFoundError: If the scene is missing or deleted
            ExternalServiceError: If submission failed after all retries
        """
        now = self._clock()
        scene = self.lifecycle.get(scene_id)

        if scene.status == SceneStatus.PROCESSING:
            if not self.is_past_deadline(scene, now):
                raise ConflictError(
                    f"Scene {scene_id} already has a job in flight",
                    current_status=scene.status,
                )
            await self.expire(scene, now)
            self.lifecycle.requeue(scene_id, expected=[SceneStatus.ERROR], now=now)

        claimed = self.lifecycle.claim_for_submission(scene_id, now=now)

        with bound_context(scene_id=scene_id):
            try:
                request = await self._build_request(claimed)
                api_key = self.api_keys.resolve(claimed.user_id)
                job_id, attempts = await self._submit_with_retry(request, api_key)
            except SceneEngineError as e:
                logger.error("job_submit_failed", error=str(e))
                await self._fail(claimed, str(e), job_id=None)
                raise

            try:
                recorded = self.lifecycle.record_job_id(scene_id, job_id, attempts)
            except (ConflictError, NotFoundError):
                # Deleted or expired while the provider call was in flight
                logger.warning("job_orphaned", job_id=job_id)
                await self.provider.cancel(job_id, api_key=api_key)
                raise

            logger.info("job_submitted", job_id=job_id, attempts=attempts)
            self._emit(EventType.JOB_SUBMITTED, recorded, job_id=job_id, attempts=attempts)
            self.dispatcher.schedule_poll(scene_id, job_id, countdown=self.poll_interval_seconds)
            return job_id

    async def _build_request(self, scene: Scene) -> GenerationRequest:
        shot = get_shot_type(scene.shot_type)
        keys = [scene.start_frame_key]
        if scene.end_frame_key:
            keys.append(scene.end_frame_key)
        urls = await self.url_cache.get_urls(keys)

        return GenerationRequest(
            prompt=shot.format_prompt(),
            start_frame_url=urls[scene.start_frame_key].url,
            end_frame_url=urls[scene.end_frame_key].url if scene.end_frame_key else None,
            aspect_ratio=settings.generation_aspect_ratio,
            callback_url=settings.callback_url,
            options=shot.generation_options or None,
        )

    async def _submit_with_retry(
        self, request: GenerationRequest, api_key: str | None
    ) -> tuple[str, int]:
        def log_retry(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            logger.warning(
                "job_submit_retry",
                attempt=state.attempt_number,
                error=str(error),
            )

        attempts = 0
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.backoff_base_seconds, max=self.backoff_max_seconds
            ),
            retry=retry_if_exception(_is_transient),
            before_sleep=log_retry,
            reraise=True,
        ):
            with attempt:
                attempts = attempt.retry_state.attempt_number
                job_id = await self.provider.submit(request, api_key=api_key)
        return job_id, attempts

    async def _fail(
        self,
        scene: Scene,
        reason: str,
        job_id: str | None,
        now: datetime | None = None,
    ) -> bool:
        """processing -> error; False if the scene moved on meanwhile."""
        try:
            failed = self.lifecycle.mark_error(
                scene.id, reason, job_id=job_id, now=now or self._clock()
            )
        except (ConflictError, NotFoundError):
            logger.info("job_failure_ignored", scene_id=str(scene.id), job_id=job_id)
            return False
        self._emit(EventType.JOB_FAILED, failed, job_id=job_id, error=reason)
        return True

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    async def observe(
        self,
        job_id: str,
        status: JobStatus,
        media_ref: str | None = None,
        error: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> ObserveOutcome:
        """Apply a status report for ``job_id`` from polling or a callback.

        Returns:
            APPLIED when a terminal status was recorded, PENDING while the job
            runs, IGNORED for duplicate, late or superseded reports
        """
        scene = self.lifecycle.find_by_job_id(job_id)
        if scene is None or scene.is_deleted or scene.status != SceneStatus.PROCESSING:
            logger.info("job_observation_ignored", job_id=job_id, status=status.value)
            return ObserveOutcome.IGNORED

        with bound_context(scene_id=scene.id, job_id=job_id):
            if not status.is_terminal:
                try:
                    self.lifecycle.record_job_progress(scene.id, job_id, status)
                except (ConflictError, NotFoundError):
                    return ObserveOutcome.IGNORED
                return ObserveOutcome.PENDING

            if status == JobStatus.FAILED or not media_ref:
                reason = error or "Generation completed without media"
                applied = await self._fail(scene, reason, job_id=job_id)
                return ObserveOutcome.APPLIED if applied else ObserveOutcome.IGNORED

            stored_ref = await self._ingest(scene, job_id, media_ref)
            metadata = {"provider": self.provider.name, "job_id": job_id, **(meta or {})}
            if stored_ref != media_ref:
                metadata["source_url"] = media_ref

            try:
                with get_session_context(self.session_factory) as session:
                    current = self.lifecycle.get(scene.id, session=session)
                    ready = self.lifecycle.mark_ready(session, scene.id, job_id, now=self._clock())
                    version = self.versions.append(
                        session, scene.id, current.version_count, stored_ref, metadata
                    )
            except (ConflictError, NotFoundError):
                logger.info("job_completion_ignored")
                return ObserveOutcome.IGNORED

            logger.info("job_completed", version=version)
            self._emit(EventType.VERSION_READY, ready, job_id=job_id, version=version)
            return ObserveOutcome.APPLIED

    async def _ingest(self, scene: Scene, job_id: str, media_ref: str) -> str:
        """Copy provider-hosted media into our storage; keys pass through."""
        if not _is_remote_url(media_ref):
            return media_ref
        key = f"scenes/{scene.id}/{job_id}.mp4"
        return await self.storage.store_from_url(media_ref, key)

    async def poll(self, scene_id: UUID, job_id: str) -> bool:
        """Query the provider once and observe the result.

        Returns:
            Whether the job should be polled again
        """
        try:
            scene = self.lifecycle.get(scene_id, include_deleted=True)
        except NotFoundError:
            return False

        if (
            scene.is_deleted
            or scene.external_job_id != job_id
            or scene.status != SceneStatus.PROCESSING
        ):
            logger.info("job_polling_stopped", scene_id=str(scene_id), job_id=job_id)
            return False

        if self.is_past_deadline(scene):
            await self.expire(scene)
            return False

        api_key = self.api_keys.resolve(scene.user_id)
        try:
            status = await self.provider.get_status(job_id, api_key=api_key)
            outcome = await self.observe(
                job_id,
                status.state,
                media_ref=status.media_url,
                error=status.error_message,
                meta={"state": status.state.value},
            )
        except ExternalServiceError as e:
            if e.transient:
                logger.warning("job_poll_transient_error", job_id=job_id, error=str(e))
                return True
            await self._fail(scene, str(e), job_id=job_id)
            return False

        return outcome == ObserveOutcome.PENDING

    # ------------------------------------------------------------------
    # Timeouts
    # ------------------------------------------------------------------

    async def expire(self, scene: Scene, now: datetime | None = None) -> bool:
        """Fail a processing scene whose job outlived the timeout."""
        reason = f"Job timed out after {int(self.job_timeout.total_seconds())}s"
        expired = await self._fail(scene, reason, job_id=scene.external_job_id, now=now)
        if expired and scene.external_job_id:
            api_key = self.api_keys.resolve(scene.user_id)
            await self.provider.cancel(scene.external_job_id, api_key=api_key)
        if expired:
            logger.warning(
                "job_expired",
                scene_id=str(scene.id),
                job_id=scene.external_job_id,
            )
        return expired

    async def expire_stale(self, now: datetime | None = None) -> SweepResult:
        """Fail jobs past their deadline and report queued scenes never submitted."""
        now = now or self._clock()
        result = SweepResult()

        for scene in self.lifecycle.list_stale(SceneStatus.PROCESSING, now - self.job_timeout):
            if await self.expire(scene, now):
                result.expired.append(scene.id)

        stuck = self.lifecycle.list_stale(SceneStatus.QUEUED, now - self.queued_grace)
        result.stuck_queued = [scene.id for scene in stuck]

        if result.expired or result.stuck_queued:
            logger.info(
                "stale_jobs_swept",
                expired=len(result.expired),
                stuck_queued=len(result.stuck_queued),
            )
        return result
