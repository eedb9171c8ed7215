"""Luma AI video generation provider."""

from typing import Any

import httpx

from scene_engine.adapters.video_gen.base import (
    GenerationRequest,
    GenerationStatus,
    VideoGenProvider,
)
from scene_engine.config import settings
from scene_engine.domain.enums import JobStatus
from scene_engine.domain.errors import ExternalServiceError
from scene_engine.logging import get_logger

logger = get_logger(__name__)

# Luma generation states
_STATE_MAP: dict[str, JobStatus] = {
    "queued": JobStatus.PENDING,
    "dreaming": JobStatus.PROCESSING,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
}


def _is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class LumaProvider(VideoGenProvider):
    """Luma AI (Dream Machine) keyframe generation provider.

    The start frame is sent as ``frame0`` and the end frame, when set, as
    ``frame1``. Generation is asynchronous: ``submit`` returns the generation
    id and completion is observed through ``get_status`` or the callback.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or settings.luma_api_key
        self.base_url = (base_url or settings.luma_base_url).rstrip("/")
        self.timeout = timeout
        self._transport = transport

        if not self.api_key:
            logger.warning("Luma API key not configured")

    @property
    def name(self) -> str:
        return "luma"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _headers(self, api_key: str | None) -> dict[str, str]:
        key = api_key or self.api_key
        if not key:
            raise ExternalServiceError(self.name, "Luma API key not configured", transient=False)
        return {
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }

    def _raise_for_response(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        logger.error(
            "luma_api_error",
            action=action,
            status_code=response.status_code,
            body=response.text[:500],
        )
        raise ExternalServiceError(
            self.name,
            f"{action} failed: {response.status_code} - {response.text[:200]}",
            transient=_is_transient_status(response.status_code),
            status_code=response.status_code,
        )

    def build_payload(self, request: GenerationRequest) -> dict[str, Any]:
        """Build the generation request body."""
        keyframes: dict[str, Any] = {
            "frame0": {"type": "image", "url": request.start_frame_url},
        }
        if request.end_frame_url:
            keyframes["frame1"] = {"type": "image", "url": request.end_frame_url}

        payload: dict[str, Any] = {
            "prompt": request.prompt,
            "aspect_ratio": request.aspect_ratio,
            "loop": request.loop,
            "keyframes": keyframes,
        }
        if request.callback_url:
            payload["callback_url"] = request.callback_url
        if request.options:
            payload.update(request.options)
        return payload

    async def submit(self, request: GenerationRequest, api_key: str | None = None) -> str:
        headers = self._headers(api_key)
        payload = self.build_payload(request)

        logger.info(
            "luma_generation_started",
            prompt_length=len(request.prompt),
            aspect_ratio=request.aspect_ratio,
            has_end_frame=request.end_frame_url is not None,
        )

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/generations",
                    headers=headers,
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.warning("luma_submit_transport_error", error=str(e))
            raise ExternalServiceError(self.name, f"submit failed: {e}") from e

        self._raise_for_response(response, "submit")
        data = response.json()

        generation_id = data.get("id")
        if not generation_id:
            raise ExternalServiceError(
                self.name, "No generation ID returned from Luma", transient=False
            )

        logger.info("luma_generation_submitted", generation_id=generation_id)
        return str(generation_id)

    def _to_status(self, data: dict[str, Any]) -> GenerationStatus:
        raw_state = str(data.get("state", "")).lower()
        state = _STATE_MAP.get(raw_state)
        if state is None:
            raise ExternalServiceError(
                self.name, f"Unknown generation state: {raw_state!r}", transient=False
            )

        media_url = None
        error_message = None
        if state == JobStatus.COMPLETED:
            media_url = (data.get("assets") or {}).get("video")
            if not media_url:
                state = JobStatus.FAILED
                error_message = "Generation completed but no video URL found"
        elif state == JobStatus.FAILED:
            error_message = data.get("failure_reason") or "Unknown failure"

        return GenerationStatus(
            job_id=str(data.get("id", "")),
            state=state,
            media_url=media_url,
            error_message=error_message,
            raw=data,
        )

    async def get_status(self, job_id: str, api_key: str | None = None) -> GenerationStatus:
        headers = self._headers(api_key)

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.base_url}/generations/{job_id}",
                    headers=headers,
                )
        except httpx.HTTPError as e:
            raise ExternalServiceError(self.name, f"status check failed: {e}") from e

        self._raise_for_response(response, "status")
        status = self._to_status(response.json())
        if not status.job_id:
            status.job_id = job_id

        logger.debug("luma_poll_status", generation_id=job_id, state=status.state.value)
        return status

    async def cancel(self, job_id: str, api_key: str | None = None) -> bool:
        try:
            headers = self._headers(api_key)
            async with self._client() as client:
                response = await client.delete(
                    f"{self.base_url}/generations/{job_id}",
                    headers=headers,
                )
        except (httpx.HTTPError, ExternalServiceError) as e:
            logger.warning("luma_cancel_failed", generation_id=job_id, error=str(e))
            return False

        if not response.is_success:
            logger.warning(
                "luma_cancel_rejected",
                generation_id=job_id,
                status_code=response.status_code,
            )
            return False
        logger.info("luma_generation_cancelled", generation_id=job_id)
        return True

    def parse_callback(self, payload: dict[str, Any]) -> GenerationStatus:
        if not payload.get("id"):
            raise ExternalServiceError(
                self.name, "Callback payload missing generation id", transient=False
            )
        return self._to_status(payload)

    async def health_check(self) -> bool:
        """Check if Luma API is accessible."""
        if not self.api_key:
            return False

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.base_url}/generations",
                    headers=self._headers(None),
                    params={"limit": 1},
                )
                return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error("luma_health_check_failed", error=str(e))
            return False
