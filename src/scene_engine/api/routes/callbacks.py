"""Inbound completion webhooks from the generation service."""

import hmac
from typing import Annotated, Any

from fastapi import APIRouter, Body, Header, HTTPException, status
from pydantic import BaseModel

from scene_engine.api.deps import OrchestratorDep
from scene_engine.config import settings
from scene_engine.domain.errors import ExternalServiceError
from scene_engine.logging import get_logger

router = APIRouter(prefix="/callbacks", tags=["Callbacks"])
logger = get_logger(__name__)


class CallbackResponse(BaseModel):
    """What the callback did to the scene."""

    job_id: str
    outcome: str


@router.post(
    "/generation",
    response_model=CallbackResponse,
    summary="Generation callback",
    description="Status report for an external job; duplicates and late reports are no-ops.",
)
async def generation_callback(
    orchestrator: OrchestratorDep,
    payload: Annotated[dict[str, Any], Body()],
    x_callback_token: Annotated[str | None, Header()] = None,
) -> CallbackResponse:
    if settings.callback_token and not hmac.compare_digest(
        (x_callback_token or "").encode(), settings.callback_token.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid callback token",
        )

    tracker = orchestrator.tracker
    try:
        report = tracker.provider.parse_callback(payload)
    except ExternalServiceError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e

    outcome = await tracker.observe(
        report.job_id,
        report.state,
        media_ref=report.media_url,
        error=report.error_message,
        meta={"state": report.state.value, "via": "callback"},
    )
    logger.info("generation_callback_handled", job_id=report.job_id, outcome=outcome.value)
    return CallbackResponse(job_id=report.job_id, outcome=outcome.value)
