"""Scene endpoints."""

from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from scene_engine.api.deps import CallerDep, OrchestratorDep
from scene_engine.api.schemas import (
    SceneResponse,
    SignedUrlResponse,
    VersionResponse,
    scene_to_response,
    url_to_response,
    version_to_response,
)

router = APIRouter(prefix="/scenes", tags=["Scenes"])


class UpdateFramesRequest(BaseModel):
    """Replace one or both frames of a scene."""

    start_frame_key: str | None = Field(None, min_length=1, max_length=1024)
    end_frame_key: str | None = Field(None, min_length=1, max_length=1024)


class DeletedSceneResponse(SceneResponse):
    """A soft-deleted scene and how long it can be restored."""

    undo_seconds: float


class FrameUrlsResponse(BaseModel):
    """Signed URLs for a scene's frames."""

    start: SignedUrlResponse
    end: SignedUrlResponse | None = None


@router.get("/{scene_id}", response_model=SceneResponse, summary="Get scene")
async def get_scene(
    scene_id: UUID, caller: CallerDep, orchestrator: OrchestratorDep
) -> SceneResponse:
    return scene_to_response(await orchestrator.get_scene(caller, scene_id))


@router.post(
    "/{scene_id}/regenerate",
    response_model=SceneResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Regenerate scene",
    description="Queue a new generation for a ready or failed scene.",
)
async def regenerate_scene(
    scene_id: UUID, caller: CallerDep, orchestrator: OrchestratorDep
) -> SceneResponse:
    return scene_to_response(await orchestrator.regenerate(caller, scene_id))


@router.patch(
    "/{scene_id}/frames",
    response_model=SceneResponse,
    summary="Update frames",
    description="Replace the start and/or end frame while no generation is running.",
)
async def update_frames(
    scene_id: UUID,
    request: UpdateFramesRequest,
    caller: CallerDep,
    orchestrator: OrchestratorDep,
) -> SceneResponse:
    scene = await orchestrator.update_frames(
        caller,
        scene_id,
        start_frame_key=request.start_frame_key,
        end_frame_key=request.end_frame_key,
    )
    return scene_to_response(scene)


@router.get(
    "/{scene_id}/frames",
    response_model=FrameUrlsResponse,
    summary="Frame URLs",
)
async def get_frame_urls(
    scene_id: UUID, caller: CallerDep, orchestrator: OrchestratorDep
) -> FrameUrlsResponse:
    urls = await orchestrator.frame_urls(caller, scene_id)
    return FrameUrlsResponse(
        start=url_to_response(urls["start"]),
        end=url_to_response(urls["end"]) if "end" in urls else None,
    )


@router.delete(
    "/{scene_id}",
    response_model=DeletedSceneResponse,
    summary="Delete scene",
    description="Soft-delete a scene; it can be restored during the undo window.",
)
async def delete_scene(
    scene_id: UUID, caller: CallerDep, orchestrator: OrchestratorDep
) -> DeletedSceneResponse:
    scene = await orchestrator.delete(caller, scene_id)
    window: timedelta = orchestrator.undo_window
    return DeletedSceneResponse(
        **scene_to_response(scene).model_dump(),
        undo_seconds=window.total_seconds(),
    )


@router.post(
    "/{scene_id}/restore",
    response_model=SceneResponse,
    summary="Restore scene",
)
async def restore_scene(
    scene_id: UUID, caller: CallerDep, orchestrator: OrchestratorDep
) -> SceneResponse:
    return scene_to_response(await orchestrator.restore(caller, scene_id))


@router.get(
    "/{scene_id}/versions",
    response_model=list[VersionResponse],
    summary="List versions",
)
async def list_versions(
    scene_id: UUID, caller: CallerDep, orchestrator: OrchestratorDep
) -> list[VersionResponse]:
    versions = await orchestrator.list_versions(caller, scene_id)
    return [version_to_response(v) for v in versions]


@router.get(
    "/{scene_id}/media",
    response_model=SignedUrlResponse,
    summary="Media URL",
    description="Signed URL of a version's video (current version by default).",
)
async def get_media_url(
    scene_id: UUID,
    caller: CallerDep,
    orchestrator: OrchestratorDep,
    version: int | None = Query(default=None, ge=1),
) -> SignedUrlResponse:
    return url_to_response(await orchestrator.media_url(caller, scene_id, version=version))
