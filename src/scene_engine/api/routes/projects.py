"""Project and per-project scene endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from scene_engine.api.deps import CallerDep, OrchestratorDep
from scene_engine.api.schemas import (
    ProjectResponse,
    SceneResponse,
    project_to_response,
    scene_to_response,
)
from scene_engine.domain.enums import ExportFormat
from scene_engine.logging import get_logger
from scene_engine.presets.shot_types import DEFAULT_SHOT_TYPE

router = APIRouter(prefix="/projects", tags=["Projects"])
logger = get_logger(__name__)


class CreateProjectRequest(BaseModel):
    """Request to create a project."""

    name: str = Field(..., min_length=1, max_length=255)


class CreateSceneRequest(BaseModel):
    """Request to create a scene from a start/end frame pair."""

    start_frame_key: str = Field(..., min_length=1, max_length=1024)
    end_frame_key: str | None = Field(None, max_length=1024)
    shot_type: str = Field(default=DEFAULT_SHOT_TYPE, max_length=50)
    folder_id: str | None = Field(None, max_length=255)


class ExportEntryResponse(BaseModel):
    """One ready scene in an export."""

    scene_id: str
    ordinal: int
    version: int
    shot_type: str
    url: str
    expires_at: datetime


class ExportResponse(BaseModel):
    """Export manifest response."""

    project_id: str
    format: str
    generated_at: datetime
    scene_count: int
    entries: list[ExportEntryResponse]


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create project",
)
async def create_project(
    request: CreateProjectRequest,
    caller: CallerDep,
    orchestrator: OrchestratorDep,
) -> ProjectResponse:
    """Create a new project owned by the caller."""
    project = await orchestrator.create_project(caller, request.name)
    return project_to_response(project)


@router.get(
    "",
    response_model=list[ProjectResponse],
    summary="List projects",
)
async def list_projects(caller: CallerDep, orchestrator: OrchestratorDep) -> list[ProjectResponse]:
    """List the caller's projects."""
    projects = await orchestrator.list_projects(caller)
    return [project_to_response(p) for p in projects]


@router.post(
    "/{project_id}/scenes",
    response_model=SceneResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create scene",
    description="Append a scene to the project and queue its generation.",
)
async def create_scene(
    project_id: UUID,
    request: CreateSceneRequest,
    caller: CallerDep,
    orchestrator: OrchestratorDep,
) -> SceneResponse:
    scene = await orchestrator.create_scene(
        caller,
        project_id,
        start_frame_key=request.start_frame_key,
        end_frame_key=request.end_frame_key,
        shot_type=request.shot_type,
        folder_id=request.folder_id,
    )
    return scene_to_response(scene)


@router.get(
    "/{project_id}/scenes",
    response_model=list[SceneResponse],
    summary="List scenes",
    description="Live scenes of the project in ordinal order.",
)
async def list_scenes(
    project_id: UUID,
    caller: CallerDep,
    orchestrator: OrchestratorDep,
) -> list[SceneResponse]:
    scenes = await orchestrator.list_scenes(caller, project_id)
    return [scene_to_response(s) for s in scenes]


@router.get(
    "/{project_id}/export",
    response_model=ExportResponse,
    summary="Export project",
    description="Signed media URLs for every ready scene, ordered by ordinal.",
)
async def export_project(
    project_id: UUID,
    caller: CallerDep,
    orchestrator: OrchestratorDep,
    format: ExportFormat = Query(default=ExportFormat.MP4, description="Target container"),
) -> ExportResponse:
    manifest = await orchestrator.export(caller, project_id, format=format)
    logger.info("project_exported", project_id=str(project_id), scene_count=manifest.scene_count)
    return ExportResponse(
        project_id=str(manifest.project_id),
        format=manifest.format.value,
        generated_at=manifest.generated_at,
        scene_count=manifest.scene_count,
        entries=[
            ExportEntryResponse(
                scene_id=str(e.scene_id),
                ordinal=e.ordinal,
                version=e.version,
                shot_type=e.shot_type,
                url=e.url,
                expires_at=e.expires_at,
            )
            for e in manifest.entries
        ],
    )
