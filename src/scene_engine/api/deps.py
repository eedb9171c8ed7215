"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status

from scene_engine.domain.errors import NotFoundError
from scene_engine.domain.models import Caller
from scene_engine.services.factory import get_orchestrator
from scene_engine.services.orchestrator import SceneOrchestrator


def get_orchestrator_dep() -> SceneOrchestrator:
    """Get the orchestrator instance."""
    return get_orchestrator()


OrchestratorDep = Annotated[SceneOrchestrator, Depends(get_orchestrator_dep)]


def get_caller(
    orchestrator: OrchestratorDep,
    x_user_id: Annotated[str | None, Header()] = None,
) -> Caller:
    """Resolve the caller from the user id the gateway verified upstream."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-Id header",
        )
    try:
        return orchestrator.projects.load_caller(user_id)
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
        )


CallerDep = Annotated[Caller, Depends(get_caller)]
