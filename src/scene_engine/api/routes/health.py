"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from scene_engine.api.deps import OrchestratorDep
from scene_engine.config import settings
from scene_engine.logging import get_logger

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    components: dict[str, str] | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    database: bool
    redis: bool
    generation: bool


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
)
async def health_check() -> HealthResponse:
    """Basic health check with the configured backends."""
    from scene_engine import __version__

    return HealthResponse(
        status="healthy",
        version=__version__,
        components={
            "video_gen": settings.video_gen_provider,
            "storage": settings.storage_provider,
            "events": settings.event_sink if settings.events_enabled else "disabled",
        },
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Verifies the database, Redis and the generation service.",
)
async def readiness_check(orchestrator: OrchestratorDep) -> ReadinessResponse:
    """Comprehensive readiness check including dependencies."""
    database_ok = False
    try:
        from scene_engine.db.session import init_db

        init_db()
        database_ok = True
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))

    redis_ok = False
    try:
        import redis

        r = redis.from_url(settings.redis_url)
        r.ping()
        redis_ok = True
    except Exception as e:
        logger.error("redis_health_check_failed", error=str(e))

    generation_ok = await orchestrator.tracker.provider.health_check()

    return ReadinessResponse(
        ready=database_ok and redis_ok and generation_ok,
        database=database_ok,
        redis=redis_ok,
        generation=generation_ok,
    )


@router.get(
    "/health/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
)
async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness probe - is the process alive?"""
    return {"status": "alive"}
