"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scene_engine import __version__
from scene_engine.api.routes import callbacks, health, media, projects, scenes
from scene_engine.config import settings
from scene_engine.domain.errors import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    SceneEngineError,
    ValidationError,
)
from scene_engine.logging import get_logger, setup_logging

# Setup logging
setup_logging()
logger = get_logger(__name__)

# Domain error -> HTTP status
ERROR_STATUS: dict[type[SceneEngineError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ConflictError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ExternalServiceError: status.HTTP_502_BAD_GATEWAY,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info("application_starting", version=__version__)

    # Startup: verify database connection
    try:
        from scene_engine.db.session import init_db

        init_db()
        logger.info("database_connected")
    except Exception as e:
        logger.error("database_connection_failed", error=str(e))
        # Don't raise - let health checks report the issue

    yield

    # Shutdown
    logger.info("application_shutting_down")


# Create FastAPI app
app = FastAPI(
    title="Scene Engine",
    description="Scene generation and versioning orchestration",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SceneEngineError)
async def scene_engine_error_handler(request: Request, exc: SceneEngineError) -> JSONResponse:
    """Map domain errors to HTTP responses."""
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    body: dict[str, object] = {
        "detail": str(exc),
        "error": type(exc).__name__,
        "retryable": exc.retryable,
    }
    if isinstance(exc, ConflictError) and exc.current_status:
        body["current_status"] = exc.current_status
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field

    log = logger.warning if status_code >= 500 else logger.info
    log("request_failed", path=request.url.path, status_code=status_code, error=str(exc))
    return JSONResponse(status_code=status_code, content=body)


# Register routers
app.include_router(health.router)
app.include_router(media.router)
app.include_router(projects.router, prefix="/api/v1")
app.include_router(scenes.router, prefix="/api/v1")
app.include_router(callbacks.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint redirect to docs."""
    return {
        "name": "Scene Engine",
        "version": __version__,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "scene_engine.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
