"""Construction of configured adapters and services."""

from functools import lru_cache

from sqlalchemy.orm import Session, sessionmaker

from scene_engine.adapters.storage.base import ObjectStorage
from scene_engine.adapters.storage.local import LocalObjectStorage
from scene_engine.adapters.video_gen.base import VideoGenProvider
from scene_engine.adapters.video_gen.luma import LumaProvider
from scene_engine.adapters.video_gen.stub import StubVideoGenProvider
from scene_engine.config import settings
from scene_engine.services.api_keys import (
    ApiKeyResolver,
    GlobalApiKeyResolver,
    ProfileApiKeyResolver,
)
from scene_engine.services.dispatch import CeleryJobDispatcher, JobDispatcher
from scene_engine.services.events import (
    CeleryEventSink,
    EventSink,
    LoggingEventSink,
    NullEventSink,
)
from scene_engine.services.job_tracker import JobTracker
from scene_engine.services.lifecycle import SceneLifecycleStore
from scene_engine.services.ordinals import OrdinalAllocator
from scene_engine.services.orchestrator import SceneOrchestrator
from scene_engine.services.projects import ProjectStore
from scene_engine.services.signed_urls import SignedUrlCache
from scene_engine.services.versions import VersionStore


@lru_cache(maxsize=1)
def get_video_gen_provider() -> VideoGenProvider:
    """Get the configured video generation provider (one per process)."""
    provider = settings.video_gen_provider.lower()

    if provider == "luma":
        return LumaProvider()
    return StubVideoGenProvider()


@lru_cache(maxsize=1)
def get_object_storage() -> ObjectStorage:
    """Get the configured object storage backend."""
    if settings.storage_provider == "s3":
        from scene_engine.adapters.storage.s3 import S3ObjectStorage

        return S3ObjectStorage()
    return LocalObjectStorage()


@lru_cache(maxsize=1)
def get_url_cache() -> SignedUrlCache:
    """Process-wide signed URL cache."""
    return SignedUrlCache(get_object_storage())


def get_event_sink() -> EventSink:
    if not settings.events_enabled:
        return NullEventSink()
    if settings.event_sink == "celery":
        return CeleryEventSink()
    return LoggingEventSink()


def get_api_key_resolver(
    session_factory: sessionmaker[Session] | None = None,
) -> ApiKeyResolver:
    if settings.luma_api_key_source == "profile":
        return ProfileApiKeyResolver(session_factory)
    return GlobalApiKeyResolver()


def build_orchestrator(
    session_factory: sessionmaker[Session] | None = None,
    provider: VideoGenProvider | None = None,
    storage: ObjectStorage | None = None,
    url_cache: SignedUrlCache | None = None,
    dispatcher: JobDispatcher | None = None,
    events: EventSink | None = None,
    api_keys: ApiKeyResolver | None = None,
) -> SceneOrchestrator:
    """Wire the orchestrator and its stores; unspecified parts come from settings."""
    if url_cache is None:
        url_cache = get_url_cache() if storage is None else SignedUrlCache(storage)
    storage = storage or get_object_storage()
    dispatcher = dispatcher or CeleryJobDispatcher()
    events = events or get_event_sink()

    lifecycle = SceneLifecycleStore(session_factory, OrdinalAllocator(session_factory))
    versions = VersionStore(session_factory)
    tracker = JobTracker(
        lifecycle=lifecycle,
        versions=versions,
        provider=provider or get_video_gen_provider(),
        storage=storage,
        url_cache=url_cache,
        dispatcher=dispatcher,
        events=events,
        api_keys=api_keys or get_api_key_resolver(session_factory),
        session_factory=session_factory,
    )
    return SceneOrchestrator(
        projects=ProjectStore(session_factory),
        lifecycle=lifecycle,
        versions=versions,
        tracker=tracker,
        url_cache=url_cache,
        dispatcher=dispatcher,
        events=events,
    )


@lru_cache(maxsize=1)
def get_orchestrator() -> SceneOrchestrator:
    """Process-wide orchestrator used by the API, CLI and workers."""
    return build_orchestrator()


def get_job_tracker() -> JobTracker:
    return get_orchestrator().tracker
