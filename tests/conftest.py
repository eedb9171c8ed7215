"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import UUID

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = f"sqlite:///{Path(tempfile.gettempdir()) / 'scene_engine_test.db'}"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["VIDEO_GEN_PROVIDER"] = "stub"
os.environ["STORAGE_PROVIDER"] = "local"
os.environ["STORAGE_LOCAL_PATH"] = str(Path(tempfile.gettempdir()) / "scene_engine_media")
os.environ["STORAGE_SIGNING_SECRET"] = "test-signing-secret"
os.environ["LUMA_API_KEY"] = "global-test-key"
os.environ["ENCRYPTION_MASTER_KEY"] = Fernet.generate_key().decode()

from sqlalchemy import Engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from scene_engine.adapters.storage.base import ObjectStorage  # noqa: E402
from scene_engine.adapters.video_gen.stub import StubVideoGenProvider  # noqa: E402
from scene_engine.db.models import Base, ProjectModel, UserProfileModel  # noqa: E402
from scene_engine.db.session import create_db_engine, create_session_factory  # noqa: E402
from scene_engine.domain.enums import CallerStatus  # noqa: E402
from scene_engine.domain.models import Caller, Event  # noqa: E402
from scene_engine.services.api_keys import GlobalApiKeyResolver  # noqa: E402
from scene_engine.services.dispatch import JobDispatcher  # noqa: E402
from scene_engine.services.events import EventSink  # noqa: E402
from scene_engine.services.job_tracker import JobTracker  # noqa: E402
from scene_engine.services.lifecycle import SceneLifecycleStore  # noqa: E402
from scene_engine.services.ordinals import OrdinalAllocator  # noqa: E402
from scene_engine.services.orchestrator import SceneOrchestrator  # noqa: E402
from scene_engine.services.projects import ProjectStore  # noqa: E402
from scene_engine.services.signed_urls import SignedUrlCache  # noqa: E402
from scene_engine.services.versions import VersionStore  # noqa: E402

START = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Settable clock for deadlines, undo windows and URL expiry."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingDispatcher(JobDispatcher):
    """Collects dispatched work instead of queueing Celery tasks."""

    def __init__(self) -> None:
        self.submitted: list[UUID] = []
        self.polls: list[tuple[UUID, str, float]] = []
        self.purges: list[tuple[UUID, datetime, float]] = []
        self.cancelled_purges: list[tuple[UUID, datetime]] = []

    def submit(self, scene_id: UUID) -> None:
        self.submitted.append(scene_id)

    def schedule_poll(self, scene_id: UUID, job_id: str, countdown: float) -> None:
        self.polls.append((scene_id, job_id, countdown))

    def schedule_purge(self, scene_id: UUID, deleted_at: datetime, countdown: float) -> None:
        self.purges.append((scene_id, deleted_at, countdown))

    def cancel_purge(self, scene_id: UUID, deleted_at: datetime) -> None:
        self.cancelled_purges.append((scene_id, deleted_at))


class RecordingEventSink(EventSink):
    """Keeps emitted events for assertions."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [e.type.value for e in self.events]


class FakeStorage(ObjectStorage):
    """Counts signings and records ingested media."""

    def __init__(self) -> None:
        self.sign_calls: list[str] = []
        self.stored: dict[str, str] = {}
        self.fail_ingest = False

    @property
    def name(self) -> str:
        return "fake"

    def sign_url(self, key: str, ttl_seconds: int) -> str:
        self.sign_calls.append(key)
        return f"https://signed.test/{key}?n={len(self.sign_calls)}&ttl={ttl_seconds}"

    async def store_from_url(
        self,
        url: str,
        key: str,
        headers: dict[str, str] | None = None,
    ) -> str:
        if self.fail_ingest:
            from scene_engine.domain.errors import ExternalServiceError

            raise ExternalServiceError(self.name, "simulated download failure")
        self.stored[key] = url
        return key


@pytest.fixture
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """Fresh SQLite database per test."""
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'scenes.db'}")
    Base.metadata.create_all(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def provider() -> StubVideoGenProvider:
    """Get a stub video generation provider."""
    return StubVideoGenProvider(polls_to_complete=1)


@pytest.fixture
def make_user(session_factory: sessionmaker[Session]) -> Callable[..., Caller]:
    """Create a user profile and return its caller identity."""

    def _make(status: str = "active", email: str | None = None, **fields: Any) -> Caller:
        with session_factory() as session:
            profile = UserProfileModel(
                email=email or f"user-{os.urandom(4).hex()}@example.com",
                status=status,
                role="user",
                **fields,
            )
            session.add(profile)
            session.commit()
            user_id = profile.id
        mapped = CallerStatus.ACTIVE if status in ("active", "approved") else CallerStatus(status)
        return Caller(user_id=user_id, status=mapped)

    return _make


@pytest.fixture
def caller(make_user: Callable[..., Caller]) -> Caller:
    return make_user()


@pytest.fixture
def make_project(session_factory: sessionmaker[Session]) -> Callable[[Caller], UUID]:
    def _make(owner: Caller, name: str = "Storyboard") -> UUID:
        with session_factory() as session:
            project = ProjectModel(user_id=owner.user_id, name=name)
            session.add(project)
            session.commit()
            return project.id

    return _make


@pytest.fixture
def project_id(make_project: Callable[[Caller], UUID], caller: Caller) -> UUID:
    return make_project(caller)


@pytest.fixture
def allocator(session_factory: sessionmaker[Session]) -> OrdinalAllocator:
    return OrdinalAllocator(session_factory, max_attempts=10)


@pytest.fixture
def lifecycle(
    session_factory: sessionmaker[Session], allocator: OrdinalAllocator
) -> SceneLifecycleStore:
    return SceneLifecycleStore(session_factory, allocator)


@pytest.fixture
def versions(session_factory: sessionmaker[Session]) -> VersionStore:
    return VersionStore(session_factory)


@pytest.fixture
def url_cache(storage: FakeStorage, clock: FakeClock) -> SignedUrlCache:
    return SignedUrlCache(
        storage,
        ttl_seconds=3600,
        refresh_fraction=0.1,
        min_margin_seconds=30,
        max_entries=1000,
        clock=clock,
    )


@pytest.fixture
def tracker(
    session_factory: sessionmaker[Session],
    lifecycle: SceneLifecycleStore,
    versions: VersionStore,
    provider: StubVideoGenProvider,
    storage: FakeStorage,
    url_cache: SignedUrlCache,
    dispatcher: RecordingDispatcher,
    events: RecordingEventSink,
    clock: FakeClock,
) -> JobTracker:
    return JobTracker(
        lifecycle=lifecycle,
        versions=versions,
        provider=provider,
        storage=storage,
        url_cache=url_cache,
        dispatcher=dispatcher,
        events=events,
        api_keys=GlobalApiKeyResolver("test-key"),
        session_factory=session_factory,
        max_attempts=3,
        backoff_base_seconds=0,
        backoff_max_seconds=0,
        poll_interval_seconds=5,
        job_timeout_seconds=900,
        queued_grace_seconds=60,
        clock=clock,
    )


@pytest.fixture
def orchestrator(
    session_factory: sessionmaker[Session],
    lifecycle: SceneLifecycleStore,
    versions: VersionStore,
    tracker: JobTracker,
    url_cache: SignedUrlCache,
    dispatcher: RecordingDispatcher,
    events: RecordingEventSink,
    clock: FakeClock,
) -> SceneOrchestrator:
    return SceneOrchestrator(
        projects=ProjectStore(session_factory),
        lifecycle=lifecycle,
        versions=versions,
        tracker=tracker,
        url_cache=url_cache,
        dispatcher=dispatcher,
        events=events,
        undo_window_seconds=10,
        clock=clock,
    )


@pytest.fixture
def test_client(orchestrator: SceneOrchestrator) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app backed by the test orchestrator."""
    from scene_engine.api.deps import get_orchestrator_dep
    from scene_engine.main import app

    app.dependency_overrides[get_orchestrator_dep] = lambda: orchestrator
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[Caller], dict[str, str]]:
    """Headers identifying a caller to the API."""

    def _headers(caller: Caller) -> dict[str, str]:
        return {"X-User-Id": str(caller.user_id)}

    return _headers
