"""Business logic services."""

from scene_engine.services.job_tracker import JobTracker
from scene_engine.services.lifecycle import SceneLifecycleStore
from scene_engine.services.ordinals import OrdinalAllocator
from scene_engine.services.orchestrator import SceneOrchestrator
from scene_engine.services.projects import ProjectStore
from scene_engine.services.signed_urls import SignedUrlCache
from scene_engine.services.versions import VersionStore

__all__ = [
    "JobTracker",
    "OrdinalAllocator",
    "ProjectStore",
    "SceneLifecycleStore",
    "SceneOrchestrator",
    "SignedUrlCache",
    "VersionStore",
]
