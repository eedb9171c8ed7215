"""Adapters for external services."""

from scene_engine.adapters.storage.base import ObjectStorage
from scene_engine.adapters.video_gen.base import VideoGenProvider

__all__ = [
    "ObjectStorage",
    "VideoGenProvider",
]
