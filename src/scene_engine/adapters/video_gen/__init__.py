"""Video generation adapters."""

from scene_engine.adapters.video_gen.base import (
    GenerationRequest,
    GenerationStatus,
    VideoGenProvider,
)
from scene_engine.adapters.video_gen.luma import LumaProvider
from scene_engine.adapters.video_gen.stub import StubVideoGenProvider

__all__ = [
    "GenerationRequest",
    "GenerationStatus",
    "LumaProvider",
    "StubVideoGenProvider",
    "VideoGenProvider",
]
