"""Shot type presets for scene generation."""

from scene_engine.presets.shot_types import (
    DEFAULT_SHOT_TYPE,
    SHOT_TYPES,
    ShotType,
    get_shot_type,
    get_shot_type_names,
)

__all__ = [
    "DEFAULT_SHOT_TYPE",
    "SHOT_TYPES",
    "ShotType",
    "get_shot_type",
    "get_shot_type_names",
]
