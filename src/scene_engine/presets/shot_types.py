"""Shot type definitions for scene generation.

A shot type frames the motion between a scene's start and end frames. Each one
carries the prompt text sent to the generation service so that every scene of
the same type is generated with consistent camera language.
"""

from dataclasses import dataclass, field
from typing import Any

from scene_engine.domain.errors import ValidationError

DEFAULT_SHOT_TYPE = "wide"


@dataclass(frozen=True)
class ShotType:
    """A camera framing preset.

    Attributes:
        name: Unique identifier stored on the scene
        display_name: Human-readable name
        prompt: Description of the shot sent as the generation prompt
        camera_motion: Camera movement appended to the prompt
        generation_options: Provider-specific request parameters
    """

    name: str
    display_name: str
    prompt: str
    camera_motion: str = "static camera"
    generation_options: dict[str, Any] = field(default_factory=dict)

    def format_prompt(self) -> str:
        """Full prompt for a frame-to-frame generation of this shot."""
        return f"{self.prompt}, {self.camera_motion}"


WIDE = ShotType(
    name="wide",
    display_name="Wide Shot",
    prompt="wide shot showing the full subject within its surroundings",
    camera_motion="slow steady drift",
)

MEDIUM = ShotType(
    name="medium",
    display_name="Medium Shot",
    prompt="medium shot framing the subject from the waist up",
    camera_motion="gentle handheld sway",
)

CLOSE_UP = ShotType(
    name="close_up",
    display_name="Close-Up",
    prompt="close-up on the subject's face with shallow depth of field",
    camera_motion="subtle push in",
)

EXTREME_CLOSE_UP = ShotType(
    name="extreme_close_up",
    display_name="Extreme Close-Up",
    prompt="extreme close-up on a single detail, macro lens",
    camera_motion="locked off",
)

ESTABLISHING = ShotType(
    name="establishing",
    display_name="Establishing Shot",
    prompt="establishing shot revealing the location and time of day",
    camera_motion="slow pan across the scene",
)

TRACKING = ShotType(
    name="tracking",
    display_name="Tracking Shot",
    prompt="tracking shot following the subject as it moves",
    camera_motion="smooth dolly alongside the subject",
)

AERIAL = ShotType(
    name="aerial",
    display_name="Aerial Shot",
    prompt="aerial view from high above the scene",
    camera_motion="drone glide forward",
)

POV = ShotType(
    name="pov",
    display_name="Point of View",
    prompt="first-person point of view of the subject",
    camera_motion="natural head movement",
)


SHOT_TYPES: dict[str, ShotType] = {
    shot.name: shot
    for shot in (WIDE, MEDIUM, CLOSE_UP, EXTREME_CLOSE_UP, ESTABLISHING, TRACKING, AERIAL, POV)
}


def get_shot_type(name: str) -> ShotType:
    """Look up a shot type by name (case-insensitive).

    Raises:
        ValidationError: If the name is not a known shot type
    """
    shot = SHOT_TYPES.get(name.strip().lower())
    if shot is None:
        raise ValidationError(f"Unknown shot type: {name}", field="shot_type")
    return shot


def get_shot_type_names() -> list[str]:
    """Get list of available shot type names."""
    return list(SHOT_TYPES.keys())
