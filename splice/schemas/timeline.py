"""Project graph schemas.

The project store hands records to the engine as plain dicts (camelCase keys
from the editor, snake_case from Python callers). Everything is validated
here, at the boundary, so the evaluation core can assume well-formed input.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Legacy editor builds packed the text animation preset into the content string
LEGACY_ANIMATION_DELIMITER = "|||"


class _TimelineModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
    )


# =============================================================================
# Keyframes
# =============================================================================


class SpeedKeyframe(_TimelineModel):
    """Playback speed at a clip-local time. speed == 0 is a hold."""
    time: float = Field(ge=0)
    speed: float = Field(ge=0, le=8)


class TransformKeyframe(_TimelineModel):
    """Overlay transform sample. Channels left as None are not keyed here."""
    time: float = Field(ge=0)
    x: float | None = None
    y: float | None = None
    scale: float | None = None
    rotation: float | None = None
    opacity: float | None = None


# =============================================================================
# Clips
# =============================================================================


class Track(str, Enum):
    """Timeline tracks. Values match the editor's stored track names."""

    PRIMARY = "video_a"
    SECONDARY = "video_b"
    AUDIO = "audio"


class AssetRef(_TimelineModel):
    """Resolved media asset as returned by the project store."""
    id: str
    path: str
    kind: Literal["video", "audio", "image"] = "video"
    duration: float | None = Field(default=None, ge=0)
    width: int | None = None
    height: int | None = None
    has_audio: bool = False


class Clip(_TimelineModel):
    id: str
    asset_id: str
    track: Track
    start_time: float = Field(ge=0)
    end_time: float
    trim_start: float = Field(default=0.0, ge=0)
    speed_keyframes: list[SpeedKeyframe] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_range(self) -> "Clip":
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Clip {self.id}: end_time ({self.end_time}) must be greater than start_time ({self.start_time})"
            )
        return self

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


# =============================================================================
# Overlays
# =============================================================================


class TextAnimation(str, Enum):
    NONE = "none"
    FADE = "fade"
    SLIDE_UP = "slide-up"
    SLIDE_LEFT = "slide-left"
    SCALE = "scale"
    TYPEWRITER = "typewriter"
    BOUNCE = "bounce"
    BLUR = "blur"


OverlayKind = Literal["text", "image"]


class Overlay(_TimelineModel):
    id: str
    kind: OverlayKind = Field(validation_alias=AliasChoices("kind", "type"))
    track: str = "overlay"
    start_time: float = Field(ge=0)
    end_time: float
    content: str = ""
    animation: TextAnimation = TextAnimation.NONE

    # Text styling (ignored for image overlays)
    font_size: int | None = Field(default=None, gt=0)
    color: str | None = None
    bg_color: str | None = None

    position_keyframes: list[TransformKeyframe] = Field(default_factory=list)
    scale_keyframes: list[TransformKeyframe] = Field(default_factory=list)
    rotation_keyframes: list[TransformKeyframe] = Field(default_factory=list)
    opacity_keyframes: list[TransformKeyframe] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _split_legacy_content(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        content = data.get("content")
        if not isinstance(content, str) or LEGACY_ANIMATION_DELIMITER not in content:
            return data

        text, _, preset = content.partition(LEGACY_ANIMATION_DELIMITER)
        data = dict(data)
        data["content"] = text
        if not data.get("animation"):
            known = {a.value for a in TextAnimation}
            data["animation"] = preset if preset in known else TextAnimation.NONE.value
        return data

    @model_validator(mode="after")
    def _check_range(self) -> "Overlay":
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Overlay {self.id}: end_time ({self.end_time}) must be greater than start_time ({self.start_time})"
            )
        return self

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def is_animated(self) -> bool:
        """True if any channel varies over the overlay's lifetime."""
        if self.kind == "text" and self.animation != TextAnimation.NONE:
            return True
        return any(
            len(kfs) > 1
            for kfs in (
                self.position_keyframes,
                self.scale_keyframes,
                self.rotation_keyframes,
                self.opacity_keyframes,
            )
        )


# =============================================================================
# Project
# =============================================================================


class ProjectTimeline(_TimelineModel):
    """Everything the engine needs for one project, passed by value."""
    project_id: str
    clips: list[Clip] = Field(default_factory=list)
    overlays: list[Overlay] = Field(default_factory=list)
    assets: dict[str, AssetRef] = Field(default_factory=dict)

    def clips_on(self, track: Track) -> list[Clip]:
        """Clips on a track ordered by timeline start."""
        return sorted((c for c in self.clips if c.track == track), key=lambda c: c.start_time)

    def overlays_of(self, kind: OverlayKind) -> list[Overlay]:
        return [o for o in self.overlays if o.kind == kind]
