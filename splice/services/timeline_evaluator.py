"""Timeline evaluation at a single query time.

Pure and allocation-light: called once per display frame by the preview, so
there is no I/O, no logging on the hot path and no shared mutable state.
Activation is half-open, ``start_time <= t < end_time``, for clips and
overlays alike.
"""

import math
from dataclasses import dataclass, field
from typing import Sequence

from splice.exceptions import TimelineValidationError
from splice.schemas.timeline import Clip, Overlay, TextAnimation, Track
from splice.utils.interpolation import TransformValues, interpolate_transform
from splice.utils.speed_ramp import evaluate_speed_ramp
from splice.utils.text_animation import AnimationState, text_animation_state


@dataclass(frozen=True)
class ActiveClip:
    clip_id: str
    track: Track
    asset_id: str
    clip_local_time: float
    source_time: float

    def to_dict(self) -> dict:
        return {
            "clip_id": self.clip_id,
            "track": self.track.value,
            "asset_id": self.asset_id,
            "clip_local_time": self.clip_local_time,
            "source_time": self.source_time,
        }


@dataclass(frozen=True)
class ActiveOverlay:
    overlay_id: str
    kind: str
    content: str
    overlay_local_time: float
    transform: TransformValues
    animation: AnimationState

    def to_dict(self) -> dict:
        return {
            "overlay_id": self.overlay_id,
            "kind": self.kind,
            "content": self.content,
            "overlay_local_time": self.overlay_local_time,
            "transform": self.transform.to_dict(),
            "animation": self.animation.to_dict(),
        }


@dataclass(frozen=True)
class TimelineState:
    time: float
    active_clips: list[ActiveClip] = field(default_factory=list)
    active_overlays: list[ActiveOverlay] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "active_clips": [c.to_dict() for c in self.active_clips],
            "active_overlays": [o.to_dict() for o in self.active_overlays],
        }


def is_active(start_time: float, end_time: float, time: float) -> bool:
    return start_time <= time < end_time


def evaluate_clip(time: float, clip: Clip) -> ActiveClip | None:
    """Source mapping for one clip, or None if inactive at ``time``."""
    if not is_active(clip.start_time, clip.end_time, time):
        return None
    clip_local_time = time - clip.start_time
    return ActiveClip(
        clip_id=clip.id,
        track=clip.track,
        asset_id=clip.asset_id,
        clip_local_time=clip_local_time,
        source_time=clip.trim_start + evaluate_speed_ramp(clip_local_time, clip.speed_keyframes),
    )


def overlay_animation_state(overlay: Overlay, local_time: float) -> AnimationState:
    if overlay.kind != "text" or overlay.animation == TextAnimation.NONE:
        return AnimationState()
    return text_animation_state(overlay.animation, local_time, overlay.duration, len(overlay.content))


def evaluate_overlay(time: float, overlay: Overlay) -> ActiveOverlay | None:
    """Interpolated transform for one overlay, or None if inactive at ``time``."""
    if not is_active(overlay.start_time, overlay.end_time, time):
        return None
    local_time = time - overlay.start_time
    return ActiveOverlay(
        overlay_id=overlay.id,
        kind=overlay.kind,
        content=overlay.content,
        overlay_local_time=local_time,
        transform=interpolate_transform(local_time, overlay),
        animation=overlay_animation_state(overlay, local_time),
    )


def evaluate_timeline(
    time: float,
    clips: Sequence[Clip],
    overlays: Sequence[Overlay],
) -> TimelineState:
    """Evaluate which clips and overlays are active at ``time``.

    Args:
        time: Timeline query time in seconds
        clips: Project clips (output keeps input order)
        overlays: Project overlays (output keeps input order)

    Returns:
        TimelineState with the active subset

    Raises:
        TimelineValidationError: If ``time`` is not a finite number
    """
    if not math.isfinite(time):
        raise TimelineValidationError(f"Query time must be finite, got {time!r}")

    active_clips = [state for state in (evaluate_clip(time, c) for c in clips) if state]
    active_overlays = [state for state in (evaluate_overlay(time, o) for o in overlays) if state]
    return TimelineState(time=time, active_clips=active_clips, active_overlays=active_overlays)
