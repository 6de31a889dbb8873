"""Render planning: turn continuous timeline semantics into discrete work.

Speed curves become constant-speed segments an encoder can process one at a
time; keyframed overlays become a short list of timed draws. Both reuse the
evaluator's math (speed_ramp / interpolation) so export values at segment
starts and step midpoints match what the preview shows at those times.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Literal, Sequence

from splice.schemas.timeline import Clip, Overlay
from splice.services.timeline_evaluator import overlay_animation_state
from splice.utils.interpolation import TransformValues, interpolate_transform
from splice.utils.speed_ramp import average_speed, evaluate_speed_ramp, sort_keyframes

logger = logging.getLogger(__name__)

# Shorter than one frame at any sane fps
MIN_SEGMENT_S = 1e-6
GAP_EPSILON_S = 1e-3

SpeedMode = Literal["keyframe", "average"]


# ============================================================================
# Clip segments
# ============================================================================


@dataclass(frozen=True)
class RenderSegment:
    """A clip sub-interval rendered at one constant speed."""

    clip_id: str
    clip_start: float  # clip-local seconds
    clip_end: float
    timeline_start: float
    speed: float
    source_start: float  # absolute seconds into the source asset
    is_freeze: bool = False

    @property
    def duration(self) -> float:
        return self.clip_end - self.clip_start

    @property
    def source_duration(self) -> float:
        """Source seconds consumed; a freeze holds one frame."""
        return 0.0 if self.is_freeze else self.duration * self.speed


def _segment_bounds(clip: Clip) -> list[tuple[float, float, float]]:
    duration = clip.duration
    ordered = sort_keyframes(clip.speed_keyframes)
    if not ordered:
        return [(0.0, duration, 1.0)]

    bounds: list[tuple[float, float, float]] = []
    if ordered[0].time > 0:
        bounds.append((0.0, ordered[0].time, ordered[0].speed))

    for i, kf in enumerate(ordered):
        end = ordered[i + 1].time if i + 1 < len(ordered) else duration
        bounds.append((kf.time, end, kf.speed))
    return bounds


def plan_clip_segments(
    clip: Clip,
    *,
    freeze_threshold: float = 0.01,
    speed_mode: SpeedMode = "keyframe",
) -> list[RenderSegment]:
    """Split a clip into constant-speed segments.

    Args:
        clip: Clip to plan
        freeze_threshold: Speeds below this render as a held still frame
        speed_mode: "keyframe" uses the segment's opening keyframe speed,
            "average" uses the exact mean speed over the segment

    Returns:
        Segments ordered by clip-local start, covering [0, clip.duration)
    """
    duration = clip.duration
    ordered = sort_keyframes(clip.speed_keyframes)
    segments: list[RenderSegment] = []

    for start, end, speed in _segment_bounds(clip):
        end = min(end, duration)
        if start >= duration or end - start <= MIN_SEGMENT_S:
            continue

        if speed_mode == "average" and ordered:
            speed = average_speed(start, end, ordered)

        segments.append(
            RenderSegment(
                clip_id=clip.id,
                clip_start=start,
                clip_end=end,
                timeline_start=clip.start_time + start,
                speed=speed,
                source_start=clip.trim_start + evaluate_speed_ramp(start, ordered),
                is_freeze=speed < freeze_threshold,
            )
        )

    logger.debug(f"[PLAN] clip={clip.id} duration={duration:.3f}s segments={len(segments)}")
    return segments


# ============================================================================
# Track layout
# ============================================================================


@dataclass(frozen=True)
class TrackItem:
    """One contiguous piece of a rendered track: a clip or a filler gap."""

    kind: Literal["clip", "gap"]
    timeline_start: float
    duration: float
    clip: Clip | None = None
    segments: list[RenderSegment] = field(default_factory=list)


def plan_track(
    clips: Sequence[Clip],
    *,
    freeze_threshold: float = 0.01,
    speed_mode: SpeedMode = "keyframe",
) -> list[TrackItem]:
    """Lay out a single track from timeline 0, filling gaps between clips.

    Clips on one video track are assumed not to overlap; if they do, the later
    clip is butted against the earlier one and a warning is logged.
    """
    items: list[TrackItem] = []
    cursor = 0.0

    for clip in sorted(clips, key=lambda c: c.start_time):
        gap = clip.start_time - cursor
        if gap > GAP_EPSILON_S:
            items.append(TrackItem(kind="gap", timeline_start=cursor, duration=gap))
        elif gap < -GAP_EPSILON_S:
            logger.warning(
                f"[PLAN] clip {clip.id} overlaps previous clip on {clip.track.value} by {-gap:.3f}s"
            )

        segments = plan_clip_segments(
            clip, freeze_threshold=freeze_threshold, speed_mode=speed_mode
        )
        if segments:
            items.append(
                TrackItem(
                    kind="clip",
                    timeline_start=clip.start_time,
                    duration=clip.duration,
                    clip=clip,
                    segments=segments,
                )
            )
        cursor = max(cursor, clip.end_time)

    return items


# ============================================================================
# Real-time stretch
# ============================================================================


def atempo_chain(speed: float, low: float = 0.5, high: float = 2.0) -> list[float]:
    """Factors whose product is ``speed``, each inside [low, high].

    Returns an empty list for speed 1 (no stretch needed).

    Raises:
        ValueError: If speed is not positive
    """
    if speed <= 0:
        raise ValueError(f"Stretch factor must be positive, got {speed}")
    if speed == 1:
        return []

    factors: list[float] = []
    remaining = speed
    while remaining > high:
        factors.append(high)
        remaining /= high
    while remaining < low:
        factors.append(low)
        remaining /= low
    factors.append(remaining)
    return factors


# ============================================================================
# Stepped overlay animation
# ============================================================================


@dataclass(frozen=True)
class OverlayStep:
    """One timed draw of an overlay with fixed transform values."""

    overlay_id: str
    index: int
    abs_start: float
    abs_end: float
    transform: TransformValues
    text: str | None = None  # visible text for text overlays
    blur: float = 0.0

    @property
    def duration(self) -> float:
        return self.abs_end - self.abs_start


def overlay_step_count(overlay: Overlay, steps_per_second: float, max_steps: int) -> int:
    if not overlay.is_animated:
        return 1
    return max(1, min(max_steps, math.ceil(overlay.duration * steps_per_second)))


def sample_overlay(overlay: Overlay, local_time: float) -> tuple[TransformValues, str | None, float]:
    """Keyframed transform combined with the text preset at ``local_time``."""
    base = interpolate_transform(local_time, overlay)
    anim = overlay_animation_state(overlay, local_time)

    transform = TransformValues(
        x=base.x + anim.dx,
        y=base.y + anim.dy,
        scale=base.scale * anim.scale,
        rotation=base.rotation,
        opacity=min(1.0, max(0.0, base.opacity * anim.opacity)),
    )

    text = None
    if overlay.kind == "text":
        text = overlay.content if anim.visible_chars is None else overlay.content[: anim.visible_chars]
    return transform, text, anim.blur


def plan_overlay_steps(
    overlay: Overlay,
    *,
    steps_per_second: float = 2.0,
    max_steps: int = 30,
) -> list[OverlayStep]:
    """Discretize an overlay's active window into fixed-size timed draws.

    Values are sampled at each step midpoint. Static overlays produce a
    single step spanning the whole window. Steps whose sampled opacity is 0
    or whose typewriter text is still empty are dropped.
    """
    count = overlay_step_count(overlay, steps_per_second, max_steps)
    step_s = overlay.duration / count
    steps: list[OverlayStep] = []

    for i in range(count):
        local_start = i * step_s
        transform, text, blur = sample_overlay(overlay, local_start + step_s / 2)
        if transform.opacity <= 0 or (text is not None and not text):
            continue
        steps.append(
            OverlayStep(
                overlay_id=overlay.id,
                index=i,
                abs_start=overlay.start_time + local_start,
                abs_end=overlay.end_time if i == count - 1 else overlay.start_time + local_start + step_s,
                transform=transform,
                text=text,
                blur=blur,
            )
        )
    return steps


# ============================================================================
# Reference coordinate space
# ============================================================================


def reference_scale(frame_size: tuple[int, int], reference_size: tuple[int, int]) -> tuple[float, float]:
    """Per-axis factor from reference coordinates to frame pixels."""
    return frame_size[0] / reference_size[0], frame_size[1] / reference_size[1]


def size_factor(frame_size: tuple[int, int], reference_size: tuple[int, int]) -> float:
    """Uniform factor for overlay sizes; the smaller axis keeps content inside the frame."""
    sx, sy = reference_scale(frame_size, reference_size)
    return min(sx, sy)


def frame_position(
    transform: TransformValues,
    natural_size: tuple[int, int],
    rendered_size: tuple[int, int],
    frame_size: tuple[int, int],
    reference_size: tuple[int, int],
) -> tuple[int, int]:
    """Top-left frame pixel for a rendered overlay image.

    ``transform.x/y`` is the top-left of the unscaled, unrotated overlay box
    in reference coordinates (``natural_size`` is that box). Scale and
    rotation pivot on the box centre, so the rendered image is centred there.
    """
    sx, sy = reference_scale(frame_size, reference_size)
    center_x = (transform.x + natural_size[0] / 2) * sx
    center_y = (transform.y + natural_size[1] / 2) * sy
    return round(center_x - rendered_size[0] / 2), round(center_y - rendered_size[1] / 2)
