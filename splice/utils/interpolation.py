"""Interpolation utilities for overlay keyframe animation.

Shared by the timeline evaluator (interactive preview) and the render planner
(stepped export) so both compute identical values at identical times.

Usage:
    from splice.utils.interpolation import interpolate, interpolate_transform

    x = interpolate(1.5, overlay.position_keyframes, "x", default=0.0)
    values = interpolate_transform(1.5, overlay)

Duplicate keyframe times are undefined input. They are tolerated with a
first-match policy: zero-width brackets are skipped, so at the shared time the
earliest keyframe (in input order) supplies the value.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Sequence

from splice.schemas.timeline import TransformKeyframe

if TYPE_CHECKING:
    from splice.schemas.timeline import Overlay

Channel = Literal["x", "y", "scale", "rotation", "opacity"]

CHANNEL_DEFAULTS: dict[str, float] = {
    "x": 0.0,
    "y": 0.0,
    "scale": 1.0,
    "rotation": 0.0,
    "opacity": 1.0,
}


def _channel_value(keyframe: TransformKeyframe, channel: Channel, default: float) -> float:
    value = getattr(keyframe, channel)
    return default if value is None else value


def interpolate(
    time: float,
    keyframes: Sequence[TransformKeyframe],
    channel: Channel,
    default: float,
) -> float:
    """Linearly interpolate one channel over a keyframe sequence.

    Args:
        time: Overlay-local time in seconds
        keyframes: Keyframes in any order (sorted here)
        channel: Channel name ("x", "y", "scale", "rotation", "opacity")
        default: Value for empty sequences and keyframes missing the channel

    Returns:
        Interpolated value, clamped to the first/last keyframe outside the range
    """
    if not keyframes:
        return default

    ordered = sorted(keyframes, key=lambda kf: kf.time)

    first = ordered[0]
    if time <= first.time:
        return _channel_value(first, channel, default)

    last = ordered[-1]
    if time >= last.time:
        return _channel_value(last, channel, default)

    for k1, k2 in zip(ordered, ordered[1:]):
        span = k2.time - k1.time
        if span <= 0:
            continue
        if k1.time <= time <= k2.time:
            v1 = _channel_value(k1, channel, default)
            v2 = _channel_value(k2, channel, default)
            return v1 + (v2 - v1) * (time - k1.time) / span

    # Unreachable for sorted input inside (first.time, last.time)
    return _channel_value(last, channel, default)


@dataclass(frozen=True)
class TransformValues:
    """Evaluated overlay transform in reference coordinates."""

    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0
    rotation: float = 0.0
    opacity: float = 1.0

    def to_dict(self) -> dict[str, float]:
        return {
            "x": self.x,
            "y": self.y,
            "scale": self.scale,
            "rotation": self.rotation,
            "opacity": self.opacity,
        }


def interpolate_transform(local_time: float, overlay: "Overlay") -> TransformValues:
    """Interpolate all transform channels of an overlay independently."""
    return TransformValues(
        x=interpolate(local_time, overlay.position_keyframes, "x", CHANNEL_DEFAULTS["x"]),
        y=interpolate(local_time, overlay.position_keyframes, "y", CHANNEL_DEFAULTS["y"]),
        scale=interpolate(local_time, overlay.scale_keyframes, "scale", CHANNEL_DEFAULTS["scale"]),
        rotation=interpolate(
            local_time, overlay.rotation_keyframes, "rotation", CHANNEL_DEFAULTS["rotation"]
        ),
        opacity=interpolate(
            local_time, overlay.opacity_keyframes, "opacity", CHANNEL_DEFAULTS["opacity"]
        ),
    )
