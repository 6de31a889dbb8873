"""Speed-ramp integration: clip-local time -> source-time offset.

A clip's speed curve is piecewise linear between keyframes and constant
outside them. Source time is the integral of speed over clip-local time,
computed with the trapezoidal rule (exact for a piecewise-linear curve).

Every call integrates from zero, so repeated evaluation never accumulates
drift. Zero-speed stretches contribute nothing, which gives holds.
"""

from typing import Sequence

from splice.schemas.timeline import SpeedKeyframe


def sort_keyframes(keyframes: Sequence[SpeedKeyframe]) -> list[SpeedKeyframe]:
    """Stable sort by time; equal times keep input order."""
    return sorted(keyframes, key=lambda kf: kf.time)


def source_time_at_keyframe(ordered: Sequence[SpeedKeyframe], index: int) -> float:
    """Accumulated source time at ``ordered[index]`` (keyframes pre-sorted)."""
    if not ordered:
        return 0.0

    # Constant extrapolation of the first speed back to clip-local 0
    source_time = ordered[0].time * ordered[0].speed

    for k1, k2 in zip(ordered[:index], ordered[1 : index + 1]):
        source_time += (k2.time - k1.time) * (k1.speed + k2.speed) / 2

    return source_time


def evaluate_speed_ramp(clip_local_time: float, keyframes: Sequence[SpeedKeyframe]) -> float:
    """Map clip-local seconds to source-asset seconds (relative to trim start).

    Args:
        clip_local_time: Seconds since the clip's timeline start
        keyframes: Speed keyframes in any order

    Returns:
        Source-time offset in seconds
    """
    if not keyframes:
        return clip_local_time

    ordered = sort_keyframes(keyframes)
    first = ordered[0]
    last = ordered[-1]

    if clip_local_time <= first.time:
        return clip_local_time * first.speed

    if clip_local_time >= last.time:
        at_last = source_time_at_keyframe(ordered, len(ordered) - 1)
        return at_last + (clip_local_time - last.time) * last.speed

    for i, (k1, k2) in enumerate(zip(ordered, ordered[1:])):
        span = k2.time - k1.time
        if span <= 0:
            continue
        if k1.time <= clip_local_time <= k2.time:
            progress = (clip_local_time - k1.time) / span
            speed = k1.speed + (k2.speed - k1.speed) * progress
            elapsed = clip_local_time - k1.time
            return source_time_at_keyframe(ordered, i) + elapsed * (k1.speed + speed) / 2

    # Unreachable for sorted input strictly inside (first.time, last.time)
    return clip_local_time


def instantaneous_speed(clip_local_time: float, keyframes: Sequence[SpeedKeyframe]) -> float:
    """Linearly interpolated playback speed at a clip-local time."""
    if not keyframes:
        return 1.0

    ordered = sort_keyframes(keyframes)
    if clip_local_time <= ordered[0].time:
        return ordered[0].speed
    if clip_local_time >= ordered[-1].time:
        return ordered[-1].speed

    for k1, k2 in zip(ordered, ordered[1:]):
        span = k2.time - k1.time
        if span > 0 and k1.time <= clip_local_time <= k2.time:
            return k1.speed + (k2.speed - k1.speed) * (clip_local_time - k1.time) / span

    return ordered[-1].speed


def average_speed(start: float, end: float, keyframes: Sequence[SpeedKeyframe]) -> float:
    """Mean speed over [start, end): source span divided by clip-local span."""
    if end <= start:
        return instantaneous_speed(start, keyframes)
    span = evaluate_speed_ramp(end, keyframes) - evaluate_speed_ramp(start, keyframes)
    return span / (end - start)
