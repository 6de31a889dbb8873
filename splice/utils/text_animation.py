"""Text overlay animation presets.

Each preset has a 0.5s entrance and a 0.5s exit. The state returned here
modifies the keyframed transform: opacity and scale multiply, offsets add
(in reference pixels), and ``visible_chars`` truncates typewriter text.
"""

import math
from dataclasses import dataclass

from splice.schemas.timeline import TextAnimation

ENTRANCE_S = 0.5
EXIT_S = 0.5
TYPEWRITER_S = 2.0


@dataclass(frozen=True)
class AnimationState:
    opacity: float = 1.0
    dx: float = 0.0
    dy: float = 0.0
    scale: float = 1.0
    blur: float = 0.0
    visible_chars: int | None = None  # None = whole text

    def to_dict(self) -> dict:
        return {
            "opacity": self.opacity,
            "dx": self.dx,
            "dy": self.dy,
            "scale": self.scale,
            "blur": self.blur,
            "visible_chars": self.visible_chars,
        }


IDENTITY = AnimationState()


def text_animation_state(
    animation: TextAnimation,
    local_time: float,
    duration: float,
    text_length: int = 0,
) -> AnimationState:
    """Evaluate a preset at an overlay-local time."""
    if animation == TextAnimation.NONE or duration <= 0:
        return IDENTITY

    progress = min(1.0, max(0.0, local_time) / min(ENTRANCE_S, duration))
    exit_start = duration - EXIT_S
    exit_progress = min(1.0, (local_time - exit_start) / EXIT_S) if local_time > exit_start else 0.0
    fade = 1 - exit_progress if exit_progress > 0 else progress

    if animation == TextAnimation.FADE:
        return AnimationState(opacity=fade)

    if animation == TextAnimation.SLIDE_UP:
        dy = -30 * exit_progress if exit_progress > 0 else 30 * (1 - progress)
        return AnimationState(opacity=fade, dy=dy)

    if animation == TextAnimation.SLIDE_LEFT:
        dx = -60 * exit_progress if exit_progress > 0 else 60 * (1 - progress)
        return AnimationState(opacity=fade, dx=dx)

    if animation == TextAnimation.SCALE:
        scale = 1 + exit_progress * 0.5 if exit_progress > 0 else 0.3 + 0.7 * progress
        return AnimationState(opacity=fade, scale=scale)

    if animation == TextAnimation.TYPEWRITER:
        window = min(TYPEWRITER_S, duration)
        chars = math.floor(max(0.0, local_time) / window * text_length)
        return AnimationState(visible_chars=max(0, min(text_length, chars)))

    if animation == TextAnimation.BOUNCE:
        bounce = abs(math.sin(progress * math.pi * 3)) * (1 - progress) * 20 if progress < 1 else 0.0
        opacity = 1 - exit_progress if exit_progress > 0 else min(1.0, progress * 2)
        return AnimationState(opacity=opacity, dy=-bounce)

    if animation == TextAnimation.BLUR:
        blur = exit_progress * 8 if exit_progress > 0 else (1 - progress) * 8
        return AnimationState(opacity=fade, blur=blur)

    return IDENTITY
