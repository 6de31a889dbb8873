"""Tests for text animation presets."""

import pytest

from splice.schemas.timeline import TextAnimation
from splice.utils.text_animation import IDENTITY, text_animation_state


class TestTextAnimation:
    """Entrance/exit behaviour of each preset."""

    def test_none_is_identity(self):
        """Test that no preset leaves the transform untouched."""
        assert text_animation_state(TextAnimation.NONE, 0.1, 3) == IDENTITY

    def test_fade_in_and_out(self):
        """Test fade opacity over a 3s overlay."""
        assert text_animation_state(TextAnimation.FADE, 0, 3).opacity == 0
        assert text_animation_state(TextAnimation.FADE, 0.25, 3).opacity == pytest.approx(0.5)
        assert text_animation_state(TextAnimation.FADE, 1.5, 3).opacity == 1
        assert text_animation_state(TextAnimation.FADE, 2.75, 3).opacity == pytest.approx(0.5)

    def test_slide_up_offsets(self):
        """Test that slide-up enters from below and exits upward."""
        assert text_animation_state(TextAnimation.SLIDE_UP, 0, 3).dy == pytest.approx(30)
        assert text_animation_state(TextAnimation.SLIDE_UP, 1, 3).dy == 0
        assert text_animation_state(TextAnimation.SLIDE_UP, 3, 3).dy == pytest.approx(-30)

    def test_slide_left_offsets(self):
        """Test that slide-left enters from the right."""
        assert text_animation_state(TextAnimation.SLIDE_LEFT, 0, 3).dx == pytest.approx(60)
        assert text_animation_state(TextAnimation.SLIDE_LEFT, 0.5, 3).dx == 0

    def test_scale_grows_in(self):
        """Test the scale preset's entrance and exit scale."""
        assert text_animation_state(TextAnimation.SCALE, 0, 3).scale == pytest.approx(0.3)
        assert text_animation_state(TextAnimation.SCALE, 1, 3).scale == 1
        assert text_animation_state(TextAnimation.SCALE, 3, 3).scale == pytest.approx(1.5)

    def test_typewriter_reveals_characters(self):
        """Test that typewriter reveals text over two seconds."""
        assert text_animation_state(TextAnimation.TYPEWRITER, 0, 5, 10).visible_chars == 0
        assert text_animation_state(TextAnimation.TYPEWRITER, 1, 5, 10).visible_chars == 5
        assert text_animation_state(TextAnimation.TYPEWRITER, 4, 5, 10).visible_chars == 10

    def test_typewriter_short_overlay(self):
        """Test that the reveal window shrinks to the overlay duration."""
        assert text_animation_state(TextAnimation.TYPEWRITER, 0.5, 1, 10).visible_chars == 5

    def test_bounce_settles(self):
        """Test that bounce ends at rest."""
        state = text_animation_state(TextAnimation.BOUNCE, 1, 3)
        assert state.dy == 0
        assert state.opacity == 1

    def test_blur_clears(self):
        """Test blur radius at entrance, middle and exit."""
        assert text_animation_state(TextAnimation.BLUR, 0, 3).blur == pytest.approx(8)
        assert text_animation_state(TextAnimation.BLUR, 1, 3).blur == 0
        assert text_animation_state(TextAnimation.BLUR, 3, 3).blur == pytest.approx(8)
