"""Tests for timeline evaluation at a query time."""

import json
import math

import pytest

from splice.exceptions import TimelineValidationError
from splice.schemas.timeline import Clip, Overlay, ProjectTimeline, TextAnimation, Track
from splice.services.timeline_evaluator import evaluate_clip, evaluate_overlay, evaluate_timeline


def make_clip(**overrides) -> Clip:
    data = {"id": "c1", "asset_id": "a1", "track": Track.PRIMARY, "start_time": 0, "end_time": 4}
    data.update(overrides)
    return Clip(**data)


def make_overlay(**overrides) -> Overlay:
    data = {"id": "o1", "kind": "text", "start_time": 1, "end_time": 3, "content": "Title"}
    data.update(overrides)
    return Overlay(**data)


class TestClipEvaluation:
    """Clip activation and source mapping."""

    def test_speed_ramp_with_trim(self):
        """Test clip-local and source time for a 2x clip trimmed at 5s."""
        clip = make_clip(trim_start=5, speed_keyframes=[{"time": 0, "speed": 2}])
        state = evaluate_clip(2, clip)

        assert state.clip_local_time == 2
        assert state.source_time == pytest.approx(9)

    def test_half_open_activation(self):
        """Test that a clip is active on [start, end) only."""
        clip = make_clip(start_time=2, end_time=5)
        assert evaluate_clip(2, clip) is not None
        assert evaluate_clip(4.999, clip) is not None
        assert evaluate_clip(5, clip) is None
        assert evaluate_clip(1.999, clip) is None

    def test_no_keyframes_plays_at_1x(self):
        """Test that an un-ramped clip maps one-to-one from trim start."""
        state = evaluate_clip(3.5, make_clip(start_time=1, trim_start=10))
        assert state.source_time == pytest.approx(12.5)


class TestOverlayEvaluation:
    """Overlay activation, transform and animation."""

    def test_half_open_activation(self):
        """Test that an overlay is inactive at its end time."""
        overlay = make_overlay()
        assert evaluate_overlay(1, overlay) is not None
        assert evaluate_overlay(3, overlay) is None

    def test_local_time_and_transform(self):
        """Test that keyframes are read in overlay-local time."""
        overlay = make_overlay(position_keyframes=[{"time": 0, "x": 0, "y": 0}, {"time": 2, "x": 100, "y": 40}])
        state = evaluate_overlay(2, overlay)

        assert state.overlay_local_time == 1
        assert state.transform.x == pytest.approx(50)
        assert state.transform.y == pytest.approx(20)

    def test_animation_state_exposed(self):
        """Test that text presets are evaluated alongside the transform."""
        overlay = make_overlay(animation=TextAnimation.FADE)
        state = evaluate_overlay(1.25, overlay)
        assert state.animation.opacity == pytest.approx(0.5)

    def test_image_overlays_ignore_presets(self):
        """Test that presets only apply to text overlays."""
        overlay = make_overlay(kind="image", animation=TextAnimation.FADE)
        state = evaluate_overlay(1.0, overlay)
        assert state.animation.opacity == 1.0


class TestEvaluateTimeline:
    """Whole-timeline queries."""

    def test_only_active_items_returned_in_input_order(self):
        """Test filtering and stable ordering."""
        clips = [
            make_clip(id="b", track=Track.SECONDARY, start_time=0, end_time=2),
            make_clip(id="a", start_time=0, end_time=10),
            make_clip(id="late", start_time=5, end_time=6),
        ]
        overlays = [make_overlay(id="x", start_time=0, end_time=1), make_overlay(id="y", start_time=0.5, end_time=2)]

        state = evaluate_timeline(0.75, clips, overlays)
        assert [c.clip_id for c in state.active_clips] == ["b", "a"]
        assert [o.overlay_id for o in state.active_overlays] == ["x", "y"]

    def test_empty_timeline(self):
        """Test evaluation with nothing on the timeline."""
        state = evaluate_timeline(1.0, [], [])
        assert state.active_clips == []
        assert state.active_overlays == []

    @pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
    def test_non_finite_time_rejected(self, bad):
        """Test that NaN/inf query times raise."""
        with pytest.raises(TimelineValidationError):
            evaluate_timeline(bad, [], [])

    def test_round_trip_is_bit_identical(self, project):
        """Test that serialising the project graph does not change evaluation."""
        payload = json.dumps(project.model_dump(mode="json", by_alias=True))
        restored = ProjectTimeline.model_validate(json.loads(payload))

        for t in (0.0, 1.3, 2.0, 7.25, 9.9):
            before = evaluate_timeline(t, project.clips, project.overlays)
            after = evaluate_timeline(t, restored.clips, restored.overlays)
            assert before.to_dict() == after.to_dict()
