"""Tests for Pillow overlay rasterisation."""

from pathlib import Path

import pytest
from PIL import Image

from splice.render.overlay_renderer import OverlayRenderer, parse_color
from splice.render.planner import OverlayStep
from splice.schemas.timeline import Overlay
from splice.utils.interpolation import TransformValues


def make_step(text: str | None = "Hello", blur: float = 0.0, **transform) -> OverlayStep:
    return OverlayStep(
        overlay_id="o",
        index=0,
        abs_start=0.0,
        abs_end=1.0,
        transform=TransformValues(**transform),
        text=text,
        blur=blur,
    )


@pytest.fixture
def renderer(settings) -> OverlayRenderer:
    return OverlayRenderer(settings)


@pytest.fixture
def text_overlay() -> Overlay:
    return Overlay(id="o", kind="text", start_time=0, end_time=1, content="Hello", font_size=32)


@pytest.fixture
def image_overlay(media_files) -> Overlay:
    return Overlay(id="i", kind="image", start_time=0, end_time=1, content=str(media_files["logo"]))


class TestParseColor:
    """Color strings to RGBA."""

    def test_hex_with_alpha(self):
        """Test #rrggbbaa parsing."""
        assert parse_color("#000000b3", "#fff") == (0, 0, 0, 179)

    def test_named(self):
        """Test named colors."""
        assert parse_color("red", "#fff") == (255, 0, 0, 255)

    def test_fallback(self):
        """Test that an invalid value falls back."""
        assert parse_color("not-a-color", "#00ff00") == (0, 255, 0, 255)
        assert parse_color(None, "#0000ff") == (0, 0, 255, 255)


class TestTextOverlay:
    """Text rendering."""

    def test_renders_rgba_png(self, renderer, text_overlay, tmp_path: Path):
        """Test that a text step is written as an RGBA PNG."""
        out = tmp_path / "text.png"
        rendered = renderer.render_step(text_overlay, make_step(), str(out), factor=1.0)

        assert out.exists()
        with Image.open(out) as img:
            assert img.mode == "RGBA"
            assert img.size == rendered.size
        assert rendered.natural_size == rendered.size

    def test_scale_and_factor_grow_image(self, renderer, text_overlay, tmp_path: Path):
        """Test that transform scale and frame factor both enlarge the text."""
        base = renderer.render_step(text_overlay, make_step(), str(tmp_path / "a.png"), factor=1.0)
        big = renderer.render_step(text_overlay, make_step(scale=2.0), str(tmp_path / "b.png"), factor=1.5)

        assert big.size[0] > base.size[0] * 2
        assert big.natural_size == base.natural_size

    def test_rotation_expands_canvas(self, renderer, text_overlay, tmp_path: Path):
        """Test that rotated text gets a larger bounding box."""
        flat = renderer.render_step(text_overlay, make_step(), str(tmp_path / "a.png"), factor=1.0)
        turned = renderer.render_step(text_overlay, make_step(rotation=45), str(tmp_path / "b.png"), factor=1.0)
        assert turned.size[1] > flat.size[1]

    def test_opacity_applied_to_alpha(self, renderer, text_overlay, tmp_path: Path):
        """Test that step opacity scales the alpha channel."""
        out = tmp_path / "half.png"
        renderer.render_step(text_overlay, make_step(opacity=0.5), str(out), factor=1.0)
        with Image.open(out) as img:
            # Background is #000000b3 (179); half opacity
            assert img.getpixel((1, img.height // 2))[3] in (89, 90)

    def test_partial_text_is_narrower(self, renderer, text_overlay, tmp_path: Path):
        """Test that typewriter prefixes render narrower images."""
        short = renderer.render_step(text_overlay, make_step(text="He"), str(tmp_path / "a.png"), factor=1.0)
        full = renderer.render_step(text_overlay, make_step(text="Hello"), str(tmp_path / "b.png"), factor=1.0)
        assert short.size[0] < full.size[0]


class TestImageOverlay:
    """Image rendering and effects."""

    def test_image_scaled(self, renderer, image_overlay, media_files, tmp_path: Path):
        """Test that image overlays are resized by scale and factor."""
        rendered = renderer.render_step(
            image_overlay, make_step(text=None, scale=2.0), str(tmp_path / "img.png"),
            factor=1.5, image_source=str(media_files["logo"]),
        )
        assert rendered.natural_size == (64, 32)
        assert rendered.size == (192, 96)

    def test_blur_keeps_size(self, renderer, text_overlay, tmp_path: Path):
        """Test that blur softens the image without resizing it."""
        sharp = renderer.render_step(text_overlay, make_step(), str(tmp_path / "a.png"), factor=1.0)
        soft = renderer.render_step(text_overlay, make_step(blur=4.0), str(tmp_path / "b.png"), factor=1.0)

        assert soft.size == sharp.size
        with Image.open(sharp.path) as a, Image.open(soft.path) as b:
            assert a.tobytes() != b.tobytes()

    def test_missing_source(self, renderer, image_overlay, tmp_path: Path):
        """Test that an image overlay needs a source path."""
        with pytest.raises(ValueError):
            renderer.render_step(image_overlay, make_step(text=None), str(tmp_path / "x.png"), factor=1.0)
