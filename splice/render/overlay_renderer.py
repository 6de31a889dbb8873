"""Overlay rasterisation with Pillow.

Text and image overlays are rendered to transparent PNGs with their scale,
rotation, opacity and blur already applied, so the media tool only has to
position them. Sizes are computed in reference pixels and multiplied by the
caller's ``size_factor`` to land correctly at the actual frame resolution.
"""

import logging
from dataclasses import dataclass

from PIL import Image, ImageColor, ImageDraw, ImageFilter, ImageFont

from splice.config import Settings, get_settings
from splice.render.planner import OverlayStep
from splice.schemas.timeline import Overlay

logger = logging.getLogger(__name__)

# Fallbacks tried after the configured font
FONT_CANDIDATES = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/System/Library/Fonts/Helvetica.ttc",
]

CORNER_RADIUS = 4


@dataclass(frozen=True)
class RenderedOverlay:
    path: str
    natural_size: tuple[int, int]  # reference px, before scale/rotation
    size: tuple[int, int]  # frame px, as written


def parse_color(value: str | None, fallback: str) -> tuple[int, int, int, int]:
    """CSS-ish color (#rgb, #rrggbbaa, names, rgba()) to an RGBA tuple."""
    for candidate in (value, fallback):
        if not candidate:
            continue
        try:
            return ImageColor.getcolor(candidate, "RGBA")
        except ValueError:
            logger.warning(f"[TEXT] Unrecognised color {candidate!r}, using fallback")
    return (255, 255, 255, 255)


class OverlayRenderer:
    """Rasterises overlay steps to PNG files."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._fonts: dict[int, ImageFont.FreeTypeFont | ImageFont.ImageFont] = {}

    def _font(self, size: int):
        size = max(1, size)
        if size in self._fonts:
            return self._fonts[size]

        font = None
        for path in [self.settings.text_font_path, *FONT_CANDIDATES]:
            try:
                font = ImageFont.truetype(path, size)
                break
            except OSError:
                continue
        if font is None:
            logger.warning("[TEXT] No TrueType font found, using PIL default")
            font = ImageFont.load_default(size)

        self._fonts[size] = font
        return font

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    def _text_image(self, overlay: Overlay, text: str, factor: float) -> Image.Image:
        font_size = overlay.font_size or self.settings.text_default_font_size
        font = self._font(round(font_size * factor))
        pad_x = round(self.settings.text_padding_x * factor)
        pad_y = round(self.settings.text_padding_y * factor)

        probe = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
        left, top, right, bottom = probe.multiline_textbbox((0, 0), text or " ", font=font)
        width = max(1, right - left + pad_x * 2)
        height = max(1, bottom - top + pad_y * 2)

        img = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(img)
        bg = parse_color(overlay.bg_color, self.settings.text_default_bg_color)
        if bg[3] > 0:
            draw.rounded_rectangle(
                [(0, 0), (width - 1, height - 1)],
                radius=max(0, round(CORNER_RADIUS * factor)),
                fill=bg,
            )
        fg = parse_color(overlay.color, self.settings.text_default_color)
        draw.multiline_text((pad_x - left, pad_y - top), text, font=font, fill=fg)
        return img

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    @staticmethod
    def _load_image(source: str) -> Image.Image:
        with Image.open(source) as img:
            return img.convert("RGBA")

    @staticmethod
    def _resize(img: Image.Image, factor: float) -> Image.Image:
        if abs(factor - 1.0) < 1e-6:
            return img
        width = max(1, round(img.width * factor))
        height = max(1, round(img.height * factor))
        return img.resize((width, height), Image.Resampling.LANCZOS)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def natural_size(self, overlay: Overlay, text: str | None, image_source: str | None) -> tuple[int, int]:
        """Unscaled overlay box in reference pixels."""
        if overlay.kind == "text":
            return self._text_image(overlay, text or "", 1.0).size
        if image_source is None:
            raise ValueError(f"Image overlay {overlay.id} has no image source")
        with Image.open(image_source) as img:
            return img.size

    def render_step(
        self,
        overlay: Overlay,
        step: OverlayStep,
        output_path: str,
        *,
        factor: float,
        image_source: str | None = None,
    ) -> RenderedOverlay:
        """Write the PNG for one overlay step.

        Args:
            overlay: Overlay being drawn
            step: Sampled step (transform, visible text, blur)
            output_path: PNG destination
            factor: Reference-to-frame size factor
            image_source: Image file for image overlays

        Returns:
            RenderedOverlay with natural and final sizes
        """
        transform = step.transform
        scale = factor * max(transform.scale, 0.0)
        natural = self.natural_size(overlay, step.text, image_source)

        if overlay.kind == "text":
            img = self._text_image(overlay, step.text or "", scale)
        else:
            img = self._resize(self._load_image(image_source), scale)

        if step.blur > 0:
            img = img.filter(ImageFilter.GaussianBlur(step.blur * factor))

        if abs(transform.rotation) > 0.01:
            # CSS rotation is clockwise; PIL rotates counter-clockwise
            img = img.rotate(-transform.rotation, expand=True, resample=Image.Resampling.BICUBIC)

        if transform.opacity < 1.0:
            alpha = img.getchannel("A").point(lambda a: round(a * transform.opacity))
            img.putalpha(alpha)

        img.save(output_path, "PNG")
        logger.debug(f"[TEXT] Rendered {overlay.kind} step {step.index} -> {output_path} {img.size}")
        return RenderedOverlay(path=output_path, natural_size=natural, size=img.size)
