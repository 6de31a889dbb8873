"""
Render pipeline orchestration.

Stages, each consuming the previous stage's artifact:
1. Primary track: plan segments, encode, concatenate -> base
2. Secondary track: render the same way, composite over base (top track wins)
3. Pad base so every overlay has backing video
4. Text overlays (stepped, rasterised with Pillow)
5. Image overlays (stepped, rasterised with Pillow)
6. Audio track: mix into base (or attach when base is silent)
7. Move the last artifact to the output path

Secondary composite, padding and audio mix degrade: a media-tool failure
there keeps the previous artifact and the export still completes. Failures
anywhere else abort the render. Intermediate files live in a per-job work
directory that is removed on success and failure alike.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from typing import Awaitable, Callable, Optional
from uuid import uuid4

from splice.config import Settings, get_settings
from splice.exceptions import AssetNotFoundError, MediaToolError, NoPrimaryContentError
from splice.render.media_tool import AudioPlacement, FFmpegMediaTool, MediaTool, OverlayDraw
from splice.render.overlay_renderer import OverlayRenderer
from splice.render.planner import (
    TrackItem,
    frame_position,
    plan_clip_segments,
    plan_overlay_steps,
    plan_track,
    size_factor,
)
from splice.schemas.timeline import Clip, Overlay, ProjectTimeline, Track

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

# Tolerance before a duration mismatch is worth a pad
PAD_EPSILON_S = 0.05


class RenderPipeline:
    """Renders one project timeline to a single video file."""

    # Progress checkpoints (percent)
    PROGRESS_PREPARE = 5
    PROGRESS_PRIMARY = 10
    PROGRESS_SECONDARY = 30
    PROGRESS_PAD = 50
    PROGRESS_TEXT = 70
    PROGRESS_IMAGE = 85
    PROGRESS_AUDIO = 95
    PROGRESS_COMPLETE = 100

    def __init__(
        self,
        job_id: Optional[str] = None,
        media_tool: Optional[MediaTool] = None,
        overlay_renderer: Optional[OverlayRenderer] = None,
        settings: Optional[Settings] = None,
    ):
        self.job_id = job_id or uuid4().hex
        self.settings = settings or get_settings()
        self.media_tool = media_tool or FFmpegMediaTool(self.settings)
        self.overlay_renderer = overlay_renderer or OverlayRenderer(self.settings)

        self.work_dir = ""
        self._artifacts: list[str] = []
        self._progress_callback: Optional[ProgressCallback] = None
        self._last_progress = 0

    # ------------------------------------------------------------------
    # Progress & artifacts
    # ------------------------------------------------------------------

    def set_progress_callback(self, callback: Optional[ProgressCallback]) -> None:
        """Set callback for progress updates."""
        self._progress_callback = callback

    def _update_progress(self, progress: int, stage: str) -> None:
        progress = max(progress, self._last_progress)
        self._last_progress = progress
        logger.info(f"[RENDER] job={self.job_id} {progress}% {stage}")
        if self._progress_callback:
            self._progress_callback(progress, stage)

    def _artifact(self, stem: str, ext: str = ".mp4") -> str:
        """Reserve a unique intermediate path inside the work directory."""
        path = os.path.join(self.work_dir, f"{stem}_{uuid4().hex[:12]}{ext}")
        self._artifacts.append(path)
        return path

    @property
    def artifacts(self) -> list[str]:
        return list(self._artifacts)

    def _cleanup(self, keep: Optional[str] = None) -> None:
        """Delete every intermediate artifact and the work directory."""
        for path in self._artifacts:
            if path == keep or not os.path.exists(path):
                continue
            try:
                os.remove(path)
            except OSError as e:
                logger.warning(f"[RENDER] Could not remove artifact {path}: {e}")

        if self.work_dir and os.path.isdir(self.work_dir):
            try:
                shutil.rmtree(self.work_dir)
            except OSError as e:
                logger.warning(f"[RENDER] Could not remove work dir {self.work_dir}: {e}")

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def render(
        self,
        project: ProjectTimeline,
        output_path: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> str:
        """
        Execute the full render pipeline.

        Args:
            project: Project graph to render
            output_path: Final file path (defaults to a unique file in export_dir)
            progress_callback: Called with (percent, stage) at each checkpoint

        Returns:
            Path to the rendered video

        Raises:
            NoPrimaryContentError: If the primary track has no clips
            AssetNotFoundError: If a referenced asset or image is missing
            MediaToolError: If a required stage fails
        """
        if progress_callback is not None:
            self.set_progress_callback(progress_callback)

        if output_path is None:
            os.makedirs(self.settings.export_dir, exist_ok=True)
            output_path = os.path.join(self.settings.export_dir, f"export_{uuid4().hex}.mp4")

        if self.settings.work_dir_root:
            os.makedirs(self.settings.work_dir_root, exist_ok=True)
        self.work_dir = tempfile.mkdtemp(prefix=f"splice_render_{self.job_id}_", dir=self.settings.work_dir_root)
        self._artifacts = []
        self._last_progress = 0

        try:
            self._update_progress(self.PROGRESS_PREPARE, "Preparing render")
            self._check_inputs(project)

            self._update_progress(self.PROGRESS_PRIMARY, "Rendering primary track")
            base = await self._render_track(
                project, project.clips_on(Track.PRIMARY), "primary",
                progress_span=(self.PROGRESS_PRIMARY, self.PROGRESS_SECONDARY),
            )

            self._update_progress(self.PROGRESS_SECONDARY, "Compositing secondary track")
            base = await self._degradable("Secondary composite", self._composite_secondary(project, base), base)

            self._update_progress(self.PROGRESS_PAD, "Padding to timeline length")
            base = await self._degradable("Padding", self._pad_to_length(project, base), base)

            self._update_progress(self.PROGRESS_TEXT, "Applying text overlays")
            base = await self._apply_overlays(project, base, "text")

            self._update_progress(self.PROGRESS_IMAGE, "Applying image overlays")
            base = await self._apply_overlays(project, base, "image")

            self._update_progress(self.PROGRESS_AUDIO, "Mixing audio")
            base = await self._degradable("Audio mix", self._mix_audio_track(project, base), base)

            os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
            shutil.move(base, output_path)

            self._update_progress(self.PROGRESS_COMPLETE, "Complete")
            return output_path

        finally:
            self._cleanup(keep=output_path)

    async def _degradable(self, stage: str, work: Awaitable[str], fallback: str) -> str:
        """Run an enhancement stage; on tool/file errors keep ``fallback``."""
        try:
            return await work
        except (MediaToolError, OSError) as e:
            logger.warning(f"[RENDER] {stage} failed, continuing without it: {e}")
            return fallback

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _asset_path(self, project: ProjectTimeline, asset_id: str) -> str:
        asset = project.assets.get(asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)
        if not os.path.exists(asset.path):
            raise AssetNotFoundError(asset_id, asset.path)
        return asset.path

    def _image_source(self, project: ProjectTimeline, overlay: Overlay) -> str:
        asset = project.assets.get(overlay.content)
        path = asset.path if asset else overlay.content
        if not path or not os.path.exists(path):
            raise AssetNotFoundError(overlay.content or overlay.id, path or None)
        return path

    def _check_inputs(self, project: ProjectTimeline) -> None:
        if not project.clips_on(Track.PRIMARY):
            raise NoPrimaryContentError()
        for clip in project.clips:
            self._asset_path(project, clip.asset_id)
        for overlay in project.overlays_of("image"):
            self._image_source(project, overlay)

    # ------------------------------------------------------------------
    # Video tracks
    # ------------------------------------------------------------------

    async def _render_item(self, project: ProjectTimeline, item: TrackItem, label: str) -> list[str]:
        if item.kind == "gap":
            path = self._artifact(f"{label}_gap")
            return [await self.media_tool.encode_blank(item.duration, path)]

        source = self._asset_path(project, item.clip.asset_id)
        pieces: list[str] = []
        for seg in item.segments:
            if seg.is_freeze:
                frame = self._artifact(f"{label}_freeze", ".png")
                await self.media_tool.extract_frame(source, seg.source_start, frame)
                path = self._artifact(f"{label}_hold")
                pieces.append(await self.media_tool.encode_still(frame, seg.duration, path))
            else:
                path = self._artifact(f"{label}_seg")
                pieces.append(
                    await self.media_tool.encode_segment(source, seg.source_start, seg.duration, seg.speed, path)
                )
        return pieces

    async def _render_track(
        self,
        project: ProjectTimeline,
        clips: list[Clip],
        label: str,
        progress_span: Optional[tuple[int, int]] = None,
    ) -> str:
        items = plan_track(
            clips,
            freeze_threshold=self.settings.freeze_speed_threshold,
            speed_mode=self.settings.segment_speed_mode,
        )
        if not items:
            raise NoPrimaryContentError(f"Nothing renderable on the {label} track")

        logger.info(f"[RENDER] {label} track: {len(clips)} clips -> {len(items)} items")

        pieces: list[str] = []
        for i, item in enumerate(items):
            pieces.extend(await self._render_item(project, item, label))
            if progress_span:
                start, end = progress_span
                self._update_progress(start + (end - start) * (i + 1) // (len(items) + 1), f"Rendering {label} track")

        if len(pieces) == 1:
            return pieces[0]
        return await self.media_tool.concatenate(pieces, self._artifact(f"{label}_track"))

    async def _composite_secondary(self, project: ProjectTimeline, base: str) -> str:
        clips = project.clips_on(Track.SECONDARY)
        if not clips:
            return base

        track_video = await self._render_track(project, clips, "secondary")

        # The composite runs for the length of base; extend base to cover the track
        base_info = await self.media_tool.probe(base)
        track_end = max(c.end_time for c in clips)
        if base_info.duration is not None and track_end - base_info.duration > PAD_EPSILON_S:
            base = await self.media_tool.pad(base, track_end - base_info.duration, self._artifact("base_padded"))

        windows = [(c.start_time, c.end_time) for c in clips]
        return await self.media_tool.composite_track(base, track_video, windows, self._artifact("composite"))

    async def _pad_to_length(self, project: ProjectTimeline, base: str) -> str:
        if not project.overlays:
            return base

        target = max(o.end_time for o in project.overlays)
        info = await self.media_tool.probe(base)
        if info.duration is None or target - info.duration <= PAD_EPSILON_S:
            return base

        pad_s = target - info.duration
        logger.info(f"[RENDER] Padding base by {pad_s:.3f}s to reach {target:.3f}s")
        return await self.media_tool.pad(base, pad_s, self._artifact("padded"))

    # ------------------------------------------------------------------
    # Overlays
    # ------------------------------------------------------------------

    async def _overlay_draws(
        self,
        project: ProjectTimeline,
        overlay: Overlay,
        frame_size: tuple[int, int],
        cache: dict[tuple, tuple[str, tuple[int, int], tuple[int, int]]],
    ) -> list[OverlayDraw]:
        reference = self.settings.reference_size
        factor = size_factor(frame_size, reference)
        image_source = self._image_source(project, overlay) if overlay.kind == "image" else None

        steps = plan_overlay_steps(
            overlay,
            steps_per_second=self.settings.overlay_steps_per_second,
            max_steps=self.settings.overlay_max_steps,
        )

        draws: list[OverlayDraw] = []
        for step in steps:
            t = step.transform
            key = (overlay.id, step.text, round(t.scale, 4), round(t.rotation, 3), round(t.opacity, 3), round(step.blur, 2))
            if key not in cache:
                path = self._artifact(f"{overlay.kind}_{overlay.id}", ".png")
                rendered = await asyncio.to_thread(
                    self.overlay_renderer.render_step,
                    overlay, step, path,
                    factor=factor, image_source=image_source,
                )
                cache[key] = (rendered.path, rendered.natural_size, rendered.size)

            path, natural, size = cache[key]
            x, y = frame_position(t, natural, size, frame_size, reference)
            draws.append(OverlayDraw(image_path=path, x=x, y=y, start=step.abs_start, end=step.abs_end))
        return draws

    async def _apply_overlays(self, project: ProjectTimeline, base: str, kind: str) -> str:
        overlays = project.overlays_of(kind)
        if not overlays:
            return base

        info = await self.media_tool.probe(base)
        frame_size = (
            info.width or self.settings.render_output_width,
            info.height or self.settings.render_output_height,
        )

        cache: dict = {}
        draws: list[OverlayDraw] = []
        for overlay in overlays:
            draws.extend(await self._overlay_draws(project, overlay, frame_size, cache))

        if not draws:
            return base

        logger.info(f"[RENDER] {kind} overlays: {len(overlays)} overlays -> {len(draws)} timed draws")
        return await self.media_tool.overlay_images(base, draws, self._artifact(f"{kind}_overlays"))

    # ------------------------------------------------------------------
    # Audio track
    # ------------------------------------------------------------------

    def _audio_placements(self, project: ProjectTimeline) -> list[AudioPlacement]:
        placements: list[AudioPlacement] = []
        for clip in project.clips_on(Track.AUDIO):
            source = self._asset_path(project, clip.asset_id)
            for seg in plan_clip_segments(
                clip,
                freeze_threshold=self.settings.freeze_speed_threshold,
                speed_mode=self.settings.segment_speed_mode,
            ):
                # A hold is silence on an audio-only clip
                if seg.is_freeze:
                    continue
                placements.append(
                    AudioPlacement(
                        source_path=source,
                        source_start=seg.source_start,
                        duration=seg.duration,
                        timeline_start=seg.timeline_start,
                        speed=seg.speed,
                    )
                )
        return placements

    async def _mix_audio_track(self, project: ProjectTimeline, base: str) -> str:
        placements = self._audio_placements(project)
        if not placements:
            return base
        return await self.media_tool.mix_audio(base, placements, self._artifact("audio_mix"))
