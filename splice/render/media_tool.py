"""Media processing capability used by the render pipeline.

The pipeline only issues declarative requests ("encode this segment at this
speed", "concatenate these files"); ``FFmpegMediaTool`` turns them into ffmpeg
invocations. Every video it writes is normalised to the configured
WxH@fps, H.264/yuv420p video plus stereo AAC audio, so intermediate files
can be stream-copy concatenated.

Each invocation is awaited to completion; the tool never runs two commands
at once on behalf of one pipeline.
"""

import asyncio
import json
import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from splice.config import Settings, get_settings
from splice.exceptions import MediaToolError
from splice.render.planner import atempo_chain
from splice.utils.media_info import MediaInfo, build_ffprobe_command, parse_ffprobe_output

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverlayDraw:
    """A pre-rendered RGBA image placed at frame pixels during [start, end)."""

    image_path: str
    x: int
    y: int
    start: float
    end: float


@dataclass(frozen=True)
class AudioPlacement:
    """A stretch of source audio placed on the timeline."""

    source_path: str
    source_start: float
    duration: float  # timeline seconds occupied
    timeline_start: float
    speed: float = 1.0

    @property
    def source_duration(self) -> float:
        return self.duration * self.speed


def enable_expr(windows: Sequence[tuple[float, float]]) -> str:
    """FFmpeg expression true inside any half-open [start, end) window."""
    terms = [f"gte(t,{start:.6f})*lt(t,{end:.6f})" for start, end in windows]
    return "+".join(terms) if terms else "0"


class MediaTool(ABC):
    """Abstract media processing capability."""

    @abstractmethod
    async def probe(self, path: str) -> MediaInfo: ...

    @abstractmethod
    async def extract_frame(self, source: str, at_time: float, output_path: str) -> str: ...

    @abstractmethod
    async def encode_segment(
        self, source: str, source_start: float, duration: float, speed: float, output_path: str
    ) -> str: ...

    @abstractmethod
    async def encode_still(self, image_path: str, duration: float, output_path: str) -> str: ...

    @abstractmethod
    async def encode_blank(self, duration: float, output_path: str) -> str: ...

    @abstractmethod
    async def concatenate(self, paths: Sequence[str], output_path: str) -> str: ...

    @abstractmethod
    async def composite_track(
        self, base: str, track_video: str, windows: Sequence[tuple[float, float]], output_path: str
    ) -> str: ...

    @abstractmethod
    async def pad(self, video: str, pad_duration: float, output_path: str) -> str: ...

    @abstractmethod
    async def overlay_images(self, base: str, draws: Sequence[OverlayDraw], output_path: str) -> str: ...

    @abstractmethod
    async def mix_audio(
        self, base: str, placements: Sequence[AudioPlacement], output_path: str
    ) -> str: ...


class FFmpegMediaTool(MediaTool):
    """MediaTool backed by the ffmpeg/ffprobe binaries."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.ffmpeg_path = self.settings.ffmpeg_path
        self.width = self.settings.render_output_width
        self.height = self.settings.render_output_height
        self.fps = self.settings.render_fps
        self.sample_rate = self.settings.render_audio_sample_rate
        self._probe_cache: dict[str, MediaInfo] = {}

    # ------------------------------------------------------------------
    # Shared command pieces
    # ------------------------------------------------------------------

    def _normalize_video(self) -> str:
        w, h = self.width, self.height
        return (
            f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:color=black,"
            f"setsar=1,fps={self.fps},format=yuv420p"
        )

    def _normalize_audio(self) -> str:
        return f"aresample={self.sample_rate},aformat=channel_layouts=stereo"

    def _silence_input(self, duration: float) -> list[str]:
        return [
            "-f", "lavfi",
            "-t", f"{duration:.6f}",
            "-i", f"anullsrc=channel_layout=stereo:sample_rate={self.sample_rate}",
        ]

    def _video_codec_args(self) -> list[str]:
        return [
            "-c:v", "libx264",
            "-preset", self.settings.render_preset,
            "-crf", str(self.settings.render_crf),
            "-pix_fmt", "yuv420p",
        ]

    def _audio_codec_args(self) -> list[str]:
        return [
            "-c:a", "aac",
            "-b:a", self.settings.render_audio_bitrate,
            "-ar", str(self.sample_rate),
            "-ac", "2",
        ]

    # ------------------------------------------------------------------
    # Command builders (no execution)
    # ------------------------------------------------------------------

    def build_extract_frame_command(self, source: str, at_time: float, output_path: str) -> list[str]:
        return [
            self.ffmpeg_path, "-y",
            "-ss", f"{max(0.0, at_time):.6f}",
            "-i", source,
            "-frames:v", "1",
            output_path,
        ]

    def build_segment_command(
        self,
        source: str,
        source_start: float,
        duration: float,
        speed: float,
        output_path: str,
        has_audio: bool,
    ) -> list[str]:
        """Encode ``duration`` output seconds read from ``source_start`` at ``speed``."""
        source_duration = duration * speed
        cmd = [
            self.ffmpeg_path, "-y",
            "-ss", f"{source_start:.6f}",
            "-t", f"{source_duration:.6f}",
            "-i", source,
        ]
        if not has_audio:
            cmd += self._silence_input(duration)

        video_chain = f"setpts=(PTS-STARTPTS)/{speed:.6f},{self._normalize_video()}"
        if has_audio:
            tempo = "".join(
                f"atempo={factor:.6f}," for factor in atempo_chain(
                    speed, self.settings.atempo_min, self.settings.atempo_max
                )
            )
            audio_chain = f"[0:a]asetpts=PTS-STARTPTS,{tempo}{self._normalize_audio()}[a]"
        else:
            audio_chain = f"[1:a]{self._normalize_audio()}[a]"

        return cmd + [
            "-filter_complex", f"[0:v]{video_chain}[v];{audio_chain}",
            "-map", "[v]", "-map", "[a]",
            *self._video_codec_args(),
            *self._audio_codec_args(),
            "-t", f"{duration:.6f}",
            output_path,
        ]

    def build_still_command(self, image_path: str, duration: float, output_path: str) -> list[str]:
        return [
            self.ffmpeg_path, "-y",
            "-loop", "1",
            "-t", f"{duration:.6f}",
            "-i", image_path,
            *self._silence_input(duration),
            "-filter_complex", f"[0:v]{self._normalize_video()}[v]",
            "-map", "[v]", "-map", "1:a",
            *self._video_codec_args(),
            *self._audio_codec_args(),
            "-t", f"{duration:.6f}",
            output_path,
        ]

    def build_blank_command(self, duration: float, output_path: str) -> list[str]:
        return [
            self.ffmpeg_path, "-y",
            "-f", "lavfi",
            "-i", f"color=c=black:s={self.width}x{self.height}:r={self.fps}:d={duration:.6f}",
            *self._silence_input(duration),
            "-map", "0:v", "-map", "1:a",
            *self._video_codec_args(),
            *self._audio_codec_args(),
            "-t", f"{duration:.6f}",
            output_path,
        ]

    def build_concat_command(self, list_path: str, output_path: str) -> list[str]:
        return [
            self.ffmpeg_path, "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", list_path,
            "-c", "copy",
            "-movflags", "+faststart",
            output_path,
        ]

    def build_composite_command(
        self, base: str, track_video: str, windows: Sequence[tuple[float, float]], output_path: str
    ) -> list[str]:
        """Paint ``track_video`` over ``base`` inside ``windows``; mix both audio streams."""
        filter_complex = (
            f"[0:v][1:v]overlay=0:0:eof_action=pass:enable='{enable_expr(windows)}'[v];"
            f"[0:a][1:a]amix=inputs=2:duration=first:dropout_transition=0:normalize=0[a]"
        )
        return [
            self.ffmpeg_path, "-y",
            "-i", base,
            "-i", track_video,
            "-filter_complex", filter_complex,
            "-map", "[v]", "-map", "[a]",
            *self._video_codec_args(),
            *self._audio_codec_args(),
            output_path,
        ]

    def build_pad_command(self, video: str, pad_duration: float, output_path: str, has_audio: bool) -> list[str]:
        """Clone the last frame (and pad silence) for ``pad_duration`` seconds."""
        filter_complex = f"[0:v]tpad=stop_mode=clone:stop_duration={pad_duration:.6f}[v]"
        maps = ["-map", "[v]"]
        if has_audio:
            filter_complex += f";[0:a]apad=pad_dur={pad_duration:.6f}[a]"
            maps += ["-map", "[a]"]
        return [
            self.ffmpeg_path, "-y",
            "-i", video,
            "-filter_complex", filter_complex,
            *maps,
            *self._video_codec_args(),
            *(self._audio_codec_args() if has_audio else []),
            output_path,
        ]

    def build_overlay_command(self, base: str, draws: Sequence[OverlayDraw], output_path: str) -> list[str]:
        """Overlay timed images onto ``base``; each distinct image is one input."""
        images: list[str] = []
        uses: dict[str, list[int]] = {}
        for idx, draw in enumerate(draws):
            if draw.image_path not in uses:
                images.append(draw.image_path)
                uses[draw.image_path] = []
            uses[draw.image_path].append(idx)

        cmd = [self.ffmpeg_path, "-y", "-i", base]
        for path in images:
            last_end = max(draws[i].end for i in uses[path])
            cmd += ["-loop", "1", "-t", f"{last_end:.6f}", "-i", path]

        filters: list[str] = []
        labels: dict[int, str] = {}
        for input_idx, path in enumerate(images, start=1):
            draw_ids = uses[path]
            if len(draw_ids) == 1:
                labels[draw_ids[0]] = f"img{input_idx}_0"
                filters.append(f"[{input_idx}:v]format=rgba[img{input_idx}_0]")
            else:
                outs = "".join(f"[img{input_idx}_{n}]" for n in range(len(draw_ids)))
                filters.append(f"[{input_idx}:v]format=rgba,split={len(draw_ids)}{outs}")
                for n, draw_id in enumerate(draw_ids):
                    labels[draw_id] = f"img{input_idx}_{n}"

        current = "0:v"
        for idx, draw in enumerate(draws):
            out = "vout" if idx == len(draws) - 1 else f"ov{idx}"
            filters.append(
                f"[{current}][{labels[idx]}]overlay=x={draw.x}:y={draw.y}:eof_action=pass:"
                f"enable='{enable_expr([(draw.start, draw.end)])}'[{out}]"
            )
            current = out

        return cmd + [
            "-filter_complex", ";".join(filters),
            "-map", "[vout]", "-map", "0:a?",
            *self._video_codec_args(),
            "-c:a", "copy",
            output_path,
        ]

    def build_mix_audio_command(
        self,
        base: str,
        placements: Sequence[AudioPlacement],
        output_path: str,
        base_has_audio: bool,
    ) -> list[str]:
        """Mix placed audio into ``base`` (or attach it when base is silent)."""
        cmd = [self.ffmpeg_path, "-y", "-i", base]
        for p in placements:
            cmd += ["-ss", f"{p.source_start:.6f}", "-t", f"{p.source_duration:.6f}", "-i", p.source_path]

        filters: list[str] = []
        mix_inputs = ["[0:a]"] if base_has_audio else []
        for n, p in enumerate(placements, start=1):
            tempo = "".join(
                f"atempo={factor:.6f}," for factor in atempo_chain(
                    p.speed, self.settings.atempo_min, self.settings.atempo_max
                )
            )
            delay_ms = int(round(p.timeline_start * 1000))
            filters.append(
                f"[{n}:a]asetpts=PTS-STARTPTS,{tempo}atrim=0:{p.duration:.6f},"
                f"{self._normalize_audio()},adelay={delay_ms}:all=1[p{n}]"
            )
            mix_inputs.append(f"[p{n}]")

        duration_mode = "first" if base_has_audio else "longest"
        filters.append(
            f"{''.join(mix_inputs)}amix=inputs={len(mix_inputs)}:duration={duration_mode}:"
            f"dropout_transition=0:normalize=0[aout]"
        )

        return cmd + [
            "-filter_complex", ";".join(filters),
            "-map", "0:v", "-map", "[aout]",
            "-c:v", "copy",
            *self._audio_codec_args(),
            "-shortest",
            output_path,
        ]

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run(self, cmd: list[str], description: str) -> None:
        logger.info(f"[FFMPEG] {description}")
        logger.debug(f"[FFMPEG] command: {' '.join(cmd)}")

        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await proc.communicate()

        if proc.returncode != 0:
            stderr_text = stderr.decode("utf-8", errors="replace")
            logger.error(f"[FFMPEG] {description} failed (exit {proc.returncode})")
            raise MediaToolError(f"{description} failed", command=cmd, stderr=stderr_text)

    async def probe(self, path: str) -> MediaInfo:
        if path in self._probe_cache:
            return self._probe_cache[path]

        cmd = build_ffprobe_command(path, self.settings.ffprobe_path)
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise MediaToolError(
                f"ffprobe failed for {path}",
                command=cmd,
                stderr=stderr.decode("utf-8", errors="replace"),
            )

        try:
            info = parse_ffprobe_output(json.loads(stdout))
        except json.JSONDecodeError as e:
            raise MediaToolError(f"Failed to parse ffprobe output: {e}", command=cmd)

        self._probe_cache[path] = info
        return info

    async def extract_frame(self, source: str, at_time: float, output_path: str) -> str:
        await self._run(self.build_extract_frame_command(source, at_time, output_path), "Extract frame")
        return output_path

    async def encode_segment(
        self, source: str, source_start: float, duration: float, speed: float, output_path: str
    ) -> str:
        info = await self.probe(source)
        cmd = self.build_segment_command(source, source_start, duration, speed, output_path, info.has_audio)
        await self._run(cmd, f"Encode segment @{speed:.3f}x")
        return output_path

    async def encode_still(self, image_path: str, duration: float, output_path: str) -> str:
        await self._run(self.build_still_command(image_path, duration, output_path), "Encode still")
        return output_path

    async def encode_blank(self, duration: float, output_path: str) -> str:
        await self._run(self.build_blank_command(duration, output_path), "Encode blank")
        return output_path

    async def concatenate(self, paths: Sequence[str], output_path: str) -> str:
        if not paths:
            raise MediaToolError("Nothing to concatenate")
        if len(paths) == 1:
            shutil.copy2(paths[0], output_path)
            return output_path

        list_path = f"{output_path}.txt"
        try:
            with open(list_path, "w") as f:
                for path in paths:
                    # FFmpeg concat requires escaped paths
                    escaped = os.path.abspath(path).replace("'", "'\\''")
                    f.write(f"file '{escaped}'\n")
            await self._run(self.build_concat_command(list_path, output_path), f"Concatenate {len(paths)} files")
        finally:
            if os.path.exists(list_path):
                os.remove(list_path)
        return output_path

    async def composite_track(
        self, base: str, track_video: str, windows: Sequence[tuple[float, float]], output_path: str
    ) -> str:
        await self._run(self.build_composite_command(base, track_video, windows, output_path), "Composite track")
        return output_path

    async def pad(self, video: str, pad_duration: float, output_path: str) -> str:
        info = await self.probe(video)
        cmd = self.build_pad_command(video, pad_duration, output_path, info.has_audio)
        await self._run(cmd, f"Pad {pad_duration:.3f}s")
        return output_path

    async def overlay_images(self, base: str, draws: Sequence[OverlayDraw], output_path: str) -> str:
        if not draws:
            shutil.copy2(base, output_path)
            return output_path
        await self._run(self.build_overlay_command(base, draws, output_path), f"Overlay {len(draws)} draws")
        return output_path

    async def mix_audio(self, base: str, placements: Sequence[AudioPlacement], output_path: str) -> str:
        info = await self.probe(base)
        cmd = self.build_mix_audio_command(base, placements, output_path, info.has_audio)
        await self._run(cmd, f"Mix {len(placements)} audio placements")
        return output_path
