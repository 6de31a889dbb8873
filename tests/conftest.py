"""
Pytest fixtures for splice tests.

Most render tests run against FakeMediaTool, which writes placeholder files
and records every request, so the pipeline's stage order, artifact handling
and failure semantics are testable without ffmpeg.

Tests that need the real binary are marked with @pytest.mark.requires_ffmpeg
and skipped when ffmpeg is not on PATH.
"""

import shutil
from pathlib import Path
from typing import Sequence

import pytest
from PIL import Image

from splice.config import Settings
from splice.exceptions import MediaToolError
from splice.render.media_tool import AudioPlacement, MediaTool, OverlayDraw
from splice.schemas.timeline import ProjectTimeline
from splice.utils.media_info import MediaInfo

requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None,
    reason="ffmpeg binary not available",
)


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "requires_ffmpeg" in item.keywords:
            item.add_marker(requires_ffmpeg)


class FakeMediaTool(MediaTool):
    """MediaTool double: writes placeholder outputs and tracks their durations."""

    def __init__(self, fail_on: Sequence[str] = (), width: int = 1280, height: int = 720):
        self.fail_on = set(fail_on)
        self.width = width
        self.height = height
        self.calls: list[tuple[str, tuple]] = []
        self.durations: dict[str, float] = {}

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if name in self.fail_on:
            raise MediaToolError(f"{name} failed", stderr="simulated failure")

    def _write(self, path: str, duration: float | None = None) -> str:
        Path(path).write_bytes(b"fake")
        if duration is not None:
            self.durations[path] = duration
        return path

    def called(self, name: str) -> list[tuple]:
        return [args for call, args in self.calls if call == name]

    async def probe(self, path: str) -> MediaInfo:
        self._record("probe", path)
        return MediaInfo(
            duration=self.durations.get(path),
            width=self.width,
            height=self.height,
            fps=30.0,
            has_video=True,
            has_audio=True,
        )

    async def extract_frame(self, source: str, at_time: float, output_path: str) -> str:
        self._record("extract_frame", source, at_time, output_path)
        return self._write(output_path)

    async def encode_segment(self, source, source_start, duration, speed, output_path) -> str:
        self._record("encode_segment", source, source_start, duration, speed, output_path)
        return self._write(output_path, duration)

    async def encode_still(self, image_path, duration, output_path) -> str:
        self._record("encode_still", image_path, duration, output_path)
        return self._write(output_path, duration)

    async def encode_blank(self, duration, output_path) -> str:
        self._record("encode_blank", duration, output_path)
        return self._write(output_path, duration)

    async def concatenate(self, paths, output_path) -> str:
        self._record("concatenate", list(paths), output_path)
        return self._write(output_path, sum(self.durations.get(p, 0.0) for p in paths))

    async def composite_track(self, base, track_video, windows, output_path) -> str:
        self._record("composite_track", base, track_video, list(windows), output_path)
        return self._write(output_path, self.durations.get(base))

    async def pad(self, video, pad_duration, output_path) -> str:
        self._record("pad", video, pad_duration, output_path)
        return self._write(output_path, self.durations.get(video, 0.0) + pad_duration)

    async def overlay_images(self, base, draws: Sequence[OverlayDraw], output_path) -> str:
        self._record("overlay_images", base, list(draws), output_path)
        return self._write(output_path, self.durations.get(base))

    async def mix_audio(self, base, placements: Sequence[AudioPlacement], output_path) -> str:
        self._record("mix_audio", base, list(placements), output_path)
        return self._write(output_path, self.durations.get(base))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated to a temp directory."""
    return Settings(
        export_dir=str(tmp_path / "exports"),
        work_dir_root=str(tmp_path / "work"),
        database_url="sqlite://",
    )


@pytest.fixture
def make_fake_tool():
    """Factory for FakeMediaTool instances (e.g. with fail_on stages)."""
    return FakeMediaTool


@pytest.fixture
def fake_tool() -> FakeMediaTool:
    return FakeMediaTool()


@pytest.fixture
def media_files(tmp_path: Path) -> dict[str, Path]:
    """Placeholder media files plus a real PNG for image overlays."""
    media_dir = tmp_path / "media"
    media_dir.mkdir()
    files = {
        "video1": media_dir / "video1.mp4",
        "video2": media_dir / "video2.mp4",
        "music": media_dir / "music.mp3",
        "logo": media_dir / "logo.png",
    }
    for key in ("video1", "video2", "music"):
        files[key].write_bytes(b"media")
    Image.new("RGBA", (64, 32), (255, 0, 0, 255)).save(files["logo"])
    return files


@pytest.fixture
def project_payload(media_files: dict[str, Path]) -> dict:
    """Editor-shaped (camelCase) project graph touching every render stage."""
    return {
        "projectId": "proj-1",
        "assets": {
            "video1": {"id": "video1", "path": str(media_files["video1"]), "kind": "video", "duration": 30.0},
            "video2": {"id": "video2", "path": str(media_files["video2"]), "kind": "video", "duration": 30.0},
            "music": {"id": "music", "path": str(media_files["music"]), "kind": "audio", "duration": 60.0},
            "logo": {"id": "logo", "path": str(media_files["logo"]), "kind": "image"},
        },
        "clips": [
            {
                "id": "c1",
                "assetId": "video1",
                "track": "video_a",
                "startTime": 0,
                "endTime": 4,
                "trimStart": 5,
                "speedKeyframes": [{"time": 0, "speed": 2}],
            },
            {"id": "c2", "assetId": "video1", "track": "video_a", "startTime": 6, "endTime": 8},
            {"id": "c3", "assetId": "video2", "track": "video_b", "startTime": 1, "endTime": 3},
            {"id": "c4", "assetId": "music", "track": "audio", "startTime": 0, "endTime": 8},
        ],
        "overlays": [
            {
                "id": "t1",
                "type": "text",
                "startTime": 0.5,
                "endTime": 2.5,
                "content": "Hello|||fade",
                "positionKeyframes": [{"time": 0, "x": 100, "y": 50}],
            },
            {
                "id": "i1",
                "type": "image",
                "startTime": 7,
                "endTime": 10,
                "content": "logo",
                "positionKeyframes": [{"time": 0, "x": 0, "y": 0}, {"time": 3, "x": 200, "y": 0}],
            },
        ],
    }


@pytest.fixture
def project(project_payload: dict) -> ProjectTimeline:
    return ProjectTimeline.model_validate(project_payload)
