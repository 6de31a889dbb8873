"""Tests for ffprobe output parsing."""

import asyncio

import pytest

from splice.exceptions import MediaToolError
from splice.render.media_tool import FFmpegMediaTool
from splice.utils.media_info import build_ffprobe_command, parse_ffprobe_output


class TestParseFfprobeOutput:
    """Converting ffprobe JSON to MediaInfo."""

    def test_video_with_audio(self):
        """Test a typical video file with an audio stream."""
        info = parse_ffprobe_output({
            "format": {"duration": "50.72"},
            "streams": [
                {"codec_type": "video", "width": 1920, "height": 1080, "r_frame_rate": "30000/1001"},
                {"codec_type": "audio"},
            ],
        })
        assert info.duration == pytest.approx(50.72)
        assert (info.width, info.height) == (1920, 1080)
        assert info.fps == pytest.approx(29.97, abs=0.01)
        assert info.has_video
        assert info.has_audio

    def test_audio_only(self):
        """Test an audio file."""
        info = parse_ffprobe_output({"format": {"duration": "3.5"}, "streams": [{"codec_type": "audio"}]})
        assert info.has_audio
        assert not info.has_video
        assert info.width is None

    def test_stream_duration_fallback(self):
        """Test duration taken from the video stream when the container has none."""
        info = parse_ffprobe_output({
            "format": {},
            "streams": [{"codec_type": "video", "width": 64, "height": 64, "duration": "2.0", "r_frame_rate": "0/0"}],
        })
        assert info.duration == 2.0
        assert info.fps is None

    def test_empty(self):
        """Test that empty output yields an empty MediaInfo."""
        info = parse_ffprobe_output({})
        assert info.duration is None
        assert not info.has_video


class FakeProcess:
    """Stand-in for an asyncio subprocess that has already exited."""

    def __init__(self, returncode: int, stdout: bytes, stderr: bytes = b""):
        self.returncode = returncode
        self._stdout = stdout
        self._stderr = stderr

    async def communicate(self):
        return self._stdout, self._stderr


class TestProbe:
    """ffprobe invocation from the media tool."""

    def test_command(self):
        """Test the ffprobe invocation."""
        cmd = build_ffprobe_command("clip.mp4", "/opt/ffprobe")
        assert cmd[0] == "/opt/ffprobe"
        assert cmd[-1] == "clip.mp4"
        assert "-show_streams" in cmd

    @pytest.mark.asyncio
    async def test_failure_raises(self, settings, monkeypatch):
        """Test that a failing ffprobe raises MediaToolError."""
        async def fake_exec(*cmd, **kwargs):
            return FakeProcess(1, b"", b"No such file")

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
        with pytest.raises(MediaToolError) as exc_info:
            await FFmpegMediaTool(settings).probe("missing.mp4")
        assert "No such file" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_parses_and_caches_stdout(self, settings, monkeypatch):
        """Test that ffprobe JSON on stdout is parsed once per path."""
        calls = []

        async def fake_exec(*cmd, **kwargs):
            calls.append(cmd)
            return FakeProcess(0, b'{"format": {"duration": "1.5"}}')

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
        tool = FFmpegMediaTool(settings)
        assert (await tool.probe("clip.mp4")).duration == 1.5
        assert (await tool.probe("clip.mp4")).duration == 1.5
        assert len(calls) == 1
        assert calls[0][0] == settings.ffprobe_path
