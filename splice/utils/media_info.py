"""Media file information utilities using FFprobe."""

from dataclasses import dataclass


@dataclass
class MediaInfo:
    """Media file information (durations in seconds)."""

    duration: float | None = None
    width: int | None = None
    height: int | None = None
    fps: float | None = None
    has_video: bool = False
    has_audio: bool = False


def build_ffprobe_command(file_path: str, ffprobe_path: str) -> list[str]:
    return [
        ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        file_path,
    ]


def parse_ffprobe_output(data: dict) -> MediaInfo:
    """Convert ffprobe JSON into MediaInfo."""
    info = MediaInfo()

    format_info = data.get("format", {})
    if "duration" in format_info:
        info.duration = float(format_info["duration"])

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")

        if codec_type == "video" and not info.has_video:
            info.has_video = True
            info.width = stream.get("width")
            info.height = stream.get("height")

            r_frame_rate = stream.get("r_frame_rate", "0/1")
            if "/" in r_frame_rate:
                num, den = r_frame_rate.split("/")
                if int(den) > 0:
                    info.fps = int(num) / int(den)

            if info.duration is None and "duration" in stream:
                info.duration = float(stream["duration"])

        elif codec_type == "audio":
            info.has_audio = True

    return info
