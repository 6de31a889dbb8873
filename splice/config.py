from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Logging
    log_level: str = "INFO"

    # Job store (sqlite by default, any SQLAlchemy URL works)
    database_url: str = "sqlite:///./splice.db"
    database_echo: bool = False

    # Queue broker
    redis_url: str = "redis://localhost:6379/0"

    # Storage
    export_dir: str = "./exports"
    work_dir_root: str | None = None  # None = system temp dir

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Render settings
    render_output_width: int = 1280
    render_output_height: int = 720
    render_fps: int = 30
    render_crf: int = 20
    render_preset: str = "veryfast"
    render_audio_bitrate: str = "192k"
    render_audio_sample_rate: int = 48000

    # One render at a time keeps ffmpeg from competing for CPU
    render_max_concurrency: int = 1

    # Overlay coordinates are authored against this resolution
    reference_width: int = 1280
    reference_height: int = 720

    # Speed handling
    freeze_speed_threshold: float = 0.01
    atempo_min: float = 0.5
    atempo_max: float = 2.0
    segment_speed_mode: Literal["keyframe", "average"] = "keyframe"

    # Stepped overlay animation
    overlay_steps_per_second: float = 2.0
    overlay_max_steps: int = 30

    # Text overlays
    text_font_path: str = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"
    text_default_font_size: int = 24
    text_default_color: str = "#ffffff"
    text_default_bg_color: str = "#000000b3"
    text_padding_x: int = 12
    text_padding_y: int = 4

    @computed_field
    @property
    def reference_size(self) -> tuple[int, int]:
        return (self.reference_width, self.reference_height)


@lru_cache
def get_settings() -> Settings:
    return Settings()
