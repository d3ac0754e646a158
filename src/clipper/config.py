"""
Pipeline settings. Defaults here, overrides from CLIPPER_* env vars or the CLI.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import InvalidInput
from .render import CaptionStyle

RENDER_ERROR_POLICIES = ("fail", "continue")


def _env_number(name: str, cast):
    raw = os.environ[name]
    try:
        return cast(raw)
    except ValueError as e:
        raise InvalidInput(f"{name} must be a {cast.__name__}, got {raw!r}") from e


@dataclass
class PipelineConfig:
    work_root: Path | None = None  # default: <source folder>/.clipper
    media_root: Path | None = None  # clip refs are relative to this; default: source's folder
    segment_length: float = 4.0
    caption_style: CaptionStyle = field(default_factory=CaptionStyle)
    audio_bitrate: str = "128k"
    video_crf: int = 23
    video_preset: str = "veryfast"
    llm_model: str = "gpt-4o-mini"
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    ffmpeg_timeout: float = 1800.0
    service_timeout: float = 300.0
    retries: int = 2
    retry_backoff: float = 1.0
    max_concurrent_renders: int = 1
    on_render_error: str = "fail"
    allow_empty_transcript: bool = False

    def __post_init__(self) -> None:
        if self.work_root is not None:
            self.work_root = Path(self.work_root)
        if self.media_root is not None:
            self.media_root = Path(self.media_root)
        if self.on_render_error not in RENDER_ERROR_POLICIES:
            raise InvalidInput(
                f"on_render_error must be one of {RENDER_ERROR_POLICIES}, got {self.on_render_error!r}"
            )
        if self.segment_length <= 0:
            raise InvalidInput(f"segment_length must be positive, got {self.segment_length}")
        if self.max_concurrent_renders < 1:
            raise InvalidInput("max_concurrent_renders must be >= 1")
        if self.retries < 0:
            raise InvalidInput("retries must be >= 0")

    @classmethod
    def from_env(cls, **overrides) -> "PipelineConfig":
        """Build a config from CLIPPER_* environment variables, then apply overrides."""
        env = os.environ
        values: dict = {}
        if "CLIPPER_WORKDIR" in env:
            values["work_root"] = Path(env["CLIPPER_WORKDIR"])
        if "CLIPPER_MEDIA_ROOT" in env:
            values["media_root"] = Path(env["CLIPPER_MEDIA_ROOT"])
        if "CLIPPER_SEGMENT_LENGTH" in env:
            values["segment_length"] = _env_number("CLIPPER_SEGMENT_LENGTH", float)
        if "CLIPPER_FONT_DIVISOR" in env:
            values["caption_style"] = CaptionStyle(font_divisor=_env_number("CLIPPER_FONT_DIVISOR", float))
        if "CLIPPER_GPT_MODEL" in env:
            values["llm_model"] = env["CLIPPER_GPT_MODEL"]
        if "CLIPPER_FFMPEG" in env:
            values["ffmpeg_bin"] = env["CLIPPER_FFMPEG"]
        if "CLIPPER_FFPROBE" in env:
            values["ffprobe_bin"] = env["CLIPPER_FFPROBE"]
        if "CLIPPER_FFMPEG_TIMEOUT" in env:
            values["ffmpeg_timeout"] = _env_number("CLIPPER_FFMPEG_TIMEOUT", float)
        if "CLIPPER_SERVICE_TIMEOUT" in env:
            values["service_timeout"] = _env_number("CLIPPER_SERVICE_TIMEOUT", float)
        if "CLIPPER_RETRIES" in env:
            values["retries"] = _env_number("CLIPPER_RETRIES", int)
        if "CLIPPER_MAX_CONCURRENT" in env:
            values["max_concurrent_renders"] = _env_number("CLIPPER_MAX_CONCURRENT", int)
        if "CLIPPER_ON_RENDER_ERROR" in env:
            values["on_render_error"] = env["CLIPPER_ON_RENDER_ERROR"]
        if "CLIPPER_ALLOW_EMPTY_TRANSCRIPT" in env:
            values["allow_empty_transcript"] = env["CLIPPER_ALLOW_EMPTY_TRANSCRIPT"].lower() in ("1", "true", "yes")
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
