"""
Audio and video processing utilities using ffmpeg/ffprobe.
"""

import json
import logging
import subprocess
from pathlib import Path

from pydub.utils import mediainfo

from .errors import InvalidInput, PipelineError, RenderFailure, Timeout, TranscodeFailure
from .models import AudioArtifact

logger = logging.getLogger("clipper")


def run(
    cmd: list[str],
    *,
    check: bool = True,
    timeout: float | None = None,
    error: type[PipelineError] = TranscodeFailure,
) -> str:
    """Run a command and return its combined stdout/stderr.

    A non-zero exit raises ``error`` carrying the tool's output; running past
    ``timeout`` kills the child and raises ``Timeout``.
    """
    logger.debug("Running: %s", " ".join(map(str, cmd)))
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise Timeout(f"{cmd[0]} timed out after {timeout}s", str(e.output or "")) from e
    except FileNotFoundError as e:
        raise error(f"{cmd[0]} not found on PATH") from e
    if proc.returncode != 0 and check:
        logger.error("Command failed with code %d: %s", proc.returncode, proc.stdout)
        raise error(f"{cmd[0]} failed with code {proc.returncode}", proc.stdout)
    return proc.stdout


def ensure_dir(path: str | Path) -> None:
    """Ensure directory exists."""
    if path:
        Path(path).mkdir(parents=True, exist_ok=True)


def discard(path: Path) -> None:
    """Remove a partially written output, if any."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove partial output {path}: {e}")


# The filter's option value is unescaped once by the filtergraph parser and
# again by the option parser. Option separators need both levels; graph
# separators only the first.
_FILTER_PATH_ESCAPES = {
    "\\": "\\\\\\\\",
    "'": "\\\\\\'",
    ":": "\\\\:",
    "=": "\\\\=",
    ",": "\\,",
    "[": "\\[",
    "]": "\\]",
    ";": "\\;",
}


def escape_filter_path(path: str | Path) -> str:
    """Escape a file path for use as an option value inside an ffmpeg -vf graph."""
    return "".join(_FILTER_PATH_ESCAPES.get(ch, ch) for ch in Path(path).as_posix())


def get_media_duration(path: str | Path) -> float:
    """Duration in seconds via pydub's mediainfo (0.0 if unknown).

    pydub picks the ffprobe on PATH itself; a configured ``ffprobe_bin`` does
    not reach it. The value is informational, so a missing prober only costs
    the duration.
    """
    try:
        info = mediainfo(str(path))
        return float(info.get("duration", 0.0))
    except (ValueError, OSError, KeyError):
        return 0.0


def extract_audio(
    input_video: str | Path,
    out_audio: str | Path,
    *,
    bitrate: str = "128k",
    ffmpeg_bin: str = "ffmpeg",
    timeout: float | None = None,
) -> AudioArtifact:
    """Re-encode the video's audio track to a standalone mp3."""
    input_video = Path(input_video)
    out_audio = Path(out_audio)
    if not input_video.is_file():
        raise InvalidInput(f"Video file not found: {input_video}")
    ensure_dir(out_audio.parent)
    cmd = [
        ffmpeg_bin,
        "-y",
        "-i",
        str(input_video),
        "-vn",
        "-acodec",
        "libmp3lame",
        "-b:a",
        bitrate,
        str(out_audio),
    ]
    done = False
    try:
        run(cmd, timeout=timeout, error=TranscodeFailure)
        done = True
    finally:
        if not done:
            discard(out_audio)
    duration = get_media_duration(out_audio)
    logger.info(f"Extracted audio -> {out_audio} ({duration:.1f}s)")
    return AudioArtifact(path=out_audio, duration=duration)


def probe_frame_size(
    input_video: str | Path,
    *,
    ffprobe_bin: str = "ffprobe",
    timeout: float | None = None,
) -> tuple[int, int]:
    """Return (width, height) of the first video stream."""
    out = run(
        [
            ffprobe_bin,
            "-v",
            "error",
            "-select_streams",
            "v:0",
            "-show_entries",
            "stream=width,height",
            "-of",
            "json",
            str(input_video),
        ],
        timeout=timeout,
        error=RenderFailure,
    )
    try:
        stream = json.loads(out)["streams"][0]
        width, height = int(stream["width"]), int(stream["height"])
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise RenderFailure(f"Could not read frame size of {input_video}", out) from e
    if width <= 0 or height <= 0:
        raise RenderFailure(f"Bad frame size {width}x{height} for {input_video}", out)
    return width, height


def cut_with_subtitles(
    input_video: str | Path,
    subs_path: str | Path,
    output_video: str | Path,
    *,
    start: float,
    duration: float,
    force_style: str = "",
    crf: int = 23,
    preset: str = "veryfast",
    ffmpeg_bin: str = "ffmpeg",
    timeout: float | None = None,
) -> None:
    """Trim [start, start+duration) and burn the subtitle track into the frame.

    Input seeking resets timestamps to 0, so the subtitles are clip-local.
    """
    vf = f"subtitles={escape_filter_path(subs_path)}"
    if force_style:
        vf += f":force_style='{force_style}'"
    cmd = [
        ffmpeg_bin,
        "-y",
        "-ss",
        f"{start:.3f}",
        "-i",
        str(input_video),
        "-t",
        f"{duration:.3f}",
        "-vf",
        vf,
        "-c:v",
        "libx264",
        "-crf",
        str(crf),
        "-preset",
        preset,
        "-c:a",
        "aac",
        str(output_video),
    ]
    run(cmd, timeout=timeout, error=RenderFailure)
