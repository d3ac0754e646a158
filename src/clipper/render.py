"""
Clip rendering: cut a key moment out of the source and burn its captions in.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from tqdm import tqdm
from tqdm.asyncio import tqdm as atqdm

from .errors import PipelineError
from .io_ffmpeg import cut_with_subtitles, discard, ensure_dir, probe_frame_size
from .models import Clip, ClipFailure, KeyMoment, SourceVideo

logger = logging.getLogger("clipper")


@dataclass
class CaptionStyle:
    """Burned-in caption look. Font size follows the frame height."""

    font_divisor: float = 20.0
    primary_colour: str = "&HFFFFFF"
    alignment: int = 5  # libass numpad layout, 5 = middle centre
    margin_v: int = 50

    def font_size(self, frame_height: int) -> int:
        return max(1, round(frame_height / self.font_divisor))

    def force_style(self, frame_height: int) -> str:
        return (
            f"Fontsize={self.font_size(frame_height)},"
            f"PrimaryColour={self.primary_colour},"
            f"Alignment={self.alignment},"
            f"MarginV={self.margin_v}"
        )


@dataclass
class RenderJob:
    """Everything needed to produce clip ``index``."""

    index: int
    moment: KeyMoment
    srt_path: Path
    out_path: Path


def ensure_frame_size(
    source: SourceVideo, *, ffprobe_bin: str = "ffprobe", timeout: float | None = None
) -> tuple[int, int]:
    """Probe the source once and remember its dimensions on it."""
    if source.width is None or source.height is None:
        source.width, source.height = probe_frame_size(
            source.path, ffprobe_bin=ffprobe_bin, timeout=timeout
        )
        logger.info(f"Source frame: {source.width}x{source.height}")
    return source.width, source.height


def render_clip(
    source: SourceVideo,
    moment: KeyMoment,
    srt_path: str | Path,
    out_path: str | Path,
    *,
    style: CaptionStyle | None = None,
    crf: int = 23,
    preset: str = "veryfast",
    ffmpeg_bin: str = "ffmpeg",
    ffprobe_bin: str = "ffprobe",
    timeout: float | None = None,
) -> Path:
    """Render one clip; raises RenderFailure or Timeout and leaves no partial file."""
    style = style or CaptionStyle()
    out_path = Path(out_path)
    _, height = ensure_frame_size(source, ffprobe_bin=ffprobe_bin, timeout=timeout)
    ensure_dir(out_path.parent)

    done = False
    try:
        cut_with_subtitles(
            source.path,
            srt_path,
            out_path,
            start=moment.start,
            duration=moment.duration,
            force_style=style.force_style(height),
            crf=crf,
            preset=preset,
            ffmpeg_bin=ffmpeg_bin,
            timeout=timeout,
        )
        done = True
    finally:
        if not done:
            discard(out_path)
    logger.info(f"Short video created: {out_path} ({moment.start}-{moment.end}s)")
    return out_path


def render_clips(
    jobs: list[RenderJob],
    render_one: Callable[[RenderJob], Clip],
    *,
    max_concurrent: int = 1,
    fail_fast: bool = True,
) -> tuple[list[Clip], list[ClipFailure]]:
    """
    Run ``render_one`` for every job.

    Failures are collected as ClipFailure records. With ``fail_fast`` no new
    job starts after the first failure, but jobs already running finish and
    their results are kept. Clips come back in job order.
    """
    if max_concurrent > 1 and len(jobs) > 1:
        return asyncio.run(
            render_clips_async(jobs, render_one, max_concurrent=max_concurrent, fail_fast=fail_fast)
        )

    clips: list[Clip] = []
    failures: list[ClipFailure] = []
    for job in tqdm(jobs, desc="Rendering clips", disable=len(jobs) < 2):
        try:
            clips.append(render_one(job))
        except PipelineError as e:
            logger.error(f"Clip {job.index} failed: {e}")
            failures.append(ClipFailure(index=job.index, moment=job.moment, error=e))
            if fail_fast:
                break
    return clips, failures


async def render_clips_async(
    jobs: list[RenderJob],
    render_one: Callable[[RenderJob], Clip],
    *,
    max_concurrent: int = 5,
    fail_fast: bool = True,
) -> tuple[list[Clip], list[ClipFailure]]:
    """Concurrent variant of render_clips; each render runs in a worker thread."""
    semaphore = asyncio.Semaphore(max_concurrent)
    stop = False

    async def process_single(job: RenderJob) -> Clip | ClipFailure | None:
        nonlocal stop
        async with semaphore:
            if stop:
                return None
            try:
                return await asyncio.to_thread(render_one, job)
            except PipelineError as e:
                logger.error(f"Clip {job.index} failed: {e}")
                if fail_fast:
                    stop = True
                return ClipFailure(index=job.index, moment=job.moment, error=e)

    logger.info(f"Rendering {len(jobs)} clips, {max_concurrent} at a time")
    results = await atqdm.gather(*(process_single(j) for j in jobs), desc="Rendering clips")
    clips = [r for r in results if isinstance(r, Clip)]
    failures = [r for r in results if isinstance(r, ClipFailure)]
    return clips, failures
