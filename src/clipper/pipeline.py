"""
Pipeline orchestrator.

A run walks a fixed chain of states:

    Uploaded -> AudioExtracted -> Transcribed -> MomentsExtracted
             -> RenderingClips -> Completed

Each transition either yields its payload or a ``Failed(stage, reason)``
naming the state it was trying to reach; nothing after a failure runs.
"""

import hashlib
import logging
import os
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

from openai import OpenAI

from .config import PipelineConfig
from .errors import PipelineError
from .io_ffmpeg import extract_audio
from .models import AudioArtifact, Clip, ClipFailure, Failed, KeyMoment, RunResult, SourceVideo, Stage
from .moments import extract_key_moments
from .persistence import ClipStore
from .render import RenderJob, ensure_frame_size, render_clip, render_clips
from .srt_utils import synthesize_subtitles
from .storage import ObjectStorage
from .stt import Transcriber, transcribe_audio

logger = logging.getLogger("clipper")

# run directories end up inside ffmpeg filter arguments
_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def run_key(video_path: Path) -> str:
    """Per-video namespace: readable stem plus a hash of the absolute path."""
    digest = hashlib.sha1(str(video_path.resolve()).encode()).hexdigest()[:12]
    stem = _UNSAFE_NAME_RE.sub("_", video_path.stem).strip("._") or "video"
    return f"{stem}-{digest}"


class KeyMomentPipeline:
    """Turns one source video into captioned key-moment clips."""

    def __init__(
        self,
        config: PipelineConfig,
        *,
        storage: ObjectStorage,
        transcriber: Transcriber,
        llm_client: OpenAI,
        clip_store: ClipStore | None = None,
    ) -> None:
        self.config = config
        self.storage = storage
        self.transcriber = transcriber
        self.llm_client = llm_client
        self.clip_store = clip_store

    # -- paths -------------------------------------------------------------

    def media_root(self, source: SourceVideo) -> Path:
        return self.config.media_root or source.path.parent

    def run_dir(self, source: SourceVideo) -> Path:
        root = self.config.work_root
        if root is None:
            root = source.path.parent / ".clipper"
        return root / run_key(source.path)

    def clip_ref(self, source: SourceVideo, clip_path: Path) -> str:
        rel = os.path.relpath(clip_path.resolve(), self.media_root(source).resolve())
        return Path(rel).as_posix()

    # -- stages ------------------------------------------------------------

    def extract_audio(self, source: SourceVideo) -> AudioArtifact:
        out = self.run_dir(source) / "audio" / f"{run_key(source.path)}.mp3"
        return extract_audio(
            source.path,
            out,
            bitrate=self.config.audio_bitrate,
            ffmpeg_bin=self.config.ffmpeg_bin,
            timeout=self.config.ffmpeg_timeout,
        )

    def transcribe(self, source: SourceVideo, audio: AudioArtifact) -> str:
        return transcribe_audio(
            audio,
            storage=self.storage,
            transcriber=self.transcriber,
            transcript_dir=self.run_dir(source) / "transcripts",
            allow_empty=self.config.allow_empty_transcript,
            retries=self.config.retries,
            backoff=self.config.retry_backoff,
        )

    def extract_moments(self, transcript: str) -> list[KeyMoment]:
        if not transcript:
            logger.info("Empty transcript; no key moments to look for")
            return []
        return extract_key_moments(
            self.llm_client,
            transcript,
            model=self.config.llm_model,
            retries=self.config.retries,
            backoff=self.config.retry_backoff,
        )

    def render(
        self, source: SourceVideo, moments: list[KeyMoment]
    ) -> tuple[list[Clip], list[ClipFailure]]:
        if not moments:
            return [], []
        cfg = self.config
        ensure_frame_size(source, ffprobe_bin=cfg.ffprobe_bin, timeout=cfg.ffmpeg_timeout)

        run_dir = self.run_dir(source)
        jobs = [
            RenderJob(
                index=i,
                moment=m,
                srt_path=run_dir / "subtitles" / f"subtitle_{i}.srt",
                out_path=run_dir / "clips" / f"clip_{i}.mp4",
            )
            for i, m in enumerate(moments)
        ]

        def render_one(job: RenderJob) -> Clip:
            synthesize_subtitles(job.moment, job.srt_path, cfg.segment_length)
            path = render_clip(
                source,
                job.moment,
                job.srt_path,
                job.out_path,
                style=cfg.caption_style,
                crf=cfg.video_crf,
                preset=cfg.video_preset,
                ffmpeg_bin=cfg.ffmpeg_bin,
                ffprobe_bin=cfg.ffprobe_bin,
                timeout=cfg.ffmpeg_timeout,
            )
            return Clip(index=job.index, path=path, ref=self.clip_ref(source, path), moment=job.moment)

        return render_clips(
            jobs,
            render_one,
            max_concurrent=cfg.max_concurrent_renders,
            fail_fast=cfg.on_render_error == "fail",
        )

    def complete(self, source: SourceVideo, clips: list[Clip]) -> None:
        if self.clip_store is not None:
            self.clip_store.attach_clips(source.key, [c.ref for c in clips])

    # -- state machine -----------------------------------------------------

    def _transition(self, result: RunResult, target: Stage, fn: Callable[..., Any], *args) -> Any:
        """Attempt ``result.state -> target``; returns the payload or a Failed."""
        logger.info(f"[{result.state.value}] -> {target.value}")
        try:
            payload = fn(*args)
        except PipelineError as e:
            logger.error(f"Stage {target.value} failed: {e}")
            failed = Failed(stage=target, reason=str(e), error=e)
            result.failure = failed
            result.state = Stage.FAILED
            result.history.append(Stage.FAILED)
            return failed
        result.state = target
        result.history.append(target)
        return payload

    def run(self, video_path: str | Path) -> RunResult:
        """Run every stage for one video and report the outcome."""
        source = SourceVideo(path=Path(video_path))
        result = RunResult(state=Stage.UPLOADED, history=[Stage.UPLOADED])
        logger.info(f"Processing {source.key} in {self.run_dir(source)}")

        audio = self._transition(result, Stage.AUDIO_EXTRACTED, self.extract_audio, source)
        if isinstance(audio, Failed):
            return result

        transcript = self._transition(result, Stage.TRANSCRIBED, self.transcribe, source, audio)
        if isinstance(transcript, Failed):
            return result
        result.transcript = transcript

        moments = self._transition(result, Stage.MOMENTS_EXTRACTED, self.extract_moments, transcript)
        if isinstance(moments, Failed):
            return result
        result.moments = moments

        rendered = self._transition(result, Stage.RENDERING_CLIPS, self.render, source, moments)
        if isinstance(rendered, Failed):
            return result
        clips, failures = rendered
        result.clips = clips
        result.render_failures = failures
        if failures and self.config.on_render_error == "fail":
            first = failures[0]
            reason = f"clip {first.index} ({first.moment.start}-{first.moment.end}s): {first.error}"
            logger.error(f"Stage {Stage.RENDERING_CLIPS.value} failed: {reason}")
            result.failure = Failed(stage=Stage.RENDERING_CLIPS, reason=reason, error=first.error)
            result.state = Stage.FAILED
            result.history.append(Stage.FAILED)
            return result

        done = self._transition(result, Stage.COMPLETED, self.complete, source, clips)
        if isinstance(done, Failed):
            return result
        logger.info(f"Done: {len(clips)} clips for {source.key}")
        return result
