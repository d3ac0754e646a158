"""
Data models for the key-moment clipping pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .errors import InvalidInput, PipelineError


@dataclass
class SourceVideo:
    """The uploaded long-form video. Read-only for the pipeline."""

    path: Path
    width: int | None = None
    height: int | None = None

    @property
    def key(self) -> str:
        """Stable key the persistence layer knows this video by."""
        return self.path.as_posix()


@dataclass
class AudioArtifact:
    """Audio track extracted from one source video."""

    path: Path
    duration: float  # seconds


@dataclass(frozen=True)
class KeyMoment:
    """A noteworthy time range (source-absolute seconds) with its caption."""

    start: int
    end: int
    caption: str

    def __post_init__(self) -> None:
        if self.start < 0:
            raise InvalidInput(f"Key moment start must be >= 0, got {self.start}")
        if self.end <= self.start:
            raise InvalidInput(f"Key moment end must be > start, got {self.start}-{self.end}")
        if not self.caption.strip():
            raise InvalidInput("Key moment caption is empty")

    @property
    def duration(self) -> int:
        return self.end - self.start


@dataclass
class Cue:
    """A single subtitle entry in clip-local time."""

    index: int
    start: float  # seconds
    end: float  # seconds
    text: str


@dataclass
class Clip:
    """One rendered clip."""

    index: int
    path: Path
    ref: str  # path relative to the media root, as handed to persistence
    moment: KeyMoment


@dataclass
class ClipFailure:
    """A clip that could not be rendered."""

    index: int
    moment: KeyMoment
    error: PipelineError


class Stage(Enum):
    """States of a pipeline run."""

    UPLOADED = "Uploaded"
    AUDIO_EXTRACTED = "AudioExtracted"
    TRANSCRIBED = "Transcribed"
    MOMENTS_EXTRACTED = "MomentsExtracted"
    RENDERING_CLIPS = "RenderingClips"
    COMPLETED = "Completed"
    FAILED = "Failed"


@dataclass
class Failed:
    """Terminal failure: which transition failed and why."""

    stage: Stage
    reason: str
    error: PipelineError


@dataclass
class RunResult:
    """Outcome of one pipeline run."""

    state: Stage
    clips: list[Clip] = field(default_factory=list)
    failure: Failed | None = None
    render_failures: list[ClipFailure] = field(default_factory=list)
    history: list[Stage] = field(default_factory=list)
    transcript: str | None = None
    moments: list[KeyMoment] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is Stage.COMPLETED

    def clip_refs(self) -> list[str]:
        return [c.ref for c in self.clips]

    def to_dict(self) -> dict:
        """JSON-friendly summary of the run."""
        data: dict = {
            "state": self.state.value,
            "clips": self.clip_refs(),
            "moments": [
                {"start": m.start, "end": m.end, "caption": m.caption} for m in self.moments
            ],
            "history": [s.value for s in self.history],
        }
        if self.failure is not None:
            data["failure"] = {
                "stage": self.failure.stage.value,
                "reason": self.failure.reason,
                "error": type(self.failure.error).__name__,
            }
        if self.render_failures:
            data["render_failures"] = [
                {"index": f.index, "error": str(f.error)} for f in self.render_failures
            ]
        return data
