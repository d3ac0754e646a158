"""
Tests for the pipeline state machine, with ffmpeg and services faked out.
"""

import json
from types import SimpleNamespace

import pytest

from src.clipper import pipeline as pipeline_mod
from src.clipper.config import PipelineConfig
from src.clipper.errors import InvalidInput, RenderFailure, TranscodeFailure
from src.clipper.models import AudioArtifact, Stage
from src.clipper.persistence import JsonClipStore
from src.clipper.pipeline import KeyMomentPipeline, run_key
from src.clipper.srt_utils import parse_srt
from src.clipper.storage import LocalStorage

ALL_STAGES = [
    Stage.UPLOADED,
    Stage.AUDIO_EXTRACTED,
    Stage.TRANSCRIBED,
    Stage.MOMENTS_EXTRACTED,
    Stage.RENDERING_CLIPS,
    Stage.COMPLETED,
]


class RecordingTranscriber:
    def __init__(self, text="Hello world. This is the talk."):
        self.text = text
        self.urls = []

    def transcribe(self, audio_url):
        self.urls.append(audio_url)
        return self.text


class RecordingLLM:
    """Minimal ``client.chat.completions.create`` replaying one reply."""

    def __init__(self, reply):
        self.reply = reply
        self.calls = 0
        self.chat = SimpleNamespace(completions=self)

    def create(self, **kwargs):
        self.calls += 1
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.reply))])


@pytest.fixture
def video(tmp_path):
    media = tmp_path / "public"
    (media / "uploads").mkdir(parents=True)
    path = media / "uploads" / "talk.mp4"
    path.write_bytes(b"video")
    return path


@pytest.fixture
def fake_ffmpeg(monkeypatch):
    """Fake audio extraction, frame probing and rendering; records render calls."""
    rendered = []

    def fake_extract_audio(input_video, out_audio, **kwargs):
        out_audio.parent.mkdir(parents=True, exist_ok=True)
        out_audio.write_bytes(b"mp3")
        return AudioArtifact(path=out_audio, duration=120.0)

    def fake_frame_size(source, **kwargs):
        source.width, source.height = 1920, 1080
        return 1920, 1080

    def fake_render_clip(source, moment, srt_path, out_path, **kwargs):
        assert srt_path.exists(), "subtitles must be written before rendering"
        if moment.caption.startswith("BROKEN"):
            raise RenderFailure("ffmpeg failed with code 1", "Invalid argument")
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(b"clip")
        rendered.append((moment, srt_path, out_path, kwargs["style"].font_size(source.height)))
        return out_path

    monkeypatch.setattr(pipeline_mod, "extract_audio", fake_extract_audio)
    monkeypatch.setattr(pipeline_mod, "ensure_frame_size", fake_frame_size)
    monkeypatch.setattr(pipeline_mod, "render_clip", fake_render_clip)
    return rendered


def make_pipeline(tmp_path, video, reply, *, transcriber=None, **config):
    config.setdefault("media_root", video.parent.parent)
    config.setdefault("retry_backoff", 0)
    llm = RecordingLLM(reply)
    stt = transcriber or RecordingTranscriber()
    store = JsonClipStore(tmp_path / "clips.json")
    p = KeyMomentPipeline(
        PipelineConfig(**config),
        storage=LocalStorage(tmp_path / "blob", "https://cdn.example.com"),
        transcriber=stt,
        llm_client=llm,
        clip_store=store,
    )
    return p, llm, stt, store


def test_full_run(tmp_path, video, fake_ffmpeg):
    """Happy path: every state visited once, clips persisted in order."""
    p, llm, stt, store = make_pipeline(
        tmp_path, video, "10-20: First point. Second point.\nnoise\n40-46: Closing words."
    )

    result = p.run(video)

    assert result.ok
    assert result.state is Stage.COMPLETED
    assert result.history == ALL_STAGES
    assert result.failure is None
    key = run_key(video)
    assert result.clip_refs() == [
        f"uploads/.clipper/{key}/clips/clip_0.mp4",
        f"uploads/.clipper/{key}/clips/clip_1.mp4",
    ]
    assert store.clips_for(video.as_posix()) == result.clip_refs()
    assert stt.urls == [f"https://cdn.example.com/audio/{key}.mp3"]
    assert llm.calls == 1

    moment, srt_path, _, font_size = fake_ffmpeg[0]
    assert (moment.start, moment.end) == (10, 20)
    assert font_size == 54
    cues = parse_srt(srt_path)
    assert [(c.start, c.end, c.text) for c in cues] == [
        (0, 4, "First point."),
        (4, 8, "Second point."),
        (8, 10, "Second point."),
    ]
    transcript_file = p.run_dir(p_source(video)) / "transcripts" / f"{key}.txt"
    assert transcript_file.read_text(encoding="utf-8") == "Hello world. This is the talk."


def p_source(video):
    return pipeline_mod.SourceVideo(path=video)


def test_zero_moments_completes_with_no_clips(tmp_path, video, fake_ffmpeg):
    p, _, _, store = make_pipeline(tmp_path, video, "Nothing stood out in this one.")

    result = p.run(video)

    assert result.ok
    assert result.clips == []
    assert result.history == ALL_STAGES
    assert fake_ffmpeg == []
    assert store.clips_for(video.as_posix()) == []


def test_audio_failure_stops_before_transcription(tmp_path, video, monkeypatch):
    """A transcoder failure fails the AudioExtracted transition; STT is never called."""

    def broken_extract(*args, **kwargs):
        raise TranscodeFailure("ffmpeg failed with code 1", "moov atom not found")

    monkeypatch.setattr(pipeline_mod, "extract_audio", broken_extract)
    p, llm, stt, store = make_pipeline(tmp_path, video, "10-20: never")

    result = p.run(video)

    assert not result.ok
    assert result.state is Stage.FAILED
    assert result.failure.stage is Stage.AUDIO_EXTRACTED
    assert result.failure.stage.value == "AudioExtracted"
    assert "moov atom not found" in result.failure.reason
    assert isinstance(result.failure.error, TranscodeFailure)
    assert result.history == [Stage.UPLOADED, Stage.FAILED]
    assert stt.urls == []
    assert llm.calls == 0
    assert not store.path.exists()


def test_missing_video_fails_audio_stage(tmp_path):
    p, _, _, _ = make_pipeline(tmp_path, tmp_path / "gone.mp4", "")

    result = p.run(tmp_path / "gone.mp4")

    assert result.failure.stage is Stage.AUDIO_EXTRACTED
    assert isinstance(result.failure.error, InvalidInput)


def test_empty_transcript_fails_by_default(tmp_path, video, fake_ffmpeg):
    p, llm, _, _ = make_pipeline(tmp_path, video, "10-20: x", transcriber=RecordingTranscriber(""))

    result = p.run(video)

    assert result.failure.stage is Stage.TRANSCRIBED
    assert llm.calls == 0


def test_empty_transcript_allowed_completes_empty(tmp_path, video, fake_ffmpeg):
    p, llm, _, _ = make_pipeline(
        tmp_path, video, "10-20: x", transcriber=RecordingTranscriber(""), allow_empty_transcript=True
    )

    result = p.run(video)

    assert result.ok
    assert result.clips == []
    assert result.transcript == ""
    assert llm.calls == 0


def test_render_failure_fails_run_with_partial_clips(tmp_path, video, fake_ffmpeg):
    """Default policy: first render failure fails the run; earlier clips are reported."""
    p, _, _, store = make_pipeline(tmp_path, video, "0-4: Good.\n10-14: BROKEN clip.\n20-24: Never rendered.")

    result = p.run(video)

    assert result.state is Stage.FAILED
    assert result.failure.stage is Stage.RENDERING_CLIPS
    assert "clip 1" in result.failure.reason
    assert [c.index for c in result.clips] == [0]
    assert len(fake_ffmpeg) == 1
    assert result.history[-2:] == [Stage.RENDERING_CLIPS, Stage.FAILED]
    assert not store.path.exists()


def test_render_failure_continue_policy(tmp_path, video, fake_ffmpeg):
    """'continue' keeps going and reports the failed clips alongside the good ones."""
    p, _, _, store = make_pipeline(
        tmp_path, video, "0-4: Good.\n10-14: BROKEN clip.\n20-24: Also good.", on_render_error="continue"
    )

    result = p.run(video)

    assert result.ok
    assert [c.index for c in result.clips] == [0, 2]
    assert [f.index for f in result.render_failures] == [1]
    assert store.clips_for(video.as_posix()) == result.clip_refs()


def test_concurrent_rendering(tmp_path, video, fake_ffmpeg):
    reply = "\n".join(f"{i * 10}-{i * 10 + 5}: Moment {i}." for i in range(6))
    p, _, _, _ = make_pipeline(tmp_path, video, reply, max_concurrent_renders=3)

    result = p.run(video)

    assert result.ok
    assert [c.index for c in result.clips] == list(range(6))
    assert len({c.path for c in result.clips}) == 6


def test_runs_for_different_videos_do_not_share_workdirs(tmp_path, video):
    other = video.parent / "other" / "talk.mp4"
    other.parent.mkdir()
    other.write_bytes(b"video")
    p, _, _, _ = make_pipeline(tmp_path, video, "")

    assert p.run_dir(p_source(video)) != p.run_dir(p_source(other))


@pytest.mark.parametrize("name", ["Mom's talk.mp4", "a:b.mp4", "x=1,[y];z.mp4", "'.mp4"])
def test_run_key_is_filter_safe(tmp_path, name):
    """Stems are reduced to characters ffmpeg filter arguments take literally."""
    key = run_key(tmp_path / name)

    stem, digest = key.rsplit("-", 1)
    assert stem and all(ch.isalnum() or ch in "._-" for ch in stem)
    assert len(digest) == 12
    assert run_key(tmp_path / name) == key
    assert run_key(tmp_path / "Mom's talk.mp4") != run_key(tmp_path / "Mom_s talk.mp4")


def test_persistence_failure_is_reported(tmp_path, video, fake_ffmpeg):
    p, _, _, _ = make_pipeline(tmp_path, video, "0-4: Good.")
    blocker = tmp_path / "blocker"
    blocker.write_text("file")
    p.clip_store = JsonClipStore(blocker / "clips.json")

    result = p.run(video)

    assert result.failure.stage is Stage.COMPLETED
    assert [c.index for c in result.clips] == [0]


def test_result_to_dict(tmp_path, video, fake_ffmpeg):
    p, _, _, _ = make_pipeline(tmp_path, video, "0-4: Good.")

    data = json.loads(json.dumps(p.run(video).to_dict()))

    assert data["state"] == "Completed"
    assert data["moments"] == [{"start": 0, "end": 4, "caption": "Good."}]
    assert data["history"][0] == "Uploaded"
