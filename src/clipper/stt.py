"""
Speech-to-text: publish the audio, transcribe it, keep a copy of the transcript.
"""

import logging
import time
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote, urlsplit

import httpx
from openai import OpenAI

from .errors import PipelineError, Timeout, TranscriptionFailure, UploadFailure
from .models import AudioArtifact
from .retry import call_with_retries, to_pipeline_error
from .storage import ObjectStorage

logger = logging.getLogger("clipper")


class Transcriber(Protocol):
    def transcribe(self, audio_url: str) -> str:
        """Return the full transcript of the audio at ``audio_url`` (may be empty)."""
        ...


class AssemblyAITranscriber:
    """Transcribes a public audio URL with the AssemblyAI REST API."""

    BASE_URL = "https://api.assemblyai.com/v2"

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 300.0,
        poll_interval: float = 3.0,
        client: httpx.Client | None = None,
        sleep=time.sleep,
    ) -> None:
        if not api_key:
            raise TranscriptionFailure("ASSEMBLYAI_API_KEY is not set.")
        self.api_key = api_key
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._client = client
        self._sleep = sleep

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def transcribe(self, audio_url: str) -> str:
        headers = {"authorization": self.api_key, "User-Agent": "key-moment-clipper/1.0"}
        http = self._http()
        r = http.post(f"{self.BASE_URL}/transcript", json={"audio_url": audio_url}, headers=headers)
        r.raise_for_status()
        job_id = r.json()["id"]
        logger.info(f"AssemblyAI job {job_id} submitted")

        deadline = time.monotonic() + self.timeout
        while True:
            r = http.get(f"{self.BASE_URL}/transcript/{job_id}", headers=headers)
            r.raise_for_status()
            data = r.json()
            status = data.get("status")
            if status == "completed":
                return data.get("text") or ""
            if status == "error":
                raise TranscriptionFailure(f"AssemblyAI job {job_id} failed", str(data.get("error", "")))
            if time.monotonic() >= deadline:
                raise Timeout(f"AssemblyAI job {job_id} still '{status}' after {self.timeout}s")
            self._sleep(self.poll_interval)


class WhisperTranscriber:
    """Fetches the audio URL and sends it to OpenAI Whisper."""

    def __init__(self, client: OpenAI, model: str = "whisper-1", *, timeout: float = 300.0) -> None:
        if client is None:
            raise TranscriptionFailure("OpenAI client is not initialized (missing OPENAI_API_KEY)")
        self.client = client
        self.model = model
        self.timeout = timeout

    def _fetch(self, audio_url: str) -> tuple[str, bytes]:
        parts = urlsplit(audio_url)
        path = unquote(parts.path)
        name = Path(path).name or "audio.mp3"
        if parts.scheme == "file":
            return name, Path(path).read_bytes()
        r = httpx.get(audio_url, follow_redirects=True, timeout=self.timeout)
        r.raise_for_status()
        return name, r.content

    def transcribe(self, audio_url: str) -> str:
        name, data = self._fetch(audio_url)
        logger.info(f"Transcribing with {self.model} ({len(data)} bytes) …")
        resp = self.client.audio.transcriptions.create(model=self.model, file=(name, data))
        text = getattr(resp, "text", None)
        if text is None and isinstance(resp, dict):
            text = resp.get("text", "")
        return str(text or "")


def publish_audio(
    audio: AudioArtifact, storage: ObjectStorage, *, retries: int = 2, backoff: float = 1.0
) -> str:
    """Upload the audio artifact and return its public URL."""
    key = f"audio/{audio.path.name}"
    try:
        data = audio.path.read_bytes()
    except OSError as e:
        raise UploadFailure(f"Could not read {audio.path}", str(e)) from e
    try:
        url = call_with_retries(
            lambda: storage.put(key, data), retries=retries, backoff=backoff, what="Audio upload"
        )
    except PipelineError:
        raise
    except Exception as e:
        raise to_pipeline_error(e, UploadFailure, "Audio upload") from e
    logger.info(f"Published audio -> {url}")
    return url


def save_transcript(text: str, transcript_dir: str | Path, audio: AudioArtifact) -> Path | None:
    """Best-effort copy of the transcript, keyed by the audio file it came from."""
    path = Path(transcript_dir) / f"{audio.path.stem}.txt"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        logger.warning(f"Could not save transcript to {path}: {e}")
        return None
    logger.info(f"Saved transcript -> {path}")
    return path


def transcribe_audio(
    audio: AudioArtifact,
    *,
    storage: ObjectStorage,
    transcriber: Transcriber,
    transcript_dir: str | Path,
    allow_empty: bool = False,
    retries: int = 2,
    backoff: float = 1.0,
) -> str:
    """Publish the audio, transcribe it and persist the transcript.

    Raises UploadFailure, TranscriptionFailure or Timeout. Empty text is a
    TranscriptionFailure unless ``allow_empty`` is set.
    """
    url = publish_audio(audio, storage, retries=retries, backoff=backoff)
    try:
        text = call_with_retries(
            lambda: transcriber.transcribe(url),
            retries=retries,
            backoff=backoff,
            what="Transcription",
        )
    except PipelineError:
        raise
    except Exception as e:
        raise to_pipeline_error(e, TranscriptionFailure, "Transcription") from e

    text = (text or "").strip()
    save_transcript(text, transcript_dir, audio)
    if not text and not allow_empty:
        raise TranscriptionFailure("Transcription returned empty text.")
    logger.info(f"Transcript: {len(text)} characters")
    return text
