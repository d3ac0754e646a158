"""
Failure taxonomy for the clipping pipeline.

Every stage raises one of these; the orchestrator maps them to a
``Failed(stage, reason)`` result instead of letting them escape.
"""


class PipelineError(RuntimeError):
    """Base class for all typed pipeline failures."""

    retryable = False

    def __init__(self, message: str, diagnostic: str = "") -> None:
        super().__init__(message)
        self.diagnostic = diagnostic

    def __str__(self) -> str:
        msg = super().__str__()
        if self.diagnostic:
            return f"{msg}: {self.diagnostic.strip()}"
        return msg


class InvalidInput(PipelineError, ValueError):
    """Bad argument or malformed data handed to a stage."""


class TranscodeFailure(PipelineError):
    """ffmpeg exited non-zero while extracting audio."""


class UploadFailure(PipelineError):
    """Publishing an artifact to object storage failed."""


class TranscriptionFailure(PipelineError):
    """Speech-to-text errored or returned no usable text."""


class ExtractionFailure(PipelineError):
    """The text-generation call for key moments failed."""


class RenderFailure(PipelineError):
    """Probing or rendering a clip failed."""


class PersistenceFailure(PipelineError):
    """Handing the clip list to the persistence collaborator failed."""


class Timeout(PipelineError):
    """An external call ran past its deadline."""

    retryable = True
