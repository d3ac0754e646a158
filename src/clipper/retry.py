"""
Bounded retries with exponential backoff for external service calls.
"""

import logging
import time
from collections.abc import Callable
from typing import TypeVar

import httpx
import openai

from .errors import PipelineError, Timeout

logger = logging.getLogger("clipper")

T = TypeVar("T")

_TRANSIENT_OPENAI = (
    openai.APIConnectionError,  # includes APITimeoutError
    openai.RateLimitError,
    openai.InternalServerError,
)


def is_transient(exc: BaseException) -> bool:
    """Whether an error is worth another attempt."""
    if isinstance(exc, PipelineError):
        return exc.retryable
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return isinstance(exc, _TRANSIENT_OPENAI)


def to_pipeline_error(
    exc: Exception, failure: type[PipelineError], what: str
) -> PipelineError:
    """Map a client-library error onto the pipeline's taxonomy."""
    if isinstance(exc, PipelineError):
        return exc
    if isinstance(exc, (httpx.TimeoutException, openai.APITimeoutError)):
        return Timeout(f"{what} timed out", str(exc))
    return failure(f"{what} failed", f"{type(exc).__name__}: {exc}")


def call_with_retries(
    fn: Callable[[], T],
    *,
    retries: int = 2,
    backoff: float = 1.0,
    what: str = "call",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``fn``; on a transient error wait ``backoff * 2**attempt`` and retry.

    Non-transient errors, and the last transient one, are re-raised as is.
    """
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:
            if attempt >= retries or not is_transient(e):
                raise
            wait = backoff * (2**attempt)
            logger.warning(
                f"{what} failed ({e}); retrying in {wait:.1f}s (attempt {attempt + 1}/{retries})"
            )
            sleep(wait)
            attempt += 1
