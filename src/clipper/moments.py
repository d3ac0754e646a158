"""
Key-moment extraction: ask GPT for noteworthy ranges, parse its answer.
"""

import logging
import re

from openai import OpenAI

from .errors import ExtractionFailure, InvalidInput, PipelineError
from .models import KeyMoment
from .retry import call_with_retries, to_pipeline_error

logger = logging.getLogger("clipper")

# <start>-<end>: <caption>
_MOMENT_LINE_RE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*:\s*(.+?)\s*$")
_QUOTES = {'"': '"', "'": "'", "“": "”", "‘": "’"}


def build_prompt(transcript: str) -> str:
    """Instruction prompt embedding the transcript. Same input, same prompt."""
    return f"""Identify key sentences and their timestamps from this transcript.
Return output in the format:
start-end: caption text

Use whole seconds for start and end, one moment per line, and nothing else.

Example output:
10-30: "Success is about discipline."
40-70: "Hard work beats talent when talent is lazy."
100-130: "Dream big, start small."

Transcript:
{transcript}"""


def _unquote(text: str) -> str:
    """Drop one pair of quotes that wraps the whole caption, and only that."""
    if len(text) >= 2 and _QUOTES.get(text[0]) == text[-1]:
        inner = text[1:-1]
        if text[0] not in inner and text[-1] not in inner:
            return inner.strip()
    return text


def parse_key_moments(text: str) -> list[KeyMoment]:
    """Parse ``start-end: caption`` lines; anything else is skipped."""
    moments: list[KeyMoment] = []
    for line in (text or "").splitlines():
        m = _MOMENT_LINE_RE.match(line)
        if not m:
            if line.strip():
                logger.debug(f"Skipping unparsable line: {line!r}")
            continue
        try:
            moments.append(KeyMoment(start=int(m.group(1)), end=int(m.group(2)), caption=_unquote(m.group(3))))
        except InvalidInput as e:
            logger.debug(f"Skipping invalid moment {line!r}: {e}")
    return moments


def extract_key_moments(
    client: OpenAI,
    transcript: str,
    model: str = "gpt-4o-mini",
    *,
    retries: int = 2,
    backoff: float = 1.0,
) -> list[KeyMoment]:
    """Ask the model for key moments in the transcript.

    A failed call raises ExtractionFailure (or Timeout). A reply with no
    parsable lines is an empty list, not an error.
    """
    if client is None:
        raise ExtractionFailure("OpenAI client is not initialized (missing OPENAI_API_KEY)")

    prompt = build_prompt(transcript)

    def _call() -> str:
        response = client.chat.completions.create(
            model=model,
            messages=[
                {
                    "role": "system",
                    "content": "You are a video editor picking short, self-contained highlights from long recordings.",
                },
                {"role": "user", "content": prompt},
            ],
            temperature=0.2,
        )
        return response.choices[0].message.content or ""

    logger.info(f"Extracting key moments with {model} …")
    try:
        reply = call_with_retries(_call, retries=retries, backoff=backoff, what="Key-moment extraction")
    except PipelineError:
        raise
    except Exception as e:
        raise to_pipeline_error(e, ExtractionFailure, "Key-moment extraction") from e

    moments = parse_key_moments(reply)
    logger.info(f"Found {len(moments)} key moments")
    return moments
