"""
Conversion between seconds and SRT timestamps (HH:MM:SS,mmm).
"""

import math
import re

from .errors import InvalidInput

_TIMECODE_RE = re.compile(r"^\s*(\d+):([0-5]\d):([0-5]\d)[,.](\d{3})\s*$")


def format_timecode(seconds: float) -> str:
    """Format non-negative seconds as ``HH:MM:SS,mmm``."""
    try:
        value = float(seconds)
    except (TypeError, ValueError):
        raise InvalidInput(f"Not a number of seconds: {seconds!r}") from None
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise InvalidInput(f"Timecode needs finite non-negative seconds, got {seconds!r}")

    # integer milliseconds keep this exact; float modulo drifts past a few hours
    total_ms = int(round(value * 1000))
    h, rem = divmod(total_ms, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms = divmod(rem, 1000)
    return f"{h:02}:{m:02}:{s:02},{ms:03}"


def parse_timecode(text: str) -> float:
    """Parse ``HH:MM:SS,mmm`` (or ``.mmm``) back into seconds."""
    m = _TIMECODE_RE.match(text or "")
    if not m:
        raise InvalidInput(f"Malformed timecode: {text!r}")
    h, mi, s, ms = (int(g) for g in m.groups())
    return (h * 3_600_000 + mi * 60_000 + s * 1000 + ms) / 1000.0
