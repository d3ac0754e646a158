"""
Subtitle synthesis: sentence splitting, cue timing, and SRT read/write.
"""

import logging
import math
import re
from pathlib import Path

from .errors import InvalidInput
from .models import Cue, KeyMoment
from .timecode import format_timecode, parse_timecode

logger = logging.getLogger("clipper")

# Sentence boundary: whitespace after terminal punctuation, optionally closed
# by a quote or bracket. "3.5" and "example.com" have no such whitespace.
_SENT_SPLIT_RE = re.compile(r"(?<=[.!?…])\s+|(?<=[.!?…][\"'”’)\]])\s+")
ABBR_SET = {
    "e.g.", "i.e.", "Mr.", "Mrs.", "Ms.", "Dr.", "Prof.", "Sr.", "Jr.", "vs.", "etc.",
    "St.", "Mt.", "Inc.", "Ltd.", "Co.", "approx.",
}
_TIMING_RE = re.compile(r"^(\S+)\s+-->\s+(\S+)")

DEFAULT_SEGMENT_LENGTH = 4


def split_sentences(text: str) -> list[str]:
    """Split caption text into sentences, keeping punctuation and common abbreviations."""
    units: list[str] = []
    buf: list[str] = []
    for chunk in _SENT_SPLIT_RE.split((text or "").strip()):
        chunk = chunk.strip()
        if not chunk:
            continue
        buf.append(chunk)
        if chunk.split()[-1] in ABBR_SET:
            continue
        units.append(" ".join(buf))
        buf = []
    if buf:
        units.append(" ".join(buf))
    # a bare run of punctuation is not a sentence on its own
    return [u for u in units if re.search(r"\w", u)]


def build_cues(moment: KeyMoment, segment_length: float = DEFAULT_SEGMENT_LENGTH) -> list[Cue]:
    """
    Lay the moment's caption out over fixed-length windows in clip-local time.

    Window i is [i*L, min((i+1)*L, duration)). It shows sentence i, or the last
    sentence once the sentences run out.
    """
    if segment_length <= 0:
        raise InvalidInput(f"Segment length must be positive, got {segment_length}")
    duration = moment.duration
    units = split_sentences(moment.caption) or [moment.caption.strip()]
    num_segments = math.ceil(duration / segment_length)

    cues: list[Cue] = []
    for i in range(num_segments):
        start = i * segment_length
        end = min((i + 1) * segment_length, duration)
        text = units[min(i, len(units) - 1)]
        cues.append(Cue(index=i + 1, start=start, end=end, text=text))
    return cues


def write_srt(cues: list[Cue], path: str | Path) -> None:
    """Write cues to an SRT file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for c in cues:
            f.write(f"{c.index}\n{format_timecode(c.start)} --> {format_timecode(c.end)}\n{c.text}\n\n")


def parse_srt(path: str | Path) -> list[Cue]:
    """Parse an SRT file into cues."""
    with open(path, encoding="utf-8") as f:
        raw = f.read()

    blocks = re.split(r"\n\s*\n", raw.strip(), flags=re.M)
    out: list[Cue] = []
    for b in blocks:
        lines = [ln for ln in b.splitlines() if ln.strip()]
        if not lines:
            continue
        index = len(out) + 1
        if re.match(r"^\d+$", lines[0].strip()):
            index = int(lines[0].strip())
            lines = lines[1:]
        if not lines:
            continue
        m = _TIMING_RE.match(lines[0].strip())
        if not m:
            continue
        start = parse_timecode(m.group(1))
        end = parse_timecode(m.group(2))
        text = " ".join(ln.strip() for ln in lines[1:])
        out.append(Cue(index=index, start=start, end=end, text=text))
    return out


def synthesize_subtitles(
    moment: KeyMoment, path: str | Path, segment_length: float = DEFAULT_SEGMENT_LENGTH
) -> list[Cue]:
    """Build the subtitle track for one moment and write it to ``path``."""
    cues = build_cues(moment, segment_length)
    write_srt(cues, path)
    logger.debug(f"Wrote {len(cues)} cues -> {path}")
    return cues
