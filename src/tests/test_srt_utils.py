"""
Tests for subtitle synthesis and SRT utilities.
"""

import pytest

from src.clipper.errors import InvalidInput
from src.clipper.models import Cue, KeyMoment
from src.clipper.srt_utils import (
    build_cues,
    parse_srt,
    split_sentences,
    synthesize_subtitles,
    write_srt,
)


def test_split_sentences():
    """Test splitting on terminal punctuation."""
    assert split_sentences("Hello world. This is a test. Goodbye!") == [
        "Hello world.",
        "This is a test.",
        "Goodbye!",
    ]
    assert split_sentences("Really? Yes!! Fine") == ["Really?", "Yes!!", "Fine"]
    assert split_sentences("No punctuation here") == ["No punctuation here"]
    assert split_sentences('He said "stop." Then left.') == ['He said "stop."', "Then left."]


def test_split_sentences_keeps_decimals_and_abbreviations():
    """A period only ends a sentence when whitespace follows and it is not an abbreviation."""
    assert split_sentences("Revenue grew 3.5 percent. Dr. Smith agreed.") == [
        "Revenue grew 3.5 percent.",
        "Dr. Smith agreed.",
    ]
    assert split_sentences("Visit example.com today") == ["Visit example.com today"]
    assert split_sentences("Use tools, e.g. hammers. Then rest.") == ["Use tools, e.g. hammers.", "Then rest."]


def test_split_sentences_drops_empty_units():
    assert split_sentences("One. . ! Two.") == ["One.", "Two."]
    assert split_sentences("   ") == []


def test_build_cues_windows():
    """duration 10, segment length 4 -> [0,4) [4,8) [8,10)."""
    moment = KeyMoment(start=100, end=110, caption="First. Second. Third.")
    cues = build_cues(moment, segment_length=4)

    assert [(c.start, c.end) for c in cues] == [(0, 4), (4, 8), (8, 10)]
    assert [c.index for c in cues] == [1, 2, 3]
    assert [c.text for c in cues] == ["First.", "Second.", "Third."]


def test_build_cues_repeats_last_sentence():
    """Trailing windows reuse the final sentence."""
    moment = KeyMoment(start=10, end=30, caption="Hello world")
    cues = build_cues(moment)

    assert len(cues) == 5
    assert all(c.text == "Hello world" for c in cues)


def test_build_cues_extra_sentences_are_dropped():
    moment = KeyMoment(start=0, end=4, caption="One. Two. Three.")
    cues = build_cues(moment)

    assert len(cues) == 1
    assert cues[0].text == "One."


@pytest.mark.parametrize("start,end,length", [(0, 1, 4), (5, 17, 4), (3, 50, 4), (0, 9, 2.5), (7, 8, 0.5)])
def test_cues_cover_clip_without_overlap(start, end, length):
    """Cues start at 0, are contiguous and end at the clip's duration."""
    cues = build_cues(KeyMoment(start=start, end=end, caption="A. B."), segment_length=length)

    assert cues[0].start == 0
    assert cues[-1].end == end - start
    for prev, cur in zip(cues, cues[1:]):
        assert prev.end == cur.start
        assert prev.start < prev.end
        assert prev.end - prev.start <= length


def test_build_cues_rejects_bad_segment_length():
    with pytest.raises(InvalidInput):
        build_cues(KeyMoment(start=0, end=10, caption="x"), segment_length=0)


def test_write_and_parse_srt(tmp_path):
    """Test SRT write/parse roundtrip."""
    cues = [
        Cue(index=1, start=0.0, end=4.0, text="Hello world."),
        Cue(index=2, start=4.0, end=8.0, text="This is a test."),
        Cue(index=3, start=8.0, end=10.0, text="Goodbye!"),
    ]
    srt_path = tmp_path / "nested" / "subtitle_0.srt"

    write_srt(cues, srt_path)
    parsed = parse_srt(srt_path)

    assert parsed == cues


def test_write_srt_format(tmp_path):
    """Blocks are index, timing line, text, blank line."""
    srt_path = tmp_path / "subtitle_0.srt"
    synthesize_subtitles(KeyMoment(start=10, end=16, caption="Dream big. Start small."), srt_path)

    assert srt_path.read_text(encoding="utf-8") == (
        "1\n00:00:00,000 --> 00:00:04,000\nDream big.\n\n"
        "2\n00:00:04,000 --> 00:00:06,000\nStart small.\n\n"
    )
