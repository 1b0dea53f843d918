import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from transcript import (  # noqa: E402
    CaptionTrack,
    ParseError,
    TranscriptLine,
    build_transcript,
    format_offset,
    iter_caption_blocks,
    parse_srt_time,
)

SRT = """1
00:00:01,000 --> 00:00:04,200
Hello there,
everyone.

2
00:01:05,500 --> 00:01:09,000
This is the best day of my life!

3
01:00:00,000 --> 01:00:03,000
An hour in.
"""


def test_parse_srt_time():
    assert parse_srt_time("00:01:05,500") == 65.5
    assert parse_srt_time("01:00:00,000") == 3600.0
    assert parse_srt_time("00:00:00,001") == 0.001


def test_parse_srt_time_hours_not_wrapped():
    assert parse_srt_time("25:00:00,000") == 90000.0
    assert parse_srt_time("100:00:01,000") == 360001.0


def test_parse_srt_time_missing_millis():
    assert parse_srt_time("00:00:07") == 7.0
    assert parse_srt_time("00:00:07,") == 7.0


@pytest.mark.parametrize("bad", ["aa:bb:cc,ddd", "00:00:xx,000", "00:00,000", "nonsense"])
def test_parse_srt_time_rejects_non_numeric(bad):
    with pytest.raises(ParseError):
        parse_srt_time(bad)


def test_format_offset_natural_decimal():
    assert format_offset(65.5) == "65.5"
    assert format_offset(3600.0) == "3600"
    assert format_offset(0) == "0"
    assert format_offset(1.25) == "1.25"


def test_build_transcript_one_line_per_block():
    transcript = build_transcript(SRT)
    assert transcript.split("\n") == [
        "[1s] Hello there, everyone.",
        "[65.5s] This is the best day of my life!",
        "[3600s] An hour in.",
    ]


def test_build_transcript_skips_short_blocks():
    srt = "1\n00:00:01,000 --> 00:00:02,000\n\n2\n00:00:03,000 --> 00:00:04,000\nKept\n"
    assert build_transcript(srt) == "[3s] Kept"


def test_build_transcript_tolerates_crlf_and_extra_blank_lines():
    srt = SRT.replace("\n", "\r\n") + "\r\n\r\n\r\n"
    assert build_transcript(srt) == build_transcript(SRT)


def test_build_transcript_keeps_source_order():
    srt = "1\n00:00:10,000 --> 00:00:11,000\nLater\n\n2\n00:00:02,000 --> 00:00:03,000\nEarlier\n"
    assert build_transcript(srt) == "[10s] Later\n[2s] Earlier"


def test_build_transcript_empty():
    assert build_transcript("") == ""


def test_build_transcript_bad_time_raises():
    with pytest.raises(ParseError):
        build_transcript("1\nxx:00:01,000 --> 00:00:02,000\nText\n")


def test_caption_track_is_restartable():
    track = CaptionTrack(SRT)
    first = list(track)
    second = list(track)
    assert first == second
    assert first[1] == TranscriptLine(offset_seconds=65.5, text="This is the best day of my life!")


def test_caption_blocks_keep_end_time_and_lines():
    blocks = list(iter_caption_blocks(SRT))
    assert blocks[0].index == "1"
    assert blocks[0].end_time == 4.2
    assert blocks[0].text_lines == ["Hello there,", "everyone."]
