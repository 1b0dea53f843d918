"""SRT caption track parsing.

Turns a caption track (numbered blocks with a ``start --> end`` time line)
into timestamped transcript lines, and formats those lines as the plain
``[<seconds>s] <text>`` transcript handed to the segment-selection model.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List

_BLOCK_SEPARATOR = re.compile(r"\n\s*\n")
TIME_SEPARATOR = " --> "


class ParseError(ValueError):
    """Raised when a caption timestamp is not numeric."""


@dataclass(frozen=True)
class CaptionBlock:
    """One timed block of a caption track."""

    index: str
    start_time: float
    end_time: float
    text_lines: List[str]


@dataclass(frozen=True)
class TranscriptLine:
    """A caption block reduced to its start offset and joined text."""

    offset_seconds: float
    text: str

    def format(self) -> str:
        return f"[{format_offset(self.offset_seconds)}s] {self.text}"


def parse_srt_time(timestamp: str) -> float:
    """Convert ``H:MM:SS,mmm`` to seconds.

    Hours are unbounded. Missing milliseconds count as zero.
    """
    time_part, _, millis_part = timestamp.strip().partition(",")
    fields = time_part.split(":")
    if len(fields) != 3:
        raise ParseError(f"Invalid caption timestamp: {timestamp!r}")
    try:
        hours, minutes = int(fields[0]), int(fields[1])
        seconds = float(fields[2])
        millis = int(millis_part) if millis_part.strip() else 0
    except ValueError as e:
        raise ParseError(f"Invalid caption timestamp: {timestamp!r}") from e
    return hours * 3600 + minutes * 60 + seconds + millis / 1000


def format_offset(seconds: float) -> str:
    """Print an offset the way a plain number reads: 3600, 65.5, 1.25."""
    if float(seconds).is_integer():
        return str(int(seconds))
    return repr(float(seconds))


def iter_caption_blocks(srt_content: str) -> Iterator[CaptionBlock]:
    """Yield caption blocks in source order.

    Blocks with fewer than three lines are skipped. Blocks are not required
    to be ordered by time.
    """
    content = srt_content.replace("\r\n", "\n").replace("\r", "\n")
    for raw_block in _BLOCK_SEPARATOR.split(content):
        if not raw_block.strip():
            continue
        lines = raw_block.strip("\n").split("\n")
        if len(lines) < 3:
            continue

        start_text, _, end_text = lines[1].partition(TIME_SEPARATOR)
        start = parse_srt_time(start_text)
        # The end time is informational; tolerate a missing or broken one.
        try:
            end = parse_srt_time(end_text) if end_text else start
        except ParseError:
            end = start

        yield CaptionBlock(
            index=lines[0].strip(),
            start_time=start,
            end_time=end,
            text_lines=lines[2:],
        )


class CaptionTrack:
    """Lazy, restartable sequence of :class:`TranscriptLine`.

    Every iteration re-parses the source text from the top, so the same
    track can be walked more than once.
    """

    def __init__(self, srt_content: str):
        self._content = srt_content

    def __iter__(self) -> Iterator[TranscriptLine]:
        for block in iter_caption_blocks(self._content):
            yield TranscriptLine(
                offset_seconds=block.start_time,
                text=" ".join(block.text_lines),
            )

    def blocks(self) -> Iterator[CaptionBlock]:
        return iter_caption_blocks(self._content)


def format_transcript(lines: Iterable[TranscriptLine]) -> str:
    return "\n".join(line.format() for line in lines)


def build_transcript(srt_content: str) -> str:
    """Build the timestamped plain-text transcript for a caption track.

    Args:
        srt_content: Raw SRT text.

    Returns:
        One ``[<seconds>s] <text>`` line per valid caption block, in source order.

    Raises:
        ParseError: If a block's start time is not numeric.
    """
    return format_transcript(CaptionTrack(srt_content))
