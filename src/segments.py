"""Validation and normalization of candidate viral segments."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence, Union

MIN_DURATION = 30.0
MAX_DURATION = 50.0

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:"*?<>|]')


class InvalidSegmentError(ValueError):
    """Raised for a candidate segment that cannot be rendered."""


def _to_seconds(value: Any, name: str) -> float:
    # bool is an int subclass; "true" is not a timestamp.
    if isinstance(value, bool) or value is None:
        raise InvalidSegmentError(f"{name} is not numeric: {value!r}")
    try:
        seconds = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidSegmentError(f"{name} is not numeric: {value!r}") from e
    if not math.isfinite(seconds):
        raise InvalidSegmentError(f"{name} is not finite: {value!r}")
    return seconds


@dataclass(frozen=True)
class CandidateSegment:
    """A segment proposed by the selection model. Untrusted until normalized."""

    start: Any
    end: Any
    label: Any
    text: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CandidateSegment":
        if not isinstance(data, Mapping):
            raise InvalidSegmentError(f"Segment is not an object: {data!r}")
        label = data.get("label")
        if label is None:
            label = data.get("emotion")
        return cls(
            start=data.get("start"),
            end=data.get("end"),
            label=label,
            text=str(data.get("text") or ""),
        )


@dataclass(frozen=True)
class NormalizedSegment:
    """A validated segment. Only ``start`` and ``duration`` drive the cut."""

    ordinal: int
    start: float
    end: float
    label: str
    duration: float
    text: str = ""

    @property
    def stem(self) -> str:
        return output_stem(self.ordinal, self.label)

    @property
    def filename(self) -> str:
        return f"{self.stem}.mp4"


def sanitize_label(label: str) -> str:
    """Replace characters that are not allowed in file names with ``-``."""
    return _UNSAFE_FILENAME_CHARS.sub("-", label)


def output_stem(ordinal: int, label: str) -> str:
    return f"short_{ordinal}_{sanitize_label(label)}"


def clamp_duration(
    start: float,
    end: float,
    min_duration: float = MIN_DURATION,
    max_duration: float = MAX_DURATION,
) -> float:
    return min(max(end - start, min_duration), max_duration)


def normalize_segment(
    candidate: Union[CandidateSegment, Mapping[str, Any]],
    ordinal: int,
    min_duration: float = MIN_DURATION,
    max_duration: float = MAX_DURATION,
) -> NormalizedSegment:
    """Validate one candidate and clamp its duration.

    Raises:
        InvalidSegmentError: non-numeric times, negative start,
            ``end <= start`` or an empty label.
    """
    if not isinstance(candidate, CandidateSegment):
        candidate = CandidateSegment.from_dict(candidate)

    start = _to_seconds(candidate.start, "start")
    end = _to_seconds(candidate.end, "end")
    if start < 0:
        raise InvalidSegmentError(f"start is negative: {start}")
    if end <= start:
        raise InvalidSegmentError(f"end ({end}) is not after start ({start})")

    label = "" if candidate.label is None else str(candidate.label).strip()
    if not label:
        raise InvalidSegmentError("label is empty")

    return NormalizedSegment(
        ordinal=ordinal,
        start=start,
        end=end,
        label=label,
        duration=clamp_duration(start, end, min_duration, max_duration),
        text=candidate.text,
    )


def normalize_segments(
    candidates: Sequence[Union[CandidateSegment, Mapping[str, Any]]],
    min_duration: float = MIN_DURATION,
    max_duration: float = MAX_DURATION,
) -> List[NormalizedSegment]:
    """Normalize a batch of candidates, dropping the invalid ones.

    Ordinals are 1-based positions in the input, so a dropped candidate
    leaves a gap in the numbering instead of renaming later clips.
    """
    normalized = []
    for ordinal, candidate in enumerate(candidates, 1):
        try:
            segment = normalize_segment(candidate, ordinal, min_duration, max_duration)
        except InvalidSegmentError as e:
            logging.warning(f"Skipping segment {ordinal}: {e}")
            continue
        if segment.duration != segment.end - segment.start:
            logging.info(
                f"Segment {ordinal} duration adjusted from {segment.end - segment.start:.1f}s "
                f"to {segment.duration:.1f}s"
            )
        normalized.append(segment)
    return normalized
