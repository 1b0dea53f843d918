import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from segments import (  # noqa: E402
    CandidateSegment,
    InvalidSegmentError,
    normalize_segment,
    normalize_segments,
    sanitize_label,
)


@pytest.mark.parametrize(
    "start, end, expected",
    [
        (0, 10, 30),
        (0, 200, 50),
        (10, 45, 35),
        (100, 130, 30),
        (5.5, 55.5, 50),
    ],
)
def test_duration_is_clamped(start, end, expected):
    segment = normalize_segment({"start": start, "end": end, "label": "joy"}, 1)
    assert segment.duration == expected
    assert 30 <= segment.duration <= 50


def test_end_is_not_recomputed():
    segment = normalize_segment({"start": 0, "end": 10, "label": "joy"}, 1)
    assert segment.start == 0
    assert segment.end == 10
    assert segment.duration == 30


@pytest.mark.parametrize(
    "data",
    [
        {"start": 10, "end": 10, "label": "joy"},
        {"start": 20, "end": 10, "label": "joy"},
        {"start": "ten", "end": 40, "label": "joy"},
        {"start": 0, "end": None, "label": "joy"},
        {"start": True, "end": 40, "label": "joy"},
        {"start": -5, "end": 40, "label": "joy"},
        {"start": 0, "end": 40, "label": ""},
        {"start": 0, "end": 40, "label": "   "},
        {"start": 0, "end": 40},
        {"start": float("nan"), "end": 40, "label": "joy"},
    ],
)
def test_invalid_segments_raise(data):
    with pytest.raises(InvalidSegmentError):
        normalize_segment(data, 1)


def test_non_object_candidate_raises():
    with pytest.raises(InvalidSegmentError):
        normalize_segment(["not", "a", "dict"], 1)


def test_numeric_strings_are_accepted():
    segment = normalize_segment({"start": "12.5", "end": "52", "label": "awe"}, 2)
    assert segment.start == 12.5
    assert segment.duration == 39.5


def test_emotion_key_is_a_label_alias():
    segment = normalize_segment({"start": 0, "end": 40, "emotion": "surprise"}, 1)
    assert segment.label == "surprise"


def test_candidate_segment_instance_is_accepted():
    segment = normalize_segment(CandidateSegment(start=3, end=40, label="fear", text="Boo"), 4)
    assert segment.ordinal == 4
    assert segment.text == "Boo"


def test_sanitize_label():
    assert sanitize_label("joy/sad:wow") == "joy-sad-wow"
    assert sanitize_label('a\\b"c*d?e<f>g|h') == "a-b-c-d-e-f-g-h"
    assert sanitize_label("plain") == "plain"


def test_filename_uses_ordinal_and_sanitized_label():
    segment = normalize_segment({"start": 0, "end": 40, "label": "joy/sad:wow"}, 3)
    assert segment.filename == "short_3_joy-sad-wow.mp4"


def test_invalid_segment_does_not_abort_batch():
    segments = normalize_segments([
        {"start": 0, "end": 40, "label": "joy"},
        {"start": 10, "end": 10, "label": "joy"},
        {"start": 60, "end": 95, "label": "anger"},
    ])
    assert [s.ordinal for s in segments] == [1, 3]
    assert [s.filename for s in segments] == ["short_1_joy.mp4", "short_3_anger.mp4"]


def test_normalize_empty_batch():
    assert normalize_segments([]) == []


def test_same_label_collisions_are_kept():
    segments = normalize_segments([
        {"start": 0, "end": 40, "label": "joy"},
        {"start": 50, "end": 90, "label": "joy"},
    ])
    assert len(segments) == 2
    assert segments[0].label == segments[1].label


def test_custom_bounds():
    segments = normalize_segments([{"start": 0, "end": 5, "label": "joy"}], min_duration=10, max_duration=20)
    assert segments[0].duration == 10
