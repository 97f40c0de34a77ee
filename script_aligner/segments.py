"""Turn aligned units or marker lists into a partition of the recording."""

from script_aligner.constants import MARKER_EPSILON
from script_aligner.models import SegmentSpan, TranscriptUnit


def build_segments(
    units: list[TranscriptUnit],
    unit_to_line: list[int | None],
    duration: float,
) -> list[SegmentSpan]:
    """Partition [0, duration) into one contiguous span per matched line.

    Audio before the first matched unit belongs to the first matched line; the
    last open span runs to the end of the recording. A line that shows up again
    after another line has taken over keeps only its first span; the later
    run's time is absorbed by the span preceding it.
    """
    raw_spans = []
    current_line = None
    current_start = 0.0

    for unit, li in zip(units, unit_to_line):
        if li is None or li == current_line:
            continue
        if current_line is None:
            current_line = li
            continue
        boundary = max(current_start, max(0.0, min(duration, unit.start)))
        if boundary > current_start:
            raw_spans.append(SegmentSpan(line_index=current_line, start=current_start, end=boundary))
            current_start = boundary
        current_line = li

    if current_line is not None and duration > current_start:
        raw_spans.append(SegmentSpan(line_index=current_line, start=current_start, end=duration))

    spans: list[SegmentSpan] = []
    seen = set()
    for span in raw_spans:
        if span.line_index in seen:
            if spans:
                spans[-1].end = span.end
            continue
        seen.add(span.line_index)
        spans.append(span)
    return spans


def segments_from_markers(markers: list[float], duration: float) -> list[SegmentSpan]:
    """Spans for [0, *markers, duration]; line_index is the span's position."""
    bounds = [0.0, *sorted(markers), duration]
    return [
        SegmentSpan(line_index=i, start=bounds[i], end=bounds[i + 1])
        for i in range(len(bounds) - 1)
    ]


def markers_from_segments(spans: list[SegmentSpan], duration: float) -> list[float]:
    """Inner boundaries of a partition: every span end except the last."""
    return [s.end for s in spans[:-1] if 0 < s.end < duration]


def window_markers(
    markers: list[float],
    start: float,
    end: float,
    eps: float = MARKER_EPSILON,
) -> list[float]:
    """Markers strictly inside (start, end), with eps margin on each edge."""
    return [t for t in markers if start + eps < t < end - eps]
