"""Split transcript segments into smaller, time-proportioned units."""

from script_aligner.constants import HARD_PUNCTUATION, SOFT_PUNCTUATION, SOFT_SPLIT_THRESHOLD
from script_aligner.models import TranscriptSegment, TranscriptUnit
from script_aligner.text import normalize_for_match


def _split_on(text: str, punctuation: frozenset) -> list[str]:
    """Split text after each punctuation char, keeping the char with its part."""
    parts = []
    buf = ""
    for ch in text:
        buf += ch
        if ch in punctuation:
            part = buf.strip()
            if part:
                parts.append(part)
            buf = ""
    tail = buf.strip()
    if tail:
        parts.append(tail)
    return parts


def split_text(text: str, threshold: int = SOFT_SPLIT_THRESHOLD) -> list[str]:
    """Hard-split on sentence terminators, then soft-split overlong parts."""
    raw = (text or "").strip()
    if not raw:
        return []

    hard_parts = _split_on(raw, HARD_PUNCTUATION) or [raw]

    parts = []
    for part in hard_parts:
        if len(normalize_for_match(part)) > threshold:
            parts.extend(_split_on(part, SOFT_PUNCTUATION))
        else:
            parts.append(part)
    return parts


def split_into_units(
    segments: list[TranscriptSegment],
    threshold: int = SOFT_SPLIT_THRESHOLD,
) -> list[TranscriptUnit]:
    """Split every segment into units, sharing its time span by text length.

    Each part weighs its normalized length (at least 1). The last part of a
    segment always ends exactly at the segment end so rounding never drifts
    into the next segment.
    """
    units = []
    for seg in segments:
        parts = split_text(seg.text, threshold)
        if not parts:
            continue

        seg_dur = max(0.0, seg.end - seg.start)
        weights = [max(1, len(normalize_for_match(p))) for p in parts]
        total = sum(weights)
        cursor = seg.start

        for i, part in enumerate(parts):
            ratio = weights[i] / total
            part_start = cursor
            part_end = seg.end if i == len(parts) - 1 else cursor + seg_dur * ratio
            cursor = part_end
            units.append(TranscriptUnit(start=part_start, end=part_end, text=part))

    return units


def clamp_units(units: list[TranscriptUnit], duration: float) -> list[TranscriptUnit]:
    """Clamp units into [0, duration] and drop those left empty."""
    clamped = []
    for unit in units:
        start = max(0.0, min(duration, unit.start))
        end = max(0.0, min(duration, unit.end))
        if end > start and unit.text.strip():
            clamped.append(TranscriptUnit(start=start, end=end, text=unit.text))
    return clamped
