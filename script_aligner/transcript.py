"""Transcript sources normalized to {start, end, text} segments.

Two variants feed the aligner:
  - AsrProvider: ready-made ASR output with start/end/text per segment
  - TimestampedDocument: manually transcribed cues carrying only a start time;
    each cue ends where the next one starts, the last at the recording end

Malformed entries (unparseable times, inverted ranges, empty text) are logged
and skipped; one bad entry never fails the run.
"""

import json
import logging
import math
import re

from script_aligner.models import TranscriptSegment

logger = logging.getLogger(__name__)

# [HH:]MM:SS[.mmm|,mmm], optionally wrapped in [] or ()
_TIMESTAMP_RE = re.compile(r"^(?:(\d+):)?(\d{1,2}):(\d{1,2}(?:[.,]\d+)?)$")
_CUE_LINE_RE = re.compile(r"^\s*[\[(]?\s*((?:\d+:)?\d{1,2}:\d{1,2}(?:[.,]\d+)?)\s*[\])]?\s*(.*)$")


def parse_timestamp(value) -> float | None:
    """Seconds from a number or an [HH:]MM:SS[.mmm] string; None if unparseable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) and value >= 0 else None
    if not isinstance(value, str):
        return None
    text = value.strip().strip("[]()")
    try:
        seconds = float(text)
        return seconds if math.isfinite(seconds) and seconds >= 0 else None
    except ValueError:
        pass
    match = _TIMESTAMP_RE.match(text)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours or 0) * 3600 + int(minutes) * 60 + float(seconds.replace(",", "."))


class TranscriptSource:
    """Base for anything that can produce transcript segments."""

    name = "transcript"

    def segments(self, duration: float) -> list[TranscriptSegment]:
        raise NotImplementedError


class AsrProvider(TranscriptSource):
    """Segments from a speech recognizer, as [{start, end, text}, ...]."""

    name = "asr"

    def __init__(self, raw_segments: list[dict]):
        self.raw_segments = raw_segments

    @classmethod
    def from_json(cls, path: str) -> "AsrProvider":
        """Load a JSON list, or an object with a "segments" list (whisper style)."""
        with open(path) as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("segments", [])
        return cls(data)

    def segments(self, duration: float) -> list[TranscriptSegment]:
        out = []
        for i, raw in enumerate(self.raw_segments):
            if not isinstance(raw, dict):
                logger.warning("Skipping ASR segment %d: not an object", i)
                continue
            start = parse_timestamp(raw.get("start"))
            end = parse_timestamp(raw.get("end"))
            text = str(raw.get("text") or "").strip()
            if start is None or end is None:
                logger.warning("Skipping ASR segment %d: unparseable timestamp", i)
                continue
            if end <= start:
                logger.warning("Skipping ASR segment %d: end %.3f <= start %.3f", i, end, start)
                continue
            if not text:
                logger.warning("Skipping ASR segment %d: empty text", i)
                continue
            out.append(TranscriptSegment(start=start, end=end, text=text))
        return out


class TimestampedDocument(TranscriptSource):
    """Cues from a manually timestamped document, as [{start, text}, ...]."""

    name = "document"

    def __init__(self, cues: list[dict]):
        self.cues = cues

    @classmethod
    def from_text(cls, text: str) -> "TimestampedDocument":
        """Parse one cue per line: "[00:01:02.500] text" or "01:02 text".

        Lines without a leading timestamp continue the previous cue's text.
        """
        cues: list[dict] = []
        for line in text.splitlines():
            if not line.strip():
                continue
            match = _CUE_LINE_RE.match(line)
            if match:
                cues.append({"start": match.group(1), "text": match.group(2).strip()})
            elif cues:
                cues[-1]["text"] = (cues[-1]["text"] + " " + line.strip()).strip()
            else:
                logger.warning("Ignoring text before the first timestamp: %r", line.strip()[:40])
        return cls(cues)

    @classmethod
    def from_file(cls, path: str) -> "TimestampedDocument":
        with open(path, encoding="utf-8") as f:
            return cls.from_text(f.read())

    def segments(self, duration: float) -> list[TranscriptSegment]:
        parsed = []
        for i, cue in enumerate(self.cues):
            start = parse_timestamp(cue.get("start"))
            text = str(cue.get("text") or "").strip()
            if start is None:
                logger.warning("Skipping cue %d: unparseable timestamp %r", i, cue.get("start"))
                continue
            if not text:
                logger.warning("Skipping cue %d: empty text", i)
                continue
            parsed.append((start, text))

        parsed.sort(key=lambda c: c[0])
        out = []
        for i, (start, text) in enumerate(parsed):
            end = parsed[i + 1][0] if i + 1 < len(parsed) else duration
            if end <= start:
                logger.warning("Skipping cue at %.3f: no time before the next cue", start)
                continue
            out.append(TranscriptSegment(start=start, end=end, text=text))
        return out
