"""Data models for script-to-recording alignment."""

from collections import Counter
from dataclasses import dataclass, field


@dataclass
class ScriptLine:
    id: str
    text: str
    speaker: str = ""                     # "" when the script carries no speaker
    audio_asset_id: str | None = None     # at most one asset per line


@dataclass
class Chapter:
    id: str
    title: str
    lines: list[ScriptLine] = field(default_factory=list)


@dataclass
class TranscriptSegment:
    start: float       # seconds
    end: float
    text: str


@dataclass
class TranscriptUnit:
    start: float       # proportional sub-range of its parent segment
    end: float
    text: str


@dataclass
class NormalizedText:
    raw: str
    norm: str
    bigrams: Counter


@dataclass(frozen=True)
class Match:
    line_index: int
    unit_index: int
    sim: float


@dataclass(frozen=True)
class SkipLine:
    line_index: int


@dataclass(frozen=True)
class SkipUnit:
    unit_index: int


AlignmentOp = Match | SkipLine | SkipUnit


@dataclass
class AlignmentResult:
    ops: list[AlignmentOp]
    unit_to_line: list[int | None]    # gated mapping, one entry per unit


@dataclass
class SegmentSpan:
    line_index: int
    start: float       # seconds, inclusive
    end: float         # seconds, exclusive


@dataclass
class MarkerSet:
    source_audio_id: str
    markers: list[float] = field(default_factory=list)


@dataclass
class AudioAsset:
    id: str
    line_id: str
    source_audio_id: str
    data: bytes = field(default=b"", repr=False)
    source_filename: str = ""


@dataclass
class AlignmentReport:
    chapter_id: str
    source_audio_id: str
    matched: int
    total: int
    markers: list[float] = field(default_factory=list)

    @property
    def missing(self) -> int:
        return max(0, self.total - self.matched)
