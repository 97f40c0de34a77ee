"""Text normalization and bigram similarity for line/unit comparison."""

import math
import re
from collections import Counter

from script_aligner.constants import (
    GATE_SHORT_LEN,
    GATE_SHORT_MIN_SIM,
    GATE_MEDIUM_LEN,
    GATE_MEDIUM_MIN_SIM,
    GATE_LONG_MIN_SIM,
)
from script_aligner.models import NormalizedText

_WHITESPACE_RE = re.compile(r"\s+")
_QUOTES_RE = re.compile("[“”\"'‘’“”]")
_PUNCT_RE = re.compile(r"[，,。．.！？!?：:；;、】【\[\]（）(){}《》<>…—\-~·•]")


def normalize_for_match(text: str) -> str:
    """Lower-case, drop whitespace, quotes and common punctuation.

    CJK characters, digits and Latin letters survive untouched.
    """
    text = (text or "").lower()
    text = _WHITESPACE_RE.sub("", text)
    text = _QUOTES_RE.sub("", text)
    text = _PUNCT_RE.sub("", text)
    return text.strip()


def build_bigrams(s: str) -> Counter:
    """Multiset of 2-char substrings. A single char counts as its own gram."""
    if not s:
        return Counter()
    if len(s) == 1:
        return Counter({s: 1})
    return Counter(s[i:i + 2] for i in range(len(s) - 1))


def prepare_text(raw: str) -> NormalizedText:
    norm = normalize_for_match(raw)
    return NormalizedText(raw=raw, norm=norm, bigrams=build_bigrams(norm))


def similarity(a: NormalizedText, b: NormalizedText) -> float:
    """Length-damped Dice coefficient over bigram multisets, in [0, 1].

    Strings of two chars or fewer are too noisy for bigrams: they score 1 on
    exact equality and 0 otherwise.
    """
    a_len = len(a.norm)
    b_len = len(b.norm)
    if a_len == 0 or b_len == 0:
        return 0.0
    if a_len <= 2 or b_len <= 2:
        return 1.0 if a.norm == b.norm else 0.0

    small, large = (a.bigrams, b.bigrams) if len(a.bigrams) <= len(b.bigrams) else (b.bigrams, a.bigrams)
    inter = sum(min(count, large[gram]) for gram, count in small.items() if gram in large)
    dice = (2 * inter) / ((a_len - 1) + (b_len - 1))

    len_ratio = min(a_len, b_len) / max(a_len, b_len)
    return dice * math.sqrt(len_ratio)


def is_good_match(sim: float, line_len: int, unit_len: int) -> bool:
    """Acceptance gate: shorter texts need a higher similarity to count."""
    min_len = min(line_len, unit_len)
    if min_len <= GATE_SHORT_LEN:
        return sim >= GATE_SHORT_MIN_SIM
    if min_len <= GATE_MEDIUM_LEN:
        return sim >= GATE_MEDIUM_MIN_SIM
    return sim >= GATE_LONG_MIN_SIM
