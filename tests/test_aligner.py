"""Tests for line/unit global alignment."""

import pytest

from script_aligner.aligner import align_lines_to_units
from script_aligner.models import Match, SkipLine, SkipUnit, TranscriptSegment
from script_aligner.segments import build_segments
from script_aligner.text import prepare_text
from script_aligner.units import split_into_units


def _prep(texts):
    return [prepare_text(t) for t in texts]


def test_identical_sequences_align_diagonally():
    texts = ["你好世界", "今天天气不错", "我们去公园散步吧"]
    result = align_lines_to_units(_prep(texts), _prep(texts))
    assert all(isinstance(op, Match) for op in result.ops)
    assert [(op.line_index, op.unit_index) for op in result.ops] == [(0, 0), (1, 1), (2, 2)]
    assert result.unit_to_line == [0, 1, 2]


def test_two_lines_one_segment_map_to_contiguous_spans():
    lines = _prep(["你好，世界。", "今天天气不错"])
    units = split_into_units([TranscriptSegment(start=0.0, end=6.0, text="你好世界。今天天气不错")])
    assert [u.text for u in units] == ["你好世界。", "今天天气不错"]

    result = align_lines_to_units(lines, _prep([u.text for u in units]))
    assert result.unit_to_line == [0, 1]

    spans = build_segments(units, result.unit_to_line, duration=6.0)
    assert [s.line_index for s in spans] == [0, 1]
    assert spans[0].start == 0.0
    assert spans[0].end == pytest.approx(spans[1].start)
    assert spans[1].end == 6.0


def test_noise_units_are_skipped():
    lines = _prep(["你好世界", "今天天气不错"])
    units = _prep(["你好世界", "嗯嗯嗯嗯嗯嗯嗯", "今天天气不错"])
    result = align_lines_to_units(lines, units)
    assert result.unit_to_line == [0, None, 1]
    assert SkipUnit(unit_index=1) in result.ops


def test_unrecorded_line_is_skipped():
    lines = _prep(["你好世界", "这一行没有录", "今天天气不错"])
    units = _prep(["你好世界", "今天天气不错"])
    result = align_lines_to_units(lines, units)
    assert result.unit_to_line == [0, 2]
    assert SkipLine(line_index=1) in result.ops


def test_weak_matches_rejected_by_gate():
    """A diagonal step can be taken yet fail the acceptance gate."""
    lines = _prep(["今天天气不错我们去公园"])
    units = _prep(["今天天气很差"])
    result = align_lines_to_units(lines, units, baseline=0.0)
    assert isinstance(result.ops[0], Match)
    assert result.ops[0].sim < 0.35
    assert result.unit_to_line == [None]


def test_empty_inputs():
    assert align_lines_to_units([], _prep(["你好"])).ops == [SkipUnit(unit_index=0)]
    assert align_lines_to_units(_prep(["你好"]), []).ops == [SkipLine(line_index=0)]
    empty = align_lines_to_units([], [])
    assert empty.ops == []
    assert empty.unit_to_line == []


def test_ops_cover_every_line_and_unit_once():
    lines = _prep(["第一句话在这里", "第二句话", "第三句话在最后面"])
    units = _prep(["第一句话在这里", "无关的噪声内容", "第三句话在最后面", "尾巴"])
    result = align_lines_to_units(lines, units)
    seen_lines = [op.line_index for op in result.ops if isinstance(op, (Match, SkipLine))]
    seen_units = [op.unit_index for op in result.ops if isinstance(op, (Match, SkipUnit))]
    assert seen_lines == [0, 1, 2]
    assert seen_units == [0, 1, 2, 3]
