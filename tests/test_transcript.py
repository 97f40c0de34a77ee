"""Tests for transcript sources."""

import json
import logging

import pytest

from script_aligner.models import TranscriptSegment
from script_aligner.transcript import AsrProvider, TimestampedDocument, parse_timestamp


@pytest.mark.parametrize("value,expected", [
    (1.5, 1.5),
    (0, 0.0),
    ("2.25", 2.25),
    ("01:02", 62.0),
    ("01:02.500", 62.5),
    ("1:00:01,250", 3601.25),
    ("[00:03.5]", 3.5),
])
def test_parse_timestamp_valid(value, expected):
    assert parse_timestamp(value) == pytest.approx(expected)


@pytest.mark.parametrize("value", [None, "", "abc", "1:2:3:4", -1, float("nan"), True, [1]])
def test_parse_timestamp_invalid(value):
    assert parse_timestamp(value) is None


def test_asr_passes_good_segments(asr_segments):
    segs = AsrProvider(asr_segments).segments(duration=9.0)
    assert segs[0] == TranscriptSegment(start=0.0, end=3.0, text="你好世界")
    assert len(segs) == 3


def test_asr_skips_malformed_entries(caplog):
    raw = [
        {"start": 0, "end": 1, "text": "好"},
        {"start": "x", "end": 2, "text": "坏时间"},
        {"start": 3, "end": 2, "text": "倒序"},
        {"start": 3, "end": 4, "text": "   "},
        "not a dict",
        {"start": 4, "end": 5, "text": "也好"},
    ]
    with caplog.at_level(logging.WARNING, logger="script_aligner.transcript"):
        segs = AsrProvider(raw).segments(duration=10.0)
    assert [s.text for s in segs] == ["好", "也好"]
    assert len(caplog.records) == 4


def test_asr_from_json_accepts_whisper_style(tmp_path, asr_segments):
    path = tmp_path / "asr.json"
    path.write_text(json.dumps({"text": "...", "segments": asr_segments}, ensure_ascii=False), encoding="utf-8")
    assert len(AsrProvider.from_json(str(path)).segments(9.0)) == 3

    path.write_text(json.dumps(asr_segments, ensure_ascii=False), encoding="utf-8")
    assert len(AsrProvider.from_json(str(path)).segments(9.0)) == 3


def test_document_cues_end_at_next_start():
    doc = TimestampedDocument([
        {"start": "00:05", "text": "第二句"},
        {"start": "00:00", "text": "第一句"},
        {"start": 8, "text": "第三句"},
    ])
    segs = doc.segments(duration=12.0)
    assert segs == [
        TranscriptSegment(start=0.0, end=5.0, text="第一句"),
        TranscriptSegment(start=5.0, end=8.0, text="第二句"),
        TranscriptSegment(start=8.0, end=12.0, text="第三句"),
    ]


def test_document_skips_bad_cues():
    doc = TimestampedDocument([
        {"start": "??", "text": "坏"},
        {"start": 1, "text": ""},
        {"start": 2, "text": "好"},
        {"start": 20, "text": "超出录音"},
    ])
    segs = doc.segments(duration=10.0)
    assert segs == [TranscriptSegment(start=2.0, end=20.0, text="好")]


def test_document_from_text():
    text = "[00:00.000] 你好，世界。\n\n[00:03] 今天天气\n不错。\n(00:06.5) 我们去公园散步吧。\n"
    doc = TimestampedDocument.from_text(text)
    assert [c["text"] for c in doc.cues] == ["你好，世界。", "今天天气 不错。", "我们去公园散步吧。"]
    segs = doc.segments(duration=9.0)
    assert [(s.start, s.end) for s in segs] == [(0.0, 3.0), (3.0, 6.5), (6.5, 9.0)]


def test_document_from_file(tmp_path):
    path = tmp_path / "cues.txt"
    path.write_text("00:00 第一句\n00:02 第二句\n", encoding="utf-8")
    segs = TimestampedDocument.from_file(str(path)).segments(duration=4.0)
    assert [s.text for s in segs] == ["第一句", "第二句"]
