"""Shared fixtures for script aligner tests."""

import io

import pytest
from pydub import AudioSegment

from script_aligner.models import Chapter, ScriptLine
from script_aligner.store import ProjectStore

FRAME_RATE = 8000


def wav_bytes(duration_ms: int, frame_rate: int = FRAME_RATE, channels: int = 1) -> bytes:
    """Silent 16-bit WAV, readable without ffmpeg."""
    audio = AudioSegment.silent(duration=duration_ms, frame_rate=frame_rate)
    if channels > 1:
        audio = audio.set_channels(channels)
    buf = io.BytesIO()
    audio.export(buf, format="wav")
    return buf.getvalue()


@pytest.fixture
def make_wav():
    return wav_bytes


@pytest.fixture
def sample_chapters():
    """One chapter: three recorded lines, one unrecorded line, one sound cue."""
    return [
        Chapter(id="ch001", title="第一章", lines=[
            ScriptLine(id="ch001_l0001", text="你好，世界。", speaker="旁白"),
            ScriptLine(id="ch001_l0002", text="今天天气不错。", speaker="小明"),
            ScriptLine(id="ch001_l0003", text="我们去公园散步吧。", speaker="小红"),
            ScriptLine(id="ch001_l0004", text="明天见。", speaker="小明"),
            ScriptLine(id="ch001_l0005", text="掌声", speaker="音效"),
        ]),
        Chapter(id="ch002", title="第二章", lines=[
            ScriptLine(id="ch002_l0001", text="又是新的一天。", speaker="旁白"),
        ]),
    ]


@pytest.fixture
def asr_segments():
    """ASR output for a 9s recording of the first three lines of ch001."""
    return [
        {"start": 0.0, "end": 3.0, "text": "你好世界"},
        {"start": 3.0, "end": 6.0, "text": "今天天气不错"},
        {"start": 6.0, "end": 9.0, "text": "我们去公园散步吧"},
    ]


@pytest.fixture
def store(tmp_path, sample_chapters):
    """Project store with the sample script saved."""
    s = ProjectStore(str(tmp_path / "project"))
    s.save_script(sample_chapters, {"title": "测试"})
    return s


@pytest.fixture
def source_id(store, make_wav):
    """A 9s source recording registered in the store."""
    sid = "project_001_take.wav"
    store.put_source(sid, make_wav(9000), "001_take.wav")
    return sid
