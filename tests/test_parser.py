"""Tests for script loading."""

import json

from script_aligner.parser import extract_metadata, load_script, parse_script, parse_script_json


SCRIPT = """title: 雨夜
# 第一章 开始
旁白：那天晚上下着雨。
小明: 你好，世界。
音效：雷声

# 第二章
没有说话人的一行。
"""


def test_extract_metadata_title_line():
    """Leading "title:" line wins."""
    assert extract_metadata(SCRIPT) == {"title": "雨夜"}


def test_extract_metadata_from_heading():
    """Without a title line the first heading is used."""
    assert extract_metadata("# The Beginning\nA: hi") == {"title": "The Beginning"}
    assert extract_metadata("just text") == {"title": "Untitled"}


def test_parse_chapters_and_ids():
    """Headings open chapters; ids are sequential."""
    chapters = parse_script(SCRIPT)
    assert [ch.id for ch in chapters] == ["ch001", "ch002"]
    assert chapters[0].title == "第一章 开始"
    assert [line.id for line in chapters[0].lines] == ["ch001_l0001", "ch001_l0002", "ch001_l0003"]
    assert chapters[1].lines[0].id == "ch002_l0001"


def test_parse_speakers():
    """Full-width and ASCII colons both split the speaker off."""
    lines = parse_script(SCRIPT)[0].lines
    assert (lines[0].speaker, lines[0].text) == ("旁白", "那天晚上下着雨。")
    assert (lines[1].speaker, lines[1].text) == ("小明", "你好，世界。")
    assert lines[2].speaker == "音效"


def test_parse_line_without_speaker():
    chapters = parse_script(SCRIPT)
    assert chapters[1].lines[0].speaker == ""
    assert chapters[1].lines[0].text == "没有说话人的一行。"


def test_parse_implicit_first_chapter():
    """Lines before any heading land in an implicit chapter."""
    chapters = parse_script("甲：第一句\n乙：第二句")
    assert len(chapters) == 1
    assert chapters[0].id == "ch001"
    assert len(chapters[0].lines) == 2


def test_parse_drops_empty_chapters():
    chapters = parse_script("# 空章\n# 有内容\n甲：你好")
    assert [ch.title for ch in chapters] == ["有内容"]


def test_parse_script_json_fills_missing_ids():
    data = {
        "chapters": [
            {"id": "intro", "title": "序", "lines": [{"id": "x1", "text": "你好", "speaker": "甲"}, "第二行"]},
            {"lines": [{"text": "第三行"}]},
        ]
    }
    chapters = parse_script_json(data)
    assert chapters[0].id == "intro"
    assert [line.id for line in chapters[0].lines] == ["x1", "intro_l0002"]
    assert chapters[0].lines[1].text == "第二行"
    assert chapters[1].id == "ch002"
    assert chapters[1].title == "Chapter 2"


def test_load_script_by_extension(tmp_path):
    """.json goes through the JSON loader, anything else is plain text."""
    txt = tmp_path / "rain.txt"
    txt.write_text(SCRIPT, encoding="utf-8")
    chapters, metadata = load_script(str(txt))
    assert len(chapters) == 2
    assert metadata["title"] == "雨夜"

    js = tmp_path / "rain.json"
    js.write_text(json.dumps({"title": "雨", "chapters": [{"lines": ["一"]}]}, ensure_ascii=False), encoding="utf-8")
    chapters, metadata = load_script(str(js))
    assert chapters[0].lines[0].text == "一"
    assert metadata == {"title": "雨"}
