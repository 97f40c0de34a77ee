"""Load a script into chapters of ordered, speaker-tagged lines."""

import json
import os
import re

from script_aligner.models import Chapter, ScriptLine

# "# Chapter title" / "## Chapter title" starts a new chapter
_CHAPTER_RE = re.compile(r"^#+\s*(.+?)\s*$")

# "Speaker: text" / "Speaker：text" (full-width colon); speaker is short, no spaces at the ends
_SPEAKER_RE = re.compile(r"^\s*([^:：\s][^:：]{0,30}?)\s*[:：]\s*(.+)$")


def _chapter_id(index: int) -> str:
    return f"ch{index + 1:03d}"


def _line_id(chapter_id: str, index: int) -> str:
    return f"{chapter_id}_l{index + 1:04d}"


def extract_metadata(text: str) -> dict:
    """Title from a leading "title:" line or the first chapter heading."""
    for line in text.strip().split("\n"):
        stripped = line.strip()
        match = re.match(r"^title\s*[:：]\s*(.+)$", stripped, re.IGNORECASE)
        if match:
            return {"title": match.group(1).strip()}
        chapter = _CHAPTER_RE.match(stripped)
        if chapter:
            return {"title": chapter.group(1)}
    return {"title": "Untitled"}


def _split_speaker(line: str) -> tuple[str, str]:
    match = _SPEAKER_RE.match(line)
    if match:
        return match.group(1).strip(), match.group(2).strip()
    return "", line.strip()


def parse_script(text: str) -> list[Chapter]:
    """Parse plain-text script: one script line per text line.

    "# Title" lines open chapters; lines before any heading go to an implicit
    first chapter. A "title:" header line is skipped.
    """
    chapters: list[Chapter] = []
    current = None

    for raw in text.split("\n"):
        stripped = raw.strip()
        if not stripped or re.match(r"^title\s*[:：]", stripped, re.IGNORECASE):
            continue
        heading = _CHAPTER_RE.match(stripped)
        if heading:
            current = Chapter(id=_chapter_id(len(chapters)), title=heading.group(1))
            chapters.append(current)
            continue
        if current is None:
            current = Chapter(id=_chapter_id(0), title="Chapter 1")
            chapters.append(current)
        speaker, body = _split_speaker(stripped)
        current.lines.append(ScriptLine(id=_line_id(current.id, len(current.lines)), text=body, speaker=speaker))

    return [ch for ch in chapters if ch.lines]


def parse_script_json(data: dict) -> list[Chapter]:
    """Chapters from {"chapters": [{"id", "title", "lines": [{"id", "text", "speaker"}]}]}.

    Missing ids are generated the same way parse_script() generates them.
    """
    chapters = []
    for ci, ch in enumerate(data.get("chapters", [])):
        chapter_id = ch.get("id") or _chapter_id(ci)
        lines = []
        for li, line in enumerate(ch.get("lines", [])):
            if isinstance(line, str):
                line = {"text": line}
            lines.append(ScriptLine(
                id=line.get("id") or _line_id(chapter_id, li),
                text=line.get("text", ""),
                speaker=line.get("speaker", ""),
            ))
        chapters.append(Chapter(id=chapter_id, title=ch.get("title", f"Chapter {ci + 1}"), lines=lines))
    return chapters


def load_script(path: str) -> tuple[list[Chapter], dict]:
    """Read a .json or plain-text script. Returns (chapters, metadata)."""
    with open(path, encoding="utf-8") as f:
        text = f.read()
    if os.path.splitext(path)[1].lower() == ".json":
        data = json.loads(text)
        metadata = data.get("metadata") or {"title": data.get("title", "Untitled")}
        return parse_script_json(data), metadata
    return parse_script(text), extract_metadata(text)
