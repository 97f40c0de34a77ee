"""Project directory management and JSON artifacts."""

import json
import os
import re
import tempfile

from script_aligner.constants import OUTPUT_DIR, SCRIPT_FILE, STATE_FILE

PROJECT_SUBDIRS = ["sources", "assets", "edits"]


def slug_from_path(script_path: str) -> str:
    """Convert script filename to output directory slug.

    "Chapter One.txt" → "chapter_one"
    "/path/to/第一集.json" → "第一集"
    """
    basename = os.path.splitext(os.path.basename(script_path))[0]
    slug = re.sub(r"[^\w]+", "_", basename).strip("_").lower()
    return slug or "untitled"


def init_output_dir(script_path: str, output_base: str = OUTPUT_DIR) -> str:
    """Create output/<slug>/ and all subdirectories.

    Returns the project directory path.
    """
    project_dir = os.path.join(output_base, slug_from_path(script_path))
    for subdir in PROJECT_SUBDIRS:
        os.makedirs(os.path.join(project_dir, subdir), exist_ok=True)
    return project_dir


def write_artifact(project_dir: str, filename: str, data: dict) -> str:
    """Write JSON artifact to project_dir/filename.

    Written to a temp file and swapped in with os.replace, so readers see the
    old or the new content, never a partial file. Returns the path.
    """
    path = os.path.join(project_dir, filename)
    fd, tmp_path = tempfile.mkstemp(dir=project_dir, prefix=f".{filename}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    return path


def load_artifact(project_dir: str, filename: str) -> dict | None:
    """Read JSON artifact. Returns None if file doesn't exist."""
    path = os.path.join(project_dir, filename)
    if not os.path.exists(path):
        return None
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def list_projects(output_base: str = OUTPUT_DIR) -> list[str]:
    """List all project slugs under the output directory.

    Returns sorted list of directory names that contain a script.json.
    """
    if not os.path.exists(output_base):
        return []
    projects = []
    for name in os.listdir(output_base):
        project_dir = os.path.join(output_base, name)
        if os.path.isdir(project_dir) and os.path.exists(os.path.join(project_dir, SCRIPT_FILE)):
            projects.append(name)
    return sorted(projects)


def get_project_status(project_dir: str) -> dict:
    """Return dict describing the script, sources, markers and assets of a project."""
    status = {}

    script = load_artifact(project_dir, SCRIPT_FILE)
    if script:
        chapters = script.get("chapters", [])
        line_count = sum(len(ch.get("lines", [])) for ch in chapters)
        status["script"] = {"state": "done", "chapters": len(chapters), "lines": line_count}
    else:
        status["script"] = {"state": "pending"}

    state = load_artifact(project_dir, STATE_FILE) or {}
    sources = state.get("sources", {})
    assets = state.get("assets", {})
    line_assets = state.get("line_assets", {})
    status["sources"] = {}
    for source_id, info in sources.items():
        status["sources"][source_id] = {
            "filename": info.get("filename", ""),
            "markers": len(state.get("markers", {}).get(source_id, [])),
            "assets": sum(1 for a in assets.values() if a.get("source_audio_id") == source_id),
        }
    status["aligned_lines"] = len(line_assets)
    return status
