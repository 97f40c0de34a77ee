"""CLI interface with subcommand routing."""

import argparse
import asyncio
import logging
import os
import sys

from script_aligner.artifacts import (
    init_output_dir,
    slug_from_path,
    load_artifact,
    write_artifact,
    get_project_status,
    list_projects,
)
from script_aligner.constants import OUTPUT_DIR, SCRIPT_FILE, VERSION
from script_aligner.coordinator import Coordinator
from script_aligner.exceptions import AlignerError
from script_aligner.markers import MarkerEditor
from script_aligner.parser import load_script
from script_aligner.slicer import decode_recording
from script_aligner.store import ProjectStore
from script_aligner.transcript import AsrProvider, TimestampedDocument, parse_timestamp


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    raise SystemExit(1)


def _get_project_dir(slug: str) -> str:
    """Get project directory path, verify it exists."""
    project_dir = os.path.join(OUTPUT_DIR, slug)
    if not os.path.isdir(project_dir):
        print(f"Error: Project '{slug}' not found.", file=sys.stderr)
        print("Run 'script-aligner new <script>' to create a project.", file=sys.stderr)
        raise SystemExit(1)
    if not os.path.exists(os.path.join(project_dir, SCRIPT_FILE)):
        _fail(f"Project '{slug}' is incomplete (no {SCRIPT_FILE}).")
    return project_dir


def _open(slug: str) -> tuple[ProjectStore, Coordinator]:
    store = ProjectStore(_get_project_dir(slug))
    return store, Coordinator(store)


def _time(value: str) -> float:
    seconds = parse_timestamp(value)
    if seconds is None:
        raise argparse.ArgumentTypeError(f"invalid time: {value!r}")
    return seconds


def _format_time(t: float) -> str:
    m, s = divmod(max(0.0, t), 60)
    return f"{int(m)}:{s:06.3f}"


def _require_source(store: ProjectStore, source_id: str) -> None:
    if store.source_path(source_id) is None:
        _fail(f"Source recording '{source_id}' not found. Known: {', '.join(store.list_sources()) or 'none'}")


# --- editor sessions ---

def _session_file(source_id: str) -> str:
    return os.path.join("edits", f"{slug_from_path(source_id)}.json")


def _load_editor(store: ProjectStore, coordinator: Coordinator, source_id: str) -> MarkerEditor:
    """Resume the saved editing session, or start one from the current markers."""
    history_limit = int(store.load_settings().get("history_limit"))
    session = load_artifact(store.project_dir, _session_file(source_id))
    if session:
        return MarkerEditor.from_dict(session, history_limit=history_limit)
    duration = decode_recording(store.get_source(source_id)).duration
    return MarkerEditor(coordinator.initial_markers(source_id), duration=duration, history_limit=history_limit)


def _save_editor(store: ProjectStore, source_id: str, editor: MarkerEditor) -> None:
    write_artifact(store.project_dir, _session_file(source_id), editor.to_dict())


def _drop_editor(store: ProjectStore, source_id: str) -> None:
    path = os.path.join(store.project_dir, _session_file(source_id))
    if os.path.exists(path):
        os.remove(path)


def _print_markers(editor: MarkerEditor) -> None:
    print(f"Markers ({len(editor.markers)}, {len(editor.markers) + 1} segments):")
    for i, t in enumerate(editor.markers):
        flag = "  *" if i == editor.selected else ""
        print(f"  [{i}] {_format_time(t)}{flag}")
    print(f"History: {editor.index + 1}/{len(editor.history)}"
          f"{'  undo' if editor.can_undo else ''}{'  redo' if editor.can_redo else ''}")


# --- commands ---

def cmd_new(args):
    """Create a new project from a script file."""
    file_path = args.file
    if not os.path.exists(file_path):
        _fail(f"File not found: {file_path}")

    slug = slug_from_path(file_path)
    project_dir = os.path.join(OUTPUT_DIR, slug)
    if os.path.exists(os.path.join(project_dir, SCRIPT_FILE)):
        print(f"Error: Project '{slug}' already exists.", file=sys.stderr)
        print(f"Use 'script-aligner align {slug} <audio> ...' to align a recording.", file=sys.stderr)
        raise SystemExit(1)

    chapters, metadata = load_script(file_path)
    if not chapters:
        _fail(f"Could not parse any script lines from: {file_path}")

    project_dir = init_output_dir(file_path, output_base=OUTPUT_DIR)
    store = ProjectStore(project_dir)
    store.save_script(chapters, {**metadata, "source": os.path.abspath(file_path)})
    store.save_settings(store.load_settings())

    line_count = sum(len(ch.lines) for ch in chapters)
    print(f"Created project: {slug}")
    print(f"Parsed {len(chapters)} chapters, {line_count} lines")
    print(f"Run 'script-aligner align {slug} <audio> --asr <segments.json>' to align a recording.")


def cmd_align(args):
    """Align a recording to a chapter and slice per-line assets."""
    store, coordinator = _open(args.slug)
    for path in (args.audio, args.asr or args.cues):
        if not os.path.exists(path):
            _fail(f"File not found: {path}")

    if args.asr:
        transcript = AsrProvider.from_json(args.asr)
    else:
        transcript = TimestampedDocument.from_file(args.cues)

    filename = os.path.basename(args.audio)
    source_id = f"{args.slug}_{filename}"
    try:
        chapter = coordinator.resolve_chapter(args.chapter, filename)
        with open(args.audio, "rb") as f:
            data = f.read()
        print(f"Aligning {filename} to chapter '{chapter.title}' ({transcript.name} transcript)...")
        report = asyncio.run(coordinator.align(chapter.id, source_id, transcript,
                                               data=data, filename=filename))
    except AlignerError as e:
        _fail(str(e))

    _drop_editor(store, source_id)
    print(f"Source:   {source_id}")
    print(f"Matched:  {report.matched}/{report.total} lines")
    print(f"Missing:  {report.missing} lines")
    print(f"Run 'script-aligner markers {args.slug} {source_id}' to fine-tune boundaries.")


def cmd_markers(args):
    """Inspect or edit the marker list of a source recording."""
    store, coordinator = _open(args.slug)
    _require_source(store, args.source)
    editor = _load_editor(store, coordinator, args.source)

    action = args.action
    values = args.values
    try:
        if action == "show":
            pass
        elif action == "add":
            if not values:
                _fail("'markers add' requires <time>")
            if not editor.add_marker(_time(values[0])):
                print("No change: marker out of range or already present.")
        elif action == "select":
            editor.select(int(values[0]) if values else None)
        elif action == "remove":
            if not values:
                if not editor.remove_selected():
                    _fail("'markers remove' requires <index> or a selected marker")
            elif not editor.remove_marker(int(values[0])):
                _fail(f"No marker at index {values[0]}")
        elif action == "move":
            if len(values) < 2:
                _fail("'markers move' requires <index> <time>")
            editor.drag_marker(int(values[0]), _time(values[1]))
        elif action == "undo":
            if not editor.undo():
                print("Nothing to undo.")
        elif action == "redo":
            if not editor.redo():
                print("Nothing to redo.")
        elif action == "reset":
            _drop_editor(store, args.source)
            editor = _load_editor(store, coordinator, args.source)
    except (ValueError, IndexError, argparse.ArgumentTypeError) as e:
        _fail(str(e))

    _save_editor(store, args.source, editor)
    _print_markers(editor)


def cmd_reseg(args):
    """Recut the whole recording at the edited markers."""
    store, coordinator = _open(args.slug)
    _require_source(store, args.source)
    editor = _load_editor(store, coordinator, args.source)
    try:
        spans = asyncio.run(coordinator.resegment_whole(args.source, editor.markers))
    except AlignerError as e:
        _fail(str(e))
    _drop_editor(store, args.source)
    print(f"Resegmented {args.source}: {len(spans)} segments")


def cmd_window(args):
    """Recut one time window and only the lines inside it."""
    store, coordinator = _open(args.slug)
    _require_source(store, args.source)
    try:
        spans = asyncio.run(coordinator.resegment_window(
            args.source, args.lines, args.skip or [], args.start, args.end, args.markers or [],
        ))
    except AlignerError as e:
        _fail(str(e))
    _drop_editor(store, args.source)
    print(f"Resegmented window {_format_time(args.start)}-{_format_time(args.end)}: {len(spans)} segments")


def cmd_status(args):
    """Show project status."""
    project_dir = _get_project_dir(args.slug)
    status = get_project_status(project_dir)
    store = ProjectStore(project_dir)

    print(f"Project: {args.slug}")
    script = status["script"]
    if script["state"] == "done":
        print(f"Script:  {script['chapters']} chapters, {script['lines']} lines "
              f"({status['aligned_lines']} with audio)")
    for ch in store.load_chapters():
        with_audio = sum(1 for line in ch.lines if line.audio_asset_id)
        print(f"  {ch.id:<8} {ch.title:<30} {with_audio}/{len(ch.lines)}")
    if status["sources"]:
        print("Sources:")
        for source_id, info in status["sources"].items():
            print(f"  {source_id:<30} {info['assets']} assets, {info['markers']} markers")


def cmd_list(args):
    """List all projects."""
    projects = list_projects(output_base=OUTPUT_DIR)
    if not projects:
        print("No projects found.")
        return
    print("Projects:")
    for name in projects:
        status = get_project_status(os.path.join(OUTPUT_DIR, name))
        marker = "[done]" if status["aligned_lines"] else "[----]"
        print(f"  {marker} {name}")


def cmd_set(args):
    """Update project settings."""
    store = ProjectStore(_get_project_dir(args.slug))
    key = args.key
    values = args.values

    valid_keys = {"non-audio-speakers", "history-limit"}
    if key not in valid_keys:
        print(f"Error: Invalid setting key: {key}", file=sys.stderr)
        print(f"Valid keys: {', '.join(sorted(valid_keys))}", file=sys.stderr)
        raise SystemExit(1)

    settings = store.load_settings()
    if key == "non-audio-speakers":
        settings["non_audio_speakers"] = list(values)
        print(f"Updated: non-audio speakers → {', '.join(values) or '(none)'}")
    elif key == "history-limit":
        if not values:
            _fail("'set history-limit' requires <int>")
        try:
            limit = int(values[0])
        except ValueError:
            _fail(f"Invalid value: {values[0]}")
        if limit < 1:
            _fail("history-limit must be at least 1")
        settings["history_limit"] = limit
        print(f"Updated: history limit → {limit}")

    store.save_settings(settings)


def cmd_clear(args):
    """Drop line audio for whole chapters."""
    store, coordinator = _open(args.slug)
    known = {ch.id for ch in store.load_chapters()}
    unknown = [c for c in args.chapters if c not in known]
    if unknown:
        _fail(f"Unknown chapter(s): {', '.join(unknown)}")
    removed = coordinator.clear_chapters(args.chapters)
    print(f"Cleared audio from {removed} lines.")


def cmd_remove_source(args):
    """Forget a source recording. Its assets stay until the next sweep."""
    store = ProjectStore(_get_project_dir(args.slug))
    _require_source(store, args.source)
    store.delete_source(args.source)
    _drop_editor(store, args.source)
    print(f"Removed source {args.source}.")
    print(f"Run 'script-aligner sweep {args.slug}' to delete its assets.")


def cmd_sweep(args):
    """Delete assets left behind by removed source recordings."""
    store = ProjectStore(_get_project_dir(args.slug))
    removed = store.sweep_orphans()
    print(f"Removed {len(removed)} orphaned assets.")


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="script-aligner",
        description="Script Aligner: cut a recorded performance into per-line audio",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress details")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # new
    new_parser = subparsers.add_parser("new", help="Create a new project from a script file")
    new_parser.add_argument("file", help="Path to the script (.txt or .json)")
    new_parser.set_defaults(func=cmd_new)

    # align
    align_parser = subparsers.add_parser("align", help="Align a recording to a chapter")
    align_parser.add_argument("slug", help="Project slug")
    align_parser.add_argument("audio", help="Path to the source recording")
    source_group = align_parser.add_mutually_exclusive_group(required=True)
    source_group.add_argument("--asr", help="ASR segments JSON ([{start, end, text}])")
    source_group.add_argument("--cues", help="Timestamped transcript document")
    align_parser.add_argument("--chapter", help="Chapter id (default: from the audio filename)")
    align_parser.set_defaults(func=cmd_align)

    # markers
    markers_parser = subparsers.add_parser("markers", help="Show or edit segment markers")
    markers_parser.add_argument("slug", help="Project slug")
    markers_parser.add_argument("source", help="Source recording id")
    markers_parser.add_argument("action", nargs="?", default="show",
                                choices=["show", "add", "select", "remove", "move", "undo", "redo", "reset"])
    markers_parser.add_argument("values", nargs="*", help="Action arguments")
    markers_parser.set_defaults(func=cmd_markers)

    # reseg
    reseg_parser = subparsers.add_parser("reseg", help="Recut the whole recording at the edited markers")
    reseg_parser.add_argument("slug", help="Project slug")
    reseg_parser.add_argument("source", help="Source recording id")
    reseg_parser.set_defaults(func=cmd_reseg)

    # window
    window_parser = subparsers.add_parser("window", help="Recut one time window of a recording")
    window_parser.add_argument("slug", help="Project slug")
    window_parser.add_argument("source", help="Source recording id")
    window_parser.add_argument("--start", type=_time, required=True, help="Window start time")
    window_parser.add_argument("--end", type=_time, required=True, help="Window end time")
    window_parser.add_argument("--lines", nargs="+", required=True, help="Line ids inside the window")
    window_parser.add_argument("--skip", nargs="*", help="Window line ids that take no audio")
    window_parser.add_argument("--markers", nargs="*", type=_time, help="Marker times inside the window")
    window_parser.set_defaults(func=cmd_window)

    # status
    status_parser = subparsers.add_parser("status", help="Show project status")
    status_parser.add_argument("slug", help="Project slug")
    status_parser.set_defaults(func=cmd_status)

    # list
    list_parser = subparsers.add_parser("list", help="List all projects")
    list_parser.set_defaults(func=cmd_list)

    # set
    set_parser = subparsers.add_parser("set", help="Update project settings")
    set_parser.add_argument("slug", help="Project slug")
    set_parser.add_argument("key", help="Setting key")
    set_parser.add_argument("values", nargs="*", help="Setting value(s)")
    set_parser.set_defaults(func=cmd_set)

    # clear
    clear_parser = subparsers.add_parser("clear", help="Drop line audio for chapters")
    clear_parser.add_argument("slug", help="Project slug")
    clear_parser.add_argument("chapters", nargs="+", help="Chapter ids")
    clear_parser.set_defaults(func=cmd_clear)

    # remove-source
    remove_parser = subparsers.add_parser("remove-source", help="Forget a source recording")
    remove_parser.add_argument("slug", help="Project slug")
    remove_parser.add_argument("source", help="Source recording id")
    remove_parser.set_defaults(func=cmd_remove_source)

    # sweep
    sweep_parser = subparsers.add_parser("sweep", help="Delete orphaned audio assets")
    sweep_parser.add_argument("slug", help="Project slug")
    sweep_parser.set_defaults(func=cmd_sweep)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    try:
        args.func(args)
    except AlignerError as e:
        _fail(str(e))
