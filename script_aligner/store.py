"""Project store: script, source recordings, line assets and marker sets.

Blobs (source recordings and sliced assets) live as files under sources/ and
assets/. Everything that references them (asset index, line→asset refs,
marker sets) lives in state.json, which is the single commit point of a
transaction: new blobs are written first under fresh ids, then state.json is
swapped in atomically, and only then are stale blob files removed. A failure
before the swap leaves the previous state untouched.
"""

import logging
import os
import uuid
from contextlib import contextmanager

from script_aligner.artifacts import load_artifact, write_artifact, PROJECT_SUBDIRS
from script_aligner.constants import (
    ASSET_FORMAT,
    HISTORY_LIMIT,
    NON_AUDIO_SPEAKERS,
    SCRIPT_FILE,
    SETTINGS_FILE,
    STATE_FILE,
)
from script_aligner.exceptions import PersistenceError
from script_aligner.models import AudioAsset, Chapter, MarkerSet, ScriptLine

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    "non_audio_speakers": list(NON_AUDIO_SPEAKERS),
    "history_limit": HISTORY_LIMIT,
}


def new_asset_id() -> str:
    return f"audio_{uuid.uuid4().hex[:16]}"


def _empty_state() -> dict:
    return {"sources": {}, "assets": {}, "line_assets": {}, "markers": {}}


class Transaction:
    """Staged effects of one unit of work. Nothing touches disk until commit."""

    def __init__(self):
        self.puts: list[AudioAsset] = []
        self.deletes: set[str] = set()
        self.line_refs: dict[str, str | None] = {}
        self.marker_sets: list[MarkerSet] = []
        self.sources: dict[str, tuple[bytes, str]] = {}

    def put(self, asset: AudioAsset) -> None:
        self.puts.append(asset)

    def bulk_delete(self, asset_ids) -> None:
        self.deletes.update(asset_ids)

    def set_line_asset(self, line_id: str, asset_id: str | None) -> None:
        self.line_refs[line_id] = asset_id

    def put_markers(self, marker_set: MarkerSet) -> None:
        self.marker_sets.append(marker_set)

    def put_source(self, source_id: str, data: bytes, filename: str) -> None:
        self.sources[source_id] = (data, filename)


class ProjectStore:
    """Key/blob store for one project directory."""

    def __init__(self, project_dir: str):
        self.project_dir = project_dir
        for subdir in PROJECT_SUBDIRS:
            os.makedirs(os.path.join(project_dir, subdir), exist_ok=True)
        self._state = load_artifact(project_dir, STATE_FILE) or _empty_state()
        for key, value in _empty_state().items():
            self._state.setdefault(key, value)

    # --- script ---

    def save_script(self, chapters: list[Chapter], metadata: dict | None = None) -> None:
        data = {
            "metadata": metadata or {},
            "chapters": [
                {
                    "id": ch.id,
                    "title": ch.title,
                    "lines": [{"id": l.id, "text": l.text, "speaker": l.speaker} for l in ch.lines],
                }
                for ch in chapters
            ],
        }
        write_artifact(self.project_dir, SCRIPT_FILE, data)

    def load_chapters(self) -> list[Chapter]:
        """Chapters in script order, with each line's current asset reference."""
        script = load_artifact(self.project_dir, SCRIPT_FILE) or {}
        refs = self._state["line_assets"]
        chapters = []
        for ch in script.get("chapters", []):
            lines = [
                ScriptLine(
                    id=l["id"],
                    text=l.get("text", ""),
                    speaker=l.get("speaker", ""),
                    audio_asset_id=refs.get(l["id"]),
                )
                for l in ch.get("lines", [])
            ]
            chapters.append(Chapter(id=ch["id"], title=ch.get("title", ""), lines=lines))
        return chapters

    # --- settings ---

    def load_settings(self) -> dict:
        settings = dict(DEFAULT_SETTINGS)
        settings.update(load_artifact(self.project_dir, SETTINGS_FILE) or {})
        return settings

    def save_settings(self, settings: dict) -> None:
        write_artifact(self.project_dir, SETTINGS_FILE, settings)

    # --- source recordings ---

    def source_path(self, source_id: str) -> str | None:
        info = self._state["sources"].get(source_id)
        if not info:
            return None
        return os.path.join(self.project_dir, "sources", info["file"])

    def put_source(self, source_id: str, data: bytes, filename: str) -> None:
        with self.transaction() as tx:
            tx.put_source(source_id, data, filename)

    def get_source(self, source_id: str) -> bytes | None:
        path = self.source_path(source_id)
        if not path or not os.path.exists(path):
            return None
        with open(path, "rb") as f:
            return f.read()

    def source_filename(self, source_id: str) -> str:
        return self._state["sources"].get(source_id, {}).get("filename", "")

    def list_sources(self) -> list[str]:
        return sorted(self._state["sources"])

    def delete_source(self, source_id: str) -> None:
        """Forget a recording. Its assets are left for sweep_orphans()."""
        path = self.source_path(source_id)
        if path is None:
            return
        state = self._copy_state()
        del state["sources"][source_id]
        state["markers"].pop(source_id, None)
        self._write_state(state)
        self._remove_files([path])

    # --- assets ---

    def _asset_path(self, asset_id: str) -> str:
        return os.path.join(self.project_dir, "assets", f"{asset_id}.{ASSET_FORMAT}")

    def get(self, asset_id: str) -> AudioAsset | None:
        info = self._state["assets"].get(asset_id)
        if info is None:
            return None
        path = self._asset_path(asset_id)
        data = b""
        if os.path.exists(path):
            with open(path, "rb") as f:
                data = f.read()
        return AudioAsset(
            id=asset_id,
            line_id=info["line_id"],
            source_audio_id=info["source_audio_id"],
            data=data,
            source_filename=info.get("source_filename", ""),
        )

    def put(self, asset: AudioAsset) -> None:
        with self.transaction() as tx:
            tx.put(asset)

    def bulk_delete(self, asset_ids) -> None:
        with self.transaction() as tx:
            tx.bulk_delete(asset_ids)

    def assets_for_source(self, source_id: str) -> list[AudioAsset]:
        """Asset metadata (without audio bytes) for one source recording."""
        return [
            AudioAsset(id=asset_id, line_id=info["line_id"], source_audio_id=source_id,
                       source_filename=info.get("source_filename", ""))
            for asset_id, info in self._state["assets"].items()
            if info["source_audio_id"] == source_id
        ]

    # --- markers ---

    def get_markers(self, source_id: str) -> MarkerSet | None:
        markers = self._state["markers"].get(source_id)
        if markers is None:
            return None
        return MarkerSet(source_audio_id=source_id, markers=list(markers))

    def put_markers(self, marker_set: MarkerSet) -> None:
        with self.transaction() as tx:
            tx.put_markers(marker_set)

    # --- transactions ---

    @contextmanager
    def transaction(self):
        """Stage effects on the yielded Transaction; commit when the block exits cleanly."""
        tx = Transaction()
        yield tx
        self.commit(tx)

    def commit(self, tx: Transaction) -> None:
        written = []
        source_files = {}
        try:
            for source_id, (data, filename) in tx.sources.items():
                ext = os.path.splitext(filename)[1] or ".bin"
                file = f"{uuid.uuid4().hex[:16]}{ext}"
                path = os.path.join(self.project_dir, "sources", file)
                with open(path, "wb") as f:
                    f.write(data)
                written.append(path)
                source_files[source_id] = {"filename": filename, "file": file}
            for asset in tx.puts:
                path = self._asset_path(asset.id)
                with open(path, "wb") as f:
                    f.write(asset.data)
                written.append(path)
        except OSError as e:
            self._remove_files(written)
            raise PersistenceError(f"Could not write audio: {e}") from e

        replaced = [self.source_path(s) for s in source_files if self.source_path(s)]
        state = self._copy_state()
        state["sources"].update(source_files)
        for asset_id in tx.deletes:
            state["assets"].pop(asset_id, None)
            for line_id, ref in list(state["line_assets"].items()):
                if ref == asset_id:
                    del state["line_assets"][line_id]
        for asset in tx.puts:
            state["assets"][asset.id] = {
                "line_id": asset.line_id,
                "source_audio_id": asset.source_audio_id,
                "source_filename": asset.source_filename,
            }
        for line_id, asset_id in tx.line_refs.items():
            if asset_id is None:
                state["line_assets"].pop(line_id, None)
            else:
                state["line_assets"][line_id] = asset_id
        for marker_set in tx.marker_sets:
            state["markers"][marker_set.source_audio_id] = list(marker_set.markers)

        self._write_state(state, new_files=written)

        stale = [self._asset_path(a) for a in tx.deletes if a not in state["assets"]]
        self._remove_files(stale + replaced)
        logger.debug("Committed %d sources, %d puts, %d deletes, %d line refs, %d marker sets",
                     len(tx.sources), len(tx.puts), len(tx.deletes), len(tx.line_refs),
                     len(tx.marker_sets))

    def _copy_state(self) -> dict:
        return {
            "sources": {k: dict(v) for k, v in self._state["sources"].items()},
            "assets": {k: dict(v) for k, v in self._state["assets"].items()},
            "line_assets": dict(self._state["line_assets"]),
            "markers": {k: list(v) for k, v in self._state["markers"].items()},
        }

    def _write_state(self, state: dict, new_files: list[str] | None = None) -> None:
        try:
            write_artifact(self.project_dir, STATE_FILE, state)
        except OSError as e:
            self._remove_files(new_files or [])
            raise PersistenceError(f"Could not write {STATE_FILE}: {e}") from e
        self._state = state

    def _remove_files(self, paths: list[str]) -> None:
        for path in paths:
            try:
                os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Could not remove %s: %s (left for sweep)", path, e)

    # --- maintenance ---

    def sweep_orphans(self) -> list[str]:
        """Delete assets whose source recording is gone, plus unreferenced asset files.

        Returns the ids of deleted index entries.
        """
        orphan_ids = [
            asset_id for asset_id, info in self._state["assets"].items()
            if info["source_audio_id"] not in self._state["sources"]
        ]
        if orphan_ids:
            self.bulk_delete(orphan_ids)

        assets_dir = os.path.join(self.project_dir, "assets")
        known = {f"{asset_id}.{ASSET_FORMAT}" for asset_id in self._state["assets"]}
        stray = [
            os.path.join(assets_dir, name)
            for name in os.listdir(assets_dir)
            if name not in known
        ]
        self._remove_files(stray)
        if orphan_ids or stray:
            logger.info("Swept %d orphaned assets and %d stray files", len(orphan_ids), len(stray))
        return orphan_ids
