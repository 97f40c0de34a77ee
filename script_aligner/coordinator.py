"""Alignment runs and marker-driven resegmentation against a project store.

Every public operation decodes the source recording once, slices spans one at
a time, and commits its effects (stale asset deletion, new assets, line→asset
references, marker set) in a single store transaction. Any error raised
before the commit leaves the store untouched.

Runs on the same source recording are serialized by a per-source asyncio.Lock;
runs on different sources may interleave.
"""

import asyncio
import logging
import re

from script_aligner.aligner import align_lines_to_units
from script_aligner.constants import WINDOW_EPSILON
from script_aligner.exceptions import (
    AlignmentInfeasible,
    InputError,
    SegmentCountMismatch,
)
from script_aligner.markers import normalize_markers
from script_aligner.models import (
    AlignmentReport,
    AudioAsset,
    Chapter,
    MarkerSet,
    ScriptLine,
    SegmentSpan,
)
from script_aligner.segments import (
    build_segments,
    markers_from_segments,
    segments_from_markers,
    window_markers as markers_in_window,
)
from script_aligner.slicer import clip_duration, open_recording, slice_segments
from script_aligner.store import ProjectStore, new_asset_id
from script_aligner.text import prepare_text
from script_aligner.transcript import TranscriptSource
from script_aligner.units import clamp_units, split_into_units

logger = logging.getLogger(__name__)


def chapter_number_from_filename(filename: str) -> int | None:
    """Leading number of the first "_"-separated part: "003_take2.wav" → 3."""
    base = filename.rsplit(".", 1)[0] if "." in filename else filename
    first = base.split("_")[0] or base
    match = re.search(r"\d+", first)
    return int(match.group(0)) if match else None


class Coordinator:
    """Runs alignment and resegmentation for one project."""

    def __init__(self, store: ProjectStore):
        self.store = store
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, source_id: str) -> asyncio.Lock:
        if source_id not in self._locks:
            self._locks[source_id] = asyncio.Lock()
        return self._locks[source_id]

    # --- script helpers ---

    def _non_audio_speakers(self) -> set[str]:
        return set(self.store.load_settings().get("non_audio_speakers", []))

    def is_audio_line(self, line: ScriptLine, non_audio: set[str]) -> bool:
        return line.speaker not in non_audio

    def _all_lines(self, chapters: list[Chapter]) -> list[ScriptLine]:
        return [line for ch in chapters for line in ch.lines]

    def _lines_for_source(self, chapters: list[Chapter], source_id: str) -> list[ScriptLine]:
        """Lines whose current asset came from source_id, in script order."""
        owned = {a.id for a in self.store.assets_for_source(source_id)}
        return [line for line in self._all_lines(chapters) if line.audio_asset_id in owned]

    def resolve_chapter(self, chapter_id: str | None, filename: str) -> Chapter:
        """Chapter by id, else by the number leading the recording's filename."""
        chapters = self.store.load_chapters()
        if chapter_id:
            for ch in chapters:
                if ch.id == chapter_id:
                    return ch
            raise InputError(f"Chapter not found: {chapter_id}")
        num = chapter_number_from_filename(filename)
        if num is None or not 1 <= num <= len(chapters):
            raise InputError(
                f"Cannot tell which chapter {filename!r} belongs to: pass a chapter id "
                f"or use a filename starting with the chapter number (e.g. 001_take.wav)"
            )
        return chapters[num - 1]

    def _source_bytes(self, source_id: str) -> bytes:
        data = self.store.get_source(source_id)
        if data is None:
            raise InputError(f"Source recording not found: {source_id}")
        return data

    def _new_asset(self, line: ScriptLine, source_id: str, data: bytes,
                   filename: str | None = None) -> AudioAsset:
        return AudioAsset(
            id=new_asset_id(),
            line_id=line.id,
            source_audio_id=source_id,
            data=data,
            source_filename=self.store.source_filename(source_id) if filename is None else filename,
        )

    # --- automatic alignment ---

    async def align(
        self,
        chapter_id: str,
        source_id: str,
        transcript: TranscriptSource,
        data: bytes | None = None,
        filename: str | None = None,
    ) -> AlignmentReport:
        """Align a chapter's lines to a recording and slice one asset per matched line.

        Earlier assets from the same recording are replaced. With data given, the
        recording is stored under source_id in the same commit as its assets, so a
        failed run keeps whatever recording was there before; otherwise the stored
        recording is used.
        """
        async with self._lock(source_id):
            chapters = self.store.load_chapters()
            chapter = next((ch for ch in chapters if ch.id == chapter_id), None)
            if chapter is None:
                raise InputError(f"Chapter not found: {chapter_id}")

            non_audio = self._non_audio_speakers()
            target_lines = [line for line in chapter.lines if self.is_audio_line(line, non_audio)]
            if not target_lines:
                raise InputError(f"Chapter {chapter.title or chapter.id!r} has no lines that take audio")

            staged = data is not None
            if staged:
                filename = filename or source_id
            else:
                data = self._source_bytes(source_id)
                filename = self.store.source_filename(source_id)
            async with open_recording(data) as recording:
                duration = recording.duration
                segments = transcript.segments(duration)
                units = clamp_units(split_into_units(segments), duration)
                if not units:
                    raise InputError("Transcript has no usable units to align")

                line_texts = [prepare_text(line.text) for line in target_lines]
                unit_texts = [prepare_text(u.text) for u in units]
                result = align_lines_to_units(line_texts, unit_texts)

                spans = build_segments(units, result.unit_to_line, duration)
                if not spans:
                    raise AlignmentInfeasible(
                        "No transcript unit matched any script line; check the recording "
                        "or use a more accurate transcript"
                    )
                markers = normalize_markers(markers_from_segments(spans, duration))
                clips = await slice_segments(recording, spans)

            old_ids = [a.id for a in self.store.assets_for_source(source_id)]
            new_assets = [self._new_asset(target_lines[span.line_index], source_id, clip, filename)
                          for span, clip in clips]

            with self.store.transaction() as tx:
                if staged:
                    tx.put_source(source_id, data, filename)
                tx.bulk_delete(old_ids)
                for asset in new_assets:
                    tx.put(asset)
                    tx.set_line_asset(asset.line_id, asset.id)
                tx.put_markers(MarkerSet(source_audio_id=source_id, markers=markers))

        report = AlignmentReport(
            chapter_id=chapter.id,
            source_audio_id=source_id,
            matched=len(new_assets),
            total=len(target_lines),
            markers=markers,
        )
        logger.info("Aligned %s: %d/%d lines matched, %d missing",
                    source_id, report.matched, report.total, report.missing)
        return report

    # --- marker bootstrap ---

    def initial_markers(self, source_id: str) -> list[float]:
        """Saved markers, or boundaries rebuilt from existing asset durations."""
        saved = self.store.get_markers(source_id)
        if saved is not None and saved.markers:
            return list(saved.markers)

        lines = self._lines_for_source(self.store.load_chapters(), source_id)
        markers = []
        elapsed = 0.0
        for line in lines:
            asset = self.store.get(line.audio_asset_id)
            if asset is None or not asset.data:
                continue
            elapsed += clip_duration(asset.data)
            markers.append(elapsed)
        return markers[:-1]

    # --- whole-audio resegmentation ---

    async def resegment_whole(self, source_id: str, markers: list[float]) -> list[SegmentSpan]:
        """Recut the whole recording at markers and reassign lines in script order.

        Lines currently mapped to this source take the new spans in order. Extra
        spans spill onto the next unmapped audio lines after the last mapped one;
        lines left without a span lose their mapping.
        """
        async with self._lock(source_id):
            chapters = self.store.load_chapters()
            affected = self._lines_for_source(chapters, source_id)
            old_ids = [a.id for a in self.store.assets_for_source(source_id)]

            data = self._source_bytes(source_id)
            async with open_recording(data) as recording:
                duration = recording.duration
                clean = [t for t in normalize_markers(markers) if 0 < t < duration]
                spans = segments_from_markers(clean, duration)
                clips = await slice_segments(recording, spans)

            non_audio = self._non_audio_speakers()
            targets = list(affected)
            if len(clips) > len(affected) and affected:
                all_lines = self._all_lines(chapters)
                last = all_lines.index(affected[-1])
                extra = [
                    line for line in all_lines[last + 1:]
                    if line.audio_asset_id is None and self.is_audio_line(line, non_audio)
                ]
                targets.extend(extra[:len(clips) - len(affected)])

            new_assets = [self._new_asset(line, source_id, clip)
                          for line, (_, clip) in zip(targets, clips)]
            assigned = {asset.line_id for asset in new_assets}

            with self.store.transaction() as tx:
                tx.bulk_delete(old_ids)
                for asset in new_assets:
                    tx.put(asset)
                    tx.set_line_asset(asset.line_id, asset.id)
                for line in affected:
                    if line.id not in assigned:
                        tx.set_line_asset(line.id, None)
                tx.put_markers(MarkerSet(source_audio_id=source_id, markers=clean))

        logger.info("Resegmented %s: %d spans onto %d lines (%d previously mapped)",
                    source_id, len(spans), len(new_assets), len(affected))
        return spans

    # --- windowed resegmentation ---

    async def resegment_window(
        self,
        source_id: str,
        window_line_ids: list[str],
        skip_line_ids: list[str],
        start: float,
        end: float,
        window_markers: list[float],
    ) -> list[SegmentSpan]:
        """Recut only [start, end) and only the assets of the window's lines.

        The window's markers must split it into exactly as many spans as there
        are unskipped window lines; otherwise SegmentCountMismatch is raised
        before anything is written.
        """
        async with self._lock(source_id):
            chapters = self.store.load_chapters()
            lines_by_id = {line.id: line for line in self._all_lines(chapters)}
            window_lines = [lines_by_id[i] for i in window_line_ids if i in lines_by_id]
            skip = set(skip_line_ids)
            targets = [line for line in window_lines if line.id not in skip]

            data = self._source_bytes(source_id)
            async with open_recording(data) as recording:
                duration = recording.duration
                start = max(0.0, min(duration, start))
                end = max(0.0, min(duration, end))
                if not end > start + WINDOW_EPSILON:
                    raise InputError(f"Invalid window: end {end:.3f}s must be after start {start:.3f}s")

                inner = markers_in_window(normalize_markers(window_markers), start, end,
                                          eps=WINDOW_EPSILON)
                if len(inner) + 1 != len(targets):
                    raise SegmentCountMismatch(segments=len(inner) + 1, target_lines=len(targets))

                bounds = [start, *inner, end]
                spans = [SegmentSpan(line_index=i, start=bounds[i], end=bounds[i + 1])
                         for i in range(len(bounds) - 1)]
                clips = await slice_segments(recording, spans)

            saved = self.store.get_markers(source_id)
            existing = [t for t in (saved.markers if saved else []) if 0 < t < duration]
            merged = normalize_markers(
                [t for t in existing if t <= start + WINDOW_EPSILON]
                + inner
                + [t for t in existing if t >= end - WINDOW_EPSILON]
            )

            owned = {a.id for a in self.store.assets_for_source(source_id)}
            stale = [line.audio_asset_id for line in window_lines if line.audio_asset_id in owned]
            new_assets = [self._new_asset(targets[span.line_index], source_id, clip)
                          for span, clip in clips]
            assigned = {asset.line_id for asset in new_assets}

            with self.store.transaction() as tx:
                tx.bulk_delete(stale)
                for asset in new_assets:
                    tx.put(asset)
                    tx.set_line_asset(asset.line_id, asset.id)
                for line in window_lines:
                    if line.id not in assigned and line.audio_asset_id in owned:
                        tx.set_line_asset(line.id, None)
                tx.put_markers(MarkerSet(source_audio_id=source_id, markers=merged))

        logger.info("Resegmented window %.3f-%.3f of %s: %d spans, %d skipped lines",
                    start, end, source_id, len(spans), len(window_lines) - len(targets))
        return spans

    # --- cleanup ---

    def clear_chapters(self, chapter_ids: list[str]) -> int:
        """Drop every line asset in the given chapters. Returns how many were removed."""
        chapters = [ch for ch in self.store.load_chapters() if ch.id in set(chapter_ids)]
        lines = [line for ch in chapters for line in ch.lines if line.audio_asset_id]
        if not lines:
            return 0
        with self.store.transaction() as tx:
            tx.bulk_delete([line.audio_asset_id for line in lines])
            for line in lines:
                tx.set_line_asset(line.id, None)
        return len(lines)
