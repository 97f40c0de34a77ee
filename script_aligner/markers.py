"""Marker list editing with bounded undo/redo for manual boundary correction."""

import math

from script_aligner.constants import HISTORY_LIMIT, MARKER_EPSILON, WINDOW_EPSILON


def normalize_markers(markers: list[float], eps: float = MARKER_EPSILON) -> list[float]:
    """Sort, drop non-finite values, and collapse markers closer than eps."""
    out = sorted(t for t in markers if math.isfinite(t))
    deduped: list[float] = []
    for t in out:
        if not deduped or t - deduped[-1] > eps:
            deduped.append(t)
    return deduped


def enforce_monotonic(markers: list[float], eps: float = MARKER_EPSILON) -> list[float]:
    """Nudge each marker forward so it sits at least eps past its predecessor."""
    out: list[float] = []
    for t in sorted(markers):
        if out and t < out[-1] + eps:
            t = out[-1] + eps
        out.append(t)
    return out


class MarkerEditor:
    """In-memory marker list for one source recording.

    Every committed edit pushes one snapshot onto a bounded history; undo and
    redo only move the index. Recomputing segments from the markers is the
    coordinator's job.

    Markers always lie strictly inside (0, duration), or, with a window
    (min, max), strictly inside (min + WINDOW_EPSILON, max - WINDOW_EPSILON).
    Adds outside that range are ignored; drags are clamped into it.
    """

    def __init__(
        self,
        markers: list[float] | None = None,
        duration: float | None = None,
        window: tuple[float, float] | None = None,
        history_limit: int = HISTORY_LIMIT,
    ):
        self.duration = duration
        self.window = window
        self.history_limit = max(1, history_limit)
        initial = [t for t in normalize_markers(markers or []) if self._in_bounds(t)]
        self.markers: list[float] = initial
        self.history: list[list[float]] = [list(initial)]
        self.index = 0
        self.selected: int | None = None
        self._drag_index: int | None = None
        self._drag_origin: list[float] | None = None
        self._drag_moved = False

    # --- history ---

    @property
    def can_undo(self) -> bool:
        return self.index > 0

    @property
    def can_redo(self) -> bool:
        return self.index < len(self.history) - 1

    def _push(self, markers: list[float]) -> None:
        history = self.history[:self.index + 1]
        history.append(list(markers))
        if len(history) > self.history_limit:
            history = history[-self.history_limit:]
        self.history = history
        self.index = len(history) - 1
        self.markers = list(markers)

    def undo(self) -> bool:
        if not self.can_undo:
            return False
        self.index -= 1
        self.markers = list(self.history[self.index])
        self.selected = None
        return True

    def redo(self) -> bool:
        if not self.can_redo:
            return False
        self.index += 1
        self.markers = list(self.history[self.index])
        self.selected = None
        return True

    # --- clamping ---

    def clamp(self, t: float) -> float:
        """Nearest time at least MARKER_EPSILON inside the open bounds."""
        lo, hi = self.bounds()
        return max(lo + MARKER_EPSILON, min(hi - MARKER_EPSILON, t))

    def bounds(self) -> tuple[float, float]:
        """Open interval every marker must lie in."""
        if self.window is not None:
            lo, hi = self.window
            return lo + WINDOW_EPSILON, hi - WINDOW_EPSILON
        return 0.0, self.duration if self.duration is not None else math.inf

    def _in_bounds(self, t: float) -> bool:
        lo, hi = self.bounds()
        return lo < t < hi

    def _fit(self, markers: list[float]) -> list[float]:
        """Sort, space by MARKER_EPSILON, pull the tail back under the upper bound."""
        lo, hi = self.bounds()
        out = enforce_monotonic(markers)
        ceiling = hi - MARKER_EPSILON
        for i in reversed(range(len(out))):
            out[i] = min(out[i], ceiling)
            ceiling = out[i] - MARKER_EPSILON
        return [t for t in out if lo < t < hi]

    # --- edits ---

    def add_marker(self, t: float) -> bool:
        """Insert a marker at t. Returns False if t is out of bounds or nothing changed."""
        if not math.isfinite(t) or not self._in_bounds(t):
            return False
        updated = normalize_markers([*self.markers, t])
        if updated == self.markers:
            return False
        self._push(updated)
        return True

    def remove_marker(self, index: int) -> bool:
        if not 0 <= index < len(self.markers):
            return False
        self._push([t for i, t in enumerate(self.markers) if i != index])
        self.selected = None
        return True

    def remove_selected(self) -> bool:
        if self.selected is None:
            return False
        return self.remove_marker(self.selected)

    def begin_drag(self, index: int) -> None:
        if not 0 <= index < len(self.markers):
            raise IndexError(f"No marker at index {index}")
        self._drag_index = index
        self._drag_origin = list(self.markers)
        self._drag_moved = False

    def drag_to(self, t: float) -> None:
        """Live update during a drag. Writes no history."""
        if self._drag_index is None:
            return
        self._drag_moved = True
        self.selected = self._drag_index
        moved = list(self._drag_origin)
        moved[self._drag_index] = self.clamp(t)
        self.markers = self._fit(moved)

    def end_drag(self) -> bool:
        """Release: commit one snapshot if the marker moved, else toggle selection."""
        index = self._drag_index
        if index is None:
            return False
        moved = self._drag_moved
        self._drag_index = None
        self._drag_origin = None
        self._drag_moved = False
        if moved:
            self._push(self.markers)
            return True
        self.selected = None if self.selected == index else index
        return False

    def drag_marker(self, index: int, t: float) -> bool:
        """One-shot drag: begin, move to t, release."""
        self.begin_drag(index)
        self.drag_to(t)
        return self.end_drag()

    def select(self, index: int | None) -> None:
        if index is not None and not 0 <= index < len(self.markers):
            raise IndexError(f"No marker at index {index}")
        self.selected = index

    # --- persistence ---

    def to_dict(self) -> dict:
        return {
            "markers": self.markers,
            "history": self.history,
            "index": self.index,
            "duration": self.duration,
            "window": list(self.window) if self.window else None,
            "selected": self.selected,
        }

    @classmethod
    def from_dict(cls, data: dict, history_limit: int = HISTORY_LIMIT) -> "MarkerEditor":
        window = data.get("window")
        editor = cls(
            data.get("markers", []),
            duration=data.get("duration"),
            window=tuple(window) if window else None,
            history_limit=history_limit,
        )
        history = data.get("history")
        if history:
            dropped = max(0, len(history) - editor.history_limit)
            editor.history = [list(h) for h in history[dropped:]]
            index = data.get("index", len(history) - 1) - dropped
            editor.index = max(0, min(len(editor.history) - 1, index))
            editor.markers = list(editor.history[editor.index])
        selected = data.get("selected")
        if selected is not None and 0 <= selected < len(editor.markers):
            editor.selected = selected
        return editor
