"""Tests for marker normalization and the undoable marker editor."""

import math

import pytest

from script_aligner.markers import MarkerEditor, enforce_monotonic, normalize_markers


def test_normalize_sorts_and_dedupes():
    assert normalize_markers([3.0, 1.0, 2.0, 1.0005, math.nan, math.inf]) == [1.0, 2.0, 3.0]


def test_enforce_monotonic_nudges_forward():
    assert enforce_monotonic([1.0, 1.0, 2.0], eps=0.5) == [1.0, 1.5, 2.0]


def test_undo_redo_after_three_edits():
    editor = MarkerEditor(duration=10.0)
    assert editor.add_marker(2.0)
    after_first = list(editor.markers)
    assert editor.add_marker(5.0)
    after_second = list(editor.markers)
    assert editor.drag_marker(1, 6.0)
    assert editor.markers == [2.0, 6.0]

    assert editor.undo()
    assert editor.undo()
    assert editor.markers == after_first
    assert editor.redo()
    assert editor.markers == after_second


def test_undo_redo_at_ends_are_noops():
    editor = MarkerEditor([1.0], duration=10.0)
    assert not editor.can_undo
    assert not editor.undo()
    assert not editor.redo()
    assert editor.markers == [1.0]


def test_new_edit_truncates_redo():
    editor = MarkerEditor(duration=10.0)
    editor.add_marker(1.0)
    editor.add_marker(2.0)
    editor.undo()
    editor.add_marker(3.0)
    assert not editor.can_redo
    assert editor.markers == [1.0, 3.0]


def test_history_is_bounded():
    editor = MarkerEditor(duration=10.0, history_limit=3)
    for t in (1.0, 2.0, 3.0, 4.0):
        editor.add_marker(t)
    assert len(editor.history) == 3
    editor.undo()
    editor.undo()
    assert not editor.can_undo
    assert editor.markers == [1.0, 2.0]


def test_add_outside_recording_is_ignored():
    editor = MarkerEditor(duration=10.0)
    assert not editor.add_marker(0.0)
    assert not editor.add_marker(-3.0)
    assert not editor.add_marker(10.0)
    assert not editor.add_marker(25.0)
    assert editor.markers == []
    assert len(editor.history) == 1


def test_add_duplicate_within_epsilon_is_ignored():
    editor = MarkerEditor([2.0], duration=10.0)
    assert not editor.add_marker(2.0005)
    assert editor.markers == [2.0]
    assert not editor.can_undo


def test_window_rejects_adds_outside_inner_bounds():
    editor = MarkerEditor(window=(3.0, 9.0))
    assert not editor.add_marker(100.0)
    assert not editor.add_marker(1.0)
    assert not editor.add_marker(3.0005)
    assert not editor.add_marker(8.9995)
    assert editor.markers == []
    assert not editor.can_undo
    assert editor.add_marker(5.0)
    assert editor.markers == [5.0]


def test_window_clamp_stays_inside_inner_bounds():
    editor = MarkerEditor(window=(3.0, 9.0))
    assert editor.clamp(1.0) == pytest.approx(3.002)
    assert editor.clamp(20.0) == pytest.approx(8.998)
    assert editor.clamp(5.0) == 5.0


def test_initial_markers_outside_bounds_are_dropped():
    assert MarkerEditor([0.0, 4.0, 10.0, 12.0], duration=10.0).markers == [4.0]
    assert MarkerEditor([3.0, 5.0, 9.0], window=(3.0, 9.0)).markers == [5.0]


def test_drag_into_window_edge_keeps_markers_inside():
    editor = MarkerEditor([5.0, 8.998], window=(3.0, 9.0))
    assert editor.drag_marker(0, 20.0)
    assert len(editor.markers) == 2
    assert editor.markers == sorted(editor.markers)
    assert all(3.001 < t < 8.999 for t in editor.markers)
    assert editor.markers == [pytest.approx(8.997), pytest.approx(8.998)]


def test_drag_to_recording_edges_stays_open():
    editor = MarkerEditor([2.0, 5.0], duration=10.0)
    editor.drag_marker(0, -4.0)
    assert editor.markers == [pytest.approx(0.001), 5.0]
    assert editor.markers[0] > 0.0
    editor.drag_marker(1, 40.0)
    assert editor.markers[1] == pytest.approx(9.999)
    assert editor.markers[1] < 10.0


def test_drag_without_move_toggles_selection():
    editor = MarkerEditor([2.0, 5.0], duration=10.0)
    editor.begin_drag(1)
    assert not editor.end_drag()
    assert editor.selected == 1
    editor.begin_drag(1)
    assert not editor.end_drag()
    assert editor.selected is None
    assert len(editor.history) == 1


def test_drag_live_updates_write_one_snapshot():
    editor = MarkerEditor([2.0, 5.0], duration=10.0)
    editor.begin_drag(0)
    editor.drag_to(2.5)
    editor.drag_to(3.0)
    editor.drag_to(3.5)
    assert editor.markers == [3.5, 5.0]
    assert len(editor.history) == 1
    assert editor.end_drag()
    assert len(editor.history) == 2
    assert editor.undo()
    assert editor.markers == [2.0, 5.0]


def test_drag_past_neighbour_stays_sorted():
    editor = MarkerEditor([2.0, 5.0], duration=10.0)
    editor.drag_marker(0, 7.0)
    assert editor.markers == sorted(editor.markers)
    assert editor.markers == [5.0, 7.0]


def test_drag_bad_index_raises():
    editor = MarkerEditor([2.0], duration=10.0)
    with pytest.raises(IndexError):
        editor.begin_drag(3)


def test_remove_selected():
    editor = MarkerEditor([2.0, 5.0], duration=10.0)
    assert not editor.remove_selected()
    editor.select(0)
    assert editor.remove_selected()
    assert editor.markers == [5.0]
    assert editor.selected is None
    assert not editor.remove_marker(4)


def test_session_round_trip():
    editor = MarkerEditor(duration=10.0)
    for t in (1.0, 2.0, 3.0):
        editor.add_marker(t)
    editor.undo()

    restored = MarkerEditor.from_dict(editor.to_dict())
    assert restored.markers == [1.0, 2.0]
    assert restored.duration == 10.0
    assert restored.can_redo
    restored.redo()
    assert restored.markers == [1.0, 2.0, 3.0]


def test_session_restore_with_smaller_history_limit():
    editor = MarkerEditor(duration=10.0)
    for t in (1.0, 2.0, 3.0, 4.0):
        editor.add_marker(t)
    editor.undo()

    restored = MarkerEditor.from_dict(editor.to_dict(), history_limit=2)
    assert len(restored.history) == 2
    assert restored.markers == [1.0, 2.0, 3.0]
    assert restored.can_redo
    assert not restored.can_undo


def test_select_bad_index_raises():
    editor = MarkerEditor([2.0], duration=10.0)
    with pytest.raises(IndexError):
        editor.select(1)
    editor.select(None)
    assert editor.selected is None


def test_session_keeps_selection():
    editor = MarkerEditor([2.0, 5.0], duration=10.0)
    editor.select(1)
    restored = MarkerEditor.from_dict(editor.to_dict())
    assert restored.selected == 1
    assert restored.remove_selected()
    assert restored.markers == [2.0]

    stale = editor.to_dict()
    stale["selected"] = 9
    assert MarkerEditor.from_dict(stale).selected is None
