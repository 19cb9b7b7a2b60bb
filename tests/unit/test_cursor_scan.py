"""Unit tests for the sorted-cursor scan plan."""

from __future__ import annotations

import pytest

from recordstore.domain.services import CursorScanState
from recordstore.domain.value_objects import InvalidKeyError, KeyRange


@pytest.mark.unit
class TestPlan:
    """Tests for CursorScanState.plan."""

    def test_sorts_and_deduplicates(self) -> None:
        state = CursorScanState.plan([5, 1, 3, 1])

        assert state.requested == [5, 1, 3, 1]
        assert state.sorted_keys == [1, 3, 5]
        assert state.positions == {5: [0], 1: [1, 3], 3: [2]}
        assert state.results == [None, None, None, None]

    def test_key_range_spans_request(self) -> None:
        state = CursorScanState.plan(["m", "c", "x"])

        assert state.key_range == KeyRange.bound("c", "x")

    def test_mixed_kinds_follow_key_order(self) -> None:
        state = CursorScanState.plan([(1,), "a", 2])

        assert state.sorted_keys == [2, "a", (1,)]

    def test_empty(self) -> None:
        state = CursorScanState.plan([])

        assert state.is_empty
        assert state.results == []
        with pytest.raises(ValueError):
            _ = state.key_range

    def test_invalid_key(self) -> None:
        with pytest.raises(InvalidKeyError):
            CursorScanState.plan([1, None])


@pytest.mark.unit
class TestVisit:
    """Tests for cursor stops."""

    def test_fills_request_positions(self) -> None:
        state = CursorScanState.plan([3, 1, 3])

        assert state.visit(1, "one") == 3
        assert state.visit(3, "three") is None
        assert state.results == ["three", "one", "three"]
        assert state.found == 2
        assert state.steps == 2

    def test_unrequested_stop_jumps_ahead(self) -> None:
        """A stop on a key nobody asked for only yields the next target."""
        state = CursorScanState.plan([1, 10])

        assert state.visit(4, "four") == 10
        assert state.results == [None, None]
        assert state.found == 0
        assert state.steps == 1

    def test_falsy_next_key_continues(self) -> None:
        """Zero and empty string are real targets, not end markers."""
        numbers = CursorScanState.plan([0, -1])
        assert numbers.visit(-1, "neg") == 0

        strings = CursorScanState.plan(["a", ""])
        assert strings.next_key_after(-5) == ""

    def test_composite_keys(self) -> None:
        state = CursorScanState.plan([("b", 1), ("a", 2)])

        assert state.visit(("a", 2), "a2") == ("b", 1)
        assert state.visit(("b", 1), "b1") is None
        assert state.results == ["b1", "a2"]

    def test_next_key_after_last(self) -> None:
        state = CursorScanState.plan(["a", "b"])

        assert state.next_key_after("b") is None
        assert state.next_key_after("zzz") is None
