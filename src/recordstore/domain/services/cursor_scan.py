"""Sorted-cursor scan plan for batch key lookups.

A batch get over N keys could issue N independent point lookups. Instead
the requested keys are sorted once, a single forward cursor is opened over
the inclusive range [min, max] of the request, and after every stop the
cursor jumps straight to the next requested key. Keys stored between two
requested keys are never visited, so the scan makes at most one cursor
step per distinct requested key.

Results are written at the original request positions, so the output
order mirrors the input order rather than the storage order:

    >>> state = CursorScanState.plan([5, 1, 3])
    >>> state.sorted_keys
    [1, 3, 5]
    >>> state.visit(1, "a")
    3
    >>> state.visit(5, "e") is None
    True
    >>> state.results
    ['e', 'a', None]
"""

from __future__ import annotations

import bisect
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from recordstore.domain.value_objects import Key, KeyRange, key_sort_value, validate_key


@dataclass
class CursorScanState:
    """State of one batch scan, owned by a single read transaction.

    Attributes:
        requested: Keys in request order (duplicates allowed).
        sorted_keys: Distinct requested keys in engine key order.
        positions: Map from key to every request index holding it.
        results: Output buffer indexed by request position; None where the
            key was not found.
        steps: Cursor stops visited so far.
        found: Distinct requested keys found so far.
    """

    requested: list[Key]
    sorted_keys: list[Key]
    positions: dict[Key, list[int]]
    results: list[Any]
    steps: int = 0
    found: int = 0
    _sort_values: list[tuple] = field(default_factory=list, repr=False)

    @classmethod
    def plan(cls, keys: Iterable[Any]) -> CursorScanState:
        """Build the scan state for ``keys``.

        Raises:
            InvalidKeyError: If any requested value is not a valid key.
        """
        requested = [validate_key(key) for key in keys]
        positions: dict[Key, list[int]] = {}
        for index, key in enumerate(requested):
            positions.setdefault(key, []).append(index)

        sorted_keys = sorted(positions, key=key_sort_value)
        return cls(
            requested=requested,
            sorted_keys=sorted_keys,
            positions=positions,
            results=[None] * len(requested),
            _sort_values=[key_sort_value(key) for key in sorted_keys],
        )

    @property
    def is_empty(self) -> bool:
        """Check if no keys were requested."""
        return not self.sorted_keys

    @property
    def key_range(self) -> KeyRange:
        """Inclusive range between the smallest and largest requested key."""
        if self.is_empty:
            raise ValueError("Cannot bound an empty scan")
        return KeyRange.bound(self.sorted_keys[0], self.sorted_keys[-1])

    def visit(self, key: Key, value: Any) -> Key | None:
        """Record a cursor stop and return the key to continue to.

        Args:
            key: Key under the cursor.
            value: Record under the cursor.

        Returns:
            The next requested key greater than ``key``, or None when the
            scan is complete.
        """
        self.steps += 1
        indices = self.positions.get(key)
        if indices is not None:
            self.found += 1
            for index in indices:
                self.results[index] = value
        return self.next_key_after(key)

    def next_key_after(self, key: Key) -> Key | None:
        """Return the smallest requested key strictly greater than ``key``."""
        index = bisect.bisect_right(self._sort_values, key_sort_value(key))
        if index < len(self.sorted_keys):
            return self.sorted_keys[index]
        return None
