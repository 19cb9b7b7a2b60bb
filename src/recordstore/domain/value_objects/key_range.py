"""Key ranges used to bound cursor scans."""

from __future__ import annotations

from dataclasses import dataclass

from recordstore.domain.value_objects.identifiers import (
    Key,
    compare_keys,
    key_sort_value,
    validate_key,
)


@dataclass(frozen=True)
class KeyRange:
    """A contiguous interval of keys.

    Either bound may be None for an unbounded side. Bounds are inclusive
    unless the matching ``*_open`` flag is set.

    Example:
        >>> KeyRange.bound(1, 5).includes(5)
        True
        >>> KeyRange.bound(1, 5, upper_open=True).includes(5)
        False
    """

    lower: Key | None = None
    upper: Key | None = None
    lower_open: bool = False
    upper_open: bool = False

    def __post_init__(self) -> None:
        """Validate the bounds."""
        if self.lower is not None:
            validate_key(self.lower)
        if self.upper is not None:
            validate_key(self.upper)
        if self.lower is not None and self.upper is not None:
            order = compare_keys(self.lower, self.upper)
            if order > 0 or (order == 0 and (self.lower_open or self.upper_open)):
                raise ValueError(f"Empty key range: {self.lower!r}..{self.upper!r}")

    @classmethod
    def bound(
        cls,
        lower: Key,
        upper: Key,
        lower_open: bool = False,
        upper_open: bool = False,
    ) -> KeyRange:
        """Range between two keys, inclusive by default."""
        return cls(lower, upper, lower_open, upper_open)

    @classmethod
    def only(cls, key: Key) -> KeyRange:
        """Range holding a single key."""
        return cls(key, key)

    @classmethod
    def lower_bound(cls, key: Key, exclusive: bool = False) -> KeyRange:
        """Range of keys at or above ``key``."""
        return cls(lower=key, lower_open=exclusive)

    @classmethod
    def upper_bound(cls, key: Key, exclusive: bool = False) -> KeyRange:
        """Range of keys at or below ``key``."""
        return cls(upper=key, upper_open=exclusive)

    def includes(self, key: Key) -> bool:
        """Check if ``key`` lies within the range."""
        value = key_sort_value(key)
        if self.lower is not None:
            lower = key_sort_value(self.lower)
            if value < lower or (self.lower_open and value == lower):
                return False
        if self.upper is not None:
            upper = key_sort_value(self.upper)
            if value > upper or (self.upper_open and value == upper):
                return False
        return True
