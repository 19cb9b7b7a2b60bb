"""Core identifiers and key primitives for recordstore.

Keys follow the host engine's ordering: numbers sort before strings,
strings before bytes, and bytes before composite (tuple) keys. Tuples
compare element-wise, a shorter prefix sorting first.
"""

from __future__ import annotations

import math
from typing import Any, NewType, Union

StoreName = NewType("StoreName", str)
"""Name of a store within a database. Unique per database."""

DatabaseVersion = NewType("DatabaseVersion", int)
"""Schema version of a database. Monotonically increasing, starts at 1."""

Key = Union[int, float, str, bytes, tuple]
"""A primary key value. Tuples are composite keys."""

# Special sentinel values
NO_VERSION = DatabaseVersion(0)
INITIAL_VERSION = DatabaseVersion(1)

# Rank of each key kind in the engine's total order
_NUMBER, _STRING, _BYTES, _ARRAY = range(4)


class InvalidKeyError(ValueError):
    """Raised when a value cannot be used as a key."""

    def __init__(self, value: Any) -> None:
        super().__init__(f"{value!r} is not a valid key")
        self.value = value


def validate_key(value: Any) -> Key:
    """Return ``value`` if it is a valid key.

    Raises:
        InvalidKeyError: For booleans, NaN, None and unsupported types.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidKeyError(value)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            raise InvalidKeyError(value)
        return value
    if isinstance(value, (str, bytes)):
        return value
    if isinstance(value, tuple):
        for item in value:
            validate_key(item)
        return value
    raise InvalidKeyError(value)


def key_sort_value(key: Key) -> tuple:
    """Map a valid key to a tuple that sorts in engine key order."""
    if isinstance(key, (int, float)):
        return (_NUMBER, key)
    if isinstance(key, str):
        return (_STRING, key)
    if isinstance(key, bytes):
        return (_BYTES, key)
    return (_ARRAY, tuple(key_sort_value(item) for item in key))


def compare_keys(a: Key, b: Key) -> int:
    """Three-way comparison of two keys: -1, 0 or 1."""
    left, right = key_sort_value(a), key_sort_value(b)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0
