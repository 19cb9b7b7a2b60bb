"""Store definition entity.

A store is a named partition of a database. Its options are fixed when it
is created during an upgrade and never change afterwards.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any

from recordstore.domain.value_objects import Key, validate_key


@dataclass(frozen=True)
class StoreOptions:
    """Primary key configuration of a store.

    Attributes:
        key_path: Dotted path of the record field holding the primary key.
        auto_increment: Generate integer keys for records that lack one.

    Example:
        >>> StoreOptions(key_path="meta.id").extract_key({"meta": {"id": 7}})
        7
    """

    key_path: str | None = "id"
    auto_increment: bool = False

    def __post_init__(self) -> None:
        """Validate the options."""
        if self.key_path is None and not self.auto_increment:
            raise ValueError("A store needs a key_path, auto_increment, or both")
        if self.key_path is not None and (
            not self.key_path or any(not part for part in self.key_path.split("."))
        ):
            raise ValueError(f"Invalid key path: {self.key_path!r}")

    @property
    def _parts(self) -> list[str]:
        return self.key_path.split(".") if self.key_path else []

    def extract_key(self, record: Any) -> Key | None:
        """Return the record's key, or None when the key path is missing.

        Raises:
            InvalidKeyError: If the value at the key path is not a valid key.
        """
        value = record
        for part in self._parts:
            if not isinstance(value, Mapping) or part not in value:
                return None
            value = value[part]
        if value is record:
            return None
        return validate_key(value)

    def inject_key(self, record: MutableMapping[str, Any], key: Key) -> None:
        """Write a generated key into ``record`` at the key path."""
        *parents, leaf = self._parts
        target = record
        for part in parents:
            target = target.setdefault(part, {})
        target[leaf] = key
