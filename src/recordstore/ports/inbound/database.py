"""Database port - the awaitable API offered to callers.

A database handle owns at most one live engine connection and exposes
store management and record CRUD as coroutines. Engine failures are routed
through the handle's error hook before they are raised.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from recordstore.domain.entities import StoreOptions
from recordstore.domain.value_objects import Key
from recordstore.ports.outbound.kv_engine import EngineError


ErrorHook = Callable[[BaseException], Any]
"""Maps an engine error to a replacement, or None to keep the original."""


@dataclass
class TransactionStats:
    """Statistics for transaction monitoring."""

    committed_total: int
    aborted_total: int
    active_count: int


class RecordDatabase(Protocol):
    """Protocol for a database handle.

    Records are mappings whose primary key sits at the store's key path.
    A ``list`` argument is a batch; any other value is a single record or
    key (tuples are composite keys).
    """

    onerror: ErrorHook | None

    @abstractmethod
    async def open(
        self,
        version: int | None = None,
        upgrade: Callable[[Any], Any] | None = None,
    ) -> RecordDatabase:
        """Open or reopen the connection, upgrading when ``version`` is higher."""
        ...

    @property
    @abstractmethod
    def stores(self) -> list[str]:
        """Return the store names of the live connection."""
        ...

    @abstractmethod
    def has_store(self, name: str) -> bool:
        """Check if a store exists."""
        ...

    @abstractmethod
    async def add_store(self, name: str, options: StoreOptions | None = None) -> None:
        """Create a store unless it exists."""
        ...

    @abstractmethod
    async def delete_store(self, name: str) -> None:
        """Delete a store if it exists."""
        ...

    @abstractmethod
    async def add(self, name: str, records: Any) -> Any:
        """Insert record(s), creating the store if needed."""
        ...

    @abstractmethod
    async def put(self, name: str, records: Any) -> Any:
        """Insert or overwrite record(s).

        Raises:
            StoreNotFoundError: If the store does not exist.
        """
        ...

    @abstractmethod
    async def delete(self, name: str, ids: Key | list[Key] | None = None) -> Any:
        """Delete record(s), or the whole store when ``ids`` is None.

        Raises:
            StoreNotFoundError: If the store does not exist.
        """
        ...

    @abstractmethod
    async def get(self, name: str, ids: Key | list[Key] | None = None) -> Any:
        """Read all records, one record, or a batch in request order.

        Raises:
            StoreNotFoundError: If the store does not exist.
        """
        ...


class StoreNotFoundError(KeyError):
    """Raised when an operation targets a store absent from the schema.

    Raised directly by the guard checks; never passed through the error
    hook.
    """

    def __init__(self, store: str) -> None:
        super().__init__(store)
        self.store = store

    def __str__(self) -> str:
        return f'Store "{self.store}" was not found'


class UpgradeError(EngineError):
    """Raised when opening at a new version, or its upgrade callback, fails."""

    name = "UpgradeError"

    def __init__(self, message: str, old_version: int, new_version: int | None) -> None:
        super().__init__(message)
        self.old_version = old_version
        self.new_version = new_version


class RejectedValue(Exception):
    """Carries a non-exception replacement returned by the error hook.

    Attributes:
        value: The exact object the hook returned.
    """

    def __init__(self, value: Any) -> None:
        super().__init__(value)
        self.value = value
