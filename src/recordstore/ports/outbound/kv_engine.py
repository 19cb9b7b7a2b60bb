"""Key-value engine port.

This outbound port defines the contract of the host engine recordstore
sits on: a versioned, event-driven key-value engine partitioned into named
stores. Every operation returns a request object immediately; its outcome
is delivered later through callbacks assigned by the caller.

Event delivery:
    - Request.onsuccess / Request.onerror fire once per request.
    - EngineTransaction.oncomplete fires after every request succeeded.
    - EngineTransaction.onerror fires when a failed request aborts the
      transaction; EngineTransaction.onabort follows every abort.
    - OpenRequest.onupgradeneeded fires before onsuccess when the
      requested version is higher than the stored one. Schema changes
      (create_store/delete_store) are only valid inside that callback.

Callbacks receive an EngineEvent and run on the event loop, never inside
the call that issued the request.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from recordstore.domain.entities import StoreOptions
from recordstore.domain.value_objects import DatabaseVersion, Key, KeyRange, TransactionMode


class ReadyState(str, Enum):
    """Lifecycle of a request."""

    PENDING = "pending"
    DONE = "done"


class CursorDirection(str, Enum):
    """Iteration order of a cursor."""

    NEXT = "next"
    PREV = "prev"


@dataclass
class EngineEvent:
    """Payload passed to every engine callback.

    Attributes:
        type: Event type ("success", "error", "complete", "abort",
            "upgradeneeded", "blocked", "versionchange").
        target: The request, transaction or connection emitting the event.
        error: The error for "error" and "abort" events.
        old_version: Stored version for version-change events.
        new_version: Requested version for version-change events.
    """

    type: str
    target: Any
    error: EngineError | None = None
    old_version: int | None = None
    new_version: int | None = None


EventHandler = Callable[[EngineEvent], Any]


class Request(Protocol):
    """An asynchronous engine request."""

    onsuccess: EventHandler | None
    onerror: EventHandler | None

    @property
    @abstractmethod
    def ready_state(self) -> ReadyState:
        """Return PENDING until the request has an outcome."""
        ...

    @property
    @abstractmethod
    def result(self) -> Any:
        """Return the request result.

        Raises:
            InvalidStateError: If the request is still pending.
        """
        ...

    @property
    @abstractmethod
    def error(self) -> EngineError | None:
        """Return the request error, or None if it succeeded."""
        ...


class OpenRequest(Request, Protocol):
    """Request returned by KVEngine.open()."""

    onupgradeneeded: EventHandler | None
    onblocked: EventHandler | None

    @property
    @abstractmethod
    def transaction(self) -> EngineTransaction | None:
        """Return the version-change transaction while an upgrade runs."""
        ...


class Cursor(Protocol):
    """A position within an ordered scan of a store."""

    @property
    @abstractmethod
    def key(self) -> Key:
        """Return the key under the cursor."""
        ...

    @property
    @abstractmethod
    def primary_key(self) -> Key:
        """Return the primary key under the cursor."""
        ...

    @property
    @abstractmethod
    def value(self) -> Any:
        """Return the record under the cursor."""
        ...

    @property
    @abstractmethod
    def direction(self) -> CursorDirection:
        """Return the iteration order."""
        ...

    @abstractmethod
    def continue_(self, key: Key | None = None) -> None:
        """Advance the cursor.

        Without ``key`` the cursor moves to the next record. With ``key``
        it jumps to the first record at or beyond ``key`` in the cursor's
        direction. The cursor request fires onsuccess again with the new
        position, or with a None result once the range is exhausted.

        Raises:
            DataError: If ``key`` is not beyond the current key.
            InvalidStateError: If the cursor is already advancing or done.
        """
        ...

    @abstractmethod
    def advance(self, count: int) -> None:
        """Skip ``count`` records forward in the cursor's direction."""
        ...


class ObjectStore(Protocol):
    """A store handle scoped to one transaction."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the store name."""
        ...

    @property
    @abstractmethod
    def options(self) -> StoreOptions:
        """Return the store key configuration."""
        ...

    @abstractmethod
    def add(self, record: Any) -> Request:
        """Insert a record. Fails with ConstraintError if the key exists.

        Raises:
            ReadOnlyError: In a read-only transaction.
            DataError: If the record has no valid key.
        """
        ...

    @abstractmethod
    def put(self, record: Any) -> Request:
        """Insert or overwrite a record."""
        ...

    @abstractmethod
    def delete(self, key: Key | KeyRange) -> Request:
        """Delete the record(s) at ``key``."""
        ...

    @abstractmethod
    def get(self, key: Key) -> Request:
        """Read one record; the result is None when absent."""
        ...

    @abstractmethod
    def get_all(self, key_range: KeyRange | None = None, count: int | None = None) -> Request:
        """Read every record in key order."""
        ...

    @abstractmethod
    def count(self, key_range: KeyRange | None = None) -> Request:
        """Count the records in the store or range."""
        ...

    @abstractmethod
    def clear(self) -> Request:
        """Delete every record in the store."""
        ...

    @abstractmethod
    def open_cursor(
        self,
        key_range: KeyRange | None = None,
        direction: CursorDirection = CursorDirection.NEXT,
    ) -> Request:
        """Open a cursor; each stop fires the request's onsuccess."""
        ...


class EngineTransaction(Protocol):
    """A unit of work over a set of stores in one mode."""

    oncomplete: EventHandler | None
    onerror: EventHandler | None
    onabort: EventHandler | None

    @property
    @abstractmethod
    def mode(self) -> TransactionMode:
        """Return the access mode."""
        ...

    @property
    @abstractmethod
    def error(self) -> EngineError | None:
        """Return the error that aborted the transaction, if any."""
        ...

    @abstractmethod
    def object_store(self, name: str) -> ObjectStore:
        """Return the handle of a store within the transaction scope.

        Raises:
            NotFoundError: If ``name`` is not in scope.
        """
        ...

    @abstractmethod
    def abort(self) -> None:
        """Roll back the transaction.

        Raises:
            InvalidStateError: If the transaction already finished.
        """
        ...


class Connection(Protocol):
    """A live connection to one version of a named database."""

    onversionchange: EventHandler | None

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the database name."""
        ...

    @property
    @abstractmethod
    def version(self) -> DatabaseVersion:
        """Return the schema version the connection was opened at."""
        ...

    @property
    @abstractmethod
    def store_names(self) -> list[str]:
        """Return the store names, sorted."""
        ...

    @abstractmethod
    def transaction(
        self,
        store_names: str | list[str],
        mode: TransactionMode = TransactionMode.READ_ONLY,
    ) -> EngineTransaction:
        """Start a transaction.

        Raises:
            NotFoundError: If a store does not exist.
            InvalidStateError: If the connection is closing or upgrading.
        """
        ...

    @abstractmethod
    def create_store(self, name: str, options: StoreOptions | None = None) -> ObjectStore:
        """Create a store. Only valid during an upgrade.

        Raises:
            ConstraintError: If the store already exists.
            InvalidStateError: Outside an upgrade.
        """
        ...

    @abstractmethod
    def delete_store(self, name: str) -> None:
        """Delete a store. Only valid during an upgrade.

        Raises:
            NotFoundError: If the store does not exist.
            InvalidStateError: Outside an upgrade.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Close the connection once its running transactions finish."""
        ...


class KVEngine(Protocol):
    """Protocol for the host key-value engine."""

    @abstractmethod
    def open(self, name: str, version: int | None = None) -> OpenRequest:
        """Open a database, upgrading it when ``version`` is higher.

        ``version`` None opens at the stored version, or 1 for a new
        database. A version lower than the stored one fails with
        VersionError.
        """
        ...

    @abstractmethod
    def database_names(self) -> list[str]:
        """Return the names of existing databases."""
        ...


class EngineError(Exception):
    """Base class of every failure reported by the engine."""

    name = "EngineError"


class ConstraintError(EngineError):
    """A uniqueness constraint was violated (duplicate key or store)."""

    name = "ConstraintError"


class DataError(EngineError):
    """A key or key range was invalid."""

    name = "DataError"


class VersionError(EngineError):
    """The requested version is lower than the stored version."""

    name = "VersionError"


class ReadOnlyError(EngineError):
    """A write was issued in a read-only transaction."""

    name = "ReadOnlyError"


class NotFoundError(EngineError):
    """A store was not found in the schema or transaction scope."""

    name = "NotFoundError"


class InvalidStateError(EngineError):
    """An operation was issued on an object in the wrong state."""

    name = "InvalidStateError"


class TransactionInactiveError(EngineError):
    """A request was issued against a finished transaction."""

    name = "TransactionInactiveError"


class AbortError(EngineError):
    """The transaction or request was aborted."""

    name = "AbortError"
