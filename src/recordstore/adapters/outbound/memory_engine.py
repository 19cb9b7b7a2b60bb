"""In-memory implementation of the KVEngine port.

This adapter is a complete, event-driven, versioned key-value engine kept
in process memory. It reproduces the behaviour recordstore relies on from
a host engine:

    - every call returns a request immediately and reports its outcome
      later from the event loop (loop.call_soon), never re-entrantly
    - databases carry a version; opening at a higher version runs a
      version-change transaction in which stores are created or deleted
    - transactions run their requests in issue order, commit once the
      queue drains, and roll back every write when a request fails
    - cursors iterate a bounded key range in key order and can jump
      straight to an arbitrary later key

Records are stored as deep copies and returned as deep copies, so callers
never share mutable state with the engine.

Usage:
    engine = InMemoryEngine()
    request = engine.open("app", 1)
    request.onupgradeneeded = lambda event: request.result.create_store("items")
    request.onsuccess = lambda event: ...

Scheduling:
    Transactions whose scopes overlap are serialized when either of them
    is read-write; read-only transactions share their stores. A
    version change waits until every other connection to the database has
    closed and its transactions have finished.
"""

from __future__ import annotations

import asyncio
import bisect
import copy
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable

from recordstore.domain.entities import StoreOptions
from recordstore.domain.value_objects import (
    NO_VERSION,
    DatabaseVersion,
    InvalidKeyError,
    Key,
    KeyRange,
    TransactionMode,
    TransactionState,
    key_sort_value,
    validate_key,
)
from recordstore.infrastructure.logging import get_logger
from recordstore.ports.outbound.kv_engine import (
    AbortError,
    ConstraintError,
    CursorDirection,
    DataError,
    EngineError,
    EngineEvent,
    EventHandler,
    InvalidStateError,
    NotFoundError,
    ReadOnlyError,
    ReadyState,
    TransactionInactiveError,
    VersionError,
)

logger = get_logger(__name__)


def _as_key(value: Any) -> Key:
    """Validate a caller-supplied key, reporting failures as DataError."""
    try:
        return validate_key(value)
    except InvalidKeyError as e:
        raise DataError(str(e)) from e


def _dispatch(handler: EventHandler | None, event: EngineEvent) -> BaseException | None:
    """Invoke a callback, returning the exception it raised, if any."""
    if handler is None:
        return None
    try:
        handler(event)
    except Exception as e:
        logger.warning(
            "engine_callback_failed",
            event_type=event.type,
            error=repr(e),
        )
        return e
    return None


# -----------------------------------------------------------------------------
# Storage
# -----------------------------------------------------------------------------


@dataclass
class _StoreSnapshot:
    records: dict[Key, Any]
    keys: list[Key]
    sort_values: list[tuple]
    next_key: int


@dataclass
class _StoreData:
    """Records of one store, kept in key order."""

    options: StoreOptions
    records: dict[Key, Any] = field(default_factory=dict)
    keys: list[Key] = field(default_factory=list)
    sort_values: list[tuple] = field(default_factory=list)
    next_key: int = 1

    def snapshot(self) -> _StoreSnapshot:
        return _StoreSnapshot(
            records=dict(self.records),
            keys=list(self.keys),
            sort_values=list(self.sort_values),
            next_key=self.next_key,
        )

    def restore(self, snapshot: _StoreSnapshot) -> None:
        self.records = snapshot.records
        self.keys = snapshot.keys
        self.sort_values = snapshot.sort_values
        self.next_key = snapshot.next_key

    def generate_key(self) -> int:
        key = self.next_key
        self.next_key += 1
        return key

    def observe_key(self, key: Key) -> None:
        """Keep the key generator ahead of explicit numeric keys."""
        if isinstance(key, (int, float)) and key >= self.next_key:
            self.next_key = int(key) + 1

    def write(self, key: Key, value: Any, overwrite: bool) -> None:
        if key in self.records:
            if not overwrite:
                raise ConstraintError(f"Key {key!r} already exists")
        else:
            sort_value = key_sort_value(key)
            index = bisect.bisect_left(self.sort_values, sort_value)
            self.sort_values.insert(index, sort_value)
            self.keys.insert(index, key)
        self.records[key] = value

    def remove(self, key_range: KeyRange) -> None:
        start, end = self.bounds(key_range)
        for key in self.keys[start:end]:
            del self.records[key]
        del self.keys[start:end]
        del self.sort_values[start:end]

    def clear(self) -> None:
        self.records.clear()
        self.keys.clear()
        self.sort_values.clear()

    def bounds(self, key_range: KeyRange | None) -> tuple[int, int]:
        """Return the slice [start, end) of keys inside ``key_range``."""
        if key_range is None:
            return 0, len(self.keys)
        start, end = 0, len(self.keys)
        if key_range.lower is not None:
            lower = key_sort_value(key_range.lower)
            if key_range.lower_open:
                start = bisect.bisect_right(self.sort_values, lower)
            else:
                start = bisect.bisect_left(self.sort_values, lower)
        if key_range.upper is not None:
            upper = key_sort_value(key_range.upper)
            if key_range.upper_open:
                end = bisect.bisect_left(self.sort_values, upper)
            else:
                end = bisect.bisect_right(self.sort_values, upper)
        return start, max(start, end)

    def seek(
        self,
        key_range: KeyRange | None,
        direction: CursorDirection,
        target: Key | None,
        inclusive: bool,
    ) -> int | None:
        """Return the index of the next key from ``target`` within the range.

        With ``target`` None the scan starts at the edge of the range.
        """
        start, end = self.bounds(key_range)
        if direction is CursorDirection.NEXT:
            index = start
            if target is not None:
                value = key_sort_value(target)
                if inclusive:
                    index = max(start, bisect.bisect_left(self.sort_values, value))
                else:
                    index = max(start, bisect.bisect_right(self.sort_values, value))
            return index if index < end else None

        index = end - 1
        if target is not None:
            value = key_sort_value(target)
            if inclusive:
                index = min(end - 1, bisect.bisect_right(self.sort_values, value) - 1)
            else:
                index = min(end - 1, bisect.bisect_left(self.sort_values, value) - 1)
        return index if index >= start else None


@dataclass
class _DatabaseState:
    name: str
    version: int = NO_VERSION
    stores: dict[str, _StoreData] = field(default_factory=dict)


@dataclass
class EngineStats:
    """Counters for engine monitoring."""

    requests_total: int = 0
    cursor_steps_total: int = 0
    transactions_committed: int = 0
    transactions_aborted: int = 0


# -----------------------------------------------------------------------------
# Requests and cursors
# -----------------------------------------------------------------------------


class MemoryRequest:
    """A request whose outcome is delivered through callbacks."""

    def __init__(self, source: Any = None, transaction: MemoryTransaction | None = None) -> None:
        self.onsuccess: EventHandler | None = None
        self.onerror: EventHandler | None = None
        self.source = source
        self._transaction = transaction
        self._ready_state = ReadyState.PENDING
        self._result: Any = None
        self._error: EngineError | None = None

    @property
    def ready_state(self) -> ReadyState:
        return self._ready_state

    @property
    def result(self) -> Any:
        if self._ready_state is ReadyState.PENDING:
            raise InvalidStateError("The request has not finished")
        return self._result

    @property
    def error(self) -> EngineError | None:
        if self._ready_state is ReadyState.PENDING:
            raise InvalidStateError("The request has not finished")
        return self._error

    @property
    def transaction(self) -> MemoryTransaction | None:
        return self._transaction

    def _succeed(self, result: Any) -> BaseException | None:
        self._ready_state = ReadyState.DONE
        self._result = result
        self._error = None
        return _dispatch(self.onsuccess, EngineEvent("success", self))

    def _fail(self, error: EngineError) -> BaseException | None:
        self._ready_state = ReadyState.DONE
        self._result = None
        self._error = error
        return _dispatch(self.onerror, EngineEvent("error", self, error=error))


class MemoryOpenRequest(MemoryRequest):
    """Request returned by InMemoryEngine.open()."""

    def __init__(self, name: str, version: int | None) -> None:
        super().__init__()
        self.onupgradeneeded: EventHandler | None = None
        self.onblocked: EventHandler | None = None
        self.name = name
        self.version = version
        self._blocked_reported = False
        self._versionchange_sent = False


class MemoryCursor:
    """Cursor over one store within a transaction."""

    def __init__(
        self,
        store: MemoryObjectStore,
        request: MemoryRequest,
        key_range: KeyRange | None,
        direction: CursorDirection,
    ) -> None:
        self._store = store
        self._request = request
        self._range = key_range
        self._direction = direction
        self._key: Key | None = None
        self._value: Any = None
        self._got_value = False

    @property
    def key(self) -> Key:
        return self._key

    @property
    def primary_key(self) -> Key:
        return self._key

    @property
    def value(self) -> Any:
        return self._value

    @property
    def direction(self) -> CursorDirection:
        return self._direction

    def continue_(self, key: Key | None = None) -> None:
        if not self._got_value:
            raise InvalidStateError("The cursor is advancing or exhausted")
        if key is not None:
            key = _as_key(key)
            current = key_sort_value(self._key)
            target = key_sort_value(key)
            if self._direction is CursorDirection.NEXT and target <= current:
                raise DataError(f"Key {key!r} is not after the cursor position")
            if self._direction is CursorDirection.PREV and target >= current:
                raise DataError(f"Key {key!r} is not before the cursor position")
        self._step(key if key is not None else self._key, inclusive=key is not None)

    def advance(self, count: int) -> None:
        if count <= 0:
            raise TypeError("count must be a positive integer")
        if not self._got_value:
            raise InvalidStateError("The cursor is advancing or exhausted")

        def locate(data: _StoreData) -> int | None:
            index = data.seek(self._range, self._direction, self._key, inclusive=False)
            if index is None:
                return None
            if self._direction is CursorDirection.NEXT:
                index += count - 1
                return index if index < data.bounds(self._range)[1] else None
            index -= count - 1
            return index if index >= data.bounds(self._range)[0] else None

        self._schedule(locate)

    def _step(self, target: Key | None, inclusive: bool) -> None:
        def locate(data: _StoreData) -> int | None:
            return data.seek(self._range, self._direction, target, inclusive)

        self._schedule(locate)

    def _schedule(self, locate: Callable[[_StoreData], int | None]) -> None:
        self._got_value = False
        self._request._ready_state = ReadyState.PENDING

        def execute() -> MemoryCursor | None:
            data = self._store._data()
            index = locate(data)
            if index is None:
                self._key, self._value = None, None
                return None
            self._key = data.keys[index]
            self._value = copy.deepcopy(data.records[self._key])
            self._got_value = True
            self._store._transaction._engine.stats.cursor_steps_total += 1
            return self

        self._store._transaction._issue(self._request, execute)


# -----------------------------------------------------------------------------
# Stores and transactions
# -----------------------------------------------------------------------------


class MemoryObjectStore:
    """Store handle scoped to one transaction."""

    def __init__(self, transaction: MemoryTransaction, name: str) -> None:
        self._transaction = transaction
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def options(self) -> StoreOptions:
        return self._data().options

    def _data(self) -> _StoreData:
        data = self._transaction._database.stores.get(self._name)
        if data is None:
            raise InvalidStateError(f'Store "{self._name}" has been deleted')
        return data

    def _require_writable(self) -> None:
        if not self._transaction.mode.is_writable():
            raise ReadOnlyError(f'Cannot modify "{self._name}" in a read-only transaction')

    def _write(self, record: Any, overwrite: bool) -> MemoryRequest:
        self._require_writable()
        options = self.options
        value = copy.deepcopy(record)
        try:
            key = options.extract_key(value)
        except InvalidKeyError as e:
            raise DataError(str(e)) from e
        if key is None and not options.auto_increment:
            raise DataError(
                f'Record has no key at path "{options.key_path}" in store "{self._name}"'
            )

        def execute() -> Key:
            data = self._data()
            record_key = key
            if record_key is None:
                record_key = data.generate_key()
                if options.key_path is not None:
                    options.inject_key(value, record_key)
            elif options.auto_increment:
                data.observe_key(record_key)
            data.write(record_key, value, overwrite)
            return record_key

        return self._request(execute)

    def _request(self, execute: Callable[[], Any]) -> MemoryRequest:
        request = MemoryRequest(source=self, transaction=self._transaction)
        self._transaction._issue(request, execute)
        return request

    def add(self, record: Any) -> MemoryRequest:
        return self._write(record, overwrite=False)

    def put(self, record: Any) -> MemoryRequest:
        return self._write(record, overwrite=True)

    def delete(self, key: Key | KeyRange) -> MemoryRequest:
        self._require_writable()
        key_range = key if isinstance(key, KeyRange) else KeyRange.only(_as_key(key))
        return self._request(lambda: self._data().remove(key_range))

    def clear(self) -> MemoryRequest:
        self._require_writable()
        return self._request(lambda: self._data().clear())

    def get(self, key: Key | KeyRange) -> MemoryRequest:
        key_range = key if isinstance(key, KeyRange) else KeyRange.only(_as_key(key))

        def execute() -> Any:
            data = self._data()
            start, end = data.bounds(key_range)
            if start >= end:
                return None
            return copy.deepcopy(data.records[data.keys[start]])

        return self._request(execute)

    def get_all(self, key_range: KeyRange | None = None, count: int | None = None) -> MemoryRequest:
        def execute() -> list[Any]:
            data = self._data()
            start, end = data.bounds(key_range)
            if count is not None:
                end = min(end, start + count)
            return [copy.deepcopy(data.records[key]) for key in data.keys[start:end]]

        return self._request(execute)

    def count(self, key_range: KeyRange | None = None) -> MemoryRequest:
        def execute() -> int:
            start, end = self._data().bounds(key_range)
            return end - start

        return self._request(execute)

    def open_cursor(
        self,
        key_range: KeyRange | None = None,
        direction: CursorDirection = CursorDirection.NEXT,
    ) -> MemoryRequest:
        request = MemoryRequest(source=self, transaction=self._transaction)
        cursor = MemoryCursor(self, request, key_range, CursorDirection(direction))
        cursor._step(None, inclusive=True)
        return request


class MemoryTransaction:
    """A transaction over a set of stores.

    Requests are queued in issue order and executed one per loop iteration
    once the transaction is scheduled. The transaction commits when its
    queue drains, including requests issued from success callbacks.
    """

    def __init__(
        self,
        engine: InMemoryEngine,
        connection: MemoryConnection,
        scope: list[str],
        mode: TransactionMode,
    ) -> None:
        self.oncomplete: EventHandler | None = None
        self.onerror: EventHandler | None = None
        self.onabort: EventHandler | None = None
        self._engine = engine
        self._connection = connection
        self._database = engine._databases[connection.name]
        self._scope = scope
        self._mode = mode
        self._state = TransactionState.PENDING
        self._error: EngineError | None = None
        self._queue: deque[tuple[MemoryRequest, Callable[[], Any]]] = deque()
        self._pump_scheduled = False
        self._snapshots: dict[str, _StoreSnapshot] = {}
        self._on_finish: Callable[[MemoryTransaction], None] | None = None

    @property
    def mode(self) -> TransactionMode:
        return self._mode

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def error(self) -> EngineError | None:
        return self._error

    @property
    def scope(self) -> list[str]:
        return list(self._scope)

    @property
    def connection(self) -> MemoryConnection:
        return self._connection

    def object_store(self, name: str) -> MemoryObjectStore:
        if self._state.is_terminal():
            raise InvalidStateError("The transaction has finished")
        if self._mode is not TransactionMode.VERSION_CHANGE and name not in self._scope:
            raise NotFoundError(f'Store "{name}" is not in the transaction scope')
        if name not in self._database.stores:
            raise NotFoundError(f'Store "{name}" was not found')
        return MemoryObjectStore(self, name)

    def abort(self) -> None:
        if self._state.is_terminal():
            raise InvalidStateError("The transaction has already finished")
        self._abort(None)

    def overlaps(self, other: MemoryTransaction) -> bool:
        """Check if the two transactions must not run concurrently."""
        if TransactionMode.VERSION_CHANGE in (self._mode, other._mode):
            return True
        if not (self._mode.is_writable() or other._mode.is_writable()):
            return False
        return bool(set(self._scope) & set(other._scope))

    def _issue(self, request: MemoryRequest, execute: Callable[[], Any]) -> None:
        if self._state.is_terminal():
            raise TransactionInactiveError("The transaction has finished")
        self._engine.stats.requests_total += 1
        self._queue.append((request, execute))
        if self._state is TransactionState.ACTIVE:
            self._schedule_pump()

    def _start(self) -> None:
        if self._state is not TransactionState.PENDING:
            return
        self._state = TransactionState.ACTIVE
        if self._mode is TransactionMode.READ_WRITE:
            for name in self._scope:
                data = self._database.stores.get(name)
                if data is not None:
                    self._snapshots[name] = data.snapshot()
        self._schedule_pump()

    def _schedule_pump(self) -> None:
        if not self._pump_scheduled:
            self._pump_scheduled = True
            asyncio.get_running_loop().call_soon(self._pump)

    def _pump(self) -> None:
        self._pump_scheduled = False
        if self._state is not TransactionState.ACTIVE:
            return
        if not self._queue:
            self._commit()
            return

        request, execute = self._queue.popleft()
        try:
            result = execute()
        except EngineError as e:
            request._fail(e)
            self._abort(e)
            return

        failure = request._succeed(result)
        if failure is not None and self._state is TransactionState.ACTIVE:
            error = AbortError("A request callback raised an exception")
            error.__cause__ = failure
            self._abort(error)
            return
        self._schedule_pump()

    def _commit(self) -> None:
        self._state = TransactionState.COMMITTED
        self._snapshots.clear()
        self._engine.stats.transactions_committed += 1
        logger.debug(
            "engine_transaction_committed",
            database=self._database.name,
            scope=self._scope,
            mode=self._mode.value,
        )
        _dispatch(self.oncomplete, EngineEvent("complete", self))
        self._finish()

    def _abort(self, error: EngineError | None) -> None:
        """Roll back and notify. ``error`` None marks an explicit abort."""
        self._state = TransactionState.ABORTED
        self._error = error
        self._rollback()
        self._engine.stats.transactions_aborted += 1

        pending, self._queue = self._queue, deque()
        for request, _ in pending:
            request._fail(AbortError("The transaction was aborted"))

        logger.debug(
            "engine_transaction_aborted",
            database=self._database.name,
            scope=self._scope,
            mode=self._mode.value,
            error=repr(error),
        )
        if error is not None:
            _dispatch(self.onerror, EngineEvent("error", self, error=error))
        _dispatch(
            self.onabort,
            EngineEvent("abort", self, error=error or AbortError("The transaction was aborted")),
        )
        self._finish()

    def _rollback(self) -> None:
        for name, snapshot in self._snapshots.items():
            data = self._database.stores.get(name)
            if data is not None:
                data.restore(snapshot)
        self._snapshots.clear()

    def _finish(self) -> None:
        if self._on_finish is not None:
            self._on_finish(self)
        self._engine._transaction_finished(self)


class _VersionChangeTransaction(MemoryTransaction):
    """Upgrade transaction; rolls back the whole schema on abort."""

    def __init__(
        self,
        engine: InMemoryEngine,
        connection: MemoryConnection,
        old_version: int,
        existed: bool,
    ) -> None:
        super().__init__(engine, connection, [], TransactionMode.VERSION_CHANGE)
        database = self._database
        self._old_version = old_version
        self._existed = existed
        self._old_stores = dict(database.stores)
        self._store_snapshots = {name: data.snapshot() for name, data in database.stores.items()}

    def _rollback(self) -> None:
        database = self._database
        database.version = self._old_version
        database.stores = self._old_stores
        for name, snapshot in self._store_snapshots.items():
            database.stores[name].restore(snapshot)
        self._connection._store_names = set(database.stores)
        if not self._existed:
            self._engine._databases.pop(database.name, None)


# -----------------------------------------------------------------------------
# Connections and engine
# -----------------------------------------------------------------------------


class MemoryConnection:
    """A connection to one version of a database."""

    def __init__(self, engine: InMemoryEngine, name: str, version: int) -> None:
        self.onversionchange: EventHandler | None = None
        self._engine = engine
        self._name = name
        self._version = DatabaseVersion(version)
        self._store_names: set[str] = set(engine._databases[name].stores)
        self._upgrade: _VersionChangeTransaction | None = None
        self._close_pending = False
        self._closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def version(self) -> DatabaseVersion:
        return self._version

    @property
    def store_names(self) -> list[str]:
        return sorted(self._store_names)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def close_pending(self) -> bool:
        return self._close_pending

    def transaction(
        self,
        store_names: str | list[str],
        mode: TransactionMode = TransactionMode.READ_ONLY,
    ) -> MemoryTransaction:
        if self._close_pending:
            raise InvalidStateError("The connection is closing")
        if self._upgrade is not None:
            raise InvalidStateError("A version change transaction is running")
        mode = TransactionMode(mode)
        if mode is TransactionMode.VERSION_CHANGE:
            raise TypeError("Version change transactions are created by open()")

        scope = [store_names] if isinstance(store_names, str) else list(store_names)
        if not scope:
            raise InvalidStateError("The transaction scope is empty")
        for name in scope:
            if name not in self._store_names:
                raise NotFoundError(f'Store "{name}" was not found')

        txn = MemoryTransaction(self._engine, self, sorted(set(scope)), mode)
        self._engine._enqueue_transaction(txn)
        return txn

    def create_store(self, name: str, options: StoreOptions | None = None) -> MemoryObjectStore:
        upgrade = self._require_upgrade()
        database = self._engine._databases[self._name]
        if name in database.stores:
            raise ConstraintError(f'Store "{name}" already exists')
        database.stores[name] = _StoreData(options=options or StoreOptions())
        self._store_names.add(name)
        logger.debug("engine_store_created", database=self._name, store=name)
        return MemoryObjectStore(upgrade, name)

    def delete_store(self, name: str) -> None:
        self._require_upgrade()
        database = self._engine._databases[self._name]
        if name not in database.stores:
            raise NotFoundError(f'Store "{name}" was not found')
        del database.stores[name]
        self._store_names.discard(name)
        logger.debug("engine_store_deleted", database=self._name, store=name)

    def close(self) -> None:
        if self._close_pending:
            return
        self._close_pending = True
        self._engine._connection_closing(self)

    def _require_upgrade(self) -> _VersionChangeTransaction:
        if self._upgrade is None or self._upgrade.state.is_terminal():
            raise InvalidStateError("Schema changes are only allowed during an upgrade")
        return self._upgrade


class InMemoryEngine:
    """Process-local implementation of the KVEngine port.

    Thread Safety:
        Not thread-safe. All calls must come from the thread running the
        event loop that delivers the engine's callbacks.
    """

    def __init__(self) -> None:
        self._databases: dict[str, _DatabaseState] = {}
        self._connections: dict[str, list[MemoryConnection]] = {}
        self._transactions: dict[str, list[MemoryTransaction]] = {}
        self._open_queues: dict[str, deque[MemoryOpenRequest]] = {}
        self._upgrading: set[str] = set()
        self.stats = EngineStats()

    def database_names(self) -> list[str]:
        return sorted(name for name, db in self._databases.items() if db.version > NO_VERSION)

    def open(self, name: str, version: int | None = None) -> MemoryOpenRequest:
        if version is not None and (
            isinstance(version, bool) or not isinstance(version, int) or version < 1
        ):
            raise TypeError(f"Version must be a positive integer, got {version!r}")

        request = MemoryOpenRequest(name, version)
        self._open_queues.setdefault(name, deque()).append(request)
        asyncio.get_running_loop().call_soon(self._process_opens, name)
        return request

    # -- open queue ---------------------------------------------------------

    def _process_opens(self, name: str) -> None:
        queue = self._open_queues.get(name)
        while queue and name not in self._upgrading:
            request = queue[0]
            database = self._databases.get(name)
            stored = database.version if database is not None else NO_VERSION
            requested = request.version or max(stored, 1)

            if requested < stored:
                queue.popleft()
                request._fail(
                    VersionError(
                        f'Requested version {requested} of "{name}" is lower '
                        f"than the stored version {stored}"
                    )
                )
                continue

            if requested == stored:
                queue.popleft()
                connection = MemoryConnection(self, name, stored)
                self._connections.setdefault(name, []).append(connection)
                logger.debug("engine_connection_opened", database=name, version=stored)
                request._succeed(connection)
                continue

            if self._is_blocked(request, stored, requested):
                return

            queue.popleft()
            self._run_upgrade(request, stored, requested)

    def _is_blocked(self, request: MemoryOpenRequest, stored: int, requested: int) -> bool:
        """Notify other connections and report whether the upgrade must wait."""
        others = [c for c in self._connections.get(request.name, []) if not c.closed]
        if not request._versionchange_sent:
            request._versionchange_sent = True
            for connection in others:
                if connection.close_pending:
                    continue
                _dispatch(
                    connection.onversionchange,
                    EngineEvent(
                        "versionchange",
                        connection,
                        old_version=stored,
                        new_version=requested,
                    ),
                )

        still_open = [c for c in others if not c.close_pending]
        if still_open and not request._blocked_reported:
            request._blocked_reported = True
            logger.info(
                "engine_open_blocked",
                database=request.name,
                open_connections=len(still_open),
            )
            _dispatch(
                request.onblocked,
                EngineEvent("blocked", request, old_version=stored, new_version=requested),
            )
        return bool(still_open) or bool(self._transactions.get(request.name))

    def _run_upgrade(self, request: MemoryOpenRequest, stored: int, requested: int) -> None:
        name = request.name
        existed = name in self._databases
        database = self._databases.setdefault(name, _DatabaseState(name=name))
        self._upgrading.add(name)

        connection = MemoryConnection(self, name, requested)
        upgrade = _VersionChangeTransaction(self, connection, stored, existed)
        connection._upgrade = upgrade
        database.version = requested
        self._connections.setdefault(name, []).append(connection)

        def finished(txn: MemoryTransaction) -> None:
            connection._upgrade = None
            request._transaction = None
            self._upgrading.discard(name)
            if txn.state is TransactionState.COMMITTED:
                logger.info(
                    "engine_database_upgraded",
                    database=name,
                    old_version=stored,
                    new_version=requested,
                )
                request._succeed(connection)
            else:
                connection._version = DatabaseVersion(stored)
                connection._close_pending = True
                connection._closed = True
                self._connections[name].remove(connection)
                request._fail(txn.error or AbortError("The upgrade was aborted"))

        upgrade._on_finish = finished
        self._transactions.setdefault(name, []).append(upgrade)

        request._ready_state = ReadyState.DONE
        request._result = connection
        request._transaction = upgrade
        failure = _dispatch(
            request.onupgradeneeded,
            EngineEvent("upgradeneeded", request, old_version=stored, new_version=requested),
        )
        if failure is not None:
            error = AbortError("The upgrade callback raised an exception")
            error.__cause__ = failure
            upgrade._abort(error)
            return
        if upgrade.state is TransactionState.PENDING:
            upgrade._start()

    # -- transactions -------------------------------------------------------

    def _enqueue_transaction(self, txn: MemoryTransaction) -> None:
        running = self._transactions.setdefault(txn.connection.name, [])
        running.append(txn)
        asyncio.get_running_loop().call_soon(self._schedule_transactions, txn.connection.name)

    def _schedule_transactions(self, name: str) -> None:
        running = self._transactions.get(name, [])
        for index, txn in enumerate(running):
            if txn.state is not TransactionState.PENDING:
                continue
            if not any(earlier.overlaps(txn) for earlier in running[:index]):
                txn._start()

    def _transaction_finished(self, txn: MemoryTransaction) -> None:
        name = txn.connection.name
        running = self._transactions.get(name, [])
        if txn in running:
            running.remove(txn)
        if not running:
            self._transactions.pop(name, None)

        connection = txn.connection
        if connection.close_pending and not connection.closed:
            self._connection_closing(connection)

        loop = asyncio.get_running_loop()
        loop.call_soon(self._schedule_transactions, name)
        loop.call_soon(self._process_opens, name)

    def _connection_closing(self, connection: MemoryConnection) -> None:
        running = self._transactions.get(connection.name, [])
        if any(txn.connection is connection for txn in running):
            return
        connection._closed = True
        connections = self._connections.get(connection.name, [])
        if connection in connections:
            connections.remove(connection)
        logger.debug("engine_connection_closed", database=connection.name)
        asyncio.get_running_loop().call_soon(self._process_opens, connection.name)
