"""Unit tests for the in-memory engine adapter."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from recordstore.adapters.outbound.memory_engine import InMemoryEngine, MemoryConnection
from recordstore.domain.entities import StoreOptions
from recordstore.domain.value_objects import KeyRange, TransactionMode
from recordstore.ports.outbound.kv_engine import (
    AbortError,
    ConstraintError,
    CursorDirection,
    DataError,
    EngineEvent,
    InvalidStateError,
    NotFoundError,
    ReadOnlyError,
    VersionError,
)


async def settle(request: Any) -> Any:
    """Await the outcome of an engine request."""
    future = asyncio.get_running_loop().create_future()

    def on_success(event: EngineEvent) -> None:
        if not future.done():
            future.set_result(request.result)

    def on_error(event: EngineEvent) -> None:
        if not future.done():
            future.set_exception(request.error)

    request.onsuccess = on_success
    request.onerror = on_error
    return await future


async def finish(txn: Any) -> None:
    """Await the commit of a transaction, raising its error on abort."""
    future = asyncio.get_running_loop().create_future()

    def on_complete(event: EngineEvent) -> None:
        future.set_result(None)

    def on_abort(event: EngineEvent) -> None:
        future.set_exception(txn.error or event.error)

    txn.oncomplete = on_complete
    txn.onabort = on_abort
    await future


async def open_db(
    engine: InMemoryEngine,
    name: str = "db",
    version: int | None = None,
    upgrade: Callable[[MemoryConnection], Any] | None = None,
) -> MemoryConnection:
    request = engine.open(name, version)
    if upgrade is not None:
        request.onupgradeneeded = lambda event: upgrade(request.result)
    return await settle(request)


async def items_connection(engine: InMemoryEngine, **options: Any) -> MemoryConnection:
    return await open_db(
        engine, version=1, upgrade=lambda conn: conn.create_store("items", StoreOptions(**options))
    )


async def write(conn: MemoryConnection, records: list[dict]) -> None:
    txn = conn.transaction("items", TransactionMode.READ_WRITE)
    store = txn.object_store("items")
    for record in records:
        store.add(record)
    await finish(txn)


async def read(conn: MemoryConnection, call: Callable[[Any], Any]) -> Any:
    txn = conn.transaction("items")
    request = call(txn.object_store("items"))
    result, _ = await asyncio.gather(settle(request), finish(txn))
    return result


@pytest.mark.unit
class TestOpen:
    """Tests for opening and upgrading databases."""

    async def test_new_database_starts_at_version_one(self, engine: InMemoryEngine) -> None:
        events: list[EngineEvent] = []
        request = engine.open("db")
        request.onupgradeneeded = events.append

        conn = await settle(request)

        assert conn.version == 1
        assert events[0].old_version == 0
        assert events[0].new_version == 1
        assert engine.database_names() == ["db"]

    async def test_reopen_at_stored_version(self, engine: InMemoryEngine) -> None:
        first = await items_connection(engine)
        first.close()

        conn = await open_db(engine)

        assert conn.version == 1
        assert conn.store_names == ["items"]

    async def test_lower_version_fails(self, engine: InMemoryEngine) -> None:
        conn = await open_db(engine, version=3)
        conn.close()

        with pytest.raises(VersionError):
            await open_db(engine, version=2)

    @pytest.mark.parametrize("version", [0, -1, True, 1.5])
    async def test_invalid_version(self, engine: InMemoryEngine, version: Any) -> None:
        with pytest.raises(TypeError):
            engine.open("db", version)

    async def test_schema_changes_need_upgrade(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)

        with pytest.raises(InvalidStateError):
            conn.create_store("other")
        with pytest.raises(InvalidStateError):
            conn.delete_store("items")

    async def test_upgrade_deletes_store(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        conn.close()

        conn = await open_db(engine, version=2, upgrade=lambda c: c.delete_store("items"))

        assert conn.version == 2
        assert conn.store_names == []

    async def test_failing_upgrade_rolls_back(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        conn.close()

        def upgrade(schema: MemoryConnection) -> None:
            schema.create_store("other")
            raise RuntimeError("boom")

        with pytest.raises(AbortError) as exc_info:
            await open_db(engine, version=2, upgrade=upgrade)
        assert isinstance(exc_info.value.__cause__, RuntimeError)

        conn = await open_db(engine)
        assert conn.version == 1
        assert conn.store_names == ["items"]

    async def test_failed_creation_forgets_database(self, engine: InMemoryEngine) -> None:
        def upgrade(schema: MemoryConnection) -> None:
            raise RuntimeError("boom")

        with pytest.raises(AbortError):
            await open_db(engine, upgrade=upgrade)

        assert engine.database_names() == []

    async def test_versionchange_lets_upgrade_proceed(self, engine: InMemoryEngine) -> None:
        old = await items_connection(engine)
        notified: list[EngineEvent] = []

        def on_versionchange(event: EngineEvent) -> None:
            notified.append(event)
            old.close()

        old.onversionchange = on_versionchange

        conn = await open_db(engine, version=2)

        assert conn.version == 2
        assert notified[0].new_version == 2
        assert old.closed

    async def test_blocked_until_other_connection_closes(self, engine: InMemoryEngine) -> None:
        old = await items_connection(engine)
        blocked = asyncio.get_running_loop().create_future()

        request = engine.open("db", 2)
        request.onblocked = lambda event: blocked.set_result(event.new_version)
        pending = asyncio.ensure_future(settle(request))

        assert await blocked == 2
        assert not pending.done()

        old.close()
        conn = await pending
        assert conn.version == 2


@pytest.mark.unit
class TestTransactions:
    """Tests for requests and transactions."""

    async def test_add_and_get(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        await write(conn, [{"id": 2, "v": "b"}, {"id": 1, "v": "a"}])

        assert await read(conn, lambda store: store.get(2)) == {"id": 2, "v": "b"}
        assert await read(conn, lambda store: store.get(9)) is None
        assert await read(conn, lambda store: store.get_all()) == [
            {"id": 1, "v": "a"},
            {"id": 2, "v": "b"},
        ]
        assert await read(conn, lambda store: store.count()) == 2

    async def test_records_are_copied(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        record = {"id": 1, "tags": ["a"]}
        await write(conn, [record])
        record["tags"].append("b")

        stored = await read(conn, lambda store: store.get(1))
        stored["tags"].append("c")

        assert await read(conn, lambda store: store.get(1)) == {"id": 1, "tags": ["a"]}

    async def test_duplicate_add_rolls_back(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        await write(conn, [{"id": 1}])

        with pytest.raises(ConstraintError):
            await write(conn, [{"id": 2}, {"id": 1}])

        assert await read(conn, lambda store: store.get_all()) == [{"id": 1}]
        assert engine.stats.transactions_aborted == 1

    async def test_put_overwrites(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        await write(conn, [{"id": 1, "v": "a"}])

        txn = conn.transaction("items", TransactionMode.READ_WRITE)
        txn.object_store("items").put({"id": 1, "v": "b"})
        await finish(txn)

        assert await read(conn, lambda store: store.get(1)) == {"id": 1, "v": "b"}

    async def test_delete_range(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        await write(conn, [{"id": i} for i in range(1, 6)])

        txn = conn.transaction("items", TransactionMode.READ_WRITE)
        txn.object_store("items").delete(KeyRange.bound(2, 4))
        await finish(txn)

        assert await read(conn, lambda store: store.get_all()) == [{"id": 1}, {"id": 5}]

    async def test_read_only_rejects_writes(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        txn = conn.transaction("items")

        with pytest.raises(ReadOnlyError):
            txn.object_store("items").add({"id": 1})

    async def test_record_without_key(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        txn = conn.transaction("items", TransactionMode.READ_WRITE)

        with pytest.raises(DataError):
            txn.object_store("items").add({"v": 1})
        with pytest.raises(DataError):
            txn.object_store("items").get(True)

    async def test_auto_increment(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine, auto_increment=True)
        await write(conn, [{"v": "a"}, {"id": 10, "v": "b"}, {"v": "c"}])

        assert await read(conn, lambda store: store.get_all()) == [
            {"v": "a", "id": 1},
            {"id": 10, "v": "b"},
            {"v": "c", "id": 11},
        ]

    async def test_missing_store(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)

        with pytest.raises(NotFoundError):
            conn.transaction("nope")

    async def test_explicit_abort(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        errors: list[EngineEvent] = []
        aborts: list[EngineEvent] = []

        txn = conn.transaction("items", TransactionMode.READ_WRITE)
        txn.object_store("items").add({"id": 1})
        txn.onerror = errors.append
        txn.onabort = aborts.append
        txn.abort()

        assert errors == []
        assert isinstance(aborts[0].error, AbortError)
        assert txn.error is None
        assert await read(conn, lambda store: store.count()) == 0

    async def test_closing_connection_finishes_running_work(
        self, engine: InMemoryEngine
    ) -> None:
        conn = await items_connection(engine)
        txn = conn.transaction("items", TransactionMode.READ_WRITE)
        txn.object_store("items").add({"id": 1})
        conn.close()

        await finish(txn)

        assert conn.closed
        with pytest.raises(InvalidStateError):
            conn.transaction("items")


@pytest.mark.unit
class TestCursor:
    """Tests for cursor iteration."""

    async def scan(
        self,
        conn: MemoryConnection,
        key_range: KeyRange,
        step: Callable,
        direction: CursorDirection = CursorDirection.NEXT,
    ) -> list:
        visited: list = []
        done = asyncio.get_running_loop().create_future()
        txn = conn.transaction("items")
        request = txn.object_store("items").open_cursor(key_range, direction)

        def on_success(event: EngineEvent) -> None:
            cursor = request.result
            if cursor is None:
                return
            visited.append(cursor.key)
            step(cursor)

        request.onsuccess = on_success
        txn.oncomplete = lambda event: done.set_result(None)
        await done
        return visited

    async def test_iterates_range_in_order(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        await write(conn, [{"id": i} for i in (5, 3, 9, 1, 7)])

        visited = await self.scan(conn, KeyRange.bound(3, 7), lambda c: c.continue_())

        assert visited == [3, 5, 7]

    async def test_continue_to_key_skips_records(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        await write(conn, [{"id": i} for i in range(1, 51)])
        before = engine.stats.cursor_steps_total

        def jump(cursor: Any) -> None:
            if cursor.key < 40:
                cursor.continue_(cursor.key + 20)

        visited = await self.scan(conn, KeyRange.bound(1, 50), jump)

        assert visited == [1, 21, 41]
        assert engine.stats.cursor_steps_total - before == 3

    async def test_continue_backwards_rejected(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        await write(conn, [{"id": 1}, {"id": 2}])
        failure = asyncio.get_running_loop().create_future()

        txn = conn.transaction("items")
        request = txn.object_store("items").open_cursor()

        def on_success(event: EngineEvent) -> None:
            try:
                request.result.continue_(request.result.key)
            except DataError as e:
                failure.set_result(e)

        request.onsuccess = on_success

        assert isinstance(await failure, DataError)

    async def test_advance_skips_records(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        await write(conn, [{"id": i} for i in range(1, 8)])

        visited = await self.scan(conn, KeyRange.lower_bound(1), lambda c: c.advance(3))

        assert visited == [1, 4, 7]

    async def test_reverse_scan(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        await write(conn, [{"id": i} for i in (5, 3, 9, 1, 7)])

        visited = await self.scan(
            conn, KeyRange.bound(3, 7), lambda c: c.continue_(), CursorDirection.PREV
        )

        assert visited == [7, 5, 3]

    async def test_reverse_continue_to_key(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        await write(conn, [{"id": i} for i in range(1, 11)])

        def jump(cursor: Any) -> None:
            if cursor.key > 4:
                cursor.continue_(cursor.key - 4)

        visited = await self.scan(conn, KeyRange.lower_bound(1), jump, CursorDirection.PREV)

        assert visited == [10, 6, 2]

    async def test_reverse_advance(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        await write(conn, [{"id": i} for i in range(1, 8)])

        visited = await self.scan(
            conn, KeyRange.lower_bound(1), lambda c: c.advance(3), CursorDirection.PREV
        )

        assert visited == [7, 4, 1]

    async def test_reverse_continue_forwards_rejected(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        await write(conn, [{"id": 1}, {"id": 2}])
        failure = asyncio.get_running_loop().create_future()

        txn = conn.transaction("items")
        request = txn.object_store("items").open_cursor(None, CursorDirection.PREV)

        def on_success(event: EngineEvent) -> None:
            try:
                request.result.continue_(2)
            except DataError as e:
                failure.set_result(e)

        request.onsuccess = on_success

        assert isinstance(await failure, DataError)

    async def test_clear(self, engine: InMemoryEngine) -> None:
        conn = await items_connection(engine)
        await write(conn, [{"id": 1}, {"id": 2}])

        txn = conn.transaction("items", TransactionMode.READ_WRITE)
        txn.object_store("items").clear()
        await finish(txn)

        assert await read(conn, lambda store: store.count()) == 0
