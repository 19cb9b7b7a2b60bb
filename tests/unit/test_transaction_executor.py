"""Unit tests for TransactionExecutor."""

from __future__ import annotations

from types import SimpleNamespace
from typing import AsyncGenerator
from unittest.mock import Mock

import pytest
from prometheus_client import CollectorRegistry

from recordstore.adapters.outbound.memory_engine import InMemoryEngine
from recordstore.application.connection_manager import ConnectionManager
from recordstore.application.transaction_executor import (
    TransactionExecutor,
    TransactionOptions,
)
from recordstore.domain.value_objects import TransactionMode
from recordstore.infrastructure.metrics import MetricsRegistry
from recordstore.ports.inbound.database import RejectedValue
from recordstore.ports.outbound.kv_engine import (
    ConstraintError,
    DataError,
    EngineEvent,
    NotFoundError,
)


@pytest.fixture
def owner() -> SimpleNamespace:
    return SimpleNamespace(name="unit", onerror=None)


@pytest.fixture
async def connections(
    owner: SimpleNamespace, engine: InMemoryEngine
) -> AsyncGenerator[ConnectionManager, None]:
    manager = ConnectionManager(owner, engine)
    await manager.open(1, lambda schema: schema.create_store("items"))
    yield manager
    manager.close()


@pytest.fixture
def executor(
    owner: SimpleNamespace,
    connections: ConnectionManager,
    metrics_registry: MetricsRegistry,
) -> TransactionExecutor:
    return TransactionExecutor(owner, connections, metrics_registry)


def writer(*records: dict):
    def execute(store) -> None:
        for record in records:
            store.add(record)

    return execute


@pytest.mark.unit
class TestTransact:
    """Tests for settling a transaction."""

    async def test_commit_resolves_with_result(self, executor: TransactionExecutor) -> None:
        options = TransactionOptions("items", TransactionMode.READ_WRITE, result="done")

        assert await executor.transact(options, writer({"id": 1})) == "done"

    async def test_result_set_by_request_callback(self, executor: TransactionExecutor) -> None:
        await executor.transact(
            TransactionOptions("items", TransactionMode.READ_WRITE), writer({"id": 1, "v": "a"})
        )
        options = TransactionOptions("items")

        def read(store) -> None:
            request = store.get(1)

            def on_success(event: EngineEvent) -> None:
                options.result = request.result

            request.onsuccess = on_success

        assert await executor.transact(options, read) == {"id": 1, "v": "a"}

    async def test_failed_request_rejects(self, executor: TransactionExecutor) -> None:
        options = TransactionOptions("items", TransactionMode.READ_WRITE)

        with pytest.raises(ConstraintError):
            await executor.transact(options, writer({"id": 1}, {"id": 1}))

        stats = executor.get_stats()
        assert stats.aborted_total == 1
        assert stats.committed_total == 0
        assert stats.active_count == 0

    async def test_hook_replaces_error(
        self, executor: TransactionExecutor, owner: SimpleNamespace
    ) -> None:
        hook = Mock(return_value=0)
        owner.onerror = hook
        options = TransactionOptions("items", TransactionMode.READ_WRITE)

        with pytest.raises(RejectedValue) as exc_info:
            await executor.transact(options, writer({"id": 1}, {"id": 1}))

        assert exc_info.value.value == 0
        hook.assert_called_once()
        assert isinstance(hook.call_args.args[0], ConstraintError)

    async def test_synchronous_engine_error(
        self, executor: TransactionExecutor, engine: InMemoryEngine
    ) -> None:
        options = TransactionOptions("items", TransactionMode.READ_WRITE)

        with pytest.raises(DataError):
            await executor.transact(options, writer({"id": 1}, {"v": "no key"}))

        assert engine.stats.transactions_aborted == 1

    async def test_other_exceptions_skip_hook(
        self, executor: TransactionExecutor, owner: SimpleNamespace
    ) -> None:
        hook = Mock(return_value="mapped")
        owner.onerror = hook

        def execute(store) -> None:
            raise ValueError("not an engine error")

        with pytest.raises(ValueError):
            await executor.transact(TransactionOptions("items"), execute)
        hook.assert_not_called()

    async def test_missing_store(
        self, executor: TransactionExecutor, owner: SimpleNamespace
    ) -> None:
        with pytest.raises(NotFoundError):
            await executor.transact(TransactionOptions("nope"), lambda store: None)

        owner.onerror = lambda error: KeyError("mapped")
        with pytest.raises(KeyError):
            await executor.transact(TransactionOptions("nope"), lambda store: None)

    async def test_not_open(self, owner: SimpleNamespace, engine: InMemoryEngine) -> None:
        executor = TransactionExecutor(owner, ConnectionManager(owner, engine))

        with pytest.raises(RuntimeError):
            await executor.transact(TransactionOptions("items"), lambda store: None)


@pytest.mark.unit
class TestTransactMetrics:
    """Tests for transaction metrics."""

    async def test_counts_commit_and_abort(
        self, executor: TransactionExecutor, collector_registry: CollectorRegistry
    ) -> None:
        options = TransactionOptions("items", TransactionMode.READ_WRITE)
        await executor.transact(options, writer({"id": 1}))
        with pytest.raises(ConstraintError):
            await executor.transact(options, writer({"id": 1}))

        def sample(status: str) -> float | None:
            return collector_registry.get_sample_value(
                "recordstore_transactions_total",
                {"store": "items", "mode": "readwrite", "status": status},
            )

        assert sample("commit") == 1
        assert sample("abort") == 1
        assert collector_registry.get_sample_value("recordstore_transactions_active") == 0
        assert executor.get_stats().committed_total == 1
