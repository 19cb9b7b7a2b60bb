"""Database handle - unified entry point for recordstore.

The Database class composes the connection manager, store manager,
transaction executor, record mutator and batch retrieval into one handle
bound to a named database.

Usage:
    from recordstore import open_database

    db = await open_database("app")

    await db.add("items", [{"id": 3, "v": "c"}, {"id": 1, "v": "a"}])
    await db.get("items", [1, 3])      # [{"id": 1, ...}, {"id": 3, ...}]
    await db.put("items", {"id": 1, "v": "A"})
    await db.delete("items", 3)
    await db.delete("items")           # drops the store

    db.close()
"""

from __future__ import annotations

from typing import Any, Callable

from recordstore.application.batch_retrieval import BatchRetrieval
from recordstore.application.connection_manager import ConnectionManager, UpgradeCallback
from recordstore.application.record_mutator import RecordMutator
from recordstore.application.store_manager import StoreManager
from recordstore.application.transaction_executor import TransactionExecutor
from recordstore.domain.entities import StoreOptions
from recordstore.domain.value_objects import DatabaseVersion, Key
from recordstore.infrastructure.config import Config
from recordstore.infrastructure.container import get_container
from recordstore.infrastructure.metrics import MetricsRegistry
from recordstore.ports.inbound.database import ErrorHook
from recordstore.ports.outbound.kv_engine import KVEngine


class Database:
    """Awaitable handle over one named database.

    The handle owns at most one live engine connection. Store changes
    reopen it at the next version; record operations each run in a single
    engine transaction. Engine failures pass through ``onerror`` before
    they are raised.

    Concurrency:
        Handles are bound to the event loop that opened them. Operations
        issued while an open or upgrade is in flight wait for it to settle,
        so store changes made through one handle are serialized. Two handles
        on the same database are not coordinated: an upgrade through one
        closes the other's connection, and two handles adding different
        stores at once can compute the same target version, in which case
        the later change finds no upgrade to run and is skipped.
    """

    def __init__(
        self,
        name: str,
        engine: KVEngine | None = None,
        *,
        onerror: ErrorHook | None = None,
        config: Config | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the handle without opening it.

        Args:
            name: Database name.
            engine: Host engine. Defaults to the container's engine.
            onerror: Error transform hook.
            config: Configuration. Defaults to the container's config.
            metrics: Metrics registry. Defaults to the container's registry
                when metrics are enabled.
        """
        container = get_container()
        self.name = name
        self.onerror: ErrorHook | None = onerror
        self._config = config or container.config
        if metrics is None and self._config.observability.metrics_enabled:
            metrics = container.metrics

        defaults = StoreOptions(
            key_path=self._config.database.default_key_path,
            auto_increment=self._config.database.auto_increment,
        )
        self._connections = ConnectionManager(self, engine or container.engine, metrics)
        self._stores = StoreManager(self._connections, defaults, database=name)
        self._executor = TransactionExecutor(self, self._connections, metrics)
        self._records = RecordMutator(self._stores, self._executor)
        self._retrieval = BatchRetrieval(self, self._stores, self._executor, metrics)

    # -- connection ---------------------------------------------------------

    async def open(
        self,
        version: int | None = None,
        upgrade: UpgradeCallback | None = None,
    ) -> Database:
        """Open or reopen the connection, upgrading when ``version`` is higher."""
        return await self._connections.open(version, upgrade)

    def close(self) -> None:
        """Close the live connection."""
        self._connections.close()

    @property
    def is_open(self) -> bool:
        """Check if the handle holds a live connection."""
        return self._connections.connection is not None

    @property
    def version(self) -> DatabaseVersion | None:
        """Return the version of the live connection."""
        return self._connections.version

    # -- stores -------------------------------------------------------------

    @property
    def stores(self) -> list[str]:
        """Return the store names."""
        return self._stores.stores

    def has_store(self, name: str) -> bool:
        """Check if a store exists."""
        return self._stores.has_store(name)

    async def add_store(self, name: str, options: StoreOptions | None = None) -> None:
        """Create a store unless it exists."""
        await self._stores.add_store(name, options)

    async def delete_store(self, name: str) -> None:
        """Delete a store if it exists."""
        await self._stores.delete_store(name)

    # -- records ------------------------------------------------------------

    async def add(self, name: str, records: Any) -> Any:
        """Insert record(s), creating the store if needed."""
        return await self._records.add(name, records)

    async def put(self, name: str, records: Any) -> Any:
        """Insert or overwrite record(s) in an existing store."""
        return await self._records.put(name, records)

    async def delete(self, name: str, ids: Key | list[Key] | None = None) -> Any:
        """Delete record(s), or the whole store when ``ids`` is None."""
        return await self._records.delete(name, ids)

    async def get(self, name: str, ids: Key | list[Key] | None = None) -> Any:
        """Read all records, one record, or a batch in request order."""
        return await self._retrieval.get(name, ids)

    # -- monitoring ---------------------------------------------------------

    def get_stats(self) -> dict:
        """Get handle statistics.

        Returns:
            Dictionary with connection and transaction statistics.
        """
        txn_stats = self._executor.get_stats()
        return {
            "name": self.name,
            "open": self.is_open,
            "version": self.version,
            "stores": self.stores if self.is_open else [],
            "transactions": {
                "active": txn_stats.active_count,
                "committed": txn_stats.committed_total,
                "aborted": txn_stats.aborted_total,
            },
        }

    async def __aenter__(self) -> Database:
        """Async context manager entry."""
        if not self.is_open:
            await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        self.close()


async def open_database(
    name: str,
    engine: KVEngine | None = None,
    *,
    version: int | None = None,
    onerror: ErrorHook | None = None,
    upgrade: Callable[[Any], Any] | None = None,
) -> Database:
    """Create a handle for ``name`` and open it.

    Args:
        name: Database name.
        engine: Host engine. Defaults to the container's engine.
        version: Version to open at. Defaults to the configured initial
            version, or the stored version when none is configured.
        onerror: Error transform hook.
        upgrade: Upgrade callback for a version increase.

    Returns:
        The opened handle.
    """
    db = Database(name, engine, onerror=onerror)
    if version is None:
        version = db._config.database.initial_version
    return await db.open(version, upgrade)
