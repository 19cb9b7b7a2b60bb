"""Batch retrieval - get all records, one record, or many keys in one scan.

A list of keys is answered with a single bounded cursor scan rather than
one lookup per key (see recordstore.domain.services.cursor_scan). The
cursor is opened over [min, max] of the requested keys and jumps from one
requested key to the next, so the engine is asked for at most one cursor
step per distinct requested key however many records lie in between.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from recordstore.application.error_hook import transform_error
from recordstore.application.store_manager import StoreManager
from recordstore.application.transaction_executor import (
    TransactionExecutor,
    TransactionOptions,
)
from recordstore.domain.services import CursorScanState
from recordstore.domain.value_objects import InvalidKeyError, Key, TransactionMode
from recordstore.infrastructure.logging import get_logger
from recordstore.infrastructure.metrics import MetricsRegistry
from recordstore.ports.inbound.database import StoreNotFoundError
from recordstore.ports.outbound.kv_engine import DataError, EngineEvent, ObjectStore

if TYPE_CHECKING:
    from recordstore.application.database import Database


class BatchRetrieval:
    """Read path of a database handle."""

    def __init__(
        self,
        owner: Database,
        stores: StoreManager,
        executor: TransactionExecutor,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._owner = owner
        self._stores = stores
        self._executor = executor
        self._metrics = metrics
        self._logger = get_logger(__name__, database=owner.name)

    async def get(self, name: str, ids: Key | list[Key] | None = None) -> Any:
        """Read from store ``name``.

        Args:
            name: Store name.
            ids: None for every record, a key for one record, or a list of
                keys for a batch.

        Returns:
            All records in key order, the record (or None), or a list
            aligned with ``ids`` holding None where a key is absent.

        Raises:
            StoreNotFoundError: If the store does not exist.
        """
        if not await self._stores.exists(name):
            raise StoreNotFoundError(name)

        if ids is None:
            return await self._get_all(name)
        if isinstance(ids, list):
            return await self._get_many(name, ids)
        return await self._get_one(name, ids)

    async def _get_all(self, name: str) -> list[Any]:
        options = TransactionOptions(name=name, mode=TransactionMode.READ_ONLY)

        def read(store: ObjectStore) -> None:
            request = store.get_all()

            def on_success(event: EngineEvent) -> None:
                options.result = request.result

            request.onsuccess = on_success

        return await self._executor.transact(options, read)

    async def _get_one(self, name: str, key: Key) -> Any:
        options = TransactionOptions(name=name, mode=TransactionMode.READ_ONLY)

        def read(store: ObjectStore) -> None:
            request = store.get(key)

            def on_success(event: EngineEvent) -> None:
                options.result = request.result

            request.onsuccess = on_success

        return await self._executor.transact(options, read)

    async def _get_many(self, name: str, keys: list[Key]) -> list[Any]:
        try:
            state = CursorScanState.plan(keys)
        except InvalidKeyError as e:
            error = DataError(str(e))
            error.__cause__ = e
            raise transform_error(self._owner.onerror, error)

        if state.is_empty:
            return []

        options = TransactionOptions(
            name=name, mode=TransactionMode.READ_ONLY, result=state.results
        )

        def scan(store: ObjectStore) -> None:
            request = store.open_cursor(state.key_range)

            def on_success(event: EngineEvent) -> None:
                cursor = request.result
                if cursor is None:
                    return
                next_key = state.visit(cursor.key, cursor.value)
                if next_key is not None:
                    cursor.continue_(next_key)

            request.onsuccess = on_success

        results = await self._executor.transact(options, scan)

        if self._metrics is not None:
            self._metrics.batch_keys_requested_total.labels(store=name).inc(len(state.requested))
            self._metrics.batch_keys_found_total.labels(store=name).inc(state.found)
            self._metrics.cursor_steps_total.labels(store=name).inc(state.steps)
        self._logger.debug(
            "batch_get_completed",
            store=name,
            requested=len(state.requested),
            distinct=len(state.sorted_keys),
            found=state.found,
            cursor_steps=state.steps,
        )
        return results
