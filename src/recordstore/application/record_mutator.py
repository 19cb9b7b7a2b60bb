"""Record mutator - add, put and delete in one read-write transaction."""

from __future__ import annotations

from typing import Any

from recordstore.application.store_manager import StoreManager
from recordstore.application.transaction_executor import (
    TransactionExecutor,
    TransactionOptions,
)
from recordstore.domain.value_objects import Key, TransactionMode
from recordstore.ports.inbound.database import StoreNotFoundError
from recordstore.ports.outbound.kv_engine import ObjectStore


def as_list(items: Any) -> list[Any]:
    """Normalize a single item or a list of items into a list.

    Only ``list`` is treated as a batch; tuples are composite keys.
    """
    if items is None:
        return []
    if isinstance(items, list):
        return items
    return [items]


class RecordMutator:
    """Issues one engine request per record or key inside one transaction."""

    def __init__(self, stores: StoreManager, executor: TransactionExecutor) -> None:
        self._stores = stores
        self._executor = executor

    async def add(self, name: str, records: Any) -> Any:
        """Insert ``records``, creating the store first if it is missing.

        Returns:
            ``records`` exactly as passed in.
        """
        await self._stores.add_store(name)

        def insert(store: ObjectStore) -> None:
            for record in as_list(records):
                store.add(record)

        options = TransactionOptions(name=name, mode=TransactionMode.READ_WRITE, result=records)
        return await self._executor.transact(options, insert)

    async def put(self, name: str, records: Any) -> Any:
        """Insert or overwrite ``records`` in an existing store."""
        await self._require_store(name)

        def upsert(store: ObjectStore) -> None:
            for record in as_list(records):
                store.put(record)

        options = TransactionOptions(name=name, mode=TransactionMode.READ_WRITE, result=records)
        return await self._executor.transact(options, upsert)

    async def delete(self, name: str, ids: Key | list[Key] | None = None) -> Any:
        """Delete the records at ``ids``, or the whole store when ids is None."""
        await self._require_store(name)

        if ids is None:
            await self._stores.delete_store(name)
            return None

        def remove(store: ObjectStore) -> None:
            for key in as_list(ids):
                store.delete(key)

        options = TransactionOptions(name=name, mode=TransactionMode.READ_WRITE, result=ids)
        return await self._executor.transact(options, remove)

    async def _require_store(self, name: str) -> None:
        if not await self._stores.exists(name):
            raise StoreNotFoundError(name)
