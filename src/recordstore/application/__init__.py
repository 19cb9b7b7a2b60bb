"""Application layer for recordstore.

The application layer orchestrates the engine port to fulfill the
database handle's use cases.

Exports:
    - Database: Handle over one named database
    - open_database: Factory returning an opened handle
    - ConnectionManager: Owns the live connection and runs upgrades
    - StoreManager: Idempotent store creation and deletion
    - TransactionExecutor, TransactionOptions: Callback-to-future bridge
    - RecordMutator: add/put/delete
    - BatchRetrieval: get, including the sorted-cursor batch scan
"""

from recordstore.application.batch_retrieval import BatchRetrieval
from recordstore.application.connection_manager import ConnectionManager
from recordstore.application.database import Database, open_database
from recordstore.application.record_mutator import RecordMutator
from recordstore.application.store_manager import StoreManager
from recordstore.application.transaction_executor import (
    TransactionExecutor,
    TransactionOptions,
)

__all__ = [
    "Database",
    "open_database",
    "ConnectionManager",
    "StoreManager",
    "TransactionExecutor",
    "TransactionOptions",
    "RecordMutator",
    "BatchRetrieval",
]
