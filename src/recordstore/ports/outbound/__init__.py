"""Outbound ports - interfaces for external dependencies.

Outbound ports define contracts for external systems that recordstore
depends on, namely the host key-value engine.
"""

from recordstore.ports.outbound.kv_engine import (
    AbortError,
    Connection,
    ConstraintError,
    Cursor,
    CursorDirection,
    DataError,
    EngineError,
    EngineEvent,
    EngineTransaction,
    EventHandler,
    InvalidStateError,
    KVEngine,
    NotFoundError,
    ObjectStore,
    OpenRequest,
    ReadOnlyError,
    ReadyState,
    Request,
    TransactionInactiveError,
    VersionError,
)

__all__ = [
    # Engine contract
    "KVEngine",
    "Connection",
    "EngineTransaction",
    "ObjectStore",
    "Cursor",
    "CursorDirection",
    "Request",
    "OpenRequest",
    "ReadyState",
    "EngineEvent",
    "EventHandler",
    # Engine errors
    "EngineError",
    "AbortError",
    "ConstraintError",
    "DataError",
    "InvalidStateError",
    "NotFoundError",
    "ReadOnlyError",
    "TransactionInactiveError",
    "VersionError",
]
