"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts:
- Inbound ports: the awaitable database API offered to callers
- Outbound ports: the host key-value engine recordstore depends on

Adapters implement these ports with concrete functionality.
"""

from recordstore.ports.inbound import (
    ErrorHook,
    RecordDatabase,
    RejectedValue,
    StoreNotFoundError,
    TransactionStats,
    UpgradeError,
)
from recordstore.ports.outbound import EngineError, KVEngine

__all__ = [
    # Inbound ports
    "ErrorHook",
    "RecordDatabase",
    "RejectedValue",
    "StoreNotFoundError",
    "TransactionStats",
    "UpgradeError",
    # Outbound ports
    "EngineError",
    "KVEngine",
]
