"""Inbound ports - API contracts offered by recordstore."""

from recordstore.ports.inbound.database import (
    ErrorHook,
    RecordDatabase,
    RejectedValue,
    StoreNotFoundError,
    TransactionStats,
    UpgradeError,
)

__all__ = [
    "ErrorHook",
    "RecordDatabase",
    "RejectedValue",
    "StoreNotFoundError",
    "TransactionStats",
    "UpgradeError",
]
