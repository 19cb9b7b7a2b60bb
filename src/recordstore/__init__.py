"""
recordstore - awaitable record storage over a versioned key-value engine

Wraps an event-driven, versioned key-value engine (named stores holding
keyed records) with awaitable CRUD operations, schema upgrades and a
sorted-cursor batch get.
"""

from __future__ import annotations

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"

from recordstore.application.database import Database, open_database
from recordstore.domain.entities import StoreOptions
from recordstore.ports.inbound.database import (
    RejectedValue,
    StoreNotFoundError,
    UpgradeError,
)
from recordstore.ports.outbound.kv_engine import EngineError

__all__ = [
    "Database",
    "EngineError",
    "RejectedValue",
    "StoreNotFoundError",
    "StoreOptions",
    "UpgradeError",
    "open_database",
]
