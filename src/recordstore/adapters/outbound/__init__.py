"""Outbound adapters - implementations of outbound ports.

These adapters implement the host engine the database handle talks to.
"""

from recordstore.adapters.outbound.memory_engine import EngineStats, InMemoryEngine

__all__ = [
    "EngineStats",
    "InMemoryEngine",
]
