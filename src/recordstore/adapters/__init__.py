"""Adapters layer - concrete implementations of port interfaces.

Adapters provide the actual implementations:
- Outbound adapters: Implement external dependencies (the host engine)
"""

from recordstore.adapters.outbound import InMemoryEngine

__all__ = [
    # Outbound adapters
    "InMemoryEngine",
]
