"""Domain entities for recordstore.

Exports:
    - StoreOptions: Primary key configuration of a store
"""

from recordstore.domain.entities.store import StoreOptions

__all__ = [
    "StoreOptions",
]
