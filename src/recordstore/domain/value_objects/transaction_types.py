"""Transaction-related types and enumerations."""

from __future__ import annotations

from enum import Enum, auto


class TransactionMode(str, Enum):
    """Access mode of a transaction.

    A transaction is scoped to exactly one mode for its whole lifetime.
    VERSION_CHANGE is reserved for the engine's upgrade transaction and is
    never requested by callers.
    """

    READ_ONLY = "readonly"
    READ_WRITE = "readwrite"
    VERSION_CHANGE = "versionchange"

    def is_writable(self) -> bool:
        """Check if requests in this mode may modify records."""
        return self is not TransactionMode.READ_ONLY


class TransactionState(Enum):
    """Transaction lifecycle states.

    State machine:

        PENDING ──scheduled──> ACTIVE ──queue drained──> COMMITTED
                                 │
                              abort()
                                 │
                                 v
                              ABORTED

    A pending transaction accepts requests but does not run them until no
    earlier overlapping transaction is unfinished.
    """

    PENDING = auto()
    """Created, waiting for earlier overlapping transactions to finish."""

    ACTIVE = auto()
    """Running queued requests."""

    COMMITTED = auto()
    """All requests succeeded and changes are visible."""

    ABORTED = auto()
    """Rolled back. Changes made by its requests are discarded."""

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (COMMITTED or ABORTED)."""
        return self in (TransactionState.COMMITTED, TransactionState.ABORTED)
