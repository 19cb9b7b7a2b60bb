"""Value objects for the recordstore domain.

Exports:
    Identifiers:
        - StoreName, DatabaseVersion: Type-safe names and versions
        - Key: Union of valid primary key types
        - validate_key, key_sort_value, compare_keys: Engine key ordering
        - InvalidKeyError: Raised for values that cannot be keys

    Key ranges:
        - KeyRange: Inclusive/exclusive key interval for cursors

    Transaction Types:
        - TransactionMode: readonly, readwrite, versionchange
        - TransactionState: Transaction lifecycle states
"""

from recordstore.domain.value_objects.identifiers import (
    INITIAL_VERSION,
    NO_VERSION,
    DatabaseVersion,
    InvalidKeyError,
    Key,
    StoreName,
    compare_keys,
    key_sort_value,
    validate_key,
)
from recordstore.domain.value_objects.key_range import KeyRange
from recordstore.domain.value_objects.transaction_types import (
    TransactionMode,
    TransactionState,
)

__all__ = [
    # Identifiers
    "StoreName",
    "DatabaseVersion",
    "Key",
    "NO_VERSION",
    "INITIAL_VERSION",
    "InvalidKeyError",
    "validate_key",
    "key_sort_value",
    "compare_keys",
    # Key ranges
    "KeyRange",
    # Transaction types
    "TransactionMode",
    "TransactionState",
]
