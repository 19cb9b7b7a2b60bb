"""Domain services for recordstore.

Services implement logic that doesn't naturally fit within a single
entity or value object.
"""

from recordstore.domain.services.cursor_scan import CursorScanState

__all__ = [
    "CursorScanState",
]
