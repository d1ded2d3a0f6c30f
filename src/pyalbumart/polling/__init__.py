"""Polling & reconciliation layer.

The engine owns the only mutable tile state; reconciliation itself is a
pure function so it can be exercised without timers.
"""

from pyalbumart.polling.engine import PollHandle, PollingEngine
from pyalbumart.polling.reconcile import normalize_static, reconcile, same_tiles

__all__ = [
    "PollHandle",
    "PollingEngine",
    "normalize_static",
    "reconcile",
    "same_tiles",
]
