"""
Synchronization between the local cache and the remote store.

Provides:
- SyncCoordinator: merge-and-seed reads, write-through writes
- DeletionResolver: key-first, bounded-scan deletion of history rows
"""

from .coordinator import SyncCoordinator
from .deletion import DeletionOutcome, DeletionReason, DeletionResolver, DeletionState

__all__ = [
    "SyncCoordinator",
    "DeletionResolver",
    "DeletionOutcome",
    "DeletionReason",
    "DeletionState",
]
