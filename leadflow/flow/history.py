"""
history.py - Snapshot-based undo/redo for flow graphs.

Each entry is a deep copy of a FlowData snapshot. Snapshots are copied on
every push and every pop so no node or edge object is ever shared between
the live graph and the stacks, which keeps ``push(); mutate(); undo()``
bit-identical to the pre-mutation state.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .types import FlowData

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_CAP = 30


class FlowHistory:
    """Bounded undo/redo stacks of FlowData snapshots."""

    def __init__(self, cap: int = DEFAULT_HISTORY_CAP):
        if cap < 1:
            raise ValueError(f"History cap must be at least 1, got {cap}")
        self._cap = cap
        self._past: List[FlowData] = []
        self._future: List[FlowData] = []

    @property
    def cap(self) -> int:
        return self._cap

    @property
    def can_undo(self) -> bool:
        return len(self._past) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._future) > 0

    @property
    def undo_depth(self) -> int:
        return len(self._past)

    @property
    def redo_depth(self) -> int:
        return len(self._future)

    def push(self, snapshot: FlowData) -> None:
        """Record a snapshot by value and clear the redo stack.

        The oldest snapshot is evicted once the cap is exceeded.
        """
        self._past.append(snapshot.copy())
        if len(self._past) > self._cap:
            evicted = len(self._past) - self._cap
            del self._past[:evicted]
            logger.debug("History cap %d reached, evicted %d snapshot(s)", self._cap, evicted)
        self._future.clear()

    def undo(self, current: FlowData) -> Optional[FlowData]:
        """Step back one snapshot.

        Args:
            current: The live state, moved onto the redo stack.

        Returns:
            The snapshot to restore, or None if there is nothing to undo.
        """
        if not self._past:
            return None
        self._future.append(current.copy())
        return self._past.pop().copy()

    def redo(self, current: FlowData) -> Optional[FlowData]:
        """Step forward one snapshot. Symmetric to :meth:`undo`."""
        if not self._future:
            return None
        self._past.append(current.copy())
        return self._future.pop().copy()

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()
