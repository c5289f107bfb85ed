"""Cooperative cancellation for simulation and batch loops."""

from __future__ import annotations

import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    """Stop signal polled by long-running loops.

    Loops check ``cancelled`` at the top of every turn and between persona
    runs; a cancel request never interrupts an in-flight resolver call.
    Backed by a ``threading.Event`` so a request thread can cancel a run
    driven on another thread's event loop.
    """

    def __init__(self, reason: Optional[str] = None):
        self._event = threading.Event()
        self.reason = reason

    def cancel(self, reason: Optional[str] = None) -> None:
        """Request cancellation. Idempotent."""
        if reason is not None:
            self.reason = reason
        if not self._event.is_set():
            logger.info("Cancellation requested%s", f": {self.reason}" if self.reason else "")
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def reset(self) -> None:
        """Clear a pending request so the token can be reused."""
        self._event.clear()
        self.reason = None
