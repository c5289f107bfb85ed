"""ID types and generators for flows and simulation runs.

Every component that mints ids takes an ``IdGenerator`` so tests can swap the
random default for a deterministic sequence.
"""

from __future__ import annotations

import itertools
import uuid
from typing import Callable

# Type aliases
IdGenerator = Callable[[], str]


def generate_short_id() -> str:
    """Generate a short random id (first 8 hex chars of a UUID4).

    Example:
        >>> node_id = generate_short_id()
        >>> node_id  # e.g., "3f2a9c1e"
    """
    return uuid.uuid4().hex[:8]


class SequentialIdGenerator:
    """Deterministic id source yielding ``<prefix>1``, ``<prefix>2``, ..."""

    def __init__(self, prefix: str = "id-", start: int = 1):
        self._prefix = prefix
        self._counter = itertools.count(start)

    def __call__(self) -> str:
        return f"{self._prefix}{next(self._counter)}"
