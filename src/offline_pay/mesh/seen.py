"""Time-windowed, size-bounded "seen" set used for flood deduplication."""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class SeenCache:
    """Insertion-ordered set of keys that forgets entries after *window* seconds.

    Entries are kept in arrival order, so pruning pops from the front until
    it reaches a fresh entry. ``max_entries`` caps memory under sustained
    load by evicting the oldest keys early.
    """

    def __init__(
        self,
        *,
        window: float = 3600.0,
        max_entries: int = 50_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, float] = OrderedDict()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, key: str) -> bool:
        """Record *key*. Returns False if it was already present."""
        if key in self._entries:
            return False
        self._entries[key] = self._clock()
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
        return True

    def prune(self) -> int:
        """Drop entries older than the window. Returns how many were dropped."""
        cutoff = self._clock() - self._window
        dropped = 0
        while self._entries:
            key, seen_at = next(iter(self._entries.items()))
            if seen_at > cutoff:
                break
            del self._entries[key]
            dropped += 1
        return dropped

    def clear(self) -> None:
        self._entries.clear()
