"""
Memoization layer shared by the dealer and player calculators.

Keys are plain tuples ``(tag, *canonical_state)`` where the tag names the
calculator entry (``"dealer"``, ``"stand"``, ``"hit"``, ``"opt"``,
``"double"``, ``"split"``, ``"split_deal"``, ``"split_play"``) and the state
always ends with the absolute shoe counts.  Canonical states are
order-independent rank tallies, so two keys are equal exactly when the game
states are.

A cache is bound to a session context (the rules plus the initial shoe a
solve started from).  Starting a session with a different context clears it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Hashable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Counters for one cache.

    Attributes:
        hits:   Lookups that found a value.
        misses: Lookups that did not.
        size:   Entries currently stored.
    """

    hits: int
    misses: int
    size: int


class MemoCache:
    """Thread-safe memo table with first-writer-wins ``put`` semantics.

    Racing writers for the same key compute identical values, so keeping the
    first one is only a matter of not churning the dict.
    """

    def __init__(self) -> None:
        self._data: dict[Hashable, Any] = {}
        self._lock = threading.RLock()
        self._context: Hashable | None = None
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Any | None:
        """Return the cached value for ``key``, or None."""
        with self._lock:
            value = self._data.get(key)
            if value is None:
                self._misses += 1
            else:
                self._hits += 1
            return value

    def put(self, key: Hashable, value: Any) -> Any:
        """Store ``value`` unless ``key`` is already present; return the stored value."""
        with self._lock:
            return self._data.setdefault(key, value)

    def clear(self) -> None:
        with self._lock:
            if self._data:
                logger.debug("Clearing memo cache (%d entries)", len(self._data))
            self._data.clear()
            self._hits = 0
            self._misses = 0

    def begin_session(self, context: Hashable) -> None:
        """Bind the cache to ``context``, clearing it if the context changed."""
        with self._lock:
            if context != self._context:
                self.clear()
                self._context = context

    def stats(self) -> CacheStats:
        """Counters and size read together under the lock."""
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, size=len(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._data


_DEFAULT_CACHE = MemoCache()


def default_cache() -> MemoCache:
    """Return the process-wide cache used when callers pass none."""
    return _DEFAULT_CACHE
