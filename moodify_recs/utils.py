"""
Utility Functions
=================

Common utilities used across the Moodify Recs system.
"""

import threading
import time
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")


class TTLCache:
    """
    In-memory cache with per-entry TTL.

    Shared across concurrent requests. Reads and writes take a lock;
    refreshes are last-writer-wins since entries can always be re-derived.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        """
        Initialize cache.

        Args:
            ttl_seconds: Time-to-live for each entry
            clock: Monotonic time source (injectable for tests)
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Any, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Any) -> Optional[Any]:
        """Get value from cache, or None if missing or stale."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return value

    def set(self, key: Any, value: Any) -> None:
        """Set value in cache."""
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def clear(self) -> int:
        """Clear all entries. Returns number of entries dropped."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """
    Split items into consecutive batches.

    Args:
        items: Items to split
        size: Size of each batch

    Yields:
        Lists of at most `size` items
    """
    for i in range(0, len(items), size):
        yield list(items[i:i + size])


def unique(items: Iterable[T]) -> List[T]:
    """Drop duplicates and falsy values, keeping first-seen order."""
    seen = set()
    out = []
    for item in items:
        if not item or item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


def normalize_text(value: Optional[str]) -> str:
    """Trim and case-fold a string for comparisons."""
    return (value or "").strip().casefold()


def strip_quotes(value: str) -> str:
    """Remove double quotes so a value can sit inside a field-scoped query."""
    return (value or "").replace('"', "")
