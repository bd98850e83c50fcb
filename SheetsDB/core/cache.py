"""
In-memory cache of fetched worksheet values.

Entries are keyed by spreadsheet id and table name and expire after
``max_age`` seconds. Every write to a table invalidates its entry, so a cached
read never returns values older than the session's own last write.
"""

import enum
import logging
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

from ..settings.lib import DEFAULT_CACHE_MAX_AGE


class CacheState(enum.StrEnum):
    """Enum for cache entry state values."""
    Missing = 'entry is missing'
    Stale = 'entry is stale'
    Valid = 'entry is valid'


class SnapshotCache:
    """Thread-safe cache of raw table values.

    Args:
        max_age: Seconds an entry stays valid. ``0`` keeps entries until invalidated.
        clock: Callable returning the current time in seconds.
    """

    def __init__(self, max_age: int = DEFAULT_CACHE_MAX_AGE, clock=time.monotonic) -> None:
        self.max_age = max_age
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Tuple[str, str], Tuple[float, List[List[Any]]]] = {}

    def _state_of(self, entry: Optional[Tuple[float, List[List[Any]]]], now: float) -> CacheState:
        if entry is None:
            return CacheState.Missing
        if self.max_age and now - entry[0] > self.max_age:
            return CacheState.Stale
        return CacheState.Valid

    def state(self, spreadsheet_id: str, table: str) -> CacheState:
        now = self._clock()
        with self._lock:
            return self._state_of(self._entries.get((spreadsheet_id, table)), now)

    def get(self, spreadsheet_id: str, table: str) -> Optional[List[List[Any]]]:
        """Return a copy of the cached values, or ``None`` when missing or stale.

        The lookup, the staleness check and the copy happen under one lock
        acquisition, so a concurrent :meth:`invalidate` reads as a miss.
        """
        key = (spreadsheet_id, table)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            state = self._state_of(entry, now)
            if state == CacheState.Stale:
                del self._entries[key]
            if state != CacheState.Valid:
                values = None
            else:
                values = [list(row) for row in entry[1]]

        if state == CacheState.Stale:
            logging.debug(f'Cache entry for "{table}" is stale; dropped it.')
        elif values is not None:
            logging.debug(f'Cache hit for "{table}".')
        return values

    def put(self, spreadsheet_id: str, table: str, values: List[List[Any]]) -> None:
        with self._lock:
            self._entries[(spreadsheet_id, table)] = (self._clock(), [list(row) for row in values])

    def invalidate(self, spreadsheet_id: str, table: Optional[str] = None) -> None:
        """Drop one table's entry, or every entry of the spreadsheet when ``table`` is omitted."""
        with self._lock:
            if table is not None:
                self._entries.pop((spreadsheet_id, table), None)
                return
            for key in [k for k in self._entries if k[0] == spreadsheet_id]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
