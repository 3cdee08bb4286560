"""In-process cache for external search results.

Shields the quota-limited YouTube search from repeated identical queries.
Each process has its own cache; entries are immutable once written, so a race
between two misses costs at most one duplicate external call.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from petflix.services.youtube import ExternalVideo

DEFAULT_TTL_SECONDS = 60 * 60
DEFAULT_MAX_ENTRIES = 100


@dataclass(slots=True, frozen=True)
class SearchCacheEntry:
    normalized_query: str
    videos: tuple[ExternalVideo, ...]
    cached_at: float


def normalize_query(query: str) -> str:
    return (query or "").strip().lower()


class SearchCache:
    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, max_entries: int = DEFAULT_MAX_ENTRIES,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, SearchCacheEntry] = {}

    def _expired(self, entry: SearchCacheEntry, now: float) -> bool:
        return now - entry.cached_at > self.ttl_seconds

    def get(self, query: str) -> Optional[tuple[ExternalVideo, ...]]:
        key = normalize_query(query)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del self._entries[key]
                return None
            return entry.videos

    def set(self, query: str, videos: Sequence[ExternalVideo]) -> None:
        key = normalize_query(query)
        with self._lock:
            now = self._clock()
            self._entries[key] = SearchCacheEntry(key, tuple(videos), now)
            if len(self._entries) > self.max_entries:
                # one sweep over everything; no LRU ordering
                stale = [k for k, e in self._entries.items() if self._expired(e, now)]
                for k in stale:
                    del self._entries[k]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict:
        with self._lock:
            now = self._clock()
            expired = sum(1 for e in self._entries.values() if self._expired(e, now))
            total = len(self._entries)
        return {
            "total_entries": total,
            "valid_entries": total - expired,
            "expired_entries": expired,
        }


__all__ = ["SearchCache", "SearchCacheEntry", "normalize_query"]
