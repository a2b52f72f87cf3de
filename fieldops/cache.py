"""
Process-lifetime cache of normalised collection results.

Entries are keyed by (collection, serialised scope) and are fresh for
``CACHE_TTL_SECONDS``. Stale entries are kept and still served as
placeholders while a refresh runs; they only disappear when a refresh
replaces them or a write invalidates the collection.

Every collection carries an invalidation epoch. A fetch records the epoch
when it starts and hands it to ``put``; if the collection was invalidated in
the meantime the late result is dropped, so an invalidation is always
visible to the next read.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from fieldops.config import CACHE_TTL_SECONDS
from fieldops.models import AccessScope, CanonicalRecord

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


def cache_key(collection: str, scope: AccessScope) -> CacheKey:
    return (collection, scope.key())


@dataclass
class CacheEntry:
    records: List[CanonicalRecord] = field(default_factory=list)
    captured_at: float = 0.0
    fresh: bool = True


class ResultCache:
    """Thread-safe TTL cache with per-collection invalidation."""

    def __init__(self, ttl: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[CacheKey, Tuple[List[CanonicalRecord], float]] = {}
        self._epochs: Dict[str, int] = {}
        self._lock = threading.RLock()

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Entry for ``key`` (fresh or stale), or None. Never blocks on I/O."""
        with self._lock:
            hit = self._entries.get(key)
        if hit is None:
            return None
        records, captured_at = hit
        return CacheEntry(
            records=list(records),
            captured_at=captured_at,
            fresh=self._clock() - captured_at < self.ttl,
        )

    def get_fresh(self, key: CacheKey) -> Optional[List[CanonicalRecord]]:
        """Records only when the entry is fresh; a stale entry is a miss."""
        entry = self.get(key)
        return entry.records if entry is not None and entry.fresh else None

    def epoch(self, collection: str) -> int:
        with self._lock:
            return self._epochs.get(collection, 0)

    def put(self, key: CacheKey, records: List[CanonicalRecord], epoch: Optional[int] = None) -> bool:
        """Store ``records``; returns False when ``epoch`` predates an invalidation."""
        collection = key[0]
        with self._lock:
            if epoch is not None and epoch != self._epochs.get(collection, 0):
                logger.debug("Dropping result for %s: collection invalidated mid-fetch", key)
                return False
            self._entries[key] = (list(records), self._clock())
            return True

    def invalidate(self, collection: str) -> int:
        """Drop every scope's entry for ``collection``. Returns the number removed."""
        with self._lock:
            self._epochs[collection] = self._epochs.get(collection, 0) + 1
            doomed = [k for k in self._entries if k[0] == collection]
            for k in doomed:
                del self._entries[k]
        logger.debug("Invalidated %d cache entries for %s", len(doomed), collection)
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            for collection in {k[0] for k in self._entries}:
                self._epochs[collection] = self._epochs.get(collection, 0) + 1
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


result_cache = ResultCache()
