"""
Ephemeral Tile Cache - Validation Hub
validation_hub/services/ephemeral_cache.py

Process-local CacheStore. Entries are held as serialized CacheEntry JSON so
a read always deserializes, exactly like the persisted tier; an entry that
fails to deserialize is evicted and reported as CacheCorrupt.

The store is a cachetools FIFOCache bounded by EPHEMERAL_MAX_ENTRIES.
Inserting a new key into a full store evicts the oldest quarter of entries
(insertion order, a re-put key counts as newest). Entries never expire
here; stale ones stay until evicted so the resolver can fall back to them
when a refresh fails.
"""
import fnmatch
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cachetools import FIFOCache
from pydantic import ValidationError

from validation_hub.config import settings
from validation_hub.core.exceptions import CacheCorrupt
from validation_hub.models.enumerations import CacheTier
from validation_hub.models.tile import CacheEntry
from validation_hub.services.cache import TTL_EPHEMERAL

logger = logging.getLogger(__name__)

EVICTION_FRACTION = 0.25


class EphemeralCache:
    def __init__(self, ttl_minutes: Optional[float] = None, max_entries: Optional[int] = None):
        self.ttl_minutes = ttl_minutes or TTL_EPHEMERAL
        self.max_entries = max_entries or settings.EPHEMERAL_MAX_ENTRIES
        # FIFO order: a re-put key moves to the back, reads do not reorder
        self._store: FIFOCache = FIFOCache(maxsize=self.max_entries)
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._corrupt = 0

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def get(self, key: str) -> Optional[CacheEntry]:
        """Stored entry for key regardless of age, or None."""
        data = self._store.get(key)
        if data is None:
            self._misses += 1
            return None
        try:
            entry = CacheEntry.model_validate_json(data)
        except ValidationError as e:
            del self._store[key]
            self._corrupt += 1
            logger.warning("Evicted corrupt ephemeral entry", extra={"key": key})
            raise CacheCorrupt(key, CacheTier.EPHEMERAL.value, str(e.errors()[0]["msg"])) from e
        self._hits += 1
        return entry

    def put(
        self,
        key: str,
        payload: Dict[str, Any],
        ttl_minutes: Optional[float] = None,
        stored_at: Optional[datetime] = None,
    ) -> CacheEntry:
        """Store a raw payload, superseding any entry under the same key."""
        entry = CacheEntry(
            key=key,
            payload=payload,
            stored_at=stored_at or datetime.now(timezone.utc),
            ttl_minutes=ttl_minutes or self.ttl_minutes,
            tier=CacheTier.EPHEMERAL,
        )
        if key in self._store:
            del self._store[key]
        elif len(self._store) >= self.max_entries:
            self._evict_oldest()
        self._store[key] = entry.model_dump_json()
        return entry

    def _evict_oldest(self) -> None:
        count = max(1, int(len(self._store) * EVICTION_FRACTION))
        for _ in range(count):
            self._store.popitem()
        self._evictions += count
        logger.info("Ephemeral cache full, evicted oldest entries", extra={"evicted": count})

    def delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    def delete_matching(self, pattern: str) -> int:
        """Delete every key matching a glob pattern."""
        matched = [key for key in list(self._store) if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            del self._store[key]
        return len(matched)

    def clear(self) -> None:
        self._store.clear()

    def stats(self) -> Dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "entries": len(self._store),
            "max_entries": self.max_entries,
            "ttl_minutes": self.ttl_minutes,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
            "evictions": self._evictions,
            "corrupt_evictions": self._corrupt,
        }
