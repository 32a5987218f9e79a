"""
Persisted Tile Cache - Validation Hub
validation_hub/services/redis_cache.py

Redis-backed CacheStore. Entries are raw provider payloads wrapped in a
CacheEntry and are namespaced per owner (user id, or session id when the
user is anonymous):

    vh:<owner>:tile:v2:<tile_type>:<idea digest>:<request digest>

Persisted entries represent a deliberate save and are written without a
Redis expiry; ttl_minutes is stored on the entry for reference only.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis
from pydantic import ValidationError

from validation_hub.config import settings
from validation_hub.core.exceptions import CacheCorrupt, NoIdentity
from validation_hub.models.enumerations import CacheTier
from validation_hub.models.tile import CacheEntry

logger = logging.getLogger(__name__)

NAMESPACE = "vh"


def owner_for(user_id: Optional[str], session_id: Optional[str]) -> str:
    """Owner segment for persisted keys; raises NoIdentity when neither id is set."""
    user_id = (user_id or "").strip()
    session_id = (session_id or "").strip()
    if user_id:
        return f"user:{user_id}"
    if session_id:
        return f"session:{session_id}"
    raise NoIdentity()


class RedisCache:
    def __init__(self, url: Optional[str] = None):
        self.client = redis.from_url(
            url or settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
        )

    @staticmethod
    def scoped_key(owner: str, key: str) -> str:
        return f"{NAMESPACE}:{owner}:{key}"

    def get(self, key: str, owner: str) -> Optional[CacheEntry]:
        """Get cached entry; a corrupt entry is evicted and raises CacheCorrupt."""
        scoped = self.scoped_key(owner, key)
        data = self.client.get(scoped)
        if not data:
            return None
        try:
            return CacheEntry.model_validate_json(data)
        except ValidationError as e:
            self.client.delete(scoped)
            logger.warning("Evicted corrupt persisted entry", extra={"key": scoped})
            raise CacheCorrupt(scoped, CacheTier.PERSISTED.value, str(e.errors()[0]["msg"])) from e

    def put(
        self,
        key: str,
        payload: Dict[str, Any],
        ttl_minutes: float,
        owner: str,
        stored_at: Optional[datetime] = None,
    ) -> CacheEntry:
        """Store a raw payload; supersedes any entry under the same key."""
        entry = CacheEntry(
            key=key,
            payload=payload,
            stored_at=stored_at or datetime.now(timezone.utc),
            ttl_minutes=ttl_minutes,
            tier=CacheTier.PERSISTED,
        )
        self.client.set(self.scoped_key(owner, key), entry.model_dump_json())
        return entry

    def delete(self, key: str, owner: str) -> None:
        """Invalidate single cache entry."""
        self.client.delete(self.scoped_key(owner, key))

    def delete_pattern(self, pattern: str, owner: str = "*") -> int:
        """Invalidate all keys matching pattern, for one owner or all of them."""
        deleted = 0
        for scoped in self.client.scan_iter(match=self.scoped_key(owner, pattern)):
            deleted += self.client.delete(scoped) or 0
        return deleted

