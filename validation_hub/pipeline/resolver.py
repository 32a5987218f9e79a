"""
Cache Resolver
validation_hub/pipeline/resolver.py

Decides where a tile's data comes from and runs it through the pipeline:

    persisted (Redis) -> ephemeral (process) -> provider
                                                   |
    normalize -> conservative adjust -> classify <-+

Lookup order for a non-forced request:
  1. persisted tier, only for identified requests; hits are durable and
     are not checked against their TTL
  2. ephemeral tier; hits older than their TTL fall through
  3. provider; concurrent callers with the same key share one in-flight
     fetch, and its raw payload is written back to the ephemeral tier
     (always) and to the persisted tier (identified, non-mock data only)

A forced refresh skips both lookups and starts its own provider fetch
outside the in-flight registry; whichever write lands last wins.

When the provider fails, the freshest cached entry from either tier is
returned regardless of age, with refresh_error set and labeled cached or
stale, never live. Only when nothing is cached does the FetchError reach
the caller.

Both tiers store raw provider payloads. Every served TileData is therefore
normalized and adjusted exactly once, on the way out.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog
from redis.exceptions import RedisError

from validation_hub.core.exceptions import (
    CacheCorrupt,
    NoIdentity,
    ProviderMalformed,
    ProviderUnavailable,
)
from validation_hub.models.enumerations import CacheTier, Freshness, Origin
from validation_hub.models.tile import CacheEntry, TileData, TileRequest
from validation_hub.pipeline.adapters import AdapterRegistry
from validation_hub.pipeline.cache_key import build_cache_key, idea_key_pattern, normalize_idea
from validation_hub.pipeline.conservative import ConservativeTransform
from validation_hub.pipeline.freshness import FreshnessClassifier
from validation_hub.services.cache import TTL_PERSISTED
from validation_hub.services.ephemeral_cache import EphemeralCache
from validation_hub.services.redis_cache import RedisCache, owner_for

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]

_TIER_ORIGIN = {
    CacheTier.PERSISTED: Origin.PERSISTED,
    CacheTier.EPHEMERAL: Origin.EPHEMERAL,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheResolver:
    """Single entry point for tile data, shared by every tile type."""

    def __init__(
        self,
        gateway,
        ephemeral: Optional[EphemeralCache] = None,
        persisted: Optional[RedisCache] = None,
        adapters: Optional[AdapterRegistry] = None,
        transform: Optional[ConservativeTransform] = None,
        classifier: Optional[FreshnessClassifier] = None,
        clock: Clock = utcnow,
        persisted_ttl_minutes: Optional[float] = None,
    ):
        self.gateway = gateway
        self.ephemeral = ephemeral if ephemeral is not None else EphemeralCache()
        self.persisted = persisted
        self.adapters = adapters or AdapterRegistry()
        self.transform = transform or ConservativeTransform()
        self.classifier = classifier or FreshnessClassifier()
        self.clock = clock
        self.persisted_ttl_minutes = persisted_ttl_minutes or TTL_PERSISTED
        self._in_flight: Dict[str, "asyncio.Future[TileData]"] = {}

    # ------------------------------------------------------------------
    # resolve
    # ------------------------------------------------------------------

    async def resolve(self, request: TileRequest, force_refresh: bool = False) -> TileData:
        """
        Resolve tile data for a request.

        Args:
            request: What tile data is wanted and for whom.
            force_refresh: Skip both cache tiers and fetch from the provider.

        Returns:
            Normalized, adjusted and classified TileData.

        Raises:
            ProviderUnavailable: Provider failed and nothing is cached.
            ProviderMalformed: Provider payload was unusable and nothing is cached.
        """
        key = build_cache_key(request)

        if force_refresh:
            logger.info("tile_forced_refresh", tile_type=request.tile_type, key=key)
            return await self._fetch(request, key)

        cached = self._lookup(request, key)
        if cached is not None:
            return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(request, key))
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._release(key, done))
        else:
            logger.debug("tile_fetch_joined", tile_type=request.tile_type, key=key)

        # a cancelled waiter must not cancel the fetch other waiters share
        return await asyncio.shield(task)

    def _release(self, key: str, task: "asyncio.Future[TileData]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    def _lookup(self, request: TileRequest, key: str) -> Optional[TileData]:
        now = self.clock()

        entry = self._read_persisted(request, key)
        if entry is not None:
            data = self._serve_entry(request, entry, now)
            if data is not None:
                logger.debug("tile_cache_hit", tier="persisted", key=key)
                return data

        entry = self._read_ephemeral(key)
        if entry is not None:
            if entry.is_expired(now):
                logger.debug("tile_cache_expired", tier="ephemeral", key=key, age_minutes=round(entry.age_minutes(now), 2))
            else:
                data = self._serve_entry(request, entry, now)
                if data is not None:
                    logger.debug("tile_cache_hit", tier="ephemeral", key=key)
                    return data

        return None

    async def _fetch(self, request: TileRequest, key: str) -> TileData:
        try:
            raw = await self.gateway.fetch(request)
            fetched_at = self.clock()
            data = self._build(request.tile_type, raw, fetched_at, Origin.PROVIDER, fetched_at)
        except (ProviderUnavailable, ProviderMalformed) as e:
            fallback = self._fallback(request, key, e)
            if fallback is None:
                logger.warning(
                    "tile_fetch_failed",
                    tile_type=request.tile_type,
                    key=key,
                    error_code=e.error_code,
                    error=e.message,
                )
                raise
            return fallback

        self._write_back(request, key, raw, data, fetched_at)
        logger.info(
            "tile_fetched",
            tile_type=request.tile_type,
            key=key,
            is_mock=data.is_mock,
            freshness=data.freshness.value if data.freshness else None,
        )
        return data

    # ------------------------------------------------------------------
    # pipeline
    # ------------------------------------------------------------------

    def _build(
        self,
        tile_type: str,
        raw: Dict[str, Any],
        fetched_at: datetime,
        origin: Origin,
        now: datetime,
        refresh_error: Optional[str] = None,
    ) -> TileData:
        data = self.adapters.normalize(tile_type, raw, fetched_at, origin)
        data = self.transform.adjust(tile_type, data)
        freshness = self.classifier.classify(data.fetched_at, data.is_mock, now)
        if refresh_error is not None and freshness == Freshness.LIVE:
            # last-known data after a failed refresh is never live
            freshness = Freshness.CACHED
        return data.model_copy(update={"freshness": freshness, "refresh_error": refresh_error})

    def _serve_entry(
        self,
        request: TileRequest,
        entry: CacheEntry,
        now: datetime,
        refresh_error: Optional[str] = None,
    ) -> Optional[TileData]:
        try:
            return self._build(
                request.tile_type,
                entry.payload,
                entry.stored_at,
                _TIER_ORIGIN[entry.tier],
                now,
                refresh_error,
            )
        except ProviderMalformed as e:
            # stored payload no longer passes the adapter: same as a corrupt entry
            logger.warning("tile_cache_unusable", tier=entry.tier.value, key=entry.key, error=e.message)
            self._evict(request, entry)
            return None

    def _fallback(self, request: TileRequest, key: str, error: Exception) -> Optional[TileData]:
        candidates: List[CacheEntry] = [
            entry for entry in (self._read_persisted(request, key), self._read_ephemeral(key))
            if entry is not None
        ]
        now = self.clock()
        for entry in sorted(candidates, key=lambda e: e.stored_at, reverse=True):
            data = self._serve_entry(request, entry, now, refresh_error=str(error))
            if data is not None:
                logger.warning(
                    "tile_served_last_known",
                    tile_type=request.tile_type,
                    key=key,
                    tier=entry.tier.value,
                    age_minutes=round(entry.age_minutes(now), 2),
                    freshness=data.freshness.value if data.freshness else None,
                    error=str(error),
                )
                return data
        return None

    # ------------------------------------------------------------------
    # tier access
    # ------------------------------------------------------------------

    def _owner(self, request: TileRequest) -> Optional[str]:
        try:
            return owner_for(request.user_id, request.session_id)
        except NoIdentity:
            return None

    def _read_persisted(self, request: TileRequest, key: str) -> Optional[CacheEntry]:
        if self.persisted is None:
            return None
        owner = self._owner(request)
        if owner is None:
            return None
        try:
            return self.persisted.get(key, owner)
        except CacheCorrupt as e:
            logger.warning("tile_cache_corrupt", tier="persisted", key=key, reason=e.reason)
        except RedisError as e:
            logger.warning("persisted_cache_read_failed", key=key, error=str(e))
        return None

    def _read_ephemeral(self, key: str) -> Optional[CacheEntry]:
        try:
            return self.ephemeral.get(key)
        except CacheCorrupt as e:
            logger.warning("tile_cache_corrupt", tier="ephemeral", key=key, reason=e.reason)
            return None

    def _write_back(
        self,
        request: TileRequest,
        key: str,
        raw: Dict[str, Any],
        data: TileData,
        fetched_at: datetime,
    ) -> None:
        self.ephemeral.put(key, raw, stored_at=fetched_at)

        if self.persisted is None or data.is_mock:
            return
        owner = self._owner(request)
        if owner is None:
            logger.debug("persisted_write_skipped", key=key, reason="no identity")
            return
        try:
            self.persisted.put(key, raw, self.persisted_ttl_minutes, owner, stored_at=fetched_at)
        except RedisError as e:
            logger.warning("persisted_cache_write_failed", key=key, error=str(e))

    def _evict(self, request: TileRequest, entry: CacheEntry) -> None:
        if entry.tier == CacheTier.EPHEMERAL:
            self.ephemeral.delete(entry.key)
            return
        owner = self._owner(request)
        if self.persisted is None or owner is None:
            return
        try:
            self.persisted.delete(entry.key, owner)
        except RedisError as e:
            logger.warning("persisted_cache_delete_failed", key=entry.key, error=str(e))

    # ------------------------------------------------------------------
    # maintenance
    # ------------------------------------------------------------------

    def invalidate(self, request: TileRequest) -> None:
        """Drop the cached entry for one request from both tiers."""
        key = build_cache_key(request)
        self.ephemeral.delete(key)
        owner = self._owner(request)
        if self.persisted is not None and owner is not None:
            try:
                self.persisted.delete(key, owner)
            except RedisError as e:
                logger.warning("persisted_cache_delete_failed", key=key, error=str(e))

    def invalidate_idea(self, idea_text: str) -> Dict[str, int]:
        """
        Drop every cached tile derived from one idea, for all users.

        Raises:
            ValueError: If the idea text is blank.
        """
        if not normalize_idea(idea_text):
            raise ValueError("idea_text must not be blank")
        pattern = idea_key_pattern(idea_text)
        removed = {"ephemeral": self.ephemeral.delete_matching(pattern), "persisted": 0}
        if self.persisted is not None:
            try:
                removed["persisted"] = self.persisted.delete_pattern(pattern)
            except RedisError as e:
                logger.warning("persisted_cache_delete_failed", pattern=pattern, error=str(e))
        logger.info("tile_cache_invalidated", pattern=pattern, **removed)
        return removed

    def stats(self) -> Dict[str, Any]:
        return {
            "ephemeral": self.ephemeral.stats(),
            "persisted_enabled": self.persisted is not None,
            "in_flight": len(self._in_flight),
            "circuits": self.gateway.circuit_states(),
        }

