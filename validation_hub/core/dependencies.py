"""
Dependencies - Validation Hub
validation_hub/core/dependencies.py

FastAPI dependency injection for the tile pipeline.
"""

from functools import lru_cache

from validation_hub.pipeline.insights import InsightGenerator
from validation_hub.pipeline.resolver import CacheResolver
from validation_hub.services.cache import get_cache
from validation_hub.services.ephemeral_cache import EphemeralCache
from validation_hub.services.provider_gateway import ProviderGateway


@lru_cache()
def get_provider_gateway() -> ProviderGateway:
    """Get cached ProviderGateway instance."""
    return ProviderGateway()


@lru_cache()
def get_ephemeral_cache() -> EphemeralCache:
    """Get the process-wide EphemeralCache."""
    return EphemeralCache()


@lru_cache()
def get_cache_resolver() -> CacheResolver:
    """Get cached CacheResolver wired to both tiers and the gateway."""
    return CacheResolver(
        gateway=get_provider_gateway(),
        ephemeral=get_ephemeral_cache(),
        persisted=get_cache(),
    )


@lru_cache()
def get_insight_generator() -> InsightGenerator:
    """Get cached InsightGenerator instance."""
    return InsightGenerator()
