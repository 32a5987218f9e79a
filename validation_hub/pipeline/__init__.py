"""
Tile data pipeline: cache resolution, normalization, conservative
adjustment, freshness classification and drill-down insights.
"""

from validation_hub.pipeline.adapters import AdapterRegistry
from validation_hub.pipeline.cache_key import build_cache_key
from validation_hub.pipeline.conservative import ConservativeTransform
from validation_hub.pipeline.freshness import FreshnessClassifier
from validation_hub.pipeline.insights import InsightGenerator
from validation_hub.pipeline.resolver import CacheResolver

__all__ = [
    "AdapterRegistry",
    "CacheResolver",
    "ConservativeTransform",
    "FreshnessClassifier",
    "InsightGenerator",
    "build_cache_key",
]
