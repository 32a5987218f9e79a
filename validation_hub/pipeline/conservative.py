"""
Conservative Transform
validation_hub/pipeline/conservative.py

Scales optimistic provider scores toward realistic estimates before display.

    adjusted = clamp(raw × factor + offset, lower, upper)

Factor table (single source of truth for every tile):

    market_size  tam                  × 0.65
                 sam                  × 0.65 × 0.85   (SAM ratio of adjusted TAM)
                 som                  × 0.65 × 0.54   (SOM ratio of adjusted TAM)
                 cagr                 × 0.70          [0, 100]
    pmf_score    score, factor_*      × 0.82          [0, 100]
    sentiment    sentiment_score      × 0.78          [0, 100]
                 sentiment_positive   × 0.78          [0, 100]
                 sentiment_neutral    × 1.10          [0, 100]
                 sentiment_negative   × 1.20          [0, 100]
    social_signals sentiment          × 0.78          [0, 100]
                 sentiment_positive   × 0.78          [0, 100]
                 sentiment_neutral    × 1.10          [0, 100]
                 sentiment_negative   × 1.20          [0, 100]

The transform runs exactly once, right after normalization. Cache tiers
only ever hold raw payloads, so a cache hit is normalized and adjusted from
scratch rather than re-adjusted.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import structlog

from validation_hub.models.tile import TileData
from validation_hub.pipeline.utils import clamp

logger = structlog.get_logger(__name__)

MARKET_CONSERVATIVE_FACTOR = 0.65
SAM_RATIO = 0.85
SOM_RATIO = 0.54
CAGR_FACTOR = 0.70
FIT_SCORE_FACTOR = 0.82
POSITIVE_SENTIMENT_FACTOR = 0.78
NEUTRAL_SENTIMENT_FACTOR = 1.10
NEGATIVE_SENTIMENT_FACTOR = 1.20

PERCENT_RANGE = (0.0, 100.0)
NON_NEGATIVE = (0.0, None)


@dataclass(frozen=True)
class MetricAdjustment:
    """One row of the factor table."""
    key: str
    factor: float = 1.0
    offset: float = 0.0
    bounds: Tuple[Optional[float], Optional[float]] = PERCENT_RANGE
    prefix: bool = False  # match every metric whose key starts with `key`

    def matches(self, metric_key: str) -> bool:
        if self.prefix:
            return metric_key.startswith(self.key)
        return metric_key == self.key

    def apply(self, value: float) -> float:
        lower, upper = self.bounds
        return round(clamp(value * self.factor + self.offset, lower, upper), 4)


CONSERVATIVE_FACTORS: Dict[str, Tuple[MetricAdjustment, ...]] = {
    "market_size": (
        MetricAdjustment("tam", MARKET_CONSERVATIVE_FACTOR, bounds=NON_NEGATIVE),
        MetricAdjustment("sam", MARKET_CONSERVATIVE_FACTOR * SAM_RATIO, bounds=NON_NEGATIVE),
        MetricAdjustment("som", MARKET_CONSERVATIVE_FACTOR * SOM_RATIO, bounds=NON_NEGATIVE),
        MetricAdjustment("cagr", CAGR_FACTOR),
    ),
    "pmf_score": (
        MetricAdjustment("score", FIT_SCORE_FACTOR),
        MetricAdjustment("factor_", FIT_SCORE_FACTOR, prefix=True),
    ),
    "sentiment": (
        MetricAdjustment("sentiment_score", POSITIVE_SENTIMENT_FACTOR),
        MetricAdjustment("sentiment_positive", POSITIVE_SENTIMENT_FACTOR),
        MetricAdjustment("sentiment_neutral", NEUTRAL_SENTIMENT_FACTOR),
        MetricAdjustment("sentiment_negative", NEGATIVE_SENTIMENT_FACTOR),
    ),
    "social_signals": (
        MetricAdjustment("sentiment", POSITIVE_SENTIMENT_FACTOR),
        MetricAdjustment("sentiment_positive", POSITIVE_SENTIMENT_FACTOR),
        MetricAdjustment("sentiment_neutral", NEUTRAL_SENTIMENT_FACTOR),
        MetricAdjustment("sentiment_negative", NEGATIVE_SENTIMENT_FACTOR),
    ),
}


def _find_adjustment(rules: Tuple[MetricAdjustment, ...], metric_key: str) -> Optional[MetricAdjustment]:
    for rule in rules:
        if rule.matches(metric_key):
            return rule
    return None


class ConservativeTransform:
    """Apply the conservative factor table to normalized tile data."""

    def __init__(self, factors: Optional[Dict[str, Tuple[MetricAdjustment, ...]]] = None):
        self.factors = CONSERVATIVE_FACTORS if factors is None else factors

    def adjust(self, tile_type: str, data: TileData) -> TileData:
        """
        Return a conservatively adjusted copy of `data`.

        Args:
            tile_type: Tile type whose factor rows apply.
            data: Normalized, not yet adjusted tile data.

        Returns:
            New TileData with adjusted=True; the input is left untouched.

        Raises:
            ValueError: If `data` has already been adjusted.
        """
        if data.adjusted:
            raise ValueError(f"{tile_type} tile data has already been conservatively adjusted")

        rules = self.factors.get(tile_type, ())
        metrics = dict(data.metrics)
        changed = []

        for metric_key, value in data.metrics.items():
            if isinstance(value, str) or isinstance(value, bool):
                continue
            rule = _find_adjustment(rules, metric_key)
            if rule is None:
                continue
            metrics[metric_key] = rule.apply(float(value))
            changed.append(metric_key)

        if changed:
            logger.debug("conservative_adjustment_applied", tile_type=tile_type, metrics=changed)

        return data.model_copy(update={"metrics": metrics, "adjusted": True})
