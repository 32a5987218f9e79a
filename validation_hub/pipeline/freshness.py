"""
Freshness Classifier
validation_hub/pipeline/freshness.py

Labels tile data for display:

    is_mock                      -> mock   (regardless of age)
    age <  FRESHNESS_LIVE_MINUTES  -> live
    age <  FRESHNESS_STALE_MINUTES -> cached
    otherwise                    -> stale

Timestamps in the future (clock skew between provider and host) count as
age zero.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog

from validation_hub.config import settings
from validation_hub.models.enumerations import Freshness

logger = structlog.get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class FreshnessClassifier:
    """Derive a Live / Cached / Stale / Mock label from a fetch timestamp."""

    def __init__(
        self,
        live_minutes: Optional[float] = None,
        stale_minutes: Optional[float] = None,
    ):
        self.live_minutes = settings.FRESHNESS_LIVE_MINUTES if live_minutes is None else live_minutes
        self.stale_minutes = settings.FRESHNESS_STALE_MINUTES if stale_minutes is None else stale_minutes
        if self.live_minutes >= self.stale_minutes:
            raise ValueError(
                f"live threshold must be below stale threshold, got {self.live_minutes} >= {self.stale_minutes}"
            )

    def classify(
        self,
        fetched_at: datetime,
        is_mock: bool,
        now: Optional[datetime] = None,
    ) -> Freshness:
        """
        Classify data freshness.

        Args:
            fetched_at: When the underlying payload was fetched from its provider.
            is_mock: Payload is mock/test/fallback data.
            now: Reference time (defaults to the current UTC time).

        Returns:
            Freshness label.
        """
        if is_mock:
            return Freshness.MOCK

        now = _as_utc(now or datetime.now(timezone.utc))
        age_minutes = max(0.0, (now - _as_utc(fetched_at)).total_seconds() / 60.0)

        if age_minutes < self.live_minutes:
            label = Freshness.LIVE
        elif age_minutes < self.stale_minutes:
            label = Freshness.CACHED
        else:
            label = Freshness.STALE

        logger.debug("freshness_classified", age_minutes=round(age_minutes, 2), freshness=label.value)
        return label
