#validation_hub/models/tile.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Union

from validation_hub.models.enumerations import (
    CacheTier,
    Freshness,
    Origin,
    ReliabilityTier,
)


MetricValue = Union[float, int, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TileRequest(BaseModel):
    """What tile data is wanted and for whom. Built per fetch."""
    model_config = ConfigDict(frozen=True)

    tile_type: str = Field(min_length=1, max_length=64)
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    idea_text: str = ""
    params: Dict[str, str] = Field(default_factory=dict)

    @field_validator("tile_type")
    @classmethod
    def normalize_tile_type(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("tile_type cannot be blank")
        return v

    @field_validator("params", mode="before")
    @classmethod
    def stringify_params(cls, v: Any) -> Dict[str, str]:
        if v is None:
            return {}
        return {str(k): "" if val is None else str(val) for k, val in dict(v).items()}

    @property
    def has_identity(self) -> bool:
        """True when a durable user or session context is present."""
        return bool((self.user_id or "").strip() or (self.session_id or "").strip())


class CacheEntry(BaseModel):
    """A raw provider payload as written by one cache tier."""
    model_config = ConfigDict(frozen=True)

    key: str
    payload: Dict[str, Any]
    stored_at: datetime = Field(default_factory=_utcnow)
    ttl_minutes: float = Field(gt=0)
    tier: CacheTier

    def age_minutes(self, now: datetime) -> float:
        return max(0.0, (now - self.stored_at).total_seconds() / 60.0)

    def is_expired(self, now: datetime) -> bool:
        return self.age_minutes(now) >= self.ttl_minutes


class ChartPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: float


class SourceRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    url: Optional[str] = None
    reliability_tier: ReliabilityTier = ReliabilityTier.UNVERIFIED


class TileData(BaseModel):
    """Canonical tile payload consumed by the generic renderers."""
    model_config = ConfigDict(frozen=True)

    tile_type: str
    metrics: Dict[str, MetricValue] = Field(default_factory=dict)
    chart_series: List[ChartPoint] = Field(default_factory=list)
    sources: List[SourceRef] = Field(default_factory=list)
    insights: List[str] = Field(default_factory=list)
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    fetched_at: datetime
    origin: Origin = Origin.PROVIDER
    is_mock: bool = False

    # Pipeline bookkeeping
    adjusted: bool = False                    # ConservativeTransform has run
    freshness: Optional[Freshness] = None     # set by FreshnessClassifier
    refresh_error: Optional[str] = None       # last-known data shown after a failed refresh
    warnings: List[str] = Field(default_factory=list)

    @property
    def is_fallback(self) -> bool:
        return self.refresh_error is not None


class MetricExplanation(BaseModel):
    """Caller-supplied (or catalog) explanation of a metric."""
    definition: Optional[str] = None
    calculation: Optional[str] = None
    usefulness: Optional[str] = None
    benchmarks: Optional[str] = None
    tips: List[str] = Field(default_factory=list)


class DrillDownLevel(BaseModel):
    """One level of a metric drill-down; generated trees are three deep."""
    title: str
    description: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    insights: List[str] = Field(default_factory=list)
    children: List["DrillDownLevel"] = Field(default_factory=list)


DrillDownLevel.model_rebuild()
