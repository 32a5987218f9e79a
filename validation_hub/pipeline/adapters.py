"""
Adapter Registry
validation_hub/pipeline/adapters.py

Normalizes raw provider JSON into the canonical TileData schema.

One adapter per known tile type; unknown tile types use the generic adapter
(`value`, `items`, `description` only). All tolerance for missing, renamed
or oddly typed provider fields lives in this module. Everything downstream
may assume TileData is well formed.

Shape checks that raise ProviderMalformed:
  - payload is not a JSON object
  - payload is an error body carrying no data
  - a concrete adapter recognizes none of its fields

Adapters are pure; the only value derived from "now" is fetched_at, which
the caller passes in.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import structlog

from validation_hub.config import get_provider_name
from validation_hub.core.exceptions import ProviderMalformed
from validation_hub.models.enumerations import Origin, ReliabilityTier
from validation_hub.models.tile import ChartPoint, SourceRef, TileData
from validation_hub.pipeline.utils import to_fraction, to_number, unit_multiplier

logger = structlog.get_logger(__name__)

FALLBACK_INSIGHT = "Limited data is available for this tile; refresh later for a fuller picture."

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")
_KEY_CLEAN_RE = re.compile(r"[^a-z0-9]+")

# Keys that never carry tile data on their own
_ENVELOPE_KEYS = {
    "error", "status", "reason", "message", "warnings", "updatedAt", "updated_at",
    "fetchedAtISO", "fetched_at", "filters", "citations", "sources", "confidence",
    "source", "mock", "is_mock", "isMock", "test_data", "testData", "is_test",
}

_NAME_KEYS = ("name", "label", "date", "period", "month", "year", "keyword", "query", "segment", "x")
_VALUE_KEYS = (
    "value", "count", "score", "interest", "users", "size", "share",
    "market_share", "marketShare", "amount", "volume", "y",
)
_MOCK_FLAGS = ("mock", "is_mock", "isMock", "test_data", "testData", "is_test")
_MOCK_WARNING_RE = re.compile(r"\b(fallback|mock|synthetic|placeholder|demo)\b", re.IGNORECASE)


# =============================================================================
# SHAPE HELPERS
# =============================================================================

def canonical_key(key: Any) -> str:
    """"influencerInterest" / "12m Growth" / "Market-Size" -> snake_case."""
    text = _CAMEL_RE.sub("_", str(key).strip()) if not str(key).isupper() else str(key)
    return _KEY_CLEAN_RE.sub("_", text.lower()).strip("_")


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def first_present(data: Mapping[str, Any], *keys: str) -> Any:
    """First value under any of `keys` that is not None / empty string."""
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def text_list(value: Any, prefix: str = "") -> List[str]:
    """Strings from a list of strings or of {"text"|"insight"|"title"|...} objects."""
    if isinstance(value, str):
        value = [value]
    texts: List[str] = []
    for item in as_list(value):
        if isinstance(item, dict):
            item = first_present(item, "text", "insight", "title", "summary", "description", "name")
        if isinstance(item, str) and item.strip():
            texts.append(f"{prefix}{item.strip()}")
    return texts


def metric_value(value: Any) -> Optional[Any]:
    """Number when the value reads as one, non-empty string otherwise, else None."""
    if isinstance(value, bool) or value is None:
        return None
    number = to_number(value)
    if number is not None:
        return number
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def flatten_metrics(data: Any, prefix: str = "", depth: int = 0) -> Dict[str, Any]:
    """
    Flatten nested metric objects into a flat map.

    {"tam": {"value": 7.9, "unit": "B"}, "geo": {"US": 80}} ->
    {"tam": 7.9e9, "geo_us": 80.0}

    A list of {"name", "value", "unit"} objects becomes one metric per name.
    Lists of anything else, booleans and unreadable values are skipped.
    """
    flat: Dict[str, Any] = {}
    if depth > 4:
        return flat

    if isinstance(data, list):
        for item in data:
            if not isinstance(item, dict):
                continue
            name = first_present(item, "name", "label", "key", "metric")
            if name is None:
                continue
            key = canonical_key(name)
            if prefix:
                key = f"{prefix}_{key}"
            raw_value = item.get("value")
            unit = item.get("unit")
            number = to_number(raw_value)
            if number is not None:
                flat[key] = number * unit_multiplier(unit)
            else:
                value = metric_value(raw_value)
                if value is not None:
                    flat[key] = value
        return flat

    for raw_key, value in as_dict(data).items():
        key = canonical_key(raw_key)
        if not key:
            continue
        if prefix:
            key = f"{prefix}_{key}"
        if isinstance(value, dict):
            if "value" in value and to_number(value) is not None:
                flat[key] = to_number(value)
            else:
                flat.update(flatten_metrics(value, key, depth + 1))
        elif isinstance(value, list):
            if value and all(isinstance(v, dict) for v in value):
                flat.update(flatten_metrics(value, key, depth + 1))
        else:
            parsed = metric_value(value)
            if parsed is not None:
                flat[key] = parsed
    return flat


def _point_from_object(item: Mapping[str, Any]) -> Optional[ChartPoint]:
    name = first_present(item, *_NAME_KEYS)
    if name is None:
        return None
    for key in _VALUE_KEYS:
        number = to_number(item.get(key))
        if number is not None:
            return ChartPoint(name=str(name), value=number)
    return None


def to_chart_series(data: Any) -> List[ChartPoint]:
    """
    Convert heterogeneous time-series shapes into ordered chart points.

    Accepted shapes:
      [["2024-01", 40], ["2024-02", 55]]               list of pairs
      [{"date": "2024-01", "value": 40}, ...]          list of objects
      {"2024-01": 40, "2024-02": 55}                   keyed object
      {"data": [...]} / {"points": [...]}              wrapped series
    Points whose value cannot be read as a number are dropped; order is kept.
    """
    points: List[ChartPoint] = []
    if isinstance(data, dict):
        for wrapper in ("data", "points", "values", "series"):
            if isinstance(data.get(wrapper), (list, dict)):
                return to_chart_series(data[wrapper])
        for name, value in data.items():
            number = to_number(value)
            if number is not None:
                points.append(ChartPoint(name=str(name), value=number))
        return points

    for item in as_list(data):
        if isinstance(item, (list, tuple)) and len(item) >= 2:
            number = to_number(item[1])
            if number is not None:
                points.append(ChartPoint(name=str(item[0]), value=number))
        elif isinstance(item, dict):
            point = _point_from_object(item)
            if point is not None:
                points.append(point)
    return points


def first_series(data: Mapping[str, Any], *keys: str) -> List[ChartPoint]:
    for key in keys:
        series = to_chart_series(data.get(key))
        if series:
            return series
    return []


def _reliability(item: Mapping[str, Any]) -> ReliabilityTier:
    raw = first_present(item, "reliability_tier", "reliabilityTier", "reliability", "credibility")
    if isinstance(raw, str):
        try:
            return ReliabilityTier(raw.strip().lower())
        except ValueError:
            pass
    score = to_fraction(raw)
    if score is not None:
        if score >= 0.8:
            return ReliabilityTier.HIGH
        if score >= 0.5:
            return ReliabilityTier.MEDIUM
        return ReliabilityTier.LOW
    if item.get("url") and item.get("url") != "#":
        return ReliabilityTier.MEDIUM
    return ReliabilityTier.UNVERIFIED


def extract_sources(*containers: Mapping[str, Any]) -> List[SourceRef]:
    """Source references from `sources` / `citations` lists, de-duplicated in order."""
    sources: List[SourceRef] = []
    seen = set()
    for container in containers:
        for list_key in ("sources", "citations"):
            for item in as_list(container.get(list_key)):
                if isinstance(item, str):
                    item = {"name": item}
                if not isinstance(item, dict):
                    continue
                url = item.get("url") if isinstance(item.get("url"), str) else None
                name = first_present(item, "name", "label", "source", "title") or url
                if not name:
                    continue
                identity = (str(name), url)
                if identity in seen:
                    continue
                seen.add(identity)
                description = first_present(item, "description", "snippet", "summary") or ""
                sources.append(
                    SourceRef(
                        name=str(name),
                        description=str(description),
                        url=url if url and url != "#" else None,
                        reliability_tier=_reliability(item),
                    )
                )
    return sources


def detect_mock(raw: Mapping[str, Any], warnings: Iterable[str]) -> bool:
    """Payload flags itself as mock, test or fallback data."""
    if any(raw.get(flag) is True for flag in _MOCK_FLAGS):
        return True
    if str(raw.get("source", "")).lower() == "mock":
        return True
    return any(_MOCK_WARNING_RE.search(w) for w in warnings)


def _is_error_body(raw: Mapping[str, Any]) -> bool:
    if not raw.get("error"):
        return False
    return not any(value for key, value in raw.items() if key not in _ENVELOPE_KEYS)


# =============================================================================
# ADAPTERS
# =============================================================================

@dataclass
class AdapterResult:
    """What a tile adapter extracts; shared fields are filled in by the registry."""
    metrics: Dict[str, Any] = field(default_factory=dict)
    chart_series: List[ChartPoint] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)
    body: Dict[str, Any] = field(default_factory=dict)  # unwrapped payload, searched for sources
    recognized: bool = True


Adapter = Callable[[Dict[str, Any]], AdapterResult]

_MARKET_ALIASES = {
    "total_addressable_market": "tam",
    "serviceable_addressable_market": "sam",
    "serviceable_available_market": "sam",
    "serviceable_obtainable_market": "som",
    "market_size_tam": "tam",
    "market_size_sam": "sam",
    "market_size_som": "som",
    "growth_rate": "cagr",
    "annual_growth": "cagr",
}


def _apply_aliases(metrics: Dict[str, Any], aliases: Mapping[str, str]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in metrics.items():
        target = aliases.get(key, key)
        # an explicit canonical key wins over an alias
        if target in result and target != key:
            continue
        result[target] = value
    return result


def adapt_market_size(raw: Dict[str, Any]) -> AdapterResult:
    body = as_dict(raw.get("market_size")) or as_dict(raw.get("data")) or raw
    metrics = flatten_metrics({
        k: v for k, v in body.items()
        if k not in _ENVELOPE_KEYS and k != "metrics" and not isinstance(v, list)
    })
    # metrics arrive either as {"TAM": ...} objects or as [{"name": "TAM", "value": 7900, "unit": "M"}]
    listed = flatten_metrics(body.get("metrics"))
    for key, value in listed.items():
        metrics.setdefault(key, value)
    metrics = _apply_aliases(metrics, _MARKET_ALIASES)
    metrics = {
        k: v for k, v in metrics.items()
        if not isinstance(v, str) or k in ("currency", "region", "geography")
    }

    chart = first_series(body, "segments", "projections", "series", "timeline", "growth")
    insights = text_list(body.get("insights")) + text_list(body.get("drivers"))
    if not insights and any(k in metrics for k in ("tam", "sam", "som")):
        insights.append("Market sizing estimates available; figures are shown after conservative adjustment.")

    recognized = any(k in metrics for k in ("tam", "sam", "som")) or bool(chart)
    return AdapterResult(metrics, chart, insights, body, recognized)


_COMPETITION_ALIASES = {
    "total": "competitor_count",
    "metrics_total": "competitor_count",
    "direct": "direct_competitors",
    "metrics_direct": "direct_competitors",
    "indirect": "indirect_competitors",
    "metrics_indirect": "indirect_competitors",
    "level": "competition_level",
    "intensity": "competition_level",
}


def adapt_competition(raw: Dict[str, Any]) -> AdapterResult:
    body = as_dict(raw.get("competition")) or as_dict(raw.get("data")) or raw
    metrics = _apply_aliases(flatten_metrics(body.get("metrics")), _COMPETITION_ALIASES)
    level = first_present(body, "level", "competition_level", "competitionLevel", "intensity")
    if level is not None and metric_value(level) is not None:
        metrics["competition_level"] = metric_value(level)

    competitors = [c for c in as_list(first_present(body, "competitors", "players")) if c]
    if competitors and "competitor_count" not in metrics:
        metrics["competitor_count"] = float(len(competitors))

    chart = to_chart_series(competitors) or first_series(body, "market_shares", "share_of_voice")
    insights = text_list(body.get("insights"))
    names = [
        str(c.get("name")) if isinstance(c, dict) else str(c)
        for c in competitors
        if (isinstance(c, dict) and c.get("name")) or isinstance(c, str)
    ]
    if names:
        insights.append(f"Notable competitors: {', '.join(names[:5])}")
    if not insights and "competition_level" in metrics:
        insights.append(f"Competition level assessed as {metrics['competition_level']}.")

    recognized = bool(metrics) or bool(competitors)
    return AdapterResult(metrics, chart, insights, body, recognized)


def _distribution_percentages(distribution: Mapping[str, Any]) -> Dict[str, float]:
    counts = {}
    for name in ("positive", "neutral", "negative"):
        number = to_number(distribution.get(name))
        if number is not None and number >= 0:
            counts[name] = number
    total = sum(counts.values())
    if not counts or total <= 0:
        return {}
    # raw mention counts are converted to shares; shares already summing to 100 are kept
    if abs(total - 100.0) > 1.0:
        return {name: round(count / total * 100.0, 2) for name, count in counts.items()}
    return counts


def adapt_sentiment(raw: Dict[str, Any]) -> AdapterResult:
    body = as_dict(raw.get("sentiment")) if isinstance(raw.get("sentiment"), dict) else raw
    body = as_dict(body.get("data")) or body

    metrics: Dict[str, Any] = {}
    listed = flatten_metrics(body.get("metrics"))
    metrics.update({k: v for k, v in listed.items() if not isinstance(v, str)})

    distribution = as_dict(first_present(body, "distribution", "breakdown"))
    for name, share in _distribution_percentages(distribution).items():
        metrics.setdefault(f"sentiment_{name}", share)

    score = to_number(first_present(body, "sentiment_score", "sentimentScore", "overall", "sentiment", "score"))
    if score is not None:
        metrics["sentiment_score"] = score
    elif "sentiment_positive" in metrics:
        metrics["sentiment_score"] = metrics["sentiment_positive"]

    chart = first_series(body, "timeline", "trend", "history", "series")
    insights = (
        text_list(body.get("insights"))
        + text_list(body.get("pros"), "Strength: ")
        + text_list(body.get("cons"), "Concern: ")
        + text_list(body.get("themes"), "Theme: ")
        + text_list(body.get("pain_points"), "Pain point: ")
    )
    if not insights and metrics:
        insights.append("Audience sentiment collected; scores are shown after conservative adjustment.")

    recognized = "sentiment_score" in metrics or any(k.startswith("sentiment_") for k in metrics)
    return AdapterResult(metrics, chart, insights, body, recognized)


def adapt_search_trends(raw: Dict[str, Any]) -> AdapterResult:
    body = (
        as_dict(raw.get("google_trends"))
        or as_dict(raw.get("search_trends"))
        or as_dict(raw.get("data"))
        or raw
    )
    metrics = flatten_metrics(body.get("metrics"))
    for key in ("interest_score", "momentum_score", "search_volume", "growth_rate"):
        value = metric_value(body.get(key))
        if value is not None:
            metrics.setdefault(key, value)

    charts = as_dict(body.get("charts"))
    chart = (
        to_chart_series(charts.get("timeline"))
        or first_series(body, "timeline", "interest_over_time", "interestOverTime", "series")
    )

    insights = text_list(body.get("summary")) + text_list(body.get("insights"))
    keywords = [k for k in as_list(body.get("keywords")) if isinstance(k, str)]
    if not insights and keywords:
        insights.append(f"Search interest tracked for: {', '.join(keywords[:5])}")
    if not insights and chart:
        insights.append(f"Search interest tracked across {len(chart)} periods.")

    recognized = bool(metrics) or bool(chart)
    return AdapterResult(metrics, chart, insights, body, recognized)


def adapt_social_signals(raw: Dict[str, Any]) -> AdapterResult:
    body = as_dict(raw.get("normalized")) or as_dict(raw.get("social")) or as_dict(raw.get("data")) or raw
    metrics = {
        k: v for k, v in flatten_metrics(
            {k: v for k, v in body.items() if k not in _ENVELOPE_KEYS and k != "metrics"}
        ).items()
        if not isinstance(v, str)
    }
    metrics.update({k: v for k, v in flatten_metrics(body.get("metrics")).items() if not isinstance(v, str)})

    chart = first_series(body, "mentions_over_time", "timeline", "series", "items")
    hashtags = [h for h in as_list(first_present(body, "trendingHashtags", "trending_hashtags", "hashtags")) if isinstance(h, str)]
    insights = (
        text_list(body.get("insights"))
        + text_list(body.get("themes"), "Theme: ")
        + text_list(body.get("pain_points"), "Pain point: ")
    )
    if hashtags:
        insights.append(f"Trending: {' '.join(hashtags[:5])}")
    if not insights and metrics:
        insights.append("Social listening signals collected across monitored communities.")

    recognized = bool(metrics) or bool(chart)
    return AdapterResult(metrics, chart, insights, body, recognized)


def adapt_pmf_score(raw: Dict[str, Any]) -> AdapterResult:
    body = as_dict(raw.get("data")) or raw
    metrics: Dict[str, Any] = {}
    score = to_number(first_present(body, "score", "pmf_score", "pmfScore", "smoothbrains_score", "overall_score"))
    if score is not None:
        metrics["score"] = score
    tier = first_present(body, "tier", "level")
    if isinstance(tier, str):
        metrics["tier"] = tier.strip()

    factors = as_dict(first_present(body, "factors", "breakdown"))
    for name, value in factors.items():
        # breakdown rows look like {"market": {"score": 60}}; factors like {"market": 60}
        number = to_number(value.get("score")) if isinstance(value, dict) else to_number(value)
        if number is not None:
            metrics[f"factor_{canonical_key(name)}"] = number

    chart = first_series(body, "history", "series", "timeline")
    insights = text_list(body.get("insights")) + text_list(body.get("recommendations"), "Next step: ")
    if not insights and "score" in metrics:
        count = sum(1 for k in metrics if k.startswith("factor_"))
        insights.append(f"Fit score combines {count} factor(s); shown after conservative adjustment.")

    return AdapterResult(metrics, chart, insights, body, "score" in metrics)


def adapt_generic(raw: Dict[str, Any]) -> AdapterResult:
    """Minimal common subset: value, items, description. Never rejects a mapping."""
    metrics: Dict[str, Any] = {}
    value = metric_value(raw.get("value"))
    if value is not None:
        metrics["value"] = value
    chart = to_chart_series(raw.get("items"))
    insights = text_list(raw.get("description"))
    return AdapterResult(metrics, chart, insights, raw, True)


DEFAULT_ADAPTERS: Dict[str, Adapter] = {
    "market_size": adapt_market_size,
    "competition": adapt_competition,
    "sentiment": adapt_sentiment,
    "search_trends": adapt_search_trends,
    "social_signals": adapt_social_signals,
    "pmf_score": adapt_pmf_score,
}


# =============================================================================
# REGISTRY
# =============================================================================

class AdapterRegistry:
    """Per-tile-type normalizers with a generic fallback."""

    def __init__(self, adapters: Optional[Dict[str, Adapter]] = None):
        self._adapters: Dict[str, Adapter] = dict(DEFAULT_ADAPTERS if adapters is None else adapters)

    def register(self, tile_type: str, adapter: Adapter) -> None:
        self._adapters[tile_type.strip().lower()] = adapter

    def adapter_for(self, tile_type: str) -> Adapter:
        return self._adapters.get(tile_type.strip().lower(), adapt_generic)

    @property
    def tile_types(self) -> List[str]:
        return sorted(self._adapters)

    def normalize(
        self,
        tile_type: str,
        raw: Any,
        fetched_at: Optional[datetime] = None,
        origin: Origin = Origin.PROVIDER,
    ) -> TileData:
        """
        Normalize a raw provider payload into TileData.

        Args:
            tile_type: Tile type selecting the adapter.
            raw: Provider JSON (dict, or a JSON string decoding to one).
            fetched_at: When the payload was fetched (defaults to now).
            origin: Tier the payload was served from.

        Returns:
            Unadjusted TileData with at least one insight.

        Raises:
            ProviderMalformed: If the payload fails the minimal shape checks.
        """
        tile_type = tile_type.strip().lower()
        provider = get_provider_name(tile_type)

        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                raise ProviderMalformed(f"Payload is not valid JSON: {e}", provider, tile_type) from e
        if not isinstance(raw, dict):
            raise ProviderMalformed(
                f"Expected a JSON object, got {type(raw).__name__}", provider, tile_type
            )
        if _is_error_body(raw):
            raise ProviderMalformed(f"Provider returned an error body: {raw.get('error')}", provider, tile_type)

        result = self.adapter_for(tile_type)(raw)
        if not result.recognized:
            raise ProviderMalformed(
                f"No recognizable {tile_type} fields in payload (keys: {sorted(raw)[:10]})",
                provider,
                tile_type,
            )

        body = result.body if result.body is not raw else {}
        warnings = text_list(raw.get("warnings")) + text_list(body.get("warnings"))
        confidence = to_fraction(raw["confidence"] if "confidence" in raw else body.get("confidence"))
        insights = result.insights or [FALLBACK_INSIGHT]

        data = TileData(
            tile_type=tile_type,
            metrics=result.metrics,
            chart_series=result.chart_series,
            sources=extract_sources(raw, body),
            insights=insights,
            confidence=confidence,
            fetched_at=fetched_at or datetime.now(timezone.utc),
            origin=origin,
            is_mock=detect_mock(raw, warnings) or detect_mock(body, ()),
            warnings=warnings,
        )

        logger.debug(
            "tile_normalized",
            tile_type=tile_type,
            metrics=len(data.metrics),
            chart_points=len(data.chart_series),
            sources=len(data.sources),
            is_mock=data.is_mock,
        )
        return data
