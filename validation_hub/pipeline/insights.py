"""
Insight Generator
validation_hub/pipeline/insights.py

Builds the three-level drill-down shown when a user expands a metric:

    1. Overview            value + definition (or a generic framing sentence)
    2. Breakdown           category components + calculation
    3. Strategic Analysis  category recommendations + benchmarks + usefulness

The metric key is classified by substring match against CATEGORY_PATTERNS,
checked top to bottom; the first matching row wins. A key such as
"market_score" therefore resolves to MARKET, never SENTIMENT.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import structlog

from validation_hub.models.enumerations import InsightCategory
from validation_hub.models.tile import DrillDownLevel, MetricExplanation
from validation_hub.pipeline.explanations import lookup_explanation
from validation_hub.pipeline.utils import format_compact

logger = structlog.get_logger(__name__)

LEVEL_TITLES = ("Overview", "Breakdown", "Strategic Analysis")

# Priority order matters: first match wins.
CATEGORY_PATTERNS: Tuple[Tuple[InsightCategory, Tuple[str, ...]], ...] = (
    (InsightCategory.MARKET, ("market", "tam", "sam", "som")),
    (InsightCategory.COMPETITION, ("competition", "competitor")),
    (InsightCategory.SENTIMENT, ("sentiment", "score")),
)

CATEGORY_COMPONENTS: Dict[InsightCategory, Dict[str, str]] = {
    InsightCategory.MARKET: {
        "total_addressable": "Full revenue pool if every potential customer bought",
        "serviceable_segment": "Portion reachable with the current model and geography",
        "obtainable_share": "Share realistically winnable in the next 3-5 years",
        "growth_drivers": "Trends expanding or shrinking the pool",
    },
    InsightCategory.COMPETITION: {
        "direct_competitors": "Products solving the same problem for the same buyer",
        "indirect_alternatives": "Workarounds and adjacent tools buyers use today",
        "barriers_to_entry": "Cost, regulation or network effects protecting incumbents",
        "differentiation_gap": "Unmet needs competitors leave open",
    },
    InsightCategory.SENTIMENT: {
        "positive_signals": "Mentions expressing interest, praise or intent to buy",
        "neutral_mentions": "Informational discussion without a clear stance",
        "negative_signals": "Complaints, objections and doubts",
        "engagement_depth": "How actively the audience discusses the topic",
    },
    InsightCategory.GENERIC: {
        "primary_driver": "The main input behind this metric",
        "supporting_signals": "Secondary data points that corroborate it",
        "data_quality": "Coverage and recency of the underlying sources",
    },
}

CATEGORY_RECOMMENDATIONS: Dict[InsightCategory, Tuple[str, ...]] = {
    InsightCategory.MARKET: (
        "Pick a beachhead segment inside the serviceable market",
        "Validate willingness to pay with 10-20 customer interviews",
        "Revisit sizing assumptions as real conversion data arrives",
    ),
    InsightCategory.COMPETITION: (
        "Map the top competitors' pricing and positioning",
        "Lead with the differentiator competitors cannot copy quickly",
        "Watch for new entrants in adjacent categories",
    ),
    InsightCategory.SENTIMENT: (
        "Turn the most common complaint into a headline feature",
        "Engage the communities where positive mentions cluster",
        "Track sentiment weekly to catch shifts early",
    ),
    InsightCategory.GENERIC: (
        "Set a measurable target for this metric",
        "Review the metric alongside related tiles before deciding",
        "Re-run the analysis after the next product iteration",
    ),
}

BENCHMARK_LABELS = {
    "industry_average": "Median across comparable ideas in this category",
    "top_quartile": "Threshold reached by the top 25% of comparable ideas",
    "growth_target": "10-20% improvement over the next quarter",
}

ExplanationInput = Union[MetricExplanation, Mapping[str, Any], None]


def classify_metric(metric_key: str) -> InsightCategory:
    """Category for a metric key; first matching pattern row wins."""
    key = metric_key.lower()
    for category, patterns in CATEGORY_PATTERNS:
        if any(pattern in key for pattern in patterns):
            return category
    return InsightCategory.GENERIC


def _humanize(metric_key: str) -> str:
    words = metric_key.replace("-", "_").split("_")
    return " ".join(w.upper() if len(w) <= 3 else w.capitalize() for w in words if w) or metric_key


def _coerce_explanation(explanation: ExplanationInput) -> Optional[MetricExplanation]:
    if explanation is None:
        return None
    if isinstance(explanation, MetricExplanation):
        return explanation
    return MetricExplanation.model_validate(dict(explanation))


class InsightGenerator:
    """Rule-based drill-down synthesis for a single metric."""

    def __init__(self, use_catalog: bool = True):
        self.use_catalog = use_catalog

    def build_drill_down(
        self,
        metric_key: str,
        metric_value: Any,
        explanation: ExplanationInput = None,
    ) -> List[DrillDownLevel]:
        """
        Build the Overview / Breakdown / Strategic Analysis levels.

        Args:
            metric_key: Metric name as it appears in TileData.metrics.
            metric_value: Displayed (already adjusted) value.
            explanation: Optional definition / calculation / usefulness texts.
                Falls back to the metric catalog when omitted.

        Returns:
            Exactly three levels; each level's children hold the next level.

        Raises:
            ValueError: If metric_key is blank.
        """
        if not metric_key or not metric_key.strip():
            raise ValueError("metric_key must be a non-empty string")

        metric_key = metric_key.strip()
        info = _coerce_explanation(explanation)
        if info is None and self.use_catalog:
            info = lookup_explanation(metric_key)
        info = info or MetricExplanation()

        category = classify_metric(metric_key)
        label = _humanize(metric_key)
        formatted = format_compact(metric_value)

        strategic = self._strategic(category, formatted, info)
        breakdown = self._breakdown(category, label, info, strategic)
        overview = self._overview(metric_key, label, metric_value, formatted, category, info, breakdown)

        logger.debug("drill_down_built", metric_key=metric_key, category=category.value)
        return [overview, breakdown, strategic]

    def _overview(
        self,
        metric_key: str,
        label: str,
        metric_value: Any,
        formatted: str,
        category: InsightCategory,
        info: MetricExplanation,
        child: DrillDownLevel,
    ) -> DrillDownLevel:
        framing = info.definition or (
            f"{label} summarizes one dimension of the idea's validation profile; "
            "expand the breakdown to see what drives it."
        )
        return DrillDownLevel(
            title=LEVEL_TITLES[0],
            description=framing,
            data={
                "metric": metric_key,
                "value": metric_value,
                "formatted_value": formatted,
                "category": category.value,
            },
            insights=[f"{label} currently stands at {formatted}.", framing],
            children=[child],
        )

    def _breakdown(
        self,
        category: InsightCategory,
        label: str,
        info: MetricExplanation,
        child: DrillDownLevel,
    ) -> DrillDownLevel:
        components = dict(CATEGORY_COMPONENTS[category])
        insights = [f"{_humanize(name)}: {text}" for name, text in components.items()]
        if info.calculation:
            insights.append(f"How it is calculated: {info.calculation}")
        return DrillDownLevel(
            title=LEVEL_TITLES[1],
            description=info.calculation or f"Components that make up {label}.",
            data={"components": components},
            insights=insights,
            children=[child],
        )

    def _strategic(
        self,
        category: InsightCategory,
        formatted: str,
        info: MetricExplanation,
    ) -> DrillDownLevel:
        recommendations = list(CATEGORY_RECOMMENDATIONS[category])
        benchmarks = {
            "industry_average": BENCHMARK_LABELS["industry_average"],
            "top_quartile": BENCHMARK_LABELS["top_quartile"],
            "your_position": formatted,
            "growth_target": BENCHMARK_LABELS["growth_target"],
        }
        insights = list(recommendations)
        if info.usefulness:
            insights.append(f"Why it matters: {info.usefulness}")
        if info.benchmarks:
            insights.append(f"Benchmarks: {info.benchmarks}")
        insights.extend(info.tips)
        return DrillDownLevel(
            title=LEVEL_TITLES[2],
            description=info.usefulness,
            data={"recommendations": recommendations, "benchmarks": benchmarks},
            insights=insights,
        )
