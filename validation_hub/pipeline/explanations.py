"""
Metric explanation catalog used when a drill-down is requested without a
caller-supplied explanation.
"""

from typing import Dict, Optional

from validation_hub.models.tile import MetricExplanation

METRIC_EXPLANATIONS: Dict[str, MetricExplanation] = {
    "tam": MetricExplanation(
        definition="Total Addressable Market: revenue available if the product captured every possible customer.",
        calculation="Potential customers × average annual revenue per customer.",
        usefulness="Shows whether the market is large enough to justify building for it.",
        benchmarks="Good: $1B+, great: $10B+.",
        tips=["Prefer markets growing 10%+ a year", "Compare TAM across geographies"],
    ),
    "sam": MetricExplanation(
        definition="Serviceable Addressable Market: the part of TAM the business model can actually reach.",
        calculation="TAM × share reachable given geography, features and pricing.",
        usefulness="A realistic ceiling for the current go-to-market plan.",
        benchmarks="Typically 10-40% of TAM.",
        tips=["SAM grows with new features or regions"],
    ),
    "som": MetricExplanation(
        definition="Serviceable Obtainable Market: the slice of SAM that can realistically be won in 3-5 years.",
        calculation="SAM × achievable market share (1-10% for new entrants).",
        usefulness="Anchors revenue targets and financial plans.",
        benchmarks="1-5% of SAM in year one.",
        tips=["Most early teams overestimate SOM"],
    ),
    "cagr": MetricExplanation(
        definition="Compound Annual Growth Rate of the market.",
        calculation="(Ending value / beginning value)^(1 / years) - 1.",
        usefulness="Normalizes growth so markets of different ages can be compared.",
        benchmarks="Mature markets: 5-15%.",
    ),
    "competition_level": MetricExplanation(
        definition="How crowded the market is, from the number and strength of competitors.",
        calculation="Direct competitors weighted double plus indirect competitors and concentration.",
        usefulness="Indicates how hard entry will be and how much differentiation is needed.",
        benchmarks="Low: <5 competitors, medium: 5-15, high: 15+.",
    ),
    "market_share": MetricExplanation(
        definition="Share of total market revenue or customers held.",
        calculation="Own revenue / total market revenue × 100.",
        usefulness="Tracks competitive position over time.",
        benchmarks="Leader: >30%, strong: 10-30%, emerging: <10%.",
    ),
    "growth_rate": MetricExplanation(
        definition="Percentage change of a metric over a period.",
        calculation="(Current - previous) / previous × 100.",
        usefulness="Measures momentum and traction.",
    ),
    "acquisition_cost": MetricExplanation(
        definition="Customer Acquisition Cost: spend needed to win one new customer.",
        calculation="Sales and marketing cost / new customers.",
        usefulness="Determines whether growth can be profitable.",
        benchmarks="Below a third of customer lifetime value.",
    ),
    "ltv": MetricExplanation(
        definition="Customer Lifetime Value: revenue expected over a customer relationship.",
        calculation="ARPU × lifetime in months × gross margin.",
        usefulness="Caps what can be spent on acquisition.",
        benchmarks="LTV:CAC above 3:1.",
    ),
    "churn_rate": MetricExplanation(
        definition="Share of customers who stop using the product in a period.",
        calculation="Customers lost / customers at period start × 100.",
        usefulness="A direct read on product-market fit and satisfaction.",
        benchmarks="B2C <5% monthly, B2B <2% monthly.",
    ),
    "sentiment_score": MetricExplanation(
        definition="Overall tone of public discussion about the idea, 0-100.",
        calculation="Positive mentions / all classified mentions, conservatively scaled.",
        usefulness="Early signal of how the audience will receive the product.",
        benchmarks="Above 60 reads as positive.",
    ),
}

_ALIASES = {
    "total_addressable_market": "tam",
    "serviceable_addressable_market": "sam",
    "serviceable_obtainable_market": "som",
    "level": "competition_level",
    "cac": "acquisition_cost",
    "churn": "churn_rate",
    "sentiment": "sentiment_score",
}


def lookup_explanation(metric_key: str) -> Optional[MetricExplanation]:
    """Catalog explanation for a metric key, or None."""
    key = metric_key.strip().lower().replace(" ", "_").replace("-", "_")
    key = _ALIASES.get(key, key)
    return METRIC_EXPLANATIONS.get(key)
