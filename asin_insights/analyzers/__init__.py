"""Analyzers module for ASIN Competitor Insights."""

from asin_insights.analyzers.insight_engine import (
    InsightEngine,
    PRIORITY_WEIGHTS,
    classify_price,
    compute_clicks_share,
    compute_competitor_average,
    compute_priority_score,
)
from asin_insights.analyzers.portfolio import PortfolioAggregator

__all__ = [
    # Insights
    "InsightEngine",
    "PRIORITY_WEIGHTS",
    "classify_price",
    "compute_clicks_share",
    "compute_competitor_average",
    "compute_priority_score",
    # Portfolio
    "PortfolioAggregator",
]
