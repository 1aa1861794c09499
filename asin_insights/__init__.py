"""
ASIN Competitor Insights.

Resolves product-page URLs to ASINs, gathers target and competitor metrics
(with a deterministic offline fallback), and derives gap indicators,
a priority score and recommended actions per product.
"""

__version__ = "1.0.0"
__author__ = "ASIN Insights Team"

# Lazy imports to avoid circular dependencies
def get_pipeline():
    """Get the InsightsPipeline class (lazy import)."""
    from asin_insights.pipeline.orchestrator import InsightsPipeline
    return InsightsPipeline

__all__ = ["get_pipeline", "__version__"]
