"""
Services package for ASIN Competitor Insights.

Services:
    - ValidationService: CSV parsing and input sanitization
    - MetricsSource: Target and competitor metrics acquisition

Sources:
    - RemoteMetricsSource: Competitor-data HTTP endpoint
    - DeterministicFallbackSource: Offline metrics seeded from the ASIN
    - FallbackMetricsSource: Primary source with fallback on failure
"""

from asin_insights.services.metrics_service import (
    # Sources
    MetricsSource,
    RemoteMetricsSource,
    DeterministicFallbackSource,
    FallbackMetricsSource,
    create_metrics_source,
    # Fallback helpers
    identifier_seed,
    seeded_random,
)
from asin_insights.services.validation_service import ValidationService

__all__ = [
    "MetricsSource",
    "RemoteMetricsSource",
    "DeterministicFallbackSource",
    "FallbackMetricsSource",
    "create_metrics_source",
    "identifier_seed",
    "seeded_random",
    "ValidationService",
]
