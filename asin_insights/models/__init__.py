"""Data models module for ASIN Competitor Insights."""

from asin_insights.models.schemas import (
    # Base Models
    BaseModel,

    # Enums
    PricePosition,
    Effort,
    MetricsOrigin,
    PipelineStage,
    ErrorType,

    # Input Models
    InputRecord,

    # Metrics Models
    TargetMetrics,
    CompetitorMetrics,
    MetricsBundle,

    # Analysis Models
    CompetitorAverage,
    Action,
    Insights,

    # Result Models
    ProcessedAsinData,
    PortfolioSummary,
    ProcessedData,

    # Error Models
    ErrorDetail,
    ErrorResponse,

    # Helpers
    validate_asin,
    round_half_up,
    round_int,
)

__all__ = [
    "BaseModel",
    "PricePosition",
    "Effort",
    "MetricsOrigin",
    "PipelineStage",
    "ErrorType",
    "InputRecord",
    "TargetMetrics",
    "CompetitorMetrics",
    "MetricsBundle",
    "CompetitorAverage",
    "Action",
    "Insights",
    "ProcessedAsinData",
    "PortfolioSummary",
    "ProcessedData",
    "ErrorDetail",
    "ErrorResponse",
    "validate_asin",
    "round_half_up",
    "round_int",
]
