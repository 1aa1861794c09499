"""
Pydantic models and schemas for the ASIN Competitor Insights pipeline.

This module defines all data structures used throughout the pipeline,
ensuring type safety, validation, and serialization consistency.

Models:
    - InputRecord: One parsed row of the uploaded CSV
    - TargetMetrics / CompetitorMetrics: Metrics for a product and its rivals
    - MetricsBundle: What a metrics source returns for one ASIN
    - CompetitorAverage, Insights, Action: Derived per-ASIN analysis
    - PortfolioSummary, ProcessedAsinData, ProcessedData: Final result
    - ErrorResponse: Standardized error handling
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Self
from uuid import UUID, uuid4

from pydantic import (
    BaseModel as PydanticBaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)


# =============================================================================
# Base Configuration
# =============================================================================

class BaseModel(PydanticBaseModel):
    """Base model with common configuration for all schemas."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=False,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_json(self, **kwargs) -> str:
        """Serialize model to JSON string."""
        return self.model_dump_json(indent=2, **kwargs)

    def to_dict(self, **kwargs) -> dict[str, Any]:
        """Serialize model to dictionary."""
        return self.model_dump(**kwargs)

    @classmethod
    def from_json(cls, json_str: str) -> Self:
        """Deserialize model from JSON string."""
        return cls.model_validate_json(json_str)


# =============================================================================
# Enums
# =============================================================================

class PricePosition(str, Enum):
    """Target price relative to the competitor average."""
    ABOVE = "above"
    ALIGNED = "aligned"
    BELOW = "below"


class Effort(str, Enum):
    """Effort tier of a recommended action."""
    LOW = "Low"
    MEDIUM = "Med"
    HIGH = "High"


class MetricsOrigin(str, Enum):
    """Where a metrics bundle came from."""
    REMOTE = "remote"
    FALLBACK = "fallback"


class PipelineStage(str, Enum):
    """Pipeline state machine stages."""
    PARSING = "parsing"
    EXTRACTING = "extracting"
    FETCHING = "fetching"
    COMPUTING = "computing"
    DONE = "done"
    FAILED = "failed"


class ErrorType(str, Enum):
    """Error kind classification."""
    MALFORMED_INPUT = "malformed_input"
    NO_VALID_IDENTIFIERS = "no_valid_identifiers"
    METRICS_FETCH_FAILURE = "metrics_fetch_failure"
    GENERATION_FAILURE = "generation_failure"
    INTERNAL_ERROR = "internal_error"


# =============================================================================
# Validators (Reusable)
# =============================================================================

# ASIN pattern: 10 alphanumeric characters
ASIN_PATTERN = re.compile(r"^[A-Z0-9]{10}$")


def validate_asin(asin: str) -> str:
    """Validate Amazon ASIN format - 10 alphanumeric characters."""
    asin = asin.upper().strip()

    if not ASIN_PATTERN.match(asin):
        raise ValueError(
            f"Invalid ASIN format: '{asin}'. "
            "Must be 10 alphanumeric characters (e.g., 'B07XYZ1234')"
        )

    return asin


def round_half_up(value: float, ndigits: int = 0) -> float:
    """
    Round half away from negative infinity, as Math.round does.

    Python's round() uses banker's rounding, which would make values
    such as 2.5 come out differently from the reference outputs.
    """
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def round_int(value: float) -> int:
    """Round half up to the nearest integer."""
    return int(math.floor(value + 0.5))


# =============================================================================
# Input Models
# =============================================================================

class InputRecord(BaseModel):
    """
    One row of the uploaded CSV.

    Only `url` is required. Numeric columns that fail to parse are stored
    as None rather than rejecting the row.

    Example:
        >>> row = InputRecord(url="amazon.com/dp/B0CC282PBW", label="Scale")
        >>> row.label
        'Scale'
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1, description="Product page URL as uploaded")
    label: Optional[str] = Field(default=None, max_length=200)
    brand: Optional[str] = Field(default=None, max_length=100)
    price_floor: Optional[float] = Field(default=None, ge=0)
    target_rating: Optional[float] = Field(default=None, ge=0, le=5)
    target_reviews_count: Optional[int] = Field(default=None, ge=0)
    row_number: int = Field(default=0, ge=0, description="1-based data row index")

    @field_validator("label", "brand", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        """Empty cells mean 'not provided'."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


# =============================================================================
# Metrics Models
# =============================================================================

class TargetMetrics(BaseModel):
    """
    Metrics for the product being analyzed.

    Example:
        >>> TargetMetrics(
        ...     asin="B0CC282PBW", product_name="Kitchen Scale", brand="ACME",
        ...     price=24.99, est_daily_impressions=1200, est_daily_clicks=85,
        ...     ratings_count=540, avg_rating=4.3, keywords_top4=18,
        ...     keywords_page1=92,
        ... )
    """

    asin: str = Field(..., description="Amazon Standard Identification Number")
    product_name: str = Field(..., min_length=1, max_length=500)
    brand: str = Field(default="")
    price: float = Field(..., ge=0)
    est_daily_impressions: int = Field(..., ge=0)
    est_daily_clicks: int = Field(..., ge=0)
    ratings_count: int = Field(..., ge=0)
    avg_rating: float = Field(..., ge=0.0, le=5.0)
    keywords_top4: int = Field(..., ge=0)
    keywords_page1: int = Field(..., ge=0)

    @field_validator("asin", mode="before")
    @classmethod
    def validate_asin_format(cls, v: str) -> str:
        """Validate ASIN format."""
        return validate_asin(v)


class CompetitorMetrics(BaseModel):
    """A rival product returned for a target."""

    rank: int = Field(..., ge=1, description="1-based rank among competitors")
    comp_asin: str = Field(..., min_length=1)
    product_name: str = Field(..., min_length=1, max_length=500)
    brand_name: str = Field(default="")
    price: float = Field(..., ge=0)
    rating: float = Field(..., ge=0.0, le=5.0)
    ratings_count: int = Field(..., ge=0)
    keywords_top4: int = Field(..., ge=0)
    keywords_page1: int = Field(..., ge=0)
    est_daily_clicks: int = Field(..., ge=0)


class MetricsBundle(BaseModel):
    """
    Target plus competitor metrics for one ASIN.

    This is the response body of the remote competitor-data endpoint.
    The origin marker is kept out of serialization so the payload shape
    is the same whichever source produced it.
    """

    target: TargetMetrics
    competitors: list[CompetitorMetrics] = Field(..., min_length=1, max_length=5)

    source: MetricsOrigin = Field(default=MetricsOrigin.REMOTE, exclude=True)

    @model_validator(mode="after")
    def check_ranks(self) -> Self:
        """Ranks must be unique; competitors are kept in ascending rank order."""
        ranks = [c.rank for c in self.competitors]
        if len(set(ranks)) != len(ranks):
            raise ValueError(f"Competitor ranks must be unique, got {ranks}")
        self.competitors.sort(key=lambda c: c.rank)
        return self


# =============================================================================
# Analysis Models
# =============================================================================

class CompetitorAverage(BaseModel):
    """Element-wise mean of a competitor set (unrounded)."""

    price: float
    rating: float
    ratings_count: float
    keywords_top4: float
    keywords_page1: float
    est_daily_clicks: float


class Action(BaseModel):
    """An advisory next step for a product."""

    title: str
    why: str
    impact: list[str] = Field(default_factory=list)
    effort: Effort
    target: str


class Insights(BaseModel):
    """Gap indicators, priority score and recommended actions for one ASIN."""

    kw4_gap: float = Field(..., description="Competitor avg Top-4 keywords minus target")
    kwp1_gap: float = Field(..., description="Competitor avg Page-1 keywords minus target")
    rating_gap: float = Field(..., description="Target rating minus competitor avg")
    reviews_deficit: int = Field(..., description="Competitor avg ratings minus target")
    price_position: PricePosition
    clicks_share: float = Field(..., ge=0.0, le=1.0)
    priority_score: float = Field(..., ge=0.0, le=1.0)
    actions: list[Action] = Field(default_factory=list, max_length=3)


# =============================================================================
# Result Models
# =============================================================================

class ProcessedAsinData(BaseModel):
    """Everything computed for one unique ASIN."""

    asin: str
    label: str
    target: TargetMetrics
    comp_avg: CompetitorAverage
    competitors: list[CompetitorMetrics]
    insights: Insights


class PortfolioSummary(BaseModel):
    """Aggregate statistics over all processed ASINs."""

    asins_processed: int = Field(..., ge=0, alias="asinsProcessed")
    avg_rating: float = Field(..., alias="avgRating")
    avg_price: float = Field(..., alias="avgPrice")
    total_est_clicks: int = Field(..., ge=0, alias="totalEstClicks")
    avg_priority_score: float = Field(..., alias="avgPriorityScore")


class ProcessedData(BaseModel):
    """
    Final result of one pipeline run, consumed by presentation layers.

    Serialize with `by_alias=True` (as `to_payload` does) to get the
    camelCase keys expected by consumers.
    """

    file_name: str = Field(..., alias="fileName")
    run_id: str = Field(..., alias="runId")
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        alias="generatedAt",
    )
    portfolio: PortfolioSummary
    asins: list[ProcessedAsinData] = Field(default_factory=list)

    @field_serializer("generated_at")
    def serialize_generated_at(self, value: datetime) -> str:
        """ISO 8601 in UTC with millisecond precision and a trailing Z."""
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.isoformat(timespec="milliseconds") + "Z"

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the camelCase result payload."""
        return self.model_dump(mode="json", by_alias=True)

    def get_by_asin(self, asin: str) -> Optional[ProcessedAsinData]:
        asin = asin.upper()
        return next((a for a in self.asins if a.asin == asin), None)

    def ranked_by_priority(self) -> list[ProcessedAsinData]:
        """ASINs ordered from most to least urgent."""
        return sorted(self.asins, key=lambda a: a.insights.priority_score, reverse=True)


# =============================================================================
# Error Models
# =============================================================================

class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: Optional[str] = Field(
        default=None,
        description="Field that caused the error",
    )
    message: str = Field(..., description="Error message")
    code: Optional[str] = Field(
        default=None,
        description="Error code for programmatic handling",
    )


class ErrorResponse(BaseModel):
    """
    Standardized error response structure for a failed run.

    Example:
        >>> error = ErrorResponse(
        ...     error_type=ErrorType.MALFORMED_INPUT,
        ...     message='CSV must contain a "url" column',
        ... )
    """

    error_id: UUID = Field(default_factory=uuid4)
    error_type: ErrorType = Field(..., description="Error classification")
    message: str = Field(..., description="Human-readable error message")
    details: list[ErrorDetail] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: Optional[str] = Field(default=None)
    recoverable: bool = Field(default=False)

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        """Serialize timestamp to ISO format."""
        return value.isoformat()

    def to_dict_safe(self) -> dict[str, Any]:
        """Return error as dict, safe for logging."""
        return self.model_dump(mode="json", exclude={"details"})


# =============================================================================
# Export All Models
# =============================================================================

__all__ = [
    # Base
    "BaseModel",

    # Enums
    "PricePosition",
    "Effort",
    "MetricsOrigin",
    "PipelineStage",
    "ErrorType",

    # Input
    "InputRecord",

    # Metrics
    "TargetMetrics",
    "CompetitorMetrics",
    "MetricsBundle",

    # Analysis
    "CompetitorAverage",
    "Action",
    "Insights",

    # Result
    "ProcessedAsinData",
    "PortfolioSummary",
    "ProcessedData",

    # Errors
    "ErrorDetail",
    "ErrorResponse",

    # Helpers
    "validate_asin",
    "round_half_up",
    "round_int",
]
