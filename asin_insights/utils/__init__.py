"""Utils module for ASIN Competitor Insights."""

from asin_insights.utils.logger import LogContext, get_logger, setup_logging
from asin_insights.utils.errors import (
    ErrorHandler,
    GenerationError,
    MalformedInputError,
    MetricsFetchError,
    NoValidIdentifiersError,
    PipelineError,
)
from asin_insights.utils.formatters import ReportFormatter

__all__ = [
    "get_logger",
    "setup_logging",
    "LogContext",
    "ReportFormatter",
    "ErrorHandler",
    "PipelineError",
    "MalformedInputError",
    "NoValidIdentifiersError",
    "MetricsFetchError",
    "GenerationError",
]
