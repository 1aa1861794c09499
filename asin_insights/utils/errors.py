"""
Error kinds and centralized error categorization.

Fatal kinds (malformed input, no valid identifiers) abort a run before any
result exists. Metrics fetch failures are recovered by the fallback source
and never reach the caller. Generation failures only affect exports.
"""

import asyncio
from typing import Optional

import httpx

from asin_insights.models.schemas import ErrorDetail, ErrorResponse, ErrorType


# =============================================================================
# Custom Exceptions
# =============================================================================

class PipelineError(Exception):
    """Base exception for pipeline errors."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INTERNAL_ERROR,
        details: dict | None = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.details = details or {}
        self.recoverable = recoverable

    @property
    def kind(self) -> str:
        """Error kind as a plain string."""
        return ErrorType(self.error_type).value

    def to_response(self, run_id: Optional[str] = None) -> ErrorResponse:
        """Build a serializable error response."""
        return ErrorResponse(
            error_type=self.error_type,
            message=self.message,
            details=[
                ErrorDetail(field=key, message=str(value))
                for key, value in self.details.items()
            ],
            run_id=run_id or self.details.get("run_id"),
            recoverable=self.recoverable,
        )


class MalformedInputError(PipelineError):
    """The uploaded table lacks the required `url` column or is empty."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            message=message,
            error_type=ErrorType.MALFORMED_INPUT,
            details=details,
            recoverable=False,
        )


class NoValidIdentifiersError(PipelineError):
    """No row yielded a valid ASIN."""

    def __init__(self, message: str = "No valid Amazon ASINs found in URLs", details: dict | None = None):
        super().__init__(
            message=message,
            error_type=ErrorType.NO_VALID_IDENTIFIERS,
            details=details,
            recoverable=False,
        )


class MetricsFetchError(PipelineError):
    """The remote metrics source failed for one ASIN."""

    def __init__(self, asin: str, reason: str, status_code: Optional[int] = None):
        details = {"asin": asin, "reason": reason}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(
            message=f"Failed to fetch competitor data for {asin}: {reason}",
            error_type=ErrorType.METRICS_FETCH_FAILURE,
            details=details,
            recoverable=True,
        )
        self.asin = asin
        self.status_code = status_code


class GenerationError(PipelineError):
    """Rendering or writing an export failed."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            message=message,
            error_type=ErrorType.GENERATION_FAILURE,
            details=details,
            recoverable=False,
        )


# =============================================================================
# Error Handler
# =============================================================================

class ErrorHandler:
    """Centralized error handling and categorization."""

    @staticmethod
    def categorize_error(error: Exception) -> ErrorType:
        """Categorize errors for appropriate handling."""
        if isinstance(error, PipelineError):
            return ErrorType(error.error_type)
        if isinstance(error, (httpx.HTTPError, asyncio.TimeoutError, ConnectionError)):
            return ErrorType.METRICS_FETCH_FAILURE
        if isinstance(error, (OSError, UnicodeError)):
            return ErrorType.GENERATION_FAILURE
        return ErrorType.INTERNAL_ERROR

    @staticmethod
    def wrap(error: Exception, run_id: Optional[str] = None) -> PipelineError:
        """Return the error as a PipelineError, wrapping foreign exceptions."""
        if isinstance(error, PipelineError):
            return error
        return PipelineError(
            message=f"Unexpected pipeline error: {error}",
            error_type=ErrorHandler.categorize_error(error),
            details={"run_id": run_id} if run_id else None,
        )
