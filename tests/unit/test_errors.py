import asyncio

import httpx
import pytest

from asin_insights.models.schemas import ErrorType
from asin_insights.utils.errors import (
    ErrorHandler,
    GenerationError,
    MalformedInputError,
    MetricsFetchError,
    NoValidIdentifiersError,
    PipelineError,
)


def test_kinds():
    assert MalformedInputError("no url column").kind == "malformed_input"
    assert NoValidIdentifiersError().kind == "no_valid_identifiers"
    assert MetricsFetchError("B0CC282PBW", "HTTP 503").kind == "metrics_fetch_failure"
    assert GenerationError("disk full").kind == "generation_failure"
    assert PipelineError("boom").kind == "internal_error"


def test_no_valid_identifiers_default_message():
    assert NoValidIdentifiersError().message == "No valid Amazon ASINs found in URLs"


def test_metrics_fetch_error_details():
    error = MetricsFetchError("B0CC282PBW", "HTTP 503", status_code=503)

    assert error.recoverable is True
    assert error.asin == "B0CC282PBW"
    assert error.details == {"asin": "B0CC282PBW", "reason": "HTTP 503", "status_code": 503}
    assert "B0CC282PBW" in str(error)


def test_metrics_fetch_error_without_status():
    assert "status_code" not in MetricsFetchError("B0CC282PBW", "timeout").details


def test_to_response():
    error = MalformedInputError('CSV must contain a "url" column', details={"columns": "name,price"})

    response = error.to_response(run_id="run_1_abc")

    assert response.error_type == "malformed_input"
    assert response.run_id == "run_1_abc"
    assert response.recoverable is False
    assert response.details[0].field == "columns"
    assert response.details[0].message == "name,price"


@pytest.mark.parametrize("error,expected", [
    (MalformedInputError("x"), ErrorType.MALFORMED_INPUT),
    (NoValidIdentifiersError(), ErrorType.NO_VALID_IDENTIFIERS),
    (httpx.ConnectError("refused"), ErrorType.METRICS_FETCH_FAILURE),
    (asyncio.TimeoutError(), ErrorType.METRICS_FETCH_FAILURE),
    (PermissionError("denied"), ErrorType.GENERATION_FAILURE),
    (KeyError("asin"), ErrorType.INTERNAL_ERROR),
])
def test_categorize_error(error, expected):
    assert ErrorHandler.categorize_error(error) == expected


def test_wrap_keeps_pipeline_errors():
    error = NoValidIdentifiersError()
    assert ErrorHandler.wrap(error) is error


def test_wrap_foreign_exception():
    wrapped = ErrorHandler.wrap(ZeroDivisionError("division by zero"), run_id="run_1_abc")

    assert isinstance(wrapped, PipelineError)
    assert wrapped.kind == "internal_error"
    assert wrapped.details == {"run_id": "run_1_abc"}
    assert "division by zero" in wrapped.message
