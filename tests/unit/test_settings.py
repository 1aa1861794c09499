import pytest
from pydantic import ValidationError

from asin_insights.config.settings import Settings


def make_settings(tmp_path, **overrides) -> Settings:
    return Settings(_env_file=None, OUTPUT_DIR=str(tmp_path / "out"), **overrides)


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("METRICS_API_URL", raising=False)

    settings = make_settings(tmp_path)

    assert settings.metrics_api_url is None
    assert settings.remote_enabled is False
    assert settings.get_metrics_provider() == "fallback"
    assert settings.max_competitors == 5
    assert settings.max_concurrent_requests == 5
    assert settings.report_format == "json"


def test_output_dir_is_created(tmp_path):
    settings = make_settings(tmp_path)
    assert settings.output_dir.is_dir()


def test_remote_endpoint(tmp_path):
    settings = make_settings(tmp_path, METRICS_API_URL=" https://metrics.example.com/competitor-data ")

    assert settings.metrics_api_url == "https://metrics.example.com/competitor-data"
    assert settings.remote_enabled is True
    assert settings.get_metrics_provider() == "remote+fallback"


def test_blank_endpoint_means_unset(tmp_path):
    assert make_settings(tmp_path, METRICS_API_URL="   ").remote_enabled is False


def test_endpoint_requires_http_scheme(tmp_path):
    with pytest.raises(ValidationError):
        make_settings(tmp_path, METRICS_API_URL="ftp://metrics.example.com")


def test_reads_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("MAX_CONCURRENT_REQUESTS", "2")
    monkeypatch.setenv("REPORT_FORMAT", "html")

    settings = make_settings(tmp_path)

    assert settings.max_concurrent_requests == 2
    assert settings.report_format == "html"


@pytest.mark.parametrize("overrides", [
    {"MAX_COMPETITORS": 6},
    {"MAX_CONCURRENT_REQUESTS": 0},
    {"REQUEST_TIMEOUT_SECONDS": 0},
    {"REPORT_FORMAT": "pdf"},
])
def test_invalid_values(tmp_path, overrides):
    with pytest.raises(ValidationError):
        make_settings(tmp_path, **overrides)
