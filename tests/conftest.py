import pytest
from unittest.mock import patch

from asin_insights.config.settings import Settings
from asin_insights.models.schemas import CompetitorMetrics, TargetMetrics


@pytest.fixture
def settings(tmp_path):
    """Offline settings writing into a temporary directory."""
    return Settings(
        _env_file=None,
        METRICS_API_URL=None,
        OUTPUT_DIR=str(tmp_path / "reports"),
        REQUEST_TIMEOUT_SECONDS=5,
        MAX_CONCURRENT_REQUESTS=5,
        LOG_JSON=False,
    )


@pytest.fixture(autouse=True)
def patch_get_settings(settings):
    """Globally patch get_settings to return the test settings."""
    with patch("asin_insights.config.settings.get_settings", return_value=settings):
        with patch("asin_insights.pipeline.orchestrator.get_settings", return_value=settings):
            with patch("asin_insights.services.metrics_service.get_settings", return_value=settings):
                with patch("asin_insights.utils.formatters.get_settings", return_value=settings):
                    with patch("asin_insights.main.get_settings", return_value=settings):
                        yield settings


def make_target(**overrides) -> TargetMetrics:
    data = {
        "asin": "B0CC282PBW",
        "product_name": "Digital Kitchen Scale",
        "brand": "ACME",
        "price": 24.99,
        "est_daily_impressions": 2400,
        "est_daily_clicks": 360,
        "ratings_count": 1200,
        "avg_rating": 4.3,
        "keywords_top4": 10,
        "keywords_page1": 30,
    }
    data.update(overrides)
    return TargetMetrics(**data)


def make_competitor(rank: int = 1, **overrides) -> CompetitorMetrics:
    data = {
        "rank": rank,
        "comp_asin": f"C282PBW{rank - 1}",
        "product_name": f"Rival Scale {rank}",
        "brand_name": "GADGY",
        "price": 24.99,
        "rating": 4.3,
        "ratings_count": 1200,
        "keywords_top4": 10,
        "keywords_page1": 30,
        "est_daily_clicks": 360,
    }
    data.update(overrides)
    return CompetitorMetrics(**data)


@pytest.fixture
def target():
    return make_target()


@pytest.fixture
def sample_csv():
    return (
        "url,label,brand\n"
        "https://www.amazon.com/Digital-Kitchen-Scale/dp/B0CC282PBW/ref=sr_1_3,Kitchen Scale,ACME\n"
        "amazon.com/gp/product/B08N5WRWNW,,\n"
        "https://www.amazon.com/s?k=scale,Search Page,\n"
        "https://www.amazon.com/dp/b0cc282pbw,Duplicate,Other\n"
    )


@pytest.fixture
def remote_payload():
    """A valid competitor-data response body for B0CC282PBW."""
    return {
        "target": make_target(brand="RemoteBrand").model_dump(),
        "competitors": [
            make_competitor(1, price=23.0, est_daily_clicks=300).model_dump(),
            make_competitor(2, price=23.58, est_daily_clicks=270).model_dump(),
        ],
    }
