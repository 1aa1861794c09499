import json

import httpx
import pytest
from unittest.mock import patch

from asin_insights.pipeline.orchestrator import InsightsPipeline, process_csv
from asin_insights.services.metrics_service import FALLBACK_BRANDS, RemoteMetricsSource
from asin_insights.utils.errors import MalformedInputError, NoValidIdentifiersError

ENDPOINT = "https://metrics.example.com/competitor-data"


def remote_pipeline(settings, handler) -> InsightsPipeline:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    source = RemoteMetricsSource(ENDPOINT, settings=settings, client=client)
    return InsightsPipeline(settings=settings, metrics_source=source)


def comparable(payload: dict) -> dict:
    """Payload without the per-run fields."""
    return {k: v for k, v in payload.items() if k not in ("runId", "generatedAt")}


# =============================================================================
# Offline runs
# =============================================================================

@pytest.mark.asyncio
async def test_offline_run(settings, sample_csv):
    async with InsightsPipeline(settings=settings) as pipeline:
        data = await pipeline.run(sample_csv, "products.csv")

    assert data.file_name == "products.csv"
    assert data.run_id.startswith("run_")
    assert [a.asin for a in data.asins] == ["B0CC282PBW", "B08N5WRWNW"]

    scale, other = data.asins
    assert scale.label == "Kitchen Scale"
    assert scale.target.brand == "ACME"
    assert scale.target.product_name == "Digital Kitchen Scale"
    assert other.label == "Product B08N5WRWNW"
    assert other.target.brand in FALLBACK_BRANDS

    assert data.portfolio.asins_processed == 2
    assert data.portfolio.total_est_clicks == scale.target.est_daily_clicks + other.target.est_daily_clicks
    for item in data.asins:
        assert 0.0 <= item.insights.priority_score <= 1.0
        assert len(item.insights.actions) <= 3
        assert 3 <= len(item.competitors) <= 5


@pytest.mark.asyncio
async def test_runs_are_deterministic(settings, sample_csv):
    first = await process_csv(sample_csv, "products.csv", settings=settings)
    second = await process_csv(sample_csv, "products.csv", settings=settings)

    assert first.run_id != second.run_id
    assert comparable(first.to_payload()) == comparable(second.to_payload())


@pytest.mark.asyncio
async def test_payload_is_json_serializable(settings, sample_csv):
    data = await process_csv(sample_csv, "products.csv", settings=settings)

    payload = json.loads(json.dumps(data.to_payload()))

    assert set(payload) == {"fileName", "runId", "generatedAt", "portfolio", "asins"}
    assert payload["generatedAt"].endswith("Z")
    assert set(payload["asins"][0]["insights"]) == {
        "kw4_gap", "kwp1_gap", "rating_gap", "reviews_deficit",
        "price_position", "clicks_share", "priority_score", "actions",
    }


@pytest.mark.asyncio
async def test_progress_reaches_100(settings, sample_csv):
    updates = []
    pipeline = InsightsPipeline(settings=settings, progress_callback=lambda pct, msg: updates.append(pct))

    await pipeline.run(sample_csv, "products.csv")

    assert updates == [10, 20, 70, 100]


# =============================================================================
# Remote source
# =============================================================================

@pytest.mark.asyncio
async def test_remote_failure_matches_offline(settings, sample_csv):
    offline = await process_csv(sample_csv, "products.csv", settings=settings)

    async with remote_pipeline(settings, lambda request: httpx.Response(503)) as pipeline:
        degraded = await pipeline.run(sample_csv, "products.csv")

    assert comparable(degraded.to_payload()) == comparable(offline.to_payload())


@pytest.mark.asyncio
async def test_remote_success_mixed_with_fallback(settings, sample_csv, remote_payload):
    def handler(request: httpx.Request) -> httpx.Response:
        if json.loads(request.content)["asin"] == "B0CC282PBW":
            return httpx.Response(200, json=remote_payload)
        return httpx.Response(404)

    async with remote_pipeline(settings, handler) as pipeline:
        data = await pipeline.run(sample_csv, "products.csv")

    scale = data.get_by_asin("B0CC282PBW")
    # CSV brand wins over the remote brand
    assert scale.target.brand == "ACME"
    assert scale.comp_avg.price == pytest.approx(23.29)
    assert scale.insights.price_position == "above"
    assert scale.insights.clicks_share == 0.39
    assert [c.comp_asin for c in scale.competitors] == ["C282PBW0", "C282PBW1"]

    other = data.get_by_asin("B08N5WRWNW")
    assert 3 <= len(other.competitors) <= 5


# =============================================================================
# Failures
# =============================================================================

@pytest.mark.asyncio
async def test_missing_url_column_fails_before_extraction(settings):
    pipeline = InsightsPipeline(settings=settings)

    with patch("asin_insights.pipeline.orchestrator.IdentifierExtractor.extract") as extract:
        with pytest.raises(MalformedInputError) as exc:
            await pipeline.run("name,price\nScale,24.99\n", "bad.csv", run_id="run_1_abc")

    extract.assert_not_called()
    assert exc.value.kind == "malformed_input"
    assert exc.value.message == 'CSV must contain a "url" column'
    assert exc.value.details["run_id"] == "run_1_abc"


@pytest.mark.asyncio
async def test_empty_upload_is_malformed(settings):
    with pytest.raises(MalformedInputError):
        await process_csv("", "empty.csv", settings=settings)


@pytest.mark.asyncio
async def test_no_valid_identifiers(settings):
    csv_text = (
        "url,label\n"
        "https://www.amazon.com/s?k=kitchen+scale,Search\n"
        "https://www.example.com/dp/short,Bad\n"
    )

    with pytest.raises(NoValidIdentifiersError) as exc:
        await process_csv(csv_text, "search.csv", settings=settings)

    assert exc.value.kind == "no_valid_identifiers"
    assert exc.value.message == "No valid Amazon ASINs found in URLs"


@pytest.mark.asyncio
async def test_headers_are_case_insensitive(settings):
    data = await process_csv("URL,Label\namazon.com/dp/B0CC282PBW,Scale\n", "upper.csv", settings=settings)
    assert data.asins[0].label == "Scale"


# =============================================================================
# Files
# =============================================================================

@pytest.mark.asyncio
async def test_run_file(settings, sample_csv, tmp_path):
    path = tmp_path / "products.csv"
    path.write_text("\ufeff" + sample_csv, encoding="utf-8")

    data = await InsightsPipeline(settings=settings).run_file(path)

    assert data.file_name == "products.csv"
    assert data.portfolio.asins_processed == 2


@pytest.mark.asyncio
async def test_run_file_missing(settings, tmp_path):
    with pytest.raises(MalformedInputError):
        await InsightsPipeline(settings=settings).run_file(tmp_path / "missing.csv")


@pytest.mark.asyncio
async def test_run_file_not_utf8(settings, tmp_path):
    path = tmp_path / "latin1.csv"
    path.write_bytes("url,label\namazon.com/dp/B0CC282PBW,Balance \xe9\n".encode("latin-1"))

    with pytest.raises(MalformedInputError):
        await InsightsPipeline(settings=settings).run_file(path)
