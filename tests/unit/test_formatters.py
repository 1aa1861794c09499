import csv
import io
import json
import zipfile
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from asin_insights.analyzers.insight_engine import InsightEngine
from asin_insights.analyzers.portfolio import PortfolioAggregator
from asin_insights.models.schemas import ProcessedAsinData, ProcessedData
from asin_insights.utils.errors import GenerationError
from asin_insights.utils.formatters import (
    FILE_EXTENSIONS,
    ReportFormatter,
    build_csv_bundle,
    format_priority_table,
    generate_markdown_report,
)

from conftest import make_competitor, make_target


def build_item(asin: str, label: str, **target_overrides) -> ProcessedAsinData:
    target = make_target(asin=asin, **target_overrides)
    competitors = [
        make_competitor(1, keywords_page1=45, ratings_count=2000),
        make_competitor(2, keywords_page1=40, ratings_count=1800, price=21.0),
    ]
    comp_avg, insights = InsightEngine().analyze(target, competitors)
    return ProcessedAsinData(
        asin=target.asin, label=label, target=target,
        comp_avg=comp_avg, competitors=competitors, insights=insights,
    )


@pytest.fixture
def data():
    items = [
        build_item("B0CC282PBW", "Kitchen Scale"),
        build_item("B08N5WRWNW", "Product B08N5WRWNW", keywords_page1=44, ratings_count=1900),
    ]
    return ProcessedData(
        file_name="My Products.csv",
        run_id="run_1700000000000_abc123def",
        generated_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        portfolio=PortfolioAggregator().aggregate(items),
        asins=items,
    )


@pytest.fixture
def formatter(tmp_path):
    return ReportFormatter(output_dir=tmp_path)


# =============================================================================
# Rendering
# =============================================================================

def test_render_json_is_payload(formatter, data):
    rendered = formatter.render(data, "json")
    assert json.loads(rendered) == data.to_payload()


def test_render_markdown_sections(formatter, data):
    report = formatter.render(data, "markdown")

    assert report.startswith("# Competitor Insights Report: My Products.csv")
    for heading in ("## Portfolio Summary", "## Priority Ranking", "## Product Details"):
        assert heading in report
    assert "### Kitchen Scale (B0CC282PBW)" in report
    assert "Expand Page-1 coverage by ~13 keywords" in report
    assert "Generated on: 2024-05-01T12:00:00.000Z" in report


def test_priority_table_orders_by_score(data):
    table = format_priority_table(data)
    first_row = table.splitlines()[2]
    # The first product has the larger keyword and review gaps
    assert "B0CC282PBW" in first_row


def test_markdown_without_products(data):
    empty = data.model_copy(update={"asins": []})
    assert "*No products processed.*" in generate_markdown_report(empty)


def test_render_html(formatter, data):
    page = formatter.render(data, "html")

    assert page.startswith("<!DOCTYPE html>")
    assert "<title>Competitor Insights: My Products.csv</title>" in page
    assert "<table>" in page
    assert "B0CC282PBW" in page


def test_render_csv_zip(formatter, data):
    archive = zipfile.ZipFile(io.BytesIO(formatter.render(data, "csv")))

    assert sorted(archive.namelist()) == ["actions.csv", "competitors.csv", "insights.csv", "targets.csv"]

    targets = list(csv.DictReader(io.StringIO(archive.read("targets.csv").decode())))
    assert [row["asin"] for row in targets] == ["B0CC282PBW", "B08N5WRWNW"]
    assert targets[0]["label"] == "Kitchen Scale"

    competitors = list(csv.DictReader(io.StringIO(archive.read("competitors.csv").decode())))
    assert len(competitors) == 4


def test_csv_bundle_actions_keep_order(data):
    actions = list(csv.DictReader(io.StringIO(build_csv_bundle(data)["actions.csv"])))
    first = [row for row in actions if row["asin"] == "B0CC282PBW"]

    assert [row["order"] for row in first] == [str(i) for i in range(1, len(first) + 1)]
    assert first[0]["title"] == data.asins[0].insights.actions[0].title


def test_render_unknown_format(formatter, data):
    with pytest.raises(GenerationError) as exc:
        formatter.render(data, "pdf")
    assert exc.value.kind == "generation_failure"


def test_render_failure_is_generation_error(formatter, data):
    with patch("asin_insights.utils.formatters.generate_markdown_report", side_effect=KeyError("label")):
        with pytest.raises(GenerationError):
            formatter.render(data, "markdown")


def test_render_does_not_modify_result(formatter, data):
    before = data.to_payload()
    for format_type in FILE_EXTENSIONS:
        formatter.render(data, format_type)
    assert data.to_payload() == before


# =============================================================================
# Saving
# =============================================================================

@pytest.mark.parametrize("format_type", ["json", "markdown", "html", "csv"])
def test_save_writes_file(formatter, data, tmp_path, format_type):
    path = formatter.save(data, format_type)

    assert path.parent == tmp_path
    assert path.name.startswith("my_products_")
    assert path.suffix == FILE_EXTENSIONS[format_type]
    assert path.stat().st_size > 0


def test_save_to_explicit_directory(formatter, data, tmp_path):
    target_dir = tmp_path / "nested" / "exports"
    path = formatter.save(data, "json", output_dir=target_dir)
    assert path.parent == target_dir


def test_save_write_failure(formatter, data, tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")

    with pytest.raises(GenerationError) as exc:
        formatter.save(data, "json", output_dir=blocker)
    assert exc.value.details["run_id"] == data.run_id


def test_default_output_dir_from_settings(settings):
    assert ReportFormatter().output_dir == settings.output_dir
