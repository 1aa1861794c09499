"""
Report formatting utilities.

Renders a ProcessedData result as JSON, Markdown, HTML or a zipped CSV
bundle. Rendering never modifies the result; any failure is raised as a
GenerationError.
"""

import csv
import io
import json
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import markdown2

from asin_insights.config.settings import get_settings
from asin_insights.models.schemas import ProcessedAsinData, ProcessedData
from asin_insights.utils.errors import GenerationError
from asin_insights.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_FORMATS = ("json", "markdown", "html", "csv")

FILE_EXTENSIONS = {
    "json": ".json",
    "markdown": ".md",
    "html": ".html",
    "csv": ".zip",
}

HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
<title>{title}</title>
<style>
body {{ font-family: -apple-system, system-ui, sans-serif; max-width: 1000px; margin: 0 auto; padding: 40px; line-height: 1.6; color: #333; }}
table {{ border-collapse: collapse; width: 100%; margin: 20px 0; }}
th, td {{ border: 1px solid #ddd; padding: 10px; text-align: left; }}
th {{ background-color: #f5f5f5; }}
h1, h2, h3 {{ color: #2c3e50; margin-top: 30px; }}
h1 {{ border-bottom: 2px solid #2c3e50; padding-bottom: 10px; }}
</style>
</head>
<body>
{body}
</body>
</html>
"""


def _cell(value: Any) -> str:
    """Markdown table cell with pipes escaped."""
    return str(value).replace("|", "-")


# =============================================================================
# Markdown Sections
# =============================================================================

def format_portfolio_table(data: ProcessedData) -> str:
    """
    Portfolio summary as a markdown table.

    | Metric | Value |
    |--------|-------|
    | ASINs Processed | 3 |
    """
    portfolio = data.portfolio
    rows = [
        f"| ASINs Processed | {portfolio.asins_processed} |",
        f"| Avg Rating | {portfolio.avg_rating:.1f} ⭐ |",
        f"| Avg Price | ${portfolio.avg_price:.2f} |",
        f"| Total Est. Daily Clicks | {portfolio.total_est_clicks:,} |",
        f"| Avg Priority Score | {portfolio.avg_priority_score:.3f} |",
    ]
    return "| Metric | Value |\n|--------|-------|\n" + "\n".join(rows)


def format_priority_table(data: ProcessedData) -> str:
    """ASINs ranked by priority score."""
    if not data.asins:
        return "*No products processed.*"

    header = (
        "| Rank | ASIN | Product | Priority | Price Position | Clicks Share | Top Action |\n"
        "|------|------|---------|----------|----------------|--------------|------------|"
    )
    rows = []
    for i, item in enumerate(data.ranked_by_priority(), 1):
        insights = item.insights
        top_action = insights.actions[0].title if insights.actions else "-"
        rows.append(
            f"| {i} | {item.asin} | {_cell(item.label)} | {insights.priority_score:.3f} "
            f"| {insights.price_position} | {insights.clicks_share:.0%} | {_cell(top_action)} |"
        )
    return header + "\n" + "\n".join(rows)


def format_asin_section(item: ProcessedAsinData) -> str:
    """Detail section for one ASIN: gaps, competitors and actions."""
    target = item.target
    insights = item.insights

    gaps = (
        "| Indicator | Value |\n|-----------|-------|\n"
        f"| Top-4 keyword gap | {insights.kw4_gap} |\n"
        f"| Page-1 keyword gap | {insights.kwp1_gap} |\n"
        f"| Rating gap | {insights.rating_gap} |\n"
        f"| Reviews deficit | {insights.reviews_deficit:,} |\n"
        f"| Price position | {insights.price_position} |\n"
        f"| Clicks share | {insights.clicks_share:.0%} |\n"
        f"| Priority score | {insights.priority_score:.3f} |"
    )

    competitor_rows = [
        f"| {c.rank} | {c.comp_asin} | {_cell(c.product_name)} | {_cell(c.brand_name)} "
        f"| ${c.price:.2f} | {c.rating:.1f} | {c.ratings_count:,} | {c.est_daily_clicks:,} |"
        for c in item.competitors
    ]
    competitors = (
        "| Rank | ASIN | Product | Brand | Price | Rating | Ratings | Clicks/day |\n"
        "|------|------|---------|-------|-------|--------|---------|------------|\n"
        + "\n".join(competitor_rows)
    )

    if insights.actions:
        actions = "\n".join(
            f"{i}. **{a.title}** ({a.effort} effort) - {a.why} "
            f"Target: {a.target}. Impact: {', '.join(a.impact)}"
            for i, a in enumerate(insights.actions, 1)
        )
    else:
        actions = "*No actions recommended.*"

    return f"""### {item.label} ({item.asin})

**{target.product_name}** by {target.brand or 'Unknown'} - ${target.price:.2f}, {target.avg_rating:.1f} ⭐ from {target.ratings_count:,} ratings

{gaps}

#### Competitors
{competitors}

#### Recommended Actions
{actions}
"""


def generate_markdown_report(data: ProcessedData) -> str:
    """
    Generate the complete markdown report.

    Structure:
    # Competitor Insights Report: {file_name}
    ## Portfolio Summary
    ## Priority Ranking
    ## Product Details
    """
    sections = "\n".join(format_asin_section(item) for item in data.asins)
    generated = data.model_dump(mode="json", by_alias=True)["generatedAt"]

    return f"""# Competitor Insights Report: {data.file_name}

## Portfolio Summary
{format_portfolio_table(data)}

## Priority Ranking
{format_priority_table(data)}

## Product Details
{sections}
---
Run: {data.run_id}
Generated on: {generated}
"""


def render_html(markdown_text: str, title: str = "Competitor Insights Report") -> str:
    """Convert a markdown report into a standalone HTML page."""
    body = markdown2.markdown(
        markdown_text,
        extras=["tables", "header-ids", "break-on-newline"],
    )
    return HTML_TEMPLATE.format(title=title, body=body)


# =============================================================================
# CSV Bundle
# =============================================================================

def _csv_text(header: list[str], rows: list[list[Any]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(header)
    writer.writerows(rows)
    return buf.getvalue()


def build_csv_bundle(data: ProcessedData) -> dict[str, str]:
    """CSV file name -> content for targets, competitors, insights and actions."""
    targets, competitors, insights, actions = [], [], [], []

    for item in data.asins:
        t = item.target
        targets.append([
            item.asin, item.label, t.product_name, t.brand, t.price,
            t.est_daily_impressions, t.est_daily_clicks, t.ratings_count,
            t.avg_rating, t.keywords_top4, t.keywords_page1,
        ])
        for c in item.competitors:
            competitors.append([
                item.asin, c.rank, c.comp_asin, c.product_name, c.brand_name, c.price,
                c.rating, c.ratings_count, c.keywords_top4, c.keywords_page1,
                c.est_daily_clicks,
            ])
        i = item.insights
        insights.append([
            item.asin, i.kw4_gap, i.kwp1_gap, i.rating_gap, i.reviews_deficit,
            i.price_position, i.clicks_share, i.priority_score,
        ])
        for order, a in enumerate(i.actions, 1):
            actions.append([item.asin, order, a.title, a.why, "; ".join(a.impact), a.effort, a.target])

    return {
        "targets.csv": _csv_text(
            ["asin", "label", "product_name", "brand", "price", "est_daily_impressions",
             "est_daily_clicks", "ratings_count", "avg_rating", "keywords_top4", "keywords_page1"],
            targets,
        ),
        "competitors.csv": _csv_text(
            ["asin", "rank", "comp_asin", "product_name", "brand_name", "price", "rating",
             "ratings_count", "keywords_top4", "keywords_page1", "est_daily_clicks"],
            competitors,
        ),
        "insights.csv": _csv_text(
            ["asin", "kw4_gap", "kwp1_gap", "rating_gap", "reviews_deficit",
             "price_position", "clicks_share", "priority_score"],
            insights,
        ),
        "actions.csv": _csv_text(
            ["asin", "order", "title", "why", "impact", "effort", "target"],
            actions,
        ),
    }


def build_csv_zip(data: ProcessedData) -> bytes:
    """Zip archive holding the CSV bundle."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in build_csv_bundle(data).items():
            archive.writestr(name, content)
    return buf.getvalue()


# =============================================================================
# Report Formatter
# =============================================================================

class ReportFormatter:
    """
    Render and save pipeline results.

    Example:
        >>> path = ReportFormatter().save(data, "html")
    """

    def __init__(self, output_dir: Optional[Path] = None):
        self.output_dir = Path(output_dir) if output_dir else get_settings().output_dir

    def render(self, data: ProcessedData, format_type: str = "json") -> str | bytes:
        """
        Render a result in memory.

        Returns:
            Text for json/markdown/html, zip bytes for csv.

        Raises:
            GenerationError: On an unknown format or any rendering failure.
        """
        if format_type not in SUPPORTED_FORMATS:
            raise GenerationError(
                f"Unsupported format: {format_type}",
                details={"supported": ", ".join(SUPPORTED_FORMATS)},
            )

        try:
            if format_type == "json":
                return json.dumps(data.to_payload(), indent=2, ensure_ascii=False)
            if format_type == "markdown":
                return generate_markdown_report(data)
            if format_type == "html":
                return render_html(
                    generate_markdown_report(data),
                    title=f"Competitor Insights: {data.file_name}",
                )
            return build_csv_zip(data)
        except Exception as e:
            logger.error("Report rendering failed", format=format_type, run_id=data.run_id, error=str(e))
            raise GenerationError(
                f"Failed to render {format_type} report: {e}",
                details={"run_id": data.run_id, "format": format_type},
            ) from e

    def save(
        self,
        data: ProcessedData,
        format_type: str = "json",
        output_dir: Optional[Path] = None,
    ) -> Path:
        """
        Render a result and write it to the output directory.

        Returns:
            Path of the written file.

        Raises:
            GenerationError: If rendering or writing fails.
        """
        content = self.render(data, format_type)

        output_dir = Path(output_dir) if output_dir else self.output_dir
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        stem = Path(data.file_name).stem.lower().replace(" ", "_") or "report"
        file_path = output_dir / f"{stem}_{timestamp}{FILE_EXTENSIONS[format_type]}"

        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                file_path.write_bytes(content)
            else:
                file_path.write_text(content, encoding="utf-8")
        except OSError as e:
            logger.error("Report write failed", path=str(file_path), error=str(e))
            raise GenerationError(
                f"Failed to write report to {file_path}: {e}",
                details={"run_id": data.run_id, "path": str(file_path)},
            ) from e

        logger.info("Saved report", format=format_type, path=str(file_path))
        return file_path
