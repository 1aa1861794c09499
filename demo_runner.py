"""
Demo Runner Script for ASIN Competitor Insights.

Runs the pipeline offline on three sample uploads:
- A mixed portfolio with /dp/ and /gp/product/ URLs plus a duplicate row
- A file with no usable product URLs (expected: no valid identifiers)
- A file without a url column (expected: malformed input)

Reports are saved to outputs/demo_reports/
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path

from asin_insights.pipeline.orchestrator import InsightsPipeline
from asin_insights.utils.errors import PipelineError
from asin_insights.utils.formatters import ReportFormatter
from asin_insights.utils.logger import get_logger, setup_logging

# Setup logging
setup_logging(level="WARNING")
logger = get_logger(__name__)


# Demo uploads to run
DEMO_UPLOADS = [
    {
        "file_name": "portfolio.csv",
        "description": "Mixed portfolio (expected: 3 ASINs)",
        "expect_success": True,
        "content": (
            "url,label,brand\n"
            "https://www.amazon.com/Digital-Kitchen-Scale/dp/B0CC282PBW/ref=sr_1_3,Kitchen Scale,ACME\n"
            "amazon.com/gp/product/B08N5WRWNW,,\n"
            "https://www.amazon.com/dp/B07XJ8C8F5?th=1,Desk Lamp,\n"
            "https://www.amazon.com/dp/b0cc282pbw,Duplicate Row,Other\n"
        ),
    },
    {
        "file_name": "no_products.csv",
        "description": "No product URLs (expected: no_valid_identifiers)",
        "expect_success": False,
        "content": "url\nhttps://www.amazon.com/s?k=scale\nhttps://example.com/item/42\n",
    },
    {
        "file_name": "no_url_column.csv",
        "description": "Missing url column (expected: malformed_input)",
        "expect_success": False,
        "content": "link,label\nhttps://www.amazon.com/dp/B0CC282PBW,Scale\n",
    },
]

# Output directory for demo reports
OUTPUT_DIR = Path("outputs/demo_reports")


def progress_callback(percent: int, message: str) -> None:
    """Callback to display progress updates."""
    bar_length = 30
    filled = int(bar_length * percent / 100)
    bar = "█" * filled + "░" * (bar_length - filled)
    print(f"\r  [{bar}] {percent:3d}% - {message}", end="", flush=True)


async def run_upload(pipeline: InsightsPipeline, upload: dict) -> dict:
    """
    Run one upload and return a results summary.

    Args:
        pipeline: Initialized pipeline instance
        upload: Dict with file_name, content, description, expect_success

    Returns:
        Dict with run results or error info
    """
    start_time = datetime.now()

    try:
        data = await pipeline.run(upload["content"], file_name=upload["file_name"])
    except PipelineError as e:
        return {
            "status": "error",
            "file_name": upload["file_name"],
            "duration_seconds": round((datetime.now() - start_time).total_seconds(), 2),
            "error_type": e.kind,
            "error_message": e.message,
            "as_expected": not upload["expect_success"],
        }

    formatter = ReportFormatter(output_dir=OUTPUT_DIR)
    json_path = formatter.save(data, "json")
    html_path = formatter.save(data, "html")

    top = data.ranked_by_priority()[0]
    return {
        "status": "success",
        "file_name": upload["file_name"],
        "duration_seconds": round((datetime.now() - start_time).total_seconds(), 2),
        "asins": data.portfolio.asins_processed,
        "avg_priority_score": data.portfolio.avg_priority_score,
        "top_asin": f"{top.asin} ({top.insights.priority_score:.3f})",
        "report_path": str(json_path),
        "html_path": str(html_path),
        "as_expected": upload["expect_success"],
    }


async def run_demo():
    """
    Run the demo on all sample uploads.
    """
    print("\n" + "=" * 70)
    print("  ASIN Competitor Insights - Demo Runner")
    print("=" * 70)
    print(f"\n  Running {len(DEMO_UPLOADS)} uploads offline...")
    print(f"  Reports will be saved to: {OUTPUT_DIR.absolute()}")

    results = []

    async with InsightsPipeline(progress_callback=progress_callback, offline=True) as pipeline:
        for i, upload in enumerate(DEMO_UPLOADS, 1):
            print(f"\n{'=' * 70}")
            print(f"  [{i}/{len(DEMO_UPLOADS)}] {upload['file_name']}")
            print(f"  {upload['description']}")
            print("=" * 70)

            result = await run_upload(pipeline, upload)
            results.append(result)

            print()  # New line after progress bar
            if result["status"] == "success":
                print("\n  ✓ SUCCESS")
                print(f"    ASINs: {result['asins']}")
                print(f"    Avg priority score: {result['avg_priority_score']}")
                print(f"    Most urgent: {result['top_asin']}")
                print(f"    Report: {result['report_path']}")
            else:
                print(f"\n  ✗ ERROR: {result['error_type']}")
                print(f"    Message: {result['error_message']}")

    print("\n" + "=" * 70)
    print("  DEMO SUMMARY")
    print("=" * 70)

    unexpected = [r for r in results if not r["as_expected"]]
    print(f"\n  Uploads run: {len(results)}")
    print(f"  Matched expectation: {len(results) - len(unexpected)}")
    for r in unexpected:
        print(f"    - {r['file_name']}: unexpected {r['status']}")
    print("=" * 70 + "\n")

    return results


if __name__ == "__main__":
    try:
        results = asyncio.run(run_demo())
        sys.exit(sum(1 for r in results if not r["as_expected"]))

    except KeyboardInterrupt:
        print("\n\n  Demo interrupted by user.")
        sys.exit(1)
    except Exception as e:
        print(f"\n  Fatal error: {e}")
        logger.exception("Demo runner failed")
        sys.exit(1)
