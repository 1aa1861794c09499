"""Pipeline module for ASIN Competitor Insights."""

from asin_insights.pipeline.orchestrator import (
    InsightsPipeline,
    PipelineStateDict,
    STEP_WEIGHTS,
    generate_run_id,
    process_csv,
)

__all__ = [
    "InsightsPipeline",
    "PipelineStateDict",
    "STEP_WEIGHTS",
    "generate_run_id",
    "process_csv",
]
