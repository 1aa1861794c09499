"""
Pipeline orchestrator using LangGraph.

Drives one CSV upload through the insights state machine:

    parse_input -> extract_identifiers -> fetch_metrics -> compute_insights -> END
         |                 |
         +--------+--------+
                  v
            handle_error -> END

Features:
    - Stateful execution with LangGraph StateGraph
    - Conditional edges that route fatal input errors to handle_error
    - Concurrent, bounded metrics fetches joined before computation
    - Progress tracking and structured logging with per-node timing
    - Testing hooks for step-by-step execution
"""

import asyncio
import operator
import secrets
import string
import time
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Annotated, Any, Callable, Literal, Optional, TypedDict

from langgraph.graph import END, StateGraph

from asin_insights.analyzers.insight_engine import InsightEngine
from asin_insights.analyzers.portfolio import PortfolioAggregator
from asin_insights.config.settings import Settings, get_settings
from asin_insights.extractors.identifier_extractor import IdentifierExtractor
from asin_insights.models.schemas import (
    ErrorType,
    InputRecord,
    MetricsBundle,
    MetricsOrigin,
    PipelineStage,
    ProcessedAsinData,
    ProcessedData,
)
from asin_insights.services.metrics_service import (
    DeterministicFallbackSource,
    FallbackMetricsSource,
    MetricsSource,
    create_metrics_source,
)
from asin_insights.services.validation_service import ValidationService
from asin_insights.utils.errors import (
    ErrorHandler,
    MalformedInputError,
    NoValidIdentifiersError,
    PipelineError,
)
from asin_insights.utils.logger import LogContext, get_logger

logger = get_logger(__name__)


# =============================================================================
# Constants and Configuration
# =============================================================================

RUN_ID_ALPHABET = string.ascii_lowercase + string.digits
RUN_ID_SUFFIX_LENGTH = 9

STEP_WEIGHTS = {
    "parse_input": 10,
    "extract_identifiers": 10,
    "fetch_metrics": 50,
    "compute_insights": 30,
}


def generate_run_id() -> str:
    """Run identifier of the form run_<epoch-ms>_<9 base36 chars>."""
    suffix = "".join(secrets.choice(RUN_ID_ALPHABET) for _ in range(RUN_ID_SUFFIX_LENGTH))
    return f"run_{int(time.time() * 1000)}_{suffix}"


# =============================================================================
# Pipeline State Definition (TypedDict for LangGraph)
# =============================================================================

class PipelineStateDict(TypedDict, total=False):
    """
    TypedDict-based pipeline state for LangGraph.

    Uses Annotated with operator.add for error accumulation.
    All fields are optional to support partial state updates.
    """
    # Identifiers
    run_id: str
    file_name: str

    # Input
    csv_content: str

    # Step outputs
    records: list[dict]  # Serialized InputRecord rows
    targets: list[dict]  # Unique ASINs: asin, url, label, brand
    bundles: dict  # ASIN -> serialized MetricsBundle
    result: dict | None  # Serialized ProcessedData

    # Status tracking
    stage: str
    error_type: str | None

    # Error handling (uses operator.add for accumulation)
    errors: Annotated[list[str], operator.add]

    # Metadata
    metadata: dict
    step_timings: dict  # Node name -> duration_ms

    # Progress
    progress_percent: int
    started_at: str
    completed_at: str | None


# =============================================================================
# Decorators for Node Execution
# =============================================================================

def track_timing(func: Callable):
    """Decorator to track node execution timing."""
    @wraps(func)
    async def wrapper(self, state: PipelineStateDict) -> dict[str, Any]:
        start_time = time.time()
        node_name = func.__name__.lstrip("_").replace("_node", "")

        logger.info(f"Starting node: {node_name}", run_id=state.get("run_id"))

        try:
            result = await func(self, state)
        except Exception as e:
            logger.error(
                f"Node failed: {node_name}",
                run_id=state.get("run_id"),
                duration_ms=int((time.time() - start_time) * 1000),
                error=str(e),
            )
            raise

        duration_ms = int((time.time() - start_time) * 1000)
        step_timings = state.get("step_timings", {}).copy()
        step_timings[node_name] = duration_ms
        result["step_timings"] = step_timings

        if self.progress_callback and "progress_percent" in result:
            try:
                self.progress_callback(result["progress_percent"], f"Completed {node_name}")
            except Exception as cb_err:
                logger.warning(f"Progress callback failed: {cb_err}")

        logger.info(
            f"Completed node: {node_name}",
            run_id=state.get("run_id"),
            duration_ms=duration_ms,
        )
        return result

    return wrapper


def _progress(*nodes: str) -> int:
    return sum(STEP_WEIGHTS[node] for node in nodes)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Main Pipeline Class
# =============================================================================

class InsightsPipeline:
    """
    LangGraph-based pipeline turning a CSV of product URLs into insights.

    Each instance owns its metrics source and holds no state between runs,
    so separate instances can run in parallel.

    Example:
        >>> async with InsightsPipeline() as pipeline:
        ...     data = await pipeline.run(csv_text, "products.csv")
        ...     print(data.portfolio.avg_priority_score)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        metrics_source: Optional[MetricsSource] = None,
        progress_callback: Optional[Callable[[int, str], None]] = None,
        offline: bool = False,
    ):
        """
        Initialize the pipeline.

        Args:
            settings: Application settings (uses defaults if not provided)
            metrics_source: Source for target and competitor metrics. A source
                that is not already fallback-backed gets wrapped so failures
                degrade to the deterministic fallback.
            progress_callback: Callback(progress_percent, message) for updates
            offline: Skip the remote endpoint even when one is configured
        """
        self.settings = settings or get_settings()
        self.progress_callback = progress_callback

        if metrics_source is None:
            metrics_source = create_metrics_source(self.settings, offline=offline)
        elif not isinstance(metrics_source, (FallbackMetricsSource, DeterministicFallbackSource)):
            metrics_source = FallbackMetricsSource(metrics_source, DeterministicFallbackSource())
        self.metrics_source = metrics_source

        self.validator = ValidationService()
        self.engine = InsightEngine()
        self.aggregator = PortfolioAggregator()

        self._graph = self._build_graph()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph state machine with all nodes and edges."""
        graph = StateGraph(PipelineStateDict)

        graph.add_node("parse_input", self._parse_input_node)
        graph.add_node("extract_identifiers", self._extract_identifiers_node)
        graph.add_node("fetch_metrics", self._fetch_metrics_node)
        graph.add_node("compute_insights", self._compute_insights_node)
        graph.add_node("handle_error", self._handle_error_node)

        graph.set_entry_point("parse_input")

        graph.add_conditional_edges(
            "parse_input",
            self._route_on_failure,
            {"continue": "extract_identifiers", "error": "handle_error"},
        )
        graph.add_conditional_edges(
            "extract_identifiers",
            self._route_on_failure,
            {"continue": "fetch_metrics", "error": "handle_error"},
        )
        graph.add_edge("fetch_metrics", "compute_insights")
        graph.add_edge("compute_insights", END)
        graph.add_edge("handle_error", END)

        return graph.compile()

    def _route_on_failure(self, state: PipelineStateDict) -> Literal["continue", "error"]:
        """Route to handle_error once a node has marked the run failed."""
        if state.get("stage") == PipelineStage.FAILED.value:
            return "error"
        return "continue"

    # =========================================================================
    # Node Implementations
    # =========================================================================

    @track_timing
    async def _parse_input_node(self, state: PipelineStateDict) -> dict[str, Any]:
        """
        Node 1: Parse the CSV text into input records.

        A missing `url` column fails the run before any extraction.
        """
        try:
            records = self.validator.parse_csv(state.get("csv_content", ""))
        except MalformedInputError as e:
            return self._failure(e)

        return {
            "records": [r.model_dump() for r in records],
            "stage": PipelineStage.EXTRACTING.value,
            "progress_percent": _progress("parse_input"),
            "metadata": {**state.get("metadata", {}), "rows_parsed": len(records)},
        }

    @track_timing
    async def _extract_identifiers_node(self, state: PipelineStateDict) -> dict[str, Any]:
        """
        Node 2: Resolve ASINs and deduplicate.

        The first row for an ASIN supplies its label and brand; later rows
        for the same ASIN are ignored.
        """
        targets: list[dict] = []
        seen: set[str] = set()
        dropped = 0

        for data in state.get("records", []):
            record = InputRecord(**data)
            asin = IdentifierExtractor.extract(record.url)

            if asin is None:
                dropped += 1
                logger.warning(
                    "Dropping row without a valid ASIN",
                    row_number=record.row_number,
                    url=record.url,
                )
                continue

            if asin in seen:
                logger.debug("Ignoring duplicate ASIN", asin=asin, row_number=record.row_number)
                continue

            seen.add(asin)
            targets.append({
                "asin": asin,
                "url": IdentifierExtractor.normalize(record.url),
                "label": record.label or f"Product {asin}",
                "brand": record.brand,
            })

        if not targets:
            return self._failure(NoValidIdentifiersError(details={"rows": len(state.get("records", []))}))

        logger.info("Resolved ASINs", unique=len(targets), dropped=dropped)

        return {
            "targets": targets,
            "stage": PipelineStage.FETCHING.value,
            "progress_percent": _progress("parse_input", "extract_identifiers"),
            "metadata": {
                **state.get("metadata", {}),
                "rows_dropped": dropped,
                "unique_asins": len(targets),
            },
        }

    @track_timing
    async def _fetch_metrics_node(self, state: PipelineStateDict) -> dict[str, Any]:
        """
        Node 3: Fetch metrics for every unique ASIN concurrently.

        Fetches are independent and bounded by MAX_CONCURRENT_REQUESTS.
        Failures degrade to the fallback inside the metrics source.
        """
        semaphore = asyncio.Semaphore(self.settings.max_concurrent_requests)

        async def fetch_one(target: dict) -> MetricsBundle:
            async with semaphore:
                bundle = await self.metrics_source.fetch(target["asin"], source_url=target["url"])
            if target.get("brand"):
                bundle = bundle.model_copy(update={
                    "target": bundle.target.model_copy(update={"brand": target["brand"]}),
                })
            return bundle

        targets = state.get("targets", [])
        results = await asyncio.gather(*(fetch_one(t) for t in targets))

        bundles = {t["asin"]: b.model_dump() for t, b in zip(targets, results)}
        fallback_asins = [
            t["asin"] for t, b in zip(targets, results)
            if MetricsOrigin(b.source) == MetricsOrigin.FALLBACK
        ]

        return {
            "bundles": bundles,
            "stage": PipelineStage.COMPUTING.value,
            "progress_percent": _progress("parse_input", "extract_identifiers", "fetch_metrics"),
            "metadata": {**state.get("metadata", {}), "fallback_asins": fallback_asins},
        }

    @track_timing
    async def _compute_insights_node(self, state: PipelineStateDict) -> dict[str, Any]:
        """Node 4: Compute insights per ASIN and the portfolio summary."""
        bundles = state.get("bundles", {})
        processed: list[ProcessedAsinData] = []

        for target in state.get("targets", []):
            bundle = MetricsBundle.model_validate(bundles[target["asin"]])
            comp_avg, insights = self.engine.analyze(bundle.target, bundle.competitors)
            processed.append(ProcessedAsinData(
                asin=target["asin"],
                label=target["label"],
                target=bundle.target,
                comp_avg=comp_avg,
                competitors=bundle.competitors,
                insights=insights,
            ))

        result = ProcessedData(
            file_name=state.get("file_name", ""),
            run_id=state.get("run_id", ""),
            portfolio=self.aggregator.aggregate(processed),
            asins=processed,
        )

        return {
            "result": result.model_dump(),
            "stage": PipelineStage.DONE.value,
            "progress_percent": 100,
            "completed_at": _utcnow(),
        }

    @track_timing
    async def _handle_error_node(self, state: PipelineStateDict) -> dict[str, Any]:
        """Node 5: Terminal failure state; records the error summary."""
        errors = state.get("errors", [])

        logger.warning(
            "Pipeline run failed",
            run_id=state.get("run_id"),
            error_type=state.get("error_type"),
            errors=errors,
        )

        return {
            "stage": PipelineStage.FAILED.value,
            "result": None,
            "completed_at": _utcnow(),
            "metadata": {
                **state.get("metadata", {}),
                "failed_at": _utcnow(),
                "error_count": len(errors),
            },
        }

    @staticmethod
    def _failure(error: PipelineError) -> dict[str, Any]:
        """State update marking the run failed with a fatal error."""
        return {
            "errors": [error.message],
            "error_type": error.kind,
            "stage": PipelineStage.FAILED.value,
        }

    # =========================================================================
    # Public API
    # =========================================================================

    def initial_state(self, csv_content: str, file_name: str, run_id: Optional[str] = None) -> PipelineStateDict:
        """Fresh state for one run."""
        return {
            "run_id": run_id or generate_run_id(),
            "file_name": file_name,
            "csv_content": csv_content,
            "records": [],
            "targets": [],
            "bundles": {},
            "result": None,
            "stage": PipelineStage.PARSING.value,
            "error_type": None,
            "errors": [],
            "metadata": {"metrics_source": self.metrics_source.name},
            "step_timings": {},
            "progress_percent": 0,
            "started_at": _utcnow(),
            "completed_at": None,
        }

    async def run(
        self,
        csv_content: str,
        file_name: str = "upload.csv",
        run_id: Optional[str] = None,
    ) -> ProcessedData:
        """
        Execute the complete pipeline for one CSV upload.

        Args:
            csv_content: Comma-delimited text with a header row
            file_name: Name reported in the result
            run_id: Optional run ID (generated if not provided)

        Returns:
            ProcessedData with per-ASIN insights and the portfolio summary

        Raises:
            MalformedInputError: If the CSV has no `url` column or is empty
            NoValidIdentifiersError: If no row yields a valid ASIN
            PipelineError: For any unexpected failure (kind internal_error)
        """
        state = self.initial_state(csv_content, file_name, run_id)
        run_id = state["run_id"]

        with LogContext(run_id=run_id):
            logger.info("Starting pipeline run", file_name=file_name)

            try:
                final_state = await self._graph.ainvoke(state)
            except Exception as e:
                logger.error("Pipeline failed with unexpected error", error=str(e), exc_info=True)
                raise ErrorHandler.wrap(e, run_id) from e

            if final_state.get("stage") == PipelineStage.FAILED.value:
                raise self._error_from_state(final_state)

            result = ProcessedData.model_validate(final_state["result"])

            logger.info(
                "Pipeline completed successfully",
                asins=result.portfolio.asins_processed,
                fallback_asins=len(final_state.get("metadata", {}).get("fallback_asins", [])),
                duration_ms=sum(final_state.get("step_timings", {}).values()),
            )
            return result

    async def run_file(self, path: str | Path) -> ProcessedData:
        """
        Execute the pipeline on a CSV file.

        Raises:
            MalformedInputError: If the file cannot be read as UTF-8 text
        """
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as e:
            raise MalformedInputError(
                f"Could not read {path.name}: {e}",
                details={"path": str(path)},
            ) from e
        return await self.run(content, file_name=path.name)

    async def run_step(self, step_name: str, state: PipelineStateDict) -> PipelineStateDict:
        """
        Execute a single pipeline step (for testing/debugging).

        Args:
            step_name: Name of the step to execute
            state: Current pipeline state

        Returns:
            Updated pipeline state
        """
        node_methods = {
            "parse_input": self._parse_input_node,
            "extract_identifiers": self._extract_identifiers_node,
            "fetch_metrics": self._fetch_metrics_node,
            "compute_insights": self._compute_insights_node,
            "handle_error": self._handle_error_node,
        }

        if step_name not in node_methods:
            raise ValueError(f"Unknown step: {step_name}")

        result = await node_methods[step_name](state)

        updated_state = {**state, **result}
        if "errors" in result:
            updated_state["errors"] = state.get("errors", []) + result["errors"]
        return updated_state

    @staticmethod
    def _error_from_state(state: PipelineStateDict) -> PipelineError:
        """Rebuild the fatal error recorded in a failed state."""
        message = "; ".join(state.get("errors", [])) or "Pipeline failed"
        details = {"run_id": state.get("run_id")}
        error_type = state.get("error_type")

        if error_type == ErrorType.MALFORMED_INPUT.value:
            return MalformedInputError(message, details=details)
        if error_type == ErrorType.NO_VALID_IDENTIFIERS.value:
            return NoValidIdentifiersError(message, details=details)
        return PipelineError(message, details=details)

    # =========================================================================
    # Cleanup
    # =========================================================================

    async def close(self) -> None:
        """Close the metrics source connections."""
        try:
            await self.metrics_source.close()
        except Exception as e:
            logger.warning(f"Error closing metrics source: {e}")


# =============================================================================
# Convenience Functions
# =============================================================================

async def process_csv(
    csv_content: str,
    file_name: str = "upload.csv",
    settings: Optional[Settings] = None,
    progress_callback: Optional[Callable[[int, str], None]] = None,
    offline: bool = False,
) -> ProcessedData:
    """
    Convenience function to run the pipeline on CSV text.

    Example:
        >>> data = await process_csv("url\\nhttps://amazon.com/dp/B0CC282PBW\\n", "one.csv")
        >>> data.asins[0].asin
        'B0CC282PBW'
    """
    async with InsightsPipeline(
        settings=settings,
        progress_callback=progress_callback,
        offline=offline,
    ) as pipeline:
        return await pipeline.run(csv_content, file_name=file_name)
