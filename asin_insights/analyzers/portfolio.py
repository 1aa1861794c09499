"""Portfolio-level summary over all processed ASINs."""

from typing import Sequence

from asin_insights.models.schemas import (
    PortfolioSummary,
    ProcessedAsinData,
    round_half_up,
    round_int,
)


class PortfolioAggregator:
    """Combines per-ASIN results into a PortfolioSummary."""

    def aggregate(self, results: Sequence[ProcessedAsinData]) -> PortfolioSummary:
        """
        Count, mean rating, mean price, total clicks and mean priority score.

        Means are rounded to 1 (rating), 2 (price) and 3 (priority)
        decimals. An empty sequence yields an all-zero summary.
        """
        count = len(results)
        if count == 0:
            return PortfolioSummary(
                asins_processed=0,
                avg_rating=0.0,
                avg_price=0.0,
                total_est_clicks=0,
                avg_priority_score=0.0,
            )

        return PortfolioSummary(
            asins_processed=count,
            avg_rating=round_half_up(sum(r.target.avg_rating for r in results) / count, 1),
            avg_price=round_half_up(sum(r.target.price for r in results) / count, 2),
            total_est_clicks=round_int(sum(r.target.est_daily_clicks for r in results)),
            avg_priority_score=round_half_up(
                sum(r.insights.priority_score for r in results) / count, 3
            ),
        )
