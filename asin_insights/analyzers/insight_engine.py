"""
Insight Engine for the ASIN Competitor Insights pipeline.

Compares one target product against its competitor set and produces gap
indicators, a weighted priority score and up to three recommended actions.

Components:
    1. Competitor Average - element-wise mean of the competitor metrics
    2. Gap Indicators - keyword, rating and review gaps, price position
    3. Priority Score - weighted sum of normalized sub-scores (0-1)
    4. Actions - ordered, conditional recommendations

Thresholds and weights are tuned constants; change them only together
with the reference outputs that depend on them.
"""

from typing import Sequence

from asin_insights.models.schemas import (
    Action,
    CompetitorAverage,
    CompetitorMetrics,
    Effort,
    Insights,
    PricePosition,
    TargetMetrics,
    round_half_up,
    round_int,
)
from asin_insights.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Scoring Constants
# =============================================================================

PRIORITY_WEIGHTS = {
    "keywords_top4": 0.30,
    "keywords_page1": 0.25,
    "reviews": 0.20,
    "clicks": 0.15,
    "price": 0.10,
}

# Gap values at which a sub-score saturates at 1.0
KW4_GAP_CAP = 20
KWP1_GAP_CAP = 40
REVIEWS_DEFICIT_CAP = 1000

PRICE_TOLERANCE = 0.03

PRICE_SCORES = {
    PricePosition.ABOVE: 1.0,
    PricePosition.ALIGNED: 0.5,
    PricePosition.BELOW: 0.0,
}

# Action thresholds
PAGE1_GAP_THRESHOLD = 5
PAGE1_GAP_HIGH_EFFORT = 20
PAGE1_GAP_MEDIUM_EFFORT = 10
REVIEWS_DEFICIT_THRESHOLD = 200
REVIEWS_DEFICIT_HIGH_EFFORT = 1000
TOP4_GAP_THRESHOLD = 2
CLICKS_SHARE_THRESHOLD = 0.3

MAX_ACTIONS = 3


def _normalize(value: float, cap: float) -> float:
    """Clamp a gap into [0, cap] and scale it to [0, 1]."""
    return min(max(value, 0.0), cap) / cap


# =============================================================================
# Aggregates
# =============================================================================

def compute_competitor_average(competitors: Sequence[CompetitorMetrics]) -> CompetitorAverage:
    """
    Element-wise arithmetic mean of a competitor set.

    Raises:
        ValueError: If the competitor set is empty.
    """
    if not competitors:
        raise ValueError("At least one competitor is required")

    count = len(competitors)
    return CompetitorAverage(
        price=sum(c.price for c in competitors) / count,
        rating=sum(c.rating for c in competitors) / count,
        ratings_count=sum(c.ratings_count for c in competitors) / count,
        keywords_top4=sum(c.keywords_top4 for c in competitors) / count,
        keywords_page1=sum(c.keywords_page1 for c in competitors) / count,
        est_daily_clicks=sum(c.est_daily_clicks for c in competitors) / count,
    )


def classify_price(target_price: float, average_price: float) -> PricePosition:
    """Position of the target price relative to the competitor average."""
    if average_price <= 0:
        return PricePosition.ALIGNED
    difference = (target_price - average_price) / average_price
    if difference > PRICE_TOLERANCE:
        return PricePosition.ABOVE
    if difference < -PRICE_TOLERANCE:
        return PricePosition.BELOW
    return PricePosition.ALIGNED


def compute_clicks_share(target_clicks: float, competitor_clicks: float) -> float:
    """Target's fraction of the combined daily clicks (0.0 when nobody gets clicks)."""
    total = target_clicks + competitor_clicks
    if total <= 0:
        return 0.0
    return target_clicks / total


def compute_priority_score(
    kw4_gap: float,
    kwp1_gap: float,
    reviews_deficit: float,
    clicks_share: float,
    price_position: PricePosition,
) -> float:
    """Weighted composite urgency in [0, 1], unrounded."""
    return (
        PRIORITY_WEIGHTS["keywords_top4"] * _normalize(kw4_gap, KW4_GAP_CAP)
        + PRIORITY_WEIGHTS["keywords_page1"] * _normalize(kwp1_gap, KWP1_GAP_CAP)
        + PRIORITY_WEIGHTS["reviews"] * _normalize(reviews_deficit, REVIEWS_DEFICIT_CAP)
        + PRIORITY_WEIGHTS["clicks"] * (1 - clicks_share)
        + PRIORITY_WEIGHTS["price"] * PRICE_SCORES[PricePosition(price_position)]
    )


# =============================================================================
# Insight Engine
# =============================================================================

class InsightEngine:
    """
    Derives gap insights for a target against its competitors.

    Stateless; one instance can serve any number of targets.

    Example:
        >>> engine = InsightEngine()
        >>> comp_avg, insights = engine.analyze(target, competitors)
        >>> insights.priority_score
        0.412
    """

    def analyze(
        self,
        target: TargetMetrics,
        competitors: Sequence[CompetitorMetrics],
    ) -> tuple[CompetitorAverage, Insights]:
        """
        Compute the competitor average and insights for one target.

        Thresholds are evaluated on unrounded values; only the reported
        figures are rounded.

        Raises:
            ValueError: If `competitors` is empty.
        """
        comp_avg = compute_competitor_average(competitors)

        kw4_gap = comp_avg.keywords_top4 - target.keywords_top4
        kwp1_gap = comp_avg.keywords_page1 - target.keywords_page1
        rating_gap = target.avg_rating - comp_avg.rating
        reviews_deficit = comp_avg.ratings_count - target.ratings_count
        price_position = classify_price(target.price, comp_avg.price)
        clicks_share = compute_clicks_share(
            target.est_daily_clicks,
            sum(c.est_daily_clicks for c in competitors),
        )

        priority_score = compute_priority_score(
            kw4_gap, kwp1_gap, reviews_deficit, clicks_share, price_position,
        )

        actions = self.generate_actions(
            comp_avg, kw4_gap, kwp1_gap, reviews_deficit, clicks_share,
        )

        insights = Insights(
            kw4_gap=round_half_up(kw4_gap, 1),
            kwp1_gap=round_half_up(kwp1_gap, 1),
            rating_gap=round_half_up(rating_gap, 1),
            reviews_deficit=round_int(reviews_deficit),
            price_position=price_position,
            clicks_share=round_half_up(clicks_share, 2),
            priority_score=round_half_up(priority_score, 3),
            actions=actions,
        )

        logger.debug(
            "Computed insights",
            asin=target.asin,
            priority_score=insights.priority_score,
            price_position=insights.price_position,
            actions=len(actions),
        )
        return comp_avg, insights

    def generate_actions(
        self,
        comp_avg: CompetitorAverage,
        kw4_gap: float,
        kwp1_gap: float,
        reviews_deficit: float,
        clicks_share: float,
    ) -> list[Action]:
        """Recommended actions in fixed priority order, at most three."""
        actions: list[Action] = []

        if kwp1_gap > PAGE1_GAP_THRESHOLD:
            if kwp1_gap > PAGE1_GAP_HIGH_EFFORT:
                effort = Effort.HIGH
            elif kwp1_gap > PAGE1_GAP_MEDIUM_EFFORT:
                effort = Effort.MEDIUM
            else:
                effort = Effort.LOW
            actions.append(Action(
                title=f"Expand Page-1 coverage by ~{round_int(kwp1_gap)} keywords",
                why="You trail comp avg on Page-1 listings which limits discoverability.",
                impact=["↑ clicks", "↑ rank"],
                effort=effort,
                target=f"Reach ~{round_int(comp_avg.keywords_page1)} Page-1 keywords",
            ))

        if reviews_deficit > REVIEWS_DEFICIT_THRESHOLD:
            actions.append(Action(
                title=f"Accelerate review acquisition (~{round_int(reviews_deficit)} additional)",
                why="Large social proof gap vs comp avg is suppressing CVR and ranking.",
                impact=["↑ CVR", "↑ rank"],
                effort=Effort.HIGH if reviews_deficit > REVIEWS_DEFICIT_HIGH_EFFORT else Effort.MEDIUM,
                target=f"{round_int(comp_avg.ratings_count)} total ratings",
            ))

        if kw4_gap > TOP4_GAP_THRESHOLD:
            actions.append(Action(
                title=f"Target ~{round_int(kw4_gap)} more Top-4 keyword positions",
                why="Missing key ranking positions limits visibility in prime search results.",
                impact=["↑ clicks", "↑ CVR"],
                effort=Effort.MEDIUM,
                target=f"{round_int(comp_avg.keywords_top4)} Top-4 keywords",
            ))

        if clicks_share < CLICKS_SHARE_THRESHOLD:
            actions.append(Action(
                title="Improve click capture strategy",
                why="Low click share indicates suboptimal title/image optimization.",
                impact=["↑ clicks"],
                effort=Effort.LOW,
                target="Increase click share to 35%+",
            ))

        return actions[:MAX_ACTIONS]
