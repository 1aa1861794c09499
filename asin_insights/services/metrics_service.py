"""
Metrics sources for target and competitor data.

This module provides a unified interface for obtaining a target product's
metrics plus its top competitors, keyed by ASIN.

Features:
    - Abstract MetricsSource base class for extensibility
    - RemoteMetricsSource: single POST to the competitor-data endpoint
    - DeterministicFallbackSource: reproducible metrics seeded from the ASIN
    - FallbackMetricsSource: tries a primary source, degrades to the fallback
    - Structured logging of every degraded fetch

Example:
    >>> async with create_metrics_source(settings) as source:
    ...     bundle = await source.fetch("B0CC282PBW")
    ...     print(bundle.target.price, len(bundle.competitors))
"""

from __future__ import annotations

import math
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from asin_insights.config.settings import Settings, get_settings
from asin_insights.extractors.identifier_extractor import derive_product_name
from asin_insights.models.schemas import (
    CompetitorMetrics,
    MetricsBundle,
    MetricsOrigin,
    TargetMetrics,
    round_half_up,
    round_int,
    validate_asin,
)
from asin_insights.utils.errors import MetricsFetchError
from asin_insights.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Fallback Constants
# =============================================================================

FALLBACK_BRANDS = ("RENPHO", "ACME", "GADGY", "FLEXO", "TechPro", "SmartLife")

FALLBACK_ADJECTIVES = (
    "Premium", "Ultra", "Pro", "Advanced", "Smart", "Compact", "Ergonomic",
    "High-Performance",
)

FALLBACK_PRODUCT_TYPES = (
    "Wireless Headphones", "Smart Watch", "Bluetooth Speaker", "Fitness Tracker",
    "Phone Case", "Kitchen Scale", "LED Desk Lamp", "Portable Charger",
    "Gaming Mouse", "Yoga Mat",
)

# Inclusive integer ranges fed to seeded_random
FALLBACK_RANGES: dict[str, tuple[int, int]] = {
    "price_cents": (1400, 4900),
    "est_daily_impressions": (800, 5000),
    "est_daily_clicks": (30, 400),
    "ratings_count": (100, 5000),
    "rating_tenths": (36, 48),
    "keywords_top4": (2, 18),
    "keywords_page1": (10, 60),
    "competitor_count": (3, 5),
    "comp_price_pct": (85, 115),
    "comp_rating_tenths_delta": (-4, 4),
    "comp_ratings_count_pct": (40, 160),
    "comp_keywords_top4_delta": (-4, 6),
    "comp_keywords_page1_delta": (-12, 12),
    "comp_clicks_pct": (50, 140),
}

COMPETITOR_RATING_MIN = 3.2
COMPETITOR_RATING_MAX = 4.9


def identifier_seed(asin: str) -> int:
    """Sum of the character codes of an identifier."""
    return sum(ord(char) for char in asin)


def seeded_random(seed: int, minimum: int, maximum: int) -> int:
    """
    Deterministic integer in [minimum, maximum] derived from sin(seed).

    Pure function with no ambient random state: the same seed always maps
    to the same fraction, so every draw for one seed is reproducible.
    """
    x = math.sin(seed) * 10000
    return math.floor((x - math.floor(x)) * (maximum - minimum + 1)) + minimum


# =============================================================================
# Abstract Metrics Source
# =============================================================================

class MetricsSource(ABC):
    """
    Abstract base class for metrics sources.

    `fetch` returns the target's metrics and its competitor set for one ASIN.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Source name identifier."""
        pass

    @abstractmethod
    async def fetch(self, asin: str, source_url: Optional[str] = None) -> MetricsBundle:
        """Fetch metrics for an ASIN."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None

    async def __aenter__(self) -> "MetricsSource":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def get_stats(self) -> dict[str, Any]:
        """Get source statistics."""
        return {"name": self.name}


# =============================================================================
# Remote Source
# =============================================================================

class RemoteMetricsSource(MetricsSource):
    """
    Competitor-data endpoint client.

    Sends `POST {"asin": ...}` and expects `{target, competitors}` back.
    Every failure (transport, timeout, status, body) surfaces as
    MetricsFetchError. One attempt per call, no retries.
    """

    def __init__(
        self,
        endpoint: str,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.endpoint = endpoint
        self._client = client
        self._owns_client = client is None
        self._request_count = 0
        self._error_count = 0
        self._last_error: Optional[str] = None

    @property
    def name(self) -> str:
        return "remote"

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.request_timeout_seconds),
                limits=httpx.Limits(
                    max_keepalive_connections=self.settings.max_concurrent_requests,
                    max_connections=self.settings.max_concurrent_requests,
                ),
            )
            self._owns_client = True

    async def close(self) -> None:
        """Close HTTP client if this source created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def fetch(self, asin: str, source_url: Optional[str] = None) -> MetricsBundle:
        if self._client is None:
            await self.connect()

        start_time = time.time()
        self._request_count += 1

        try:
            response = await self._client.post(self.endpoint, json={"asin": asin})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise self._failure(asin, f"HTTP {status}", status_code=status) from e
        except httpx.HTTPError as e:
            raise self._failure(asin, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise self._failure(asin, f"Response body is not JSON: {e}") from e

        bundle = self._parse_payload(asin, payload)

        logger.info(
            "Remote metrics fetched",
            asin=asin,
            competitors=len(bundle.competitors),
            duration_ms=int((time.time() - start_time) * 1000),
        )
        return bundle

    def _parse_payload(self, asin: str, payload: Any) -> MetricsBundle:
        """Validate a response body against the metrics contract."""
        if not isinstance(payload, dict):
            raise self._failure(asin, "Response body is not a JSON object")

        competitors = payload.get("competitors")
        limit = self.settings.max_competitors
        if isinstance(competitors, list) and len(competitors) > limit:
            competitors = sorted(competitors, key=self._rank_key)[:limit]
            payload = {**payload, "competitors": competitors}

        try:
            bundle = MetricsBundle.model_validate(payload)
        except PydanticValidationError as e:
            raise self._failure(asin, f"Malformed payload ({e.error_count()} validation errors)") from e

        if bundle.target.asin != asin:
            raise self._failure(asin, f"Payload describes {bundle.target.asin}")

        return bundle

    @staticmethod
    def _rank_key(competitor: Any) -> float:
        rank = competitor.get("rank") if isinstance(competitor, dict) else None
        return float(rank) if isinstance(rank, (int, float)) else math.inf

    def _failure(self, asin: str, reason: str, status_code: Optional[int] = None) -> MetricsFetchError:
        self._error_count += 1
        self._last_error = reason
        return MetricsFetchError(asin, reason, status_code=status_code)

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "endpoint": self.endpoint,
            "request_count": self._request_count,
            "error_count": self._error_count,
            "last_error": self._last_error,
        }


# =============================================================================
# Deterministic Fallback Source
# =============================================================================

class DeterministicFallbackSource(MetricsSource):
    """
    Offline metrics generator.

    Output depends only on the ASIN (and the originating URL, which may
    supply the product name), so repeated runs are identical.
    """

    def __init__(self):
        self._generated = 0

    @property
    def name(self) -> str:
        return "fallback"

    async def fetch(self, asin: str, source_url: Optional[str] = None) -> MetricsBundle:
        return self.generate(asin, source_url)

    def generate(self, asin: str, source_url: Optional[str] = None) -> MetricsBundle:
        """Build target and competitor metrics for an ASIN."""
        asin = validate_asin(asin)
        seed = identifier_seed(asin)

        def draw(key: str) -> int:
            low, high = FALLBACK_RANGES[key]
            return seeded_random(seed, low, high)

        def pick(options: tuple[str, ...]) -> str:
            return options[seeded_random(seed, 0, len(options) - 1)]

        product_name = derive_product_name(source_url) if source_url else ""
        if not product_name:
            product_name = f"{pick(FALLBACK_ADJECTIVES)} {pick(FALLBACK_PRODUCT_TYPES)}"

        target = TargetMetrics(
            asin=asin,
            product_name=product_name,
            brand=pick(FALLBACK_BRANDS),
            price=round_half_up(draw("price_cents") / 100, 2),
            est_daily_impressions=draw("est_daily_impressions"),
            est_daily_clicks=draw("est_daily_clicks"),
            ratings_count=draw("ratings_count"),
            avg_rating=draw("rating_tenths") / 10,
            keywords_top4=draw("keywords_top4"),
            keywords_page1=draw("keywords_page1"),
        )

        competitors = []
        for i in range(draw("competitor_count")):
            rating = target.avg_rating + draw("comp_rating_tenths_delta") / 10
            rating = min(COMPETITOR_RATING_MAX, max(COMPETITOR_RATING_MIN, rating))
            competitors.append(CompetitorMetrics(
                rank=i + 1,
                comp_asin=f"C{asin[-6:]}{i}",
                product_name=f"{pick(FALLBACK_ADJECTIVES)} {pick(FALLBACK_PRODUCT_TYPES)} {i + 1}",
                brand_name=pick(FALLBACK_BRANDS),
                price=round_half_up(target.price * (draw("comp_price_pct") / 100), 2),
                rating=round_half_up(rating, 1),
                ratings_count=round_int(target.ratings_count * (draw("comp_ratings_count_pct") / 100)),
                keywords_top4=max(0, target.keywords_top4 + draw("comp_keywords_top4_delta")),
                keywords_page1=max(0, target.keywords_page1 + draw("comp_keywords_page1_delta")),
                est_daily_clicks=round_int(target.est_daily_clicks * (draw("comp_clicks_pct") / 100)),
            ))

        self._generated += 1
        logger.debug("Generated fallback metrics", asin=asin, competitors=len(competitors))

        return MetricsBundle(
            target=target,
            competitors=competitors,
            source=MetricsOrigin.FALLBACK,
        )

    def get_stats(self) -> dict[str, Any]:
        return {"name": self.name, "generated": self._generated}


# =============================================================================
# Fallback Decorator
# =============================================================================

class FallbackMetricsSource(MetricsSource):
    """
    Wraps a primary source and degrades to a fallback on failure.

    Failures are logged and never reach the caller.
    """

    def __init__(self, primary: MetricsSource, fallback: MetricsSource):
        self.primary = primary
        self.fallback = fallback
        self._fallback_count = 0

    @property
    def name(self) -> str:
        return f"{self.primary.name}+{self.fallback.name}"

    async def fetch(self, asin: str, source_url: Optional[str] = None) -> MetricsBundle:
        try:
            return await self.primary.fetch(asin, source_url=source_url)
        except MetricsFetchError as e:
            logger.warning(
                "Metrics fetch failed, using deterministic fallback",
                asin=asin,
                source=self.primary.name,
                error=e.message,
            )
        except Exception as e:
            logger.error(
                "Unexpected metrics source error, using deterministic fallback",
                asin=asin,
                source=self.primary.name,
                error=str(e),
                exc_info=True,
            )

        self._fallback_count += 1
        return await self.fallback.fetch(asin, source_url=source_url)

    async def close(self) -> None:
        await self.primary.close()
        await self.fallback.close()

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "fallback_count": self._fallback_count,
            "primary": self.primary.get_stats(),
            "fallback": self.fallback.get_stats(),
        }


# =============================================================================
# Factory
# =============================================================================

def create_metrics_source(
    settings: Optional[Settings] = None,
    offline: bool = False,
    client: Optional[httpx.AsyncClient] = None,
) -> MetricsSource:
    """
    Build the metrics source described by settings.

    Without a configured endpoint (or with offline=True) the deterministic
    fallback is used directly.
    """
    settings = settings or get_settings()
    fallback = DeterministicFallbackSource()

    if offline or not settings.remote_enabled:
        logger.info("Using deterministic fallback metrics source")
        return fallback

    remote = RemoteMetricsSource(settings.metrics_api_url, settings=settings, client=client)
    logger.info("Using remote metrics source with fallback", endpoint=settings.metrics_api_url)
    return FallbackMetricsSource(remote, fallback)
