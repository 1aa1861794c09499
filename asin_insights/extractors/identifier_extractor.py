"""
ASIN extraction and product name heuristics for Amazon product URLs.

Rows whose URL does not contain a product-detail ASIN are not errors;
they are dropped by the pipeline with a log entry.
"""

import re
from typing import Any, Optional
from urllib.parse import unquote, urlsplit

from asin_insights.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Identifier Extraction
# =============================================================================

class IdentifierExtractor:
    """Normalizes product URLs and pulls the ASIN out of them."""

    SCHEME_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

    # /dp/<ASIN> or /gp/product/<ASIN>, followed by a path/query boundary
    ASIN_IN_PATH = re.compile(
        r"/(?:dp|gp/product)/([A-Z0-9]{10})(?:[/?]|$)",
        re.IGNORECASE,
    )

    @classmethod
    def normalize(cls, url: Any) -> str:
        """
        Trim a raw URL and make sure it carries a scheme.

        Non-string and blank input normalizes to an empty string. The result
        is not checked for being a well-formed URL.
        """
        if not url or not isinstance(url, str):
            return ""
        url = url.strip()
        if not url:
            return ""
        if not cls.SCHEME_PATTERN.match(url):
            url = "https://" + url
        return url

    @classmethod
    def extract(cls, url: Any) -> Optional[str]:
        """
        Extract the upper-cased ASIN from a product URL.

        Returns:
            The 10-character ASIN, or None when the URL has no
            product-detail segment followed by an ASIN.
        """
        normalized = cls.normalize(url)
        if not normalized:
            return None
        match = cls.ASIN_IN_PATH.search(normalized)
        return match.group(1).upper() if match else None


# =============================================================================
# Product Name Heuristic
# =============================================================================

class ProductNameHeuristic:
    """Best-effort product name from the slug segments of a product URL."""

    MARKERS = ("/dp/", "/gp/product/")
    ASIN_SEGMENT = re.compile(r"^[A-Z0-9]{10}$", re.IGNORECASE)
    ASIN_PREFIX = re.compile(r"^[A-Z0-9]{10}(?:/|$)", re.IGNORECASE)
    # Tracking segments such as ref=sr_1_3 never describe the product; they are
    # skipped even directly after the ASIN, leaving the caller to synthesize a name
    TRACKING_SEGMENT = re.compile(r"^ref[=_]", re.IGNORECASE)
    MAX_LENGTH = 60

    @classmethod
    def derive_name(cls, url: Any) -> str:
        """
        Derive a readable product name from a URL path.

        Looks at the segment just before the product-detail marker, then the
        segment just after the ASIN, then the last slug-like segment.

        Returns:
            Cleaned name, or an empty string when nothing usable is found.
        """
        normalized = IdentifierExtractor.normalize(url)
        if not normalized:
            return ""

        try:
            path = unquote(urlsplit(normalized).path)
        except ValueError as e:
            logger.warning("Failed to parse URL for product name", url=normalized, error=str(e))
            return ""

        lowered = path.lower()
        for marker in cls.MARKERS:
            index = lowered.find(marker)
            if index == -1:
                continue

            before = [s for s in path[:index].split("/") if s]
            if before:
                return cls.clean_name(before[-1])

            after = path[index + len(marker):]
            if cls.ASIN_PREFIX.match(after):
                rest = [s for s in after[10:].split("/") if s]
                if rest and not cls.TRACKING_SEGMENT.match(rest[0]):
                    return cls.clean_name(rest[0])
            break

        segments = [
            s for s in path.split("/")
            if len(s) > 2
            and not cls.ASIN_SEGMENT.match(s)
            and not cls.TRACKING_SEGMENT.match(s)
            and s.lower() != "product"
        ]
        if segments:
            return cls.clean_name(segments[-1])

        return ""

    @classmethod
    def clean_name(cls, raw_name: str) -> str:
        """Turn a URL slug into a title-cased name of at most 60 characters."""
        name = re.sub(r"[-_+]", " ", raw_name)
        # Capitalize word starts only, leaving the rest (e.g. "USB") untouched
        name = re.sub(r"\b\w", lambda m: m.group(0).upper(), name)
        name = re.sub(r"\s+", " ", name).strip()
        return name[:cls.MAX_LENGTH].strip()


# =============================================================================
# Convenience Functions
# =============================================================================

def normalize_url(url: Any) -> str:
    """Module-level shortcut for IdentifierExtractor.normalize."""
    return IdentifierExtractor.normalize(url)


def extract_asin(url: Any) -> Optional[str]:
    """Module-level shortcut for IdentifierExtractor.extract."""
    return IdentifierExtractor.extract(url)


def derive_product_name(url: Any) -> str:
    """Module-level shortcut for ProductNameHeuristic.derive_name."""
    return ProductNameHeuristic.derive_name(url)
