"""
Extractors module for ASIN Competitor Insights.

Components:
    - IdentifierExtractor: URL normalization and ASIN extraction
    - ProductNameHeuristic: Readable product names from URL slugs
"""

from asin_insights.extractors.identifier_extractor import (
    IdentifierExtractor,
    ProductNameHeuristic,
    normalize_url,
    extract_asin,
    derive_product_name,
)

__all__ = [
    "IdentifierExtractor",
    "ProductNameHeuristic",
    "normalize_url",
    "extract_asin",
    "derive_product_name",
]
