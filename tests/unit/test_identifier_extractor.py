import pytest

from asin_insights.extractors.identifier_extractor import (
    IdentifierExtractor,
    ProductNameHeuristic,
    derive_product_name,
    extract_asin,
    normalize_url,
)


# =============================================================================
# normalize
# =============================================================================

def test_normalize_adds_scheme():
    assert normalize_url("amazon.com/dp/B0CC282PBW") == "https://amazon.com/dp/B0CC282PBW"


def test_normalize_keeps_existing_scheme():
    assert normalize_url("  http://amazon.com/dp/B0CC282PBW  ") == "http://amazon.com/dp/B0CC282PBW"
    assert normalize_url("HTTPS://amazon.com/x") == "HTTPS://amazon.com/x"


@pytest.mark.parametrize("value", [None, "", "   ", 42, ["https://amazon.com"]])
def test_normalize_empty_or_non_string(value):
    assert IdentifierExtractor.normalize(value) == ""


# =============================================================================
# extract
# =============================================================================

def test_extract_upper_cases_token():
    assert extract_asin("https://amazon.com/Widget/dp/b0cc282pbw/ref=x") == "B0CC282PBW"


@pytest.mark.parametrize("url", [
    "https://www.amazon.com/dp/B0CC282PBW",
    "https://www.amazon.com/dp/B0CC282PBW?th=1",
    "https://www.amazon.com/gp/product/B0CC282PBW",
    "amazon.com/GP/PRODUCT/B0CC282PBW/",
    "www.amazon.com/Digital-Scale/DP/B0CC282PBW/ref=sr_1_3?keywords=scale",
])
def test_extract_known_patterns(url):
    assert IdentifierExtractor.extract(url) == "B0CC282PBW"


@pytest.mark.parametrize("url", [
    "https://www.amazon.com/s?k=kitchen+scale",
    "https://www.amazon.com/dp/B0CC282PB",        # 9 characters
    "https://www.amazon.com/dp/B0CC282PBWX",      # 11 characters
    "https://www.amazon.com/dp/B0CC-82PBW",
    "https://www.amazon.com/product/B0CC282PBW",
    "https://www.amazon.com/xgp/product/B0CC282PBW",
    "",
    None,
])
def test_extract_returns_none_without_product_marker(url):
    assert IdentifierExtractor.extract(url) is None


# =============================================================================
# ProductNameHeuristic
# =============================================================================

def test_name_from_segment_before_marker():
    url = "https://www.amazon.com/Digital-Kitchen-Scale/dp/B0CC282PBW/ref=sr_1_3"
    assert derive_product_name(url) == "Digital Kitchen Scale"


def test_name_from_segment_after_asin():
    url = "https://www.amazon.com/dp/B0CC282PBW/usb_desk+lamp"
    assert derive_product_name(url) == "Usb Desk Lamp"


def test_name_ignores_tracking_segment_after_asin():
    assert derive_product_name("https://www.amazon.com/dp/B0CC282PBW/ref=sr_1_3") == ""
    assert derive_product_name("https://amazon.com/dp/B0CC282PBW/ref=x") == ""
    assert derive_product_name("https://amazon.com/dp/B0CC282PBW/Ref_x") == ""


def test_name_with_gp_product_marker():
    url = "https://www.amazon.com/Yoga-Mat-Thick/gp/product/B08N5WRWNW"
    assert derive_product_name(url) == "Yoga Mat Thick"


def test_name_falls_back_to_last_slug_segment():
    assert derive_product_name("https://www.amazon.com/gaming-mouse/B08N5WRWNW") == "Gaming Mouse"


def test_name_empty_when_nothing_usable():
    assert ProductNameHeuristic.derive_name("https://amazon.com/dp/B0CC282PBW") == ""
    assert ProductNameHeuristic.derive_name("") == ""


def test_name_is_url_decoded():
    url = "https://www.amazon.com/Caf%C3%A9-Grinder/dp/B0CC282PBW"
    assert derive_product_name(url) == "Café Grinder"


def test_clean_name_keeps_inner_capitals_and_truncates():
    assert ProductNameHeuristic.clean_name("LED--desk__lamp") == "LED Desk Lamp"
    assert len(ProductNameHeuristic.clean_name("a-" * 100)) <= 60
