import pytest

from asin_insights.models.schemas import ErrorType
from asin_insights.services.validation_service import ValidationService
from asin_insights.utils.errors import MalformedInputError


@pytest.fixture
def service():
    return ValidationService()


def test_parse_csv_basic(service):
    records = service.parse_csv(
        "url,label,brand\n"
        "https://amazon.com/dp/B0CC282PBW,Scale,ACME\n"
        "https://amazon.com/dp/B08N5WRWNW,,\n"
    )
    assert len(records) == 2
    assert records[0].label == "Scale"
    assert records[0].brand == "ACME"
    assert records[0].row_number == 1
    assert records[1].label is None
    assert records[1].brand is None


def test_parse_csv_requires_url_column(service):
    with pytest.raises(MalformedInputError) as exc:
        service.parse_csv("link,label\nhttps://amazon.com/dp/B0CC282PBW,Scale\n")
    assert exc.value.error_type == ErrorType.MALFORMED_INPUT
    assert 'must contain a "url" column' in exc.value.message


@pytest.mark.parametrize("content", ["", "   \n  ", "\ufeff"])
def test_parse_csv_rejects_empty(service, content):
    with pytest.raises(MalformedInputError):
        service.parse_csv(content)


def test_parse_csv_rejects_non_text(service):
    with pytest.raises(MalformedInputError):
        service.parse_csv(None)  # type: ignore


def test_parse_csv_header_is_normalized(service):
    records = service.parse_csv('\ufeff "URL" , Label\nhttps://amazon.com/dp/B0CC282PBW,Scale\n')
    assert records[0].url == "https://amazon.com/dp/B0CC282PBW"
    assert records[0].label == "Scale"


def test_parse_csv_skips_blank_and_urlless_rows(service):
    records = service.parse_csv(
        "label,url\n"
        "\n"
        "No url,\n"
        "Scale,https://amazon.com/dp/B0CC282PBW\n"
    )
    assert [r.label for r in records] == ["Scale"]


def test_parse_csv_header_only(service):
    assert service.parse_csv("url,label\n") == []


def test_parse_csv_quoted_values(service):
    records = service.parse_csv('url,label\n"https://amazon.com/dp/B0CC282PBW","Scale, Digital"\n')
    assert records[0].label == "Scale, Digital"


def test_parse_csv_short_rows_fill_missing_columns(service):
    records = service.parse_csv("url,label,brand\nhttps://amazon.com/dp/B0CC282PBW\n")
    assert records[0].label is None
    assert records[0].brand is None


def test_build_record_parses_optional_numbers(service):
    record = service.build_record({
        "url": "https://amazon.com/dp/B0CC282PBW",
        "price_floor": "$19.99",
        "target_rating": "4.5",
        "target_reviews_count": "1500",
    })
    assert record.price_floor == 19.99
    assert record.target_rating == 4.5
    assert record.target_reviews_count == 1500


def test_build_record_bad_numbers_become_none(service):
    record = service.build_record({
        "url": "https://amazon.com/dp/B0CC282PBW",
        "price_floor": "cheap",
        "target_rating": "7",
        "target_reviews_count": "12.5",
    })
    assert record is not None
    assert record.price_floor is None
    assert record.target_rating is None
    assert record.target_reviews_count is None


def test_build_record_without_url(service):
    assert service.build_record({"url": "  ", "label": "x"}) is None


def test_build_record_sanitizes_text(service):
    record = service.build_record({
        "url": "https://amazon.com/dp/B0CC282PBW",
        "label": "<b>Kitchen</b>   Scale",
    })
    assert record.label == "Kitchen Scale"


def test_sanitize_text(service):
    assert service.sanitize_text("<p>Hello <b>World</b></p>") == "Hello World"
    assert len(service.sanitize_text("a" * 2000, max_length=100)) == 100
