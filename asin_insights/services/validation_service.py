"""
Validation service for input parsing and sanitization.

Turns the uploaded CSV text into InputRecord rows. A missing `url`
column is fatal; individual bad rows are skipped with a log entry.
"""

import csv
import io
import math
import re
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from asin_insights.models.schemas import InputRecord
from asin_insights.utils.errors import MalformedInputError
from asin_insights.utils.logger import get_logger

logger = get_logger(__name__)


class ValidationService:
    """Service for validating and parsing pipeline input."""

    REQUIRED_COLUMN = "url"
    OPTIONAL_COLUMNS = ("label", "brand", "price_floor", "target_rating", "target_reviews_count")

    def parse_csv(self, content: str) -> list[InputRecord]:
        """
        Parse comma-delimited text with a header row into input records.

        Args:
            content: Raw CSV text.

        Returns:
            Records for every row with a non-empty url, in file order.

        Raises:
            MalformedInputError: If the text is empty or has no `url` column.
        """
        if not isinstance(content, str):
            raise MalformedInputError("CSV content must be text")

        content = content.lstrip("\ufeff").strip()
        if not content:
            raise MalformedInputError("CSV is empty")

        reader = csv.reader(io.StringIO(content))
        header = [self._normalize_header(h) for h in next(reader, [])]

        if self.REQUIRED_COLUMN not in header:
            logger.error("CSV is missing the url column", columns=header)
            raise MalformedInputError(
                f'CSV must contain a "{self.REQUIRED_COLUMN}" column',
                details={"columns": ", ".join(header)},
            )

        records: list[InputRecord] = []
        skipped = 0

        for row_number, values in enumerate(reader, start=1):
            if not any(v.strip() for v in values):
                continue

            row = {
                column: (values[i].strip() if i < len(values) else "")
                for i, column in enumerate(header)
            }

            record = self.build_record(row, row_number)
            if record is None:
                skipped += 1
                continue
            records.append(record)

        logger.info(
            "Parsed CSV",
            rows=len(records),
            skipped=skipped,
            optional_columns=[c for c in self.OPTIONAL_COLUMNS if c in header],
        )
        return records

    def build_record(self, row: dict[str, Any], row_number: int = 0) -> Optional[InputRecord]:
        """Build an InputRecord from a header->value mapping, or None to skip the row."""
        url = (row.get(self.REQUIRED_COLUMN) or "").strip()
        if not url:
            logger.debug("Skipping row without url", row_number=row_number)
            return None

        label = row.get("label") or None
        if label:
            label = self.sanitize_text(label, max_length=200) or None
        brand = row.get("brand") or None
        if brand:
            brand = self.sanitize_text(brand, max_length=100) or None

        reviews = self._parse_number(row.get("target_reviews_count"), minimum=0)

        try:
            return InputRecord(
                url=url,
                label=label,
                brand=brand,
                price_floor=self._parse_number(row.get("price_floor"), minimum=0),
                target_rating=self._parse_number(row.get("target_rating"), minimum=0, maximum=5),
                target_reviews_count=int(reviews) if reviews is not None and reviews.is_integer() else None,
                row_number=row_number,
            )
        except PydanticValidationError as e:
            logger.warning("Skipping invalid row", row_number=row_number, error=str(e))
            return None

    def sanitize_text(self, text: str, max_length: int = 1000) -> str:
        """Sanitize and truncate text content."""
        sanitized = re.sub(r"<[^>]+>", "", text)
        sanitized = re.sub(r"\s+", " ", sanitized).strip()
        return sanitized[:max_length] if len(sanitized) > max_length else sanitized

    @staticmethod
    def _normalize_header(name: str) -> str:
        return name.strip().strip('"').strip().lower()

    @staticmethod
    def _parse_number(
        value: Any,
        minimum: Optional[float] = None,
        maximum: Optional[float] = None,
    ) -> Optional[float]:
        """Parse an optional numeric cell; blank, malformed or out-of-range values become None."""
        if value is None:
            return None
        text = str(value).strip().lstrip("$")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        if minimum is not None and number < minimum:
            return None
        if maximum is not None and number > maximum:
            return None
        return number
