"""
Date and datetime parsers accepting unambiguous formats only.

Year-first numeric forms and month-name forms are accepted. Slash forms
that lead with a day or month (03/04/2024) are rejected outright, even when
the day happens to exceed 12: the format itself is ambiguous.
"""

import re
from datetime import date, datetime, timezone

from .base_parser import BaseParser, ParseResult

COMPACT_DATE_PATTERN = re.compile(r"^\d{8}$")
OFFSET_PATTERN = re.compile(r"([+-]\d{2}):?(\d{2})$")

DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%B %d, %Y",
)

DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
)


def _strip_offset(text: str) -> tuple[str, bool]:
    """
    Normalise a trailing UTC designator.

    Returns:
        (text with "Z" replaced by "+0000" offset form, whether an offset is present)
    """
    if text.endswith("Z") or text.endswith("z"):
        return text[:-1] + "+0000", True
    if "T" in text or " " in text:
        match = OFFSET_PATTERN.search(text)
        if match and ":" in text[: match.start()]:
            return text[: match.start()] + match.group(1) + match.group(2), True
    return text, False


def parse_datetime_text(text: str) -> datetime | None:
    """
    Parse text in any accepted date or datetime format.

    Offsets are converted to UTC and dropped, yielding naive datetimes.

    Args:
        text: Trimmed input text

    Returns:
        Naive datetime, or None when no accepted format matches
    """
    normalised, has_offset = _strip_offset(text)

    if has_offset:
        for fmt in DATETIME_FORMATS:
            try:
                parsed = datetime.strptime(normalised, fmt + "%z")
            except ValueError:
                continue
            return parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return None

    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    if COMPACT_DATE_PATTERN.match(text):
        try:
            return datetime.strptime(text, "%Y%m%d")
        except ValueError:
            return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    return None


class DateParser(BaseParser):
    """
    Parses a calendar date.

    Datetime input is accepted and truncated to its date.
    """

    def _parse(self, text: str) -> ParseResult:
        parsed = parse_datetime_text(text)
        if parsed is None:
            return ParseResult.failure(f"'{text}' is not an unambiguous date")
        return ParseResult.success(parsed.date())

    @property
    def type_name(self) -> str:
        return "date"


class DateTimeParser(BaseParser):
    """Parses a timestamp; date-only input resolves to midnight."""

    def _parse(self, text: str) -> ParseResult:
        parsed = parse_datetime_text(text)
        if parsed is None:
            return ParseResult.failure(f"'{text}' is not an unambiguous timestamp")
        return ParseResult.success(parsed)

    @property
    def type_name(self) -> str:
        return "datetime"


def to_date(value: date | datetime | None) -> date | None:
    """Truncate a datetime to its date; dates and None pass through."""
    if isinstance(value, datetime):
        return value.date()
    return value
