"""
Calendar dimension with YYYYMMDD smart keys.
"""

from datetime import date, datetime, timedelta

from retail_conform.core.models import DateDimensionRow

DEFAULT_CALENDAR_START = date(2018, 1, 1)
DEFAULT_CALENDAR_END = date(2030, 12, 31)

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def smart_key(value: date) -> int:
    """Return the YYYYMMDD integer key of a date."""
    return value.year * 10000 + value.month * 100 + value.day


class DateDimension:
    """
    Generated calendar over a fixed, inclusive date range.

    Dates outside the range do not resolve, which makes facts dated
    outside the calendar quarantine instead of dangling.
    """

    def __init__(self, start: date = DEFAULT_CALENDAR_START, end: date = DEFAULT_CALENDAR_END):
        """
        Initialize the calendar.

        Args:
            start: First calendar date
            end: Last calendar date (inclusive)
        """
        if end < start:
            raise ValueError(f"Calendar end {end} is before start {start}")
        self.start = start
        self.end = end
        self._rows: list[DateDimensionRow] | None = None

    def rows(self) -> list[DateDimensionRow]:
        """Return one row per calendar date, in date order."""
        if self._rows is None:
            self._rows = [
                self._build_row(self.start + timedelta(days=offset))
                for offset in range((self.end - self.start).days + 1)
            ]
        return self._rows

    @staticmethod
    def _build_row(day: date) -> DateDimensionRow:
        return DateDimensionRow(
            date_sk=smart_key(day),
            full_date=day,
            year_num=day.year,
            quarter_num=(day.month - 1) // 3 + 1,
            month_num=day.month,
            month_name=MONTH_NAMES[day.month - 1],
            day_num=day.day,
            day_name=DAY_NAMES[day.weekday()],
            is_weekend=day.weekday() >= 5,
        )

    def resolve(self, value: date | datetime | None) -> int | None:
        """
        Resolve a date or timestamp to its date key.

        Args:
            value: Date, datetime (truncated to its date) or None

        Returns:
            YYYYMMDD key, or None when absent or outside the calendar
        """
        if value is None:
            return None
        if isinstance(value, datetime):
            value = value.date()
        if value < self.start or value > self.end:
            return None
        return smart_key(value)

    def __len__(self) -> int:
        return (self.end - self.start).days + 1
