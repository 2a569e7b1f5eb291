"""
Date window validation shared by all analyses.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime

from .config import config
from .errors import InvalidDateFormat, InvalidDateRange, RangeTooLong

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class TimeWindow:
    """Half-open acquisition window [start, end)."""
    start: date
    end: date

    @property
    def start_str(self) -> str:
        return self.start.isoformat()

    @property
    def end_str(self) -> str:
        return self.end.isoformat()

    @property
    def total_days(self) -> int:
        return (self.end - self.start).days

    def describe(self) -> str:
        return f"{self.start_str} to {self.end_str}"


def parse_date(value: str) -> date:
    """Parse a strict YYYY-MM-DD string into a real calendar date."""
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise InvalidDateFormat(f"Invalid date '{value}'. Use YYYY-MM-DD format.")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise InvalidDateFormat(f"Invalid date '{value}'. Use YYYY-MM-DD format.")


def validate_window(start_str: str, end_str: str, label: str = "") -> TimeWindow:
    """
    Validate a pair of date strings and return the window they describe.

    Args:
        start_str: Start date (YYYY-MM-DD)
        end_str: End date (YYYY-MM-DD)
        label: Optional window name used as a message prefix, e.g. "before period"

    Raises:
        InvalidDateFormat: A string is not a real YYYY-MM-DD date
        InvalidDateRange: End is not after start
        RangeTooLong: Window spans more than ten 365-day years
    """
    prefix = f"{label}: " if label else ""
    try:
        start = parse_date(start_str)
        end = parse_date(end_str)
    except InvalidDateFormat as e:
        raise InvalidDateFormat(prefix + e.message)

    if end <= start:
        raise InvalidDateRange(f"{prefix}End date must be after start date")

    # Deliberately not calendar-aware
    span_years = (end - start).days / 365.0
    if span_years > config.MAX_RANGE_YEARS:
        raise RangeTooLong(f"{prefix}Date range cannot exceed {config.MAX_RANGE_YEARS} years")

    return TimeWindow(start=start, end=end)
