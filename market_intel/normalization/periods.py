"""
Time period parsing.

Accepted forms: 2023, 2023-Q3/2023Q3, 2023-07/2023-M07/2023M07,
2023-07-15, 2023-S1/2023S1, 2023-W05/2023W05.

Every period maps to the date it ends on, so periods of different
granularity compare on one axis.
"""
import calendar
import re
from datetime import date, timedelta
from typing import Optional

_ANNUAL = re.compile(r"^(\d{4})$")
_QUARTER = re.compile(r"^(\d{4})-?Q([1-4])$", re.IGNORECASE)
_MONTH = re.compile(r"^(\d{4})-?M(\d{1,2})$", re.IGNORECASE)
_YEAR_MONTH = re.compile(r"^(\d{4})-(\d{2})$")
_DAY = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_SEMESTER = re.compile(r"^(\d{4})-?S([12])$", re.IGNORECASE)
_WEEK = re.compile(r"^(\d{4})-?W(\d{2})$", re.IGNORECASE)


def _month_end(year: int, month: int) -> Optional[date]:
    if not 1 <= month <= 12:
        return None
    return date(year, month, calendar.monthrange(year, month)[1])


def period_end(period: Optional[str]) -> Optional[date]:
    """
    Last calendar day covered by a period string, or None if unparseable.

    >>> period_end("2023-Q2")
    datetime.date(2023, 6, 30)
    """
    if period is None:
        return None
    text = str(period).strip()

    m = _ANNUAL.match(text)
    if m:
        return date(int(m.group(1)), 12, 31)

    m = _QUARTER.match(text)
    if m:
        return _month_end(int(m.group(1)), int(m.group(2)) * 3)

    m = _MONTH.match(text) or _YEAR_MONTH.match(text)
    if m:
        return _month_end(int(m.group(1)), int(m.group(2)))

    m = _DAY.match(text)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return None

    m = _SEMESTER.match(text)
    if m:
        return _month_end(int(m.group(1)), int(m.group(2)) * 6)

    m = _WEEK.match(text)
    if m:
        try:
            monday = date.fromisocalendar(int(m.group(1)), int(m.group(2)), 1)
        except ValueError:
            return None
        return monday + timedelta(days=6)

    return None


def is_period(period: Optional[str]) -> bool:
    return period_end(period) is not None


def period_sort_key(period: str):
    """Sort key: parsed end date first, raw string as tie-break."""
    end = period_end(period)
    return (end or date.min, str(period))


def period_start(period: Optional[str]) -> Optional[date]:
    """First calendar day covered by a period string, or None if unparseable."""
    end = period_end(period)
    if end is None:
        return None
    text = str(period).strip()
    if _ANNUAL.match(text):
        return date(end.year, 1, 1)
    m = _QUARTER.match(text)
    if m:
        return date(end.year, int(m.group(2)) * 3 - 2, 1)
    if _MONTH.match(text) or _YEAR_MONTH.match(text):
        return date(end.year, end.month, 1)
    m = _SEMESTER.match(text)
    if m:
        return date(end.year, 1 if m.group(2) == "1" else 7, 1)
    if _WEEK.match(text):
        return end - timedelta(days=6)
    return end
