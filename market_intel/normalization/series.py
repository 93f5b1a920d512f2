"""
Selections over normalized observation sequences.
"""
import calendar
from datetime import date
from typing import Iterable, List, Optional

from market_intel.core.schemas import ObservationRecord
from market_intel.normalization.periods import period_end, period_sort_key


def latest_record(records: Iterable[ObservationRecord]) -> Optional[ObservationRecord]:
    """
    Record with the maximum parseable time period.

    Ties on the period end date go to the lexically greater period string.
    """
    best: Optional[ObservationRecord] = None
    best_key = None
    for record in records:
        if period_end(record.time_period) is None:
            continue
        key = period_sort_key(record.time_period)
        if best is None or key > best_key:
            best, best_key = record, key
    return best


def latest_with_value(records: Iterable[ObservationRecord]) -> Optional[ObservationRecord]:
    return latest_record(r for r in records if r.value is not None)


def _one_year_earlier(end: date) -> date:
    year = end.year - 1
    last_day = calendar.monthrange(year, end.month)[1]
    return date(year, end.month, min(end.day, last_day))


def year_over_year(records: List[ObservationRecord]) -> Optional[float]:
    """
    Fractional change of the latest valued observation against the
    observation one year before it (same period within the year).

    Returns None when either side is missing or the base is zero.
    """
    latest = latest_with_value(records)
    if latest is None:
        return None
    latest_end = period_end(latest.time_period)
    target = _one_year_earlier(latest_end)
    # Compare month-ends so "2023-02" finds "2022-02" in leap and non-leap years
    for record in records:
        if record.value is None or record is latest:
            continue
        end = period_end(record.time_period)
        if end is None:
            continue
        if (end.year, end.month) == (target.year, target.month) and (
            end.day == target.day or calendar.monthrange(end.year, end.month)[1] == end.day
        ):
            if record.value == 0:
                return None
            return round((latest.value - record.value) / abs(record.value), 6)
    return None
