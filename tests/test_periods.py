"""
Unit tests for time period parsing and series selections.
"""
from datetime import date

import pytest

from market_intel.core.schemas import ObservationRecord
from market_intel.normalization.periods import is_period, period_end, period_start, period_sort_key
from market_intel.normalization.series import latest_record, latest_with_value, year_over_year


def obs(period, value):
    return ObservationRecord(time_period=period, value=value, source_id="test")


# =============================================================================
# Period parsing
# =============================================================================


class TestPeriodEnd:
    """Tests for period_end."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "period,expected",
        [
            ("2023", date(2023, 12, 31)),
            ("2023-Q2", date(2023, 6, 30)),
            ("2023Q1", date(2023, 3, 31)),
            ("2023-07", date(2023, 7, 31)),
            ("2023M07", date(2023, 7, 31)),
            ("2023-M02", date(2023, 2, 28)),
            ("2024-02", date(2024, 2, 29)),
            ("2023-07-15", date(2023, 7, 15)),
            ("2023-S1", date(2023, 6, 30)),
            ("2023S2", date(2023, 12, 31)),
            ("2023-W01", date(2023, 1, 8)),
        ],
    )
    def test_formats(self, period, expected):
        assert period_end(period) == expected

    @pytest.mark.unit
    @pytest.mark.parametrize("period", [None, "", "garbage", "2023-13", "2023-Q5", "2023-02-30", "23"])
    def test_unparseable_is_none(self, period):
        assert period_end(period) is None
        assert not is_period(period)

    @pytest.mark.unit
    def test_period_start(self):
        assert period_start("2023") == date(2023, 1, 1)
        assert period_start("2023-Q3") == date(2023, 7, 1)
        assert period_start("2023M11") == date(2023, 11, 1)
        assert period_start("2023-S2") == date(2023, 7, 1)
        assert period_start("2023-W01") == date(2023, 1, 2)
        assert period_start("nope") is None

    @pytest.mark.unit
    def test_mixed_granularity_sorts_on_end_date(self):
        periods = ["2023", "2023-Q1", "2022-12", "2023-06"]
        assert sorted(periods, key=period_sort_key) == ["2022-12", "2023-Q1", "2023-06", "2023"]


# =============================================================================
# Series selections
# =============================================================================


class TestLatestRecord:
    """Tests for latest_record and latest_with_value."""

    @pytest.mark.unit
    def test_latest_by_period_not_input_order(self):
        records = [obs("2023", 3.0), obs("2021", 1.0), obs("2022", 2.0)]
        assert latest_record(records).time_period == "2023"

        records.reverse()
        assert latest_record(records).time_period == "2023"

    @pytest.mark.unit
    def test_unparseable_periods_are_ignored(self):
        assert latest_record([obs("n/a", 9.0), obs("2020", 1.0)]).time_period == "2020"
        assert latest_record([obs("n/a", 9.0)]) is None
        assert latest_record([]) is None

    @pytest.mark.unit
    def test_latest_with_value_skips_missing(self):
        records = [obs("2023", None), obs("2022", 5.0)]
        assert latest_record(records).time_period == "2023"
        assert latest_with_value(records).time_period == "2022"

    @pytest.mark.unit
    def test_same_end_date_breaks_tie_on_string(self):
        records = [obs("2023", 1.0), obs("2023-Q4", 2.0)]
        assert latest_record(records).time_period == "2023-Q4"


class TestYearOverYear:
    """Tests for year_over_year."""

    @pytest.mark.unit
    def test_annual_growth(self):
        records = [obs("2022", 100.0), obs("2023", 105.0)]
        assert year_over_year(records) == 0.05

    @pytest.mark.unit
    def test_monthly_uses_same_month(self):
        records = [
            obs("2022-05", 200.0),
            obs("2022-06", 100.0),
            obs("2023-04", 999.0),
            obs("2023-05", 210.0),
        ]
        assert year_over_year(records) == 0.05

    @pytest.mark.unit
    def test_leap_february(self):
        records = [obs("2023-02", 50.0), obs("2024-02", 60.0)]
        assert year_over_year(records) == 0.2

    @pytest.mark.unit
    def test_no_base_period(self):
        assert year_over_year([obs("2023", 1.0), obs("2020", 1.0)]) is None
        assert year_over_year([]) is None

    @pytest.mark.unit
    def test_zero_base_is_none(self):
        assert year_over_year([obs("2022", 0.0), obs("2023", 4.0)]) is None

    @pytest.mark.unit
    def test_negative_base_uses_absolute_value(self):
        assert year_over_year([obs("2022", -10.0), obs("2023", -5.0)]) == 0.5
