"""
FRED metadata and response reshaping.

Converts series/observations responses into the simplified single-series
structure the normalizer consumes.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from market_intel.normalization.key_validator import KeyValidationResult
from market_intel.normalization.periods import period_end, period_start

logger = logging.getLogger(__name__)

SERIES_ID_PATTERN = re.compile(r"^[A-Za-z0-9_]{1,30}$")

# Industrial production series are indexed to 2017 = 100
INDEX_BASE_YEAR = "2017"


def validate_series_id(series_id: str, key: str = "") -> KeyValidationResult:
    """
    FRED series ids are alphanumeric; FRED has no dimension key.

    Lower-case ids work (FRED is case-insensitive) but are flagged.
    """
    if not SERIES_ID_PATTERN.match(series_id):
        cleaned = re.sub(r"[^A-Za-z0-9_]", "", series_id).upper()
        return KeyValidationResult(
            dataflow_id=series_id,
            key=key,
            is_valid=False,
            pattern="SERIES_ID",
            issues=(f"'{series_id}' is not a valid FRED series id",),
            suggestions=(
                f"Series ids contain only letters, digits and '_': try '{cleaned}'",
                "Browse series at https://fred.stlouisfed.org",
            ),
        )
    if key:
        return KeyValidationResult(
            dataflow_id=series_id,
            key=key,
            is_valid=False,
            pattern="SERIES_ID",
            issues=("FRED series take no dimension key",),
            suggestions=(f"Pass the series id only: '{series_id}'",),
        )
    if series_id != series_id.upper():
        return KeyValidationResult(
            dataflow_id=series_id,
            key=key,
            is_valid=True,
            pattern="SERIES_ID",
            issues=(f"Series id '{series_id}' is not upper-case",),
            suggestions=(f"Use '{series_id.upper()}'",),
        )
    return KeyValidationResult(series_id, key, True, "SERIES_ID")


def to_fred_date(period: Optional[str], end: bool = False) -> Optional[str]:
    """Turn a period string into the YYYY-MM-DD bound FRED expects."""
    if not period:
        return None
    bound = period_end(period) if end else period_start(period)
    return bound.isoformat() if bound else period


def parse_observations(series_id: str, response: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Reshape a FRED observations response.

    FRED API response format:
    {
        "realtime_start": "2024-01-01",
        "observation_start": "2021-01-01",
        "units": "lin",
        "observations": [
            {"realtime_start": "...", "date": "2023-01-01", "value": "101.2"},
            {"realtime_start": "...", "date": "2023-02-01", "value": "."}
        ]
    }

    FRED dates every observation on the first day of its period; monthly
    series are re-labelled YYYY-MM so they compare with other sources.
    "." (missing) is kept and becomes a null value downstream.

    Args:
        series_id: FRED series id
        response: Parsed JSON (None for an empty body)

    Returns:
        {"dimensions": {...}, "observations": [{"period", "value"}]}
    """
    observations: List[Dict[str, Any]] = []
    raw = (response or {}).get("observations") or []
    frequency = _infer_frequency([o.get("date", "") for o in raw])

    for obs in raw:
        obs_date = obs.get("date")
        if not obs_date:
            continue
        observations.append({"period": _relabel(obs_date, frequency), "value": obs.get("value")})

    logger.debug(f"Reshaped {len(observations)} FRED observations for {series_id}")
    return {
        "dimensions": {"SERIES_ID": series_id.upper(), "FREQ": frequency},
        "observations": observations,
    }


def _infer_frequency(dates: List[str]) -> str:
    days = {d[8:10] for d in dates if len(d) == 10}
    months = {d[5:7] for d in dates if len(d) == 10}
    if days and days != {"01"}:
        return "D"
    if months and months <= {"01"} and len(dates) > 1:
        return "A"
    if months and months <= {"01", "04", "07", "10"} and len(dates) > 2:
        return "Q"
    return "M"


def _relabel(obs_date: str, frequency: str) -> str:
    if len(obs_date) != 10 or frequency == "D":
        return obs_date
    year, month = obs_date[:4], int(obs_date[5:7])
    if frequency == "A":
        return year
    if frequency == "Q":
        return f"{year}-Q{(month - 1) // 3 + 1}"
    return obs_date[:7]
