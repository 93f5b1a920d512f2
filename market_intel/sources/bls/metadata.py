"""
BLS metadata utilities.

Handles:
- Series id validation
- BLS period codes (M01, Q02, A01, ...) to canonical period strings
- Reshaping timeseries responses into the simplified multi-series structure
"""

import logging
import re
from typing import Any, Dict, List, Optional

from market_intel.normalization.key_validator import KeyValidationResult

logger = logging.getLogger(__name__)

SERIES_ID_PATTERN = re.compile(r"^[A-Z0-9]{5,30}$")

# Request limits (years per request / series per request)
MAX_YEARS_ANONYMOUS = 10
MAX_YEARS_REGISTERED = 20
MAX_SERIES_ANONYMOUS = 25
MAX_SERIES_REGISTERED = 50


def split_series_ids(dataflow_id: str) -> List[str]:
    """BLS accepts several series per request; join them with '+'."""
    return [s.strip() for s in dataflow_id.split("+") if s.strip()]


def validate_series_ids(dataflow_id: str, key: str = "", registered: bool = False) -> KeyValidationResult:
    """Check series ids; lower-case ids are accepted with a warning."""
    series_ids = split_series_ids(dataflow_id)
    limit = MAX_SERIES_REGISTERED if registered else MAX_SERIES_ANONYMOUS
    hard: List[str] = []
    soft: List[str] = []
    suggestions: List[str] = []

    if key:
        hard.append("BLS series take no dimension key")
        suggestions.append(f"Pass the series id only: '{dataflow_id}'")
    if len(series_ids) > limit:
        hard.append(f"Too many series ({len(series_ids)}); the limit is {limit} per request")
        suggestions.append("Split the request or register an API key for 50 series per request")

    for series_id in series_ids:
        if SERIES_ID_PATTERN.match(series_id):
            continue
        if SERIES_ID_PATTERN.match(series_id.upper()):
            soft.append(f"Series id '{series_id}' is not upper-case")
            suggestions.append(f"Use '{series_id.upper()}'")
        else:
            hard.append(f"'{series_id}' is not a valid BLS series id")
            suggestions.append(
                "BLS series ids are 5-30 upper-case letters and digits, e.g. CES3232540001"
            )

    return KeyValidationResult(
        dataflow_id=dataflow_id,
        key=key,
        is_valid=not hard,
        pattern="SERIES_ID[+SERIES_ID...]",
        issues=tuple(hard + soft),
        suggestions=tuple(suggestions),
    )


def to_period(year: str, period: str) -> Optional[str]:
    """
    Convert a BLS year/period pair to a canonical period string.

    M01-M12 -> YYYY-MM, M13 (annual average) -> YYYY,
    Q01-Q04 -> YYYY-Qn, Q05 -> YYYY, S01/S02 -> YYYY-Sn, S03 -> YYYY,
    A01 -> YYYY.
    """
    if not year or not period or len(period) != 3:
        return None
    kind, number = period[0].upper(), period[1:]
    if not number.isdigit():
        return None
    n = int(number)
    if kind == "M":
        if 1 <= n <= 12:
            return f"{year}-{n:02d}"
        return year if n == 13 else None
    if kind == "Q":
        if 1 <= n <= 4:
            return f"{year}-Q{n}"
        return year if n == 5 else None
    if kind == "S":
        if n in (1, 2):
            return f"{year}-S{n}"
        return year if n == 3 else None
    if kind == "A":
        return year
    return None


def parse_bls_series_response(api_response: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Reshape a BLS timeseries response.

    BLS API response format:
    {
        "status": "REQUEST_SUCCEEDED",
        "message": [],
        "Results": {
            "series": [
                {
                    "seriesID": "CES3232540001",
                    "data": [
                        {"year": "2024", "period": "M01", "periodName": "January",
                         "value": "327.4", "footnotes": [{"code": "P", "text": "preliminary"}]}
                    ]
                }
            ]
        }
    }

    Returns:
        {"series": [{"dimensions": {"SERIES_ID": ...}, "observations": [...]}]}
    """
    series_out: List[Dict[str, Any]] = []
    results = (api_response or {}).get("Results") or {}

    for series in results.get("series") or []:
        series_id = series.get("seriesID", "")
        observations = []
        for obs in series.get("data") or []:
            period = to_period(str(obs.get("year", "")), str(obs.get("period", "")))
            if period is None:
                logger.warning(f"Skipping BLS observation with unknown period: {obs}")
                continue
            observations.append({"period": period, "value": obs.get("value")})
        series_out.append({"dimensions": {"SERIES_ID": series_id}, "observations": observations})

    return {"series": series_out}
