"""
Alpha Vantage metadata and response reshaping.

dataflow_id is the API function (OVERVIEW, GLOBAL_QUOTE, TIME_SERIES_*);
the dimension key is the ticker symbol.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from market_intel.normalization.key_validator import KeyValidationResult

logger = logging.getLogger(__name__)

SYMBOL_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9.\-]{0,11}$")

OVERVIEW = "OVERVIEW"
GLOBAL_QUOTE = "GLOBAL_QUOTE"
TIME_SERIES_FUNCTIONS = {
    "TIME_SERIES_DAILY",
    "TIME_SERIES_DAILY_ADJUSTED",
    "TIME_SERIES_WEEKLY",
    "TIME_SERIES_WEEKLY_ADJUSTED",
    "TIME_SERIES_MONTHLY",
    "TIME_SERIES_MONTHLY_ADJUSTED",
}
SUPPORTED_FUNCTIONS = {OVERVIEW, GLOBAL_QUOTE} | TIME_SERIES_FUNCTIONS

# OVERVIEW fields reported as observations (dated by LatestQuarter)
OVERVIEW_METRICS = ("MarketCapitalization", "RevenueTTM")
OVERVIEW_DIMENSIONS = {"Symbol": "SYMBOL", "Name": "NAME", "Sector": "SECTOR", "Industry": "INDUSTRY"}


def validate_request(function: str, symbol: str) -> KeyValidationResult:
    hard: List[str] = []
    soft: List[str] = []
    suggestions: List[str] = []

    if function.upper() not in SUPPORTED_FUNCTIONS:
        hard.append(f"Unsupported function '{function}'")
        suggestions.append(f"Supported functions: {', '.join(sorted(SUPPORTED_FUNCTIONS))}")
    elif function != function.upper():
        soft.append(f"Function '{function}' is not upper-case")
        suggestions.append(f"Use '{function.upper()}'")

    if not symbol:
        hard.append("A ticker symbol is required as the dimension key")
        suggestions.append("Pass the symbol as the key, e.g. 'IBM'")
    elif not SYMBOL_PATTERN.match(symbol.upper()):
        hard.append(f"'{symbol}' is not a ticker symbol")
        suggestions.append("Symbols are letters, digits, '.' and '-', e.g. BRK-B or TSCO.LON")
    elif symbol != symbol.upper():
        soft.append(f"Symbol '{symbol}' is not upper-case")
        suggestions.append(f"Use '{symbol.upper()}'")

    return KeyValidationResult(
        function, symbol, not hard, "SYMBOL", tuple(hard + soft), tuple(suggestions)
    )


def parse_overview(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reshape a company OVERVIEW response.

    Alpha Vantage OVERVIEW format (abridged):
    {
        "Symbol": "PFE", "Name": "Pfizer Inc", "Sector": "LIFE SCIENCES",
        "Industry": "PHARMACEUTICAL PREPARATIONS", "LatestQuarter": "2024-03-31",
        "MarketCapitalization": "165700000000", "RevenueTTM": "54900000000"
    }

    "None" values become nulls downstream.
    """
    period = data.get("LatestQuarter")
    dims = {
        out: str(data[src]) for src, out in OVERVIEW_DIMENSIONS.items() if data.get(src)
    }
    observations = [
        {"period": period, "value": data.get(metric), "dimensions": {"METRIC": metric}}
        for metric in OVERVIEW_METRICS
        if metric in data
    ]
    return {"dimensions": dims, "observations": observations}


def parse_global_quote(data: Dict[str, Any]) -> Dict[str, Any]:
    quote = data.get("Global Quote") or {}
    if not quote:
        return {"observations": []}
    return {
        "dimensions": {"SYMBOL": str(quote.get("01. symbol", ""))},
        "observations": [
            {"period": quote.get("07. latest trading day"), "value": quote.get("05. price")}
        ],
    }


def time_series_key(data: Dict[str, Any]) -> Optional[str]:
    for key in data:
        if "Time Series" in key:
            return key
    return None


def parse_time_series(data: Dict[str, Any], symbol: str) -> Dict[str, Any]:
    """
    Reshape a TIME_SERIES_* response; adjusted close is preferred.

    {
        "Meta Data": {"2. Symbol": "IBM", ...},
        "Monthly Adjusted Time Series": {
            "2024-03-28": {"1. open": "185.49", "4. close": "190.96", "5. adjusted close": "189.31"}
        }
    }
    """
    key = time_series_key(data)
    series = (data.get(key) or {}) if key else {}
    observations = []
    for day, values in series.items():
        value = values.get("5. adjusted close", values.get("4. close"))
        observations.append({"period": day, "value": value})
    return {"dimensions": {"SYMBOL": symbol}, "observations": observations}
