"""
World Bank Indicators API metadata and response reshaping.

dataflow_id is an indicator code (e.g. NV.IND.MANF.CD). The dimension
key selects countries: an ISO alpha-2/alpha-3 code, several joined with
';', or "all".
"""
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from market_intel.normalization.key_validator import KeyValidationResult

logger = logging.getLogger(__name__)

INDICATOR_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9_]*(\.[A-Z0-9_]+)*$")
COUNTRY_PATTERN = re.compile(r"^[A-Z0-9]{2,3}$")

PER_PAGE = 1000
MAX_PAGES = 10

# Message ids the API uses inside a 200 response
NOT_FOUND_MESSAGE_IDS = {"120", "175"}


def countries_of(key: str) -> List[str]:
    if not key or key.lower() == "all":
        return []
    return [c.strip() for c in key.split(";") if c.strip()]


def validate_key(indicator: str, key: str) -> KeyValidationResult:
    """Indicator codes and country codes are upper-case; lower-case is a warning."""
    hard: List[str] = []
    soft: List[str] = []
    suggestions: List[str] = []

    if not INDICATOR_PATTERN.match(indicator):
        if INDICATOR_PATTERN.match(indicator.upper()):
            soft.append(f"Indicator '{indicator}' is not upper-case")
            suggestions.append(f"Use '{indicator.upper()}'")
        else:
            hard.append(f"'{indicator}' is not a World Bank indicator code")
            suggestions.append("Indicator codes look like NY.GDP.MKTP.CD or NV.IND.MANF.CD")

    if "." in key or "," in key:
        hard.append("Countries must be separated by ';'")
        suggestions.append(f"Try '{re.sub(r'[.,]', ';', key)}'")
    else:
        for country in countries_of(key):
            if COUNTRY_PATTERN.match(country):
                continue
            if COUNTRY_PATTERN.match(country.upper()):
                soft.append(f"Country code '{country}' is not upper-case")
                suggestions.append(f"Use '{country.upper()}'")
            else:
                hard.append(f"'{country}' is not an ISO country code")
                suggestions.append("Use ISO alpha-2 or alpha-3 codes, e.g. US or USA")

    return KeyValidationResult(
        indicator, key, not hard, "COUNTRY[;COUNTRY...]", tuple(hard + soft), tuple(suggestions)
    )


def split_response(response: Any) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """
    Split a page into (pagination metadata, data rows).

    World Bank API response format:
    [
        {"page": 1, "pages": 1, "per_page": 1000, "total": 3, "lastupdated": "2024-06-28"},
        [
            {
                "indicator": {"id": "NV.IND.MANF.CD", "value": "Manufacturing, value added (current US$)"},
                "country": {"id": "US", "value": "United States"},
                "countryiso3code": "USA",
                "date": "2022",
                "value": 2497131000000,
                "unit": "", "obs_status": "", "decimal": 0
            }
        ]
    ]
    """
    if not isinstance(response, list) or not response:
        raise ValueError(f"Expected a [metadata, data] list, got {type(response).__name__}")
    meta = response[0] if isinstance(response[0], dict) else {}
    rows = response[1] if len(response) > 1 and isinstance(response[1], list) else []
    return meta, rows


def error_message(response: Any) -> Optional[Tuple[str, str]]:
    """(message id, text) when the response is the API's error envelope."""
    if not isinstance(response, list) or not response or not isinstance(response[0], dict):
        return None
    messages = response[0].get("message")
    if not messages:
        return None
    first = messages[0] if isinstance(messages, list) else messages
    return str(first.get("id", "")), f"{first.get('key', '')}: {first.get('value', '')}".strip(": ")


def parse_rows(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Reshape data rows into the simplified structure."""
    observations = []
    for row in rows:
        indicator = (row.get("indicator") or {}).get("id", "")
        area = row.get("countryiso3code") or (row.get("country") or {}).get("id", "")
        observations.append({
            "period": row.get("date"),
            "value": row.get("value"),
            "dimensions": {"INDICATOR": indicator, "REF_AREA": area},
        })
    return {"observations": observations}
