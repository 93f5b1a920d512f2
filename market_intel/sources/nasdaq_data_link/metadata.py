"""
Nasdaq Data Link (formerly Quandl) metadata and response reshaping.

dataflow_id is "DATABASE/DATASET" (e.g. FRED/IPG3254S). The dimension
key names the value column to read; empty selects the first value column.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from market_intel.normalization.key_validator import KeyValidationResult

logger = logging.getLogger(__name__)

DATASET_CODE_PATTERN = re.compile(r"^[A-Z0-9_]+/[A-Z0-9_.\-]+$")

FREQUENCY_CODES = {"daily": "D", "weekly": "W", "monthly": "M", "quarterly": "Q", "annual": "A"}


def validate_code(dataflow_id: str, key: str = "") -> KeyValidationResult:
    if DATASET_CODE_PATTERN.match(dataflow_id):
        return KeyValidationResult(dataflow_id, key, True, "DATABASE/DATASET")
    if DATASET_CODE_PATTERN.match(dataflow_id.upper()):
        return KeyValidationResult(
            dataflow_id, key, True, "DATABASE/DATASET",
            (f"Dataset code '{dataflow_id}' is not upper-case",),
            (f"Use '{dataflow_id.upper()}'",),
        )
    return KeyValidationResult(
        dataflow_id, key, False, "DATABASE/DATASET",
        (f"'{dataflow_id}' is not a DATABASE/DATASET code",),
        ("Codes look like FRED/GDP or WIKI/AAPL", "The dimension key selects a column, e.g. 'Value'"),
    )


def select_column(column_names: List[str], key: str) -> Optional[int]:
    """Index of the value column named by `key` (case-insensitive); first value column if empty."""
    if len(column_names) < 2:
        return None
    if not key:
        return 1
    wanted = key.strip().lower()
    for i, name in enumerate(column_names[1:], start=1):
        if str(name).lower() == wanted:
            return i
    return None


def relabel(date_str: str, frequency: str) -> str:
    """Nasdaq dates every observation; coarse frequencies get period labels."""
    if len(date_str) != 10:
        return date_str
    code = FREQUENCY_CODES.get((frequency or "").lower(), "D")
    if code == "A":
        return date_str[:4]
    if code == "Q":
        return f"{date_str[:4]}-Q{(int(date_str[5:7]) - 1) // 3 + 1}"
    if code == "M":
        return date_str[:7]
    return date_str


def parse_dataset_data(
    dataflow_id: str, response: Optional[Dict[str, Any]], column_index: int
) -> Dict[str, Any]:
    """
    Reshape a dataset data response.

    Nasdaq Data Link response format:
    {
        "dataset_data": {
            "column_names": ["Date", "Value"],
            "frequency": "monthly",
            "start_date": "2021-01-01",
            "end_date": "2024-03-01",
            "data": [["2024-03-01", 104.9], ["2024-02-01", 104.1]]
        }
    }
    """
    dataset = (response or {}).get("dataset_data") or {}
    column_names = dataset.get("column_names") or []
    frequency = dataset.get("frequency") or ""
    observations = []
    for row in dataset.get("data") or []:
        if not row or len(row) <= column_index:
            continue
        observations.append({"period": relabel(str(row[0]), frequency), "value": row[column_index]})

    return {
        "dimensions": {
            "DATASET": dataflow_id.upper(),
            "COLUMN": str(column_names[column_index]) if len(column_names) > column_index else "",
        },
        "observations": observations,
    }
