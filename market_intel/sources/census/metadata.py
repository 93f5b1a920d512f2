"""
Census Data API metadata and response reshaping.

dataflow_id is the dataset path under https://api.census.gov/data,
e.g. "2021/cbp" (County Business Patterns) or "2017/ecnbasic"
(Economic Census). The dimension key packs the query:

    VARS.GEO[.PRED=VAL[+PRED=VAL...]]

    "ESTAB,EMP,PAYANN.us:*.NAICS2017=3254"
    -> get=ESTAB,EMP,PAYANN&for=us:*&NAICS2017=3254
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from market_intel.normalization.key_validator import KeyValidationResult

logger = logging.getLogger(__name__)

KEY_TEMPLATE = "VARS.GEO[.PRED=VAL+...]"
DATASET_PATTERN = re.compile(r"^(\d{4})/[a-z0-9/]+$")
VARIABLE_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]*$")
GEO_PATTERN = re.compile(r"^[a-z][a-z ]*:(\*|[0-9,]+)$")
PREDICATE_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]*=[A-Za-z0-9\-*]+$")

# Non-numeric variables are carried as dimensions, not observations
LABEL_SUFFIXES = ("_LABEL", "_TTL", "_MEANING")
LABEL_VARIABLES = {"NAME", "GEO_ID"}

# Latest vintages used by aggregated search
CBP_DATASET = "2021/cbp"
ECONOMIC_CENSUS_DATASET = "2017/ecnbasic"
NAICS_PREDICATE = "NAICS2017"

# Dollar amounts are reported in thousands
THOUSANDS_VARIABLES = {"RCPTOT", "PAYANN", "PAYQTR1"}

EXAMPLE_KEY = "ESTAB,EMP,PAYANN.us:*.NAICS2017=3254"


@dataclass(frozen=True)
class CensusKey:
    variables: Tuple[str, ...]
    geography: str
    predicates: Dict[str, str] = field(default_factory=dict)

    def to_params(self) -> Dict[str, str]:
        params = {"get": ",".join(self.variables), "for": self.geography}
        params.update(self.predicates)
        return params


def parse_key(key: str) -> CensusKey:
    """Split a dimension key; assumes validate_key() passed."""
    segments = key.split(".")
    variables = tuple(v.strip().upper() for v in segments[0].split(",") if v.strip())
    predicates: Dict[str, str] = {}
    if len(segments) > 2 and segments[2]:
        for pred in segments[2].split("+"):
            name, _, value = pred.partition("=")
            predicates[name.strip().upper()] = value.strip()
    return CensusKey(variables, segments[1].strip(), predicates)


def validate_key(dataflow_id: str, key: str) -> KeyValidationResult:
    """Validate a Census dataset path and packed query key."""
    hard: List[str] = []
    soft: List[str] = []
    suggestions: List[str] = []

    if not DATASET_PATTERN.match(dataflow_id):
        hard.append(f"'{dataflow_id}' is not a Census dataset path")
        suggestions.append("Dataset paths look like '2021/cbp' or '2017/ecnbasic'")

    segments = key.split(".") if key else []
    if len(segments) < 2 or len(segments) > 3:
        hard.append(f"Expected {KEY_TEMPLATE}, got {len(segments)} segment(s)")
        if len(segments) == 1 and segments[0]:
            suggestions.append(f"Add a geography: '{segments[0]}.us:*'")
        suggestions.append(f"Example key: {EXAMPLE_KEY}")
        return KeyValidationResult(
            dataflow_id, key, False, KEY_TEMPLATE, tuple(hard), tuple(suggestions)
        )

    for variable in segments[0].split(","):
        variable = variable.strip()
        if VARIABLE_PATTERN.match(variable):
            continue
        if VARIABLE_PATTERN.match(variable.upper()):
            soft.append(f"Variable '{variable}' is not upper-case")
            suggestions.append(f"Use '{variable.upper()}'")
        else:
            hard.append(f"'{variable}' is not a valid variable name")
            suggestions.append("Variables are names like ESTAB, EMP, PAYANN, RCPTOT")

    if not GEO_PATTERN.match(segments[1]):
        hard.append(f"Geography '{segments[1]}' is not of the form 'level:code'")
        suggestions.append("Use 'us:*' for the nation or 'state:06' for one state")

    if len(segments) == 3 and segments[2]:
        for pred in segments[2].split("+"):
            if PREDICATE_PATTERN.match(pred):
                continue
            name, sep, value = pred.partition("=")
            if sep and PREDICATE_PATTERN.match(f"{name.upper()}={value}"):
                soft.append(f"Predicate '{name}' is not upper-case")
                suggestions.append(f"Use '{name.upper()}={value}'")
            else:
                hard.append(f"Predicate '{pred}' is not of the form NAME=VALUE")
                suggestions.append(f"Join predicates with '+', e.g. {NAICS_PREDICATE}=3254+LFO=001")

    if hard or soft:
        suggestions.append(f"Example key: {EXAMPLE_KEY}")
    return KeyValidationResult(
        dataflow_id, key, not hard, KEY_TEMPLATE, tuple(hard + soft), tuple(suggestions)
    )


def is_label_variable(name: str) -> bool:
    return name in LABEL_VARIABLES or name.endswith(LABEL_SUFFIXES)


def parse_table(
    dataflow_id: str, census_key: CensusKey, rows: Optional[List[List[Any]]]
) -> Dict[str, Any]:
    """
    Reshape a Census array-of-arrays response.

    Census API response format (first row is the header):
    [
        ["ESTAB", "EMP", "PAYANN", "NAICS2017", "us"],
        ["1842", "309126", "35127453", "3254", "1"]
    ]

    Each requested numeric variable becomes one observation per row.
    Geography, predicate and label columns become dimensions.

    Returns:
        {"observations": [{"period", "value", "dimensions"}]}
    """
    if not rows:
        return {"observations": []}
    header = [str(h) for h in rows[0]]
    year = dataflow_id.split("/", 1)[0]
    value_columns = [
        h for h in header
        if h.upper() in census_key.variables and not is_label_variable(h.upper())
    ]
    dim_columns = [h for h in header if h not in value_columns]

    observations = []
    for row in rows[1:]:
        cells = dict(zip(header, row))
        period = str(cells.get("YEAR") or cells.get("time") or year)
        dims = {h: str(cells[h]) for h in dim_columns if cells.get(h) is not None and h not in ("YEAR", "time")}
        for column in value_columns:
            observations.append({
                "period": period,
                "value": cells.get(column),
                "dimensions": {**dims, "VARIABLE": column.upper()},
            })

    logger.debug(f"Reshaped {len(rows) - 1} Census rows from {dataflow_id}")
    return {"observations": observations}


def industry_key(variables: str, naics: str) -> str:
    return f"{variables}.us:*.{NAICS_PREDICATE}={naics}"
