"""
Dimension key validation for SDMX dataflows.

A dimension key selects a slice of a multi-dimensional dataset, one
dot-separated segment per dimension, e.g. "A.US.NGDP_R_XDC" for
IMF IFS (FREQ.REF_AREA.INDICATOR). Segments may be empty (wildcard) or
hold several codes joined with "+".

Keys are checked against a table of known dataflow layouts:
- segment count and delimiter problems are hard failures (fail fast,
  before any network call)
- code-format problems are warnings; the request still goes out, and the
  warnings resurface if the provider answers with no data
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

FREQ = r"[AQMSWD]"
ISO2_AREA = r"[A-Z0-9]{2,3}(_[A-Z0-9]+)?"
ISO3_AREA = r"[A-Z0-9]{3}|[A-Z0-9_\-]{2,10}"
CODE = r"[A-Z0-9_@\-]+"

FREQ_NAMES = {"A": "annual", "Q": "quarterly", "M": "monthly"}

_LEGAL_KEY = re.compile(r"^[A-Za-z0-9_.+\-*@]*$")


@dataclass(frozen=True)
class DataflowPattern:
    """Layout of one dataflow's dimension key."""
    dataflow_id: str
    source_id: str
    dimensions: Tuple[str, ...]
    code_patterns: Tuple[str, ...]
    example: str
    description: str = ""

    @property
    def template(self) -> str:
        return ".".join(self.dimensions)

    def matches_code(self, position: int, code: str) -> bool:
        return re.fullmatch(self.code_patterns[position], code) is not None


@dataclass(frozen=True)
class KeyValidationResult:
    """Outcome of validating one key. Suggestions are ranked, best first."""
    dataflow_id: str
    key: str
    is_valid: bool
    pattern: Optional[str] = None
    issues: Tuple[str, ...] = field(default_factory=tuple)
    suggestions: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_warnings(self) -> bool:
        return self.is_valid and bool(self.issues)

    def to_dict(self) -> Dict[str, object]:
        return {
            "dataflow_id": self.dataflow_id,
            "key": self.key,
            "is_valid": self.is_valid,
            "pattern": self.pattern,
            "issues": list(self.issues),
            "suggestions": list(self.suggestions),
        }


def _pattern(dataflow_id, source_id, dims, example, description=""):
    return DataflowPattern(
        dataflow_id=dataflow_id,
        source_id=source_id,
        dimensions=tuple(d for d, _ in dims),
        code_patterns=tuple(p for _, p in dims),
        example=example,
        description=description,
    )


KNOWN_DATAFLOWS: Dict[str, DataflowPattern] = {
    p.dataflow_id: p
    for p in [
        # IMF (SDMX_JSON.svc CompactData)
        _pattern("IFS", "imf", [("FREQ", FREQ), ("REF_AREA", ISO2_AREA), ("INDICATOR", CODE)],
                 "A.US.NGDP_R_XDC", "International Financial Statistics"),
        _pattern("BOP", "imf", [("FREQ", FREQ), ("REF_AREA", ISO2_AREA), ("INDICATOR", CODE)],
                 "Q.US.BCA_BP6_USD", "Balance of Payments"),
        _pattern("CPI", "imf", [("FREQ", FREQ), ("REF_AREA", ISO2_AREA), ("INDICATOR", CODE)],
                 "M.US.PCPI_IX", "Consumer Price Index"),
        _pattern("DOT", "imf",
                 [("FREQ", FREQ), ("REF_AREA", ISO2_AREA), ("INDICATOR", CODE),
                  ("COUNTERPART_AREA", ISO2_AREA)],
                 "A.US.TXG_FOB_USD.CN", "Direction of Trade Statistics"),
        _pattern("PCPS", "imf",
                 [("FREQ", FREQ), ("REF_AREA", ISO2_AREA), ("COMMODITY", CODE),
                  ("UNIT_MEASURE", CODE)],
                 "M.W00.POILAPSP.USD", "Primary Commodity Prices"),
        _pattern("GFSR", "imf",
                 [("FREQ", FREQ), ("REF_AREA", ISO2_AREA), ("SECTOR", CODE),
                  ("UNIT_MEASURE", CODE), ("INDICATOR", CODE)],
                 "A.US.S13.XDC.W0_S1_G1", "Government Finance Statistics"),
        # OECD (legacy and SDMX REST dataflows)
        _pattern("QNA", "oecd",
                 [("LOCATION", ISO3_AREA), ("SUBJECT", CODE), ("MEASURE", CODE),
                  ("FREQUENCY", FREQ)],
                 "USA.B1_GE.CQRSA.Q", "Quarterly National Accounts"),
        _pattern("MEI", "oecd",
                 [("LOCATION", ISO3_AREA), ("SUBJECT", CODE), ("MEASURE", CODE),
                  ("FREQUENCY", FREQ)],
                 "USA.PRINTO01.IXOBSA.M", "Main Economic Indicators"),
        _pattern("KEI", "oecd",
                 [("LOCATION", ISO3_AREA), ("SUBJECT", CODE), ("MEASURE", CODE),
                  ("FREQUENCY", FREQ)],
                 "USA.PRINTO01.GY.M", "Key Short-Term Economic Indicators"),
        _pattern("DF_KEI", "oecd",
                 [("REF_AREA", ISO3_AREA), ("FREQ", FREQ), ("MEASURE", CODE),
                  ("UNIT_MEASURE", CODE), ("ACTIVITY", CODE), ("ADJUSTMENT", CODE),
                  ("TRANSFORMATION", CODE)],
                 "USA.M.PRVM.IX.BTE.Y._Z", "Key Economic Indicators (SDMX REST)"),
        _pattern("DF_CLI", "oecd",
                 [("REF_AREA", ISO3_AREA), ("FREQ", FREQ), ("MEASURE", CODE),
                  ("UNIT_MEASURE", CODE), ("ACTIVITY", CODE), ("ADJUSTMENT", CODE),
                  ("TRANSFORMATION", CODE), ("TIME_HORIZ", CODE), ("METHODOLOGY", CODE)],
                 "USA.M.LI.IX._Z.AA.IX._Z.H", "Composite Leading Indicators"),
    ]
}


def lookup_dataflow(dataflow_id: str) -> Optional[DataflowPattern]:
    """
    Find the known layout for a dataflow id.

    Accepts bare ids ("IFS") and full SDMX REST references
    ("OECD.SDD.STES,DSD_STES@DF_CLI,4.1").
    """
    if not dataflow_id:
        return None
    candidate = dataflow_id.strip().upper()
    if candidate in KNOWN_DATAFLOWS:
        return KNOWN_DATAFLOWS[candidate]
    if "," in candidate:
        parts = candidate.split(",")
        candidate = parts[1] if len(parts) > 1 else parts[0]
    if "@" in candidate:
        candidate = candidate.split("@", 1)[1]
    return KNOWN_DATAFLOWS.get(candidate)


def _wildcard_example(pattern: DataflowPattern) -> str:
    segments = pattern.example.split(".")
    if len(segments) > 1:
        segments[1] = ""
    return ".".join(segments)


def _segment_count_suggestions(
    pattern: DataflowPattern, key: str, segments: List[str]
) -> List[str]:
    expected = len(pattern.dimensions)
    got = len(segments)
    suggestions: List[str] = []

    if got < expected:
        if (
            pattern.dimensions[0] in ("FREQ", "FREQUENCY") or pattern.dimensions[-1] == "FREQUENCY"
        ) and not any(re.fullmatch(FREQ, s) for s in segments):
            if pattern.dimensions[0] == "FREQ":
                fixed = f"A.{key}"
            else:
                fixed = f"{key}.A"
            suggestions.append(
                f"Expected {pattern.template}, got {got} segment{'s' if got != 1 else ''}: "
                f"did you mean to add a frequency code? e.g. '{fixed}' "
                "(A=annual, Q=quarterly, M=monthly)"
            )
        missing = ", ".join(pattern.dimensions[got:])
        suggestions.append(
            f"Add {expected - got} more segment(s) so every dimension of "
            f"{pattern.template} is present (missing: {missing}); "
            f"leave a segment empty to wildcard it, e.g. '{_wildcard_example(pattern)}'"
        )
    else:
        suggestions.append(
            f"Remove {got - expected} extra segment(s): {pattern.dataflow_id} keys have "
            f"{expected} dimensions ({pattern.template})"
        )

    suggestions.append(f"Example key for {pattern.dataflow_id}: {pattern.example}")
    return suggestions


def validate_key(dataflow_id: str, key: str) -> KeyValidationResult:
    """
    Check a dimension key against the known layout of its dataflow.

    Args:
        dataflow_id: Dataflow the key belongs to (e.g. "IFS")
        key: Candidate dimension key (e.g. "A.US.NGDP_R_XDC")

    Returns:
        KeyValidationResult; is_valid is False only for hard failures
    """
    key = key or ""
    pattern = lookup_dataflow(dataflow_id)
    template = pattern.template if pattern else None
    issues: List[str] = []
    suggestions: List[str] = []

    if key.strip().lower() in ("", "all"):
        return KeyValidationResult(dataflow_id, key, True, template)

    if "/" in key or "," in key:
        issues.append("Dimension segments must be separated by '.'")
        fixed = re.sub(r"[/,]", ".", key)
        suggestions.append(f"Replace '/' and ',' with '.': '{fixed}'")
        return KeyValidationResult(
            dataflow_id, key, False, template, tuple(issues), tuple(suggestions)
        )

    if not _LEGAL_KEY.match(key):
        issues.append("Key contains characters outside [A-Za-z0-9_+.-]")
        fixed = re.sub(r"[^A-Za-z0-9_.+\-*@]", "", key)
        suggestions.append(f"Remove spaces and punctuation: '{fixed}'")
        return KeyValidationResult(
            dataflow_id, key, False, template, tuple(issues), tuple(suggestions)
        )

    if pattern is None:
        return KeyValidationResult(dataflow_id, key, True, None)

    segments = key.split(".")
    if len(segments) != len(pattern.dimensions):
        issues.append(
            f"Expected {len(pattern.dimensions)} segments ({pattern.template}), "
            f"got {len(segments)}"
        )
        suggestions.extend(_segment_count_suggestions(pattern, key, segments))
        logger.debug(f"Key {key!r} rejected for {pattern.dataflow_id}: {issues[0]}")
        return KeyValidationResult(
            dataflow_id, key, False, template, tuple(issues), tuple(suggestions)
        )

    for position, segment in enumerate(segments):
        if not segment:
            continue
        dim = pattern.dimensions[position]
        for code in segment.split("+"):
            if pattern.matches_code(position, code):
                continue
            issues.append(f"Segment {position + 1} ({dim}) value '{code}' is not a valid {dim} code")
            if code != code.upper() and pattern.matches_code(position, code.upper()):
                suggestions.append(f"Use upper-case codes: '{code.upper()}' instead of '{code}'")
            elif dim in ("FREQ", "FREQUENCY"):
                suggestions.append(
                    f"{dim} must be a single letter: "
                    + ", ".join(f"{k}={v}" for k, v in FREQ_NAMES.items())
                )
            else:
                suggestions.append(f"Check the {dim} code list for {pattern.dataflow_id}")

    if issues:
        suggestions.append(f"Example key for {pattern.dataflow_id}: {pattern.example}")

    return KeyValidationResult(
        dataflow_id, key, True, template, tuple(issues), tuple(suggestions)
    )
