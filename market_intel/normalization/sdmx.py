"""
Dataset normalizer for SDMX-style and single-series payloads.

Raw payloads are tagged as soon as they come back from a provider
(RawProviderResult) and then parsed into ObservationRecord sequences.

Known structural variants:
- compact:    IMF CompactData (Series with @-attributes and Obs lists),
              or a flat list of observation dicts
- complex:    SDMX-JSON dataSets with dimension index tables in
              structure/structures (series-keyed or AllDimensions)
- simplified: one time dimension - {"dimensions", "observations"} or a
              "series" list of those

All functions here are stateless; parsing the same payload twice gives
equal output.
"""
import enum
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from market_intel.core.api_errors import MalformedResponseError
from market_intel.core.schemas import ObservationRecord, SourceError
from market_intel.normalization.periods import is_period, period_sort_key

logger = logging.getLogger(__name__)


class PayloadVariant(str, enum.Enum):
    COMPACT = "compact"
    COMPLEX = "complex"
    SIMPLIFIED = "simplified"
    EMPTY = "empty"
    ERROR = "error"


@dataclass(frozen=True)
class RawProviderResult:
    """Tagged raw payload returned by an adapter before normalization."""
    variant: PayloadVariant
    payload: Any = None
    error: Optional[SourceError] = None

    @classmethod
    def empty(cls) -> "RawProviderResult":
        return cls(variant=PayloadVariant.EMPTY)

    @classmethod
    def failed(cls, error: SourceError) -> "RawProviderResult":
        return cls(variant=PayloadVariant.ERROR, error=error)


@dataclass(frozen=True)
class NormalizedDataset:
    """Parsed observations, newest period first."""
    variant: PayloadVariant
    records: Tuple[ObservationRecord, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.records


# SDMX attributes that describe an observation rather than select it
ATTRIBUTE_KEYS = {
    "OBS_STATUS",
    "OBS_CONF",
    "OBS_PRE_BREAK",
    "COMMENT",
    "COMMENT_OBS",
    "BASE_YEAR",
    "BASE_PER",
    "UNIT_MULT",
    "TIME_FORMAT",
    "DECIMALS",
}

TIME_KEYS = ("TIME_PERIOD", "TIME", "period", "date", "time_period")
VALUE_KEYS = ("OBS_VALUE", "value", "obs_value")

_NULL_TOKENS = {"", ".", "..", "nan", "na", "n/a", "null", "none", "-", "--", "(na)"}


# =============================================================================
# Helpers
# =============================================================================


def coerce_value(raw: Any) -> Optional[float]:
    """
    Parse a raw observation value to float.

    Unparsable values become None; they are kept, not dropped, so the
    record still lines up with its dimensions.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        text = raw.strip().replace(",", "")
        if text.lower() in _NULL_TOKENS:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def summarize_structure(payload: Any) -> str:
    """Short description of a payload's top-level shape, for error messages."""
    if isinstance(payload, dict):
        keys = sorted(str(k) for k in payload.keys())
        shown = ", ".join(keys[:10])
        if len(keys) > 10:
            shown += f", ... ({len(keys)} keys)"
        return f"object with keys [{shown}]"
    if isinstance(payload, list):
        if not payload:
            return "empty list"
        first = payload[0]
        if isinstance(first, dict):
            return f"list[{len(payload)}] of objects with keys [{', '.join(sorted(map(str, first))[:10])}]"
        return f"list[{len(payload)}] of {type(first).__name__}"
    return type(payload).__name__


def _as_list(value: Any) -> List[Any]:
    """SDMX-ML-derived JSON collapses one-element lists into a single object."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _first_present(data: Dict[str, Any], keys: Sequence[str]) -> Tuple[bool, Any]:
    for key in keys:
        if key in data:
            return True, data[key]
    return False, None


def _make_record(
    period: Any,
    raw_value: Any,
    dimensions: Dict[str, str],
    source_id: str,
    dataflow_id: Optional[str],
) -> Optional[ObservationRecord]:
    period_str = str(period).strip() if period is not None else ""
    if not is_period(period_str):
        logger.debug(f"Dropping observation with unparseable period {period!r}")
        return None
    return ObservationRecord(
        time_period=period_str,
        value=coerce_value(raw_value),
        dimensions=dict(dimensions),
        source_id=source_id,
        dataflow_id=dataflow_id,
    )


def _dimension_items(data: Dict[str, Any], strip_prefix: str = "") -> Dict[str, str]:
    """Scalar members of `data` that select a slice (attributes excluded)."""
    dims: Dict[str, str] = {}
    for key, value in data.items():
        if strip_prefix:
            if not key.startswith(strip_prefix):
                continue
            name = key[len(strip_prefix):]
        else:
            name = key
        if name in ATTRIBUTE_KEYS or name in TIME_KEYS or name in VALUE_KEYS:
            continue
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            dims[name] = str(value)
    return dims


# =============================================================================
# Structural parsers
#
# Each returns None when the payload is not its shape, [] when the shape is
# recognized but carries no observations.
# =============================================================================


def parse_compact(
    payload: Any, source_id: str, dataflow_id: Optional[str] = None
) -> Optional[List[ObservationRecord]]:
    """Parse IMF CompactData or a flat list of observation dicts."""
    if isinstance(payload, dict) and "CompactData" in payload:
        compact = payload.get("CompactData") or {}
        if not isinstance(compact, dict):
            return None
        dataset = compact.get("DataSet")
        if dataset is None:
            return []
        if not isinstance(dataset, dict):
            return None

        records: List[ObservationRecord] = []
        for series in _as_list(dataset.get("Series")):
            if not isinstance(series, dict):
                return None
            series_dims = _dimension_items(series, strip_prefix="@")
            for obs in _as_list(series.get("Obs")):
                if not isinstance(obs, dict):
                    continue
                record = _make_record(
                    obs.get("@TIME_PERIOD"),
                    obs.get("@OBS_VALUE"),
                    series_dims,
                    source_id,
                    dataflow_id,
                )
                if record:
                    records.append(record)
        return records

    if isinstance(payload, list) and payload and all(isinstance(p, dict) for p in payload):
        records = []
        for obs in payload:
            has_time, period = _first_present(obs, ("TIME_PERIOD", "@TIME_PERIOD"))
            has_value, raw_value = _first_present(obs, ("OBS_VALUE", "@OBS_VALUE"))
            if not (has_time and has_value):
                return None
            dims = _dimension_items({k.lstrip("@"): v for k, v in obs.items()})
            record = _make_record(period, raw_value, dims, source_id, dataflow_id)
            if record:
                records.append(record)
        return records

    return None


def _index_lookup(dimension: Dict[str, Any]) -> Dict[str, str]:
    values = dimension.get("values") or []
    return {
        str(i): str(v.get("id", v.get("name", i))) if isinstance(v, dict) else str(v)
        for i, v in enumerate(values)
    }


def _is_time_dimension(dimension: Dict[str, Any]) -> bool:
    dim_id = str(dimension.get("id", "")).upper()
    roles = dimension.get("roles") or dimension.get("role") or []
    if isinstance(roles, str):
        roles = [roles]
    return dim_id in ("TIME_PERIOD", "TIME") or any(
        str(r).lower() in ("time", "time_period") for r in roles
    )


def _obs_value(obs: Any) -> Any:
    if isinstance(obs, list):
        return obs[0] if obs else None
    return obs


def parse_complex(
    payload: Any, source_id: str, dataflow_id: Optional[str] = None
) -> Optional[List[ObservationRecord]]:
    """Parse SDMX-JSON (dataSets plus dimension index tables)."""
    if not isinstance(payload, dict):
        return None
    container = payload.get("data", payload)
    if not isinstance(container, dict):
        return None
    data_sets = container.get("dataSets")
    if not isinstance(data_sets, list):
        return None

    structure = container.get("structure") or payload.get("structure")
    if not structure:
        structures = container.get("structures") or payload.get("structures") or []
        structure = structures[0] if structures else None
    if not isinstance(structure, dict):
        return None
    dims_container = structure.get("dimensions")
    if not isinstance(dims_container, dict):
        return None

    series_dims = dims_container.get("series") or []
    obs_dims = dims_container.get("observation") or []
    series_lookup = [_index_lookup(d) for d in series_dims]
    obs_lookup = [_index_lookup(d) for d in obs_dims]

    time_positions = [i for i, d in enumerate(obs_dims) if _is_time_dimension(d)]
    time_pos = time_positions[0] if time_positions else len(obs_dims) - 1

    records: List[ObservationRecord] = []

    def decode(indices: List[str], dims: List[Dict[str, Any]], lookups) -> Dict[str, str]:
        decoded: Dict[str, str] = {}
        for i, idx in enumerate(indices):
            if i < len(dims):
                dim_id = str(dims[i].get("id", f"DIM_{i}"))
                decoded[dim_id] = lookups[i].get(idx, idx)
        return decoded

    for ds in data_sets:
        if not isinstance(ds, dict):
            return None

        series = ds.get("series")
        if isinstance(series, dict):
            for series_key, series_data in series.items():
                base = decode(str(series_key).split(":"), series_dims, series_lookup)
                observations = (series_data or {}).get("observations") or {}
                for obs_key, obs in observations.items():
                    obs_indices = str(obs_key).split(":")
                    dims = dict(base)
                    period = None
                    for i, idx in enumerate(obs_indices):
                        if i >= len(obs_dims):
                            break
                        value = obs_lookup[i].get(idx, idx)
                        if i == time_pos:
                            period = value
                        else:
                            dims[str(obs_dims[i].get("id", f"DIM_{i}"))] = value
                    if not obs_dims:
                        period = obs_key
                    record = _make_record(period, _obs_value(obs), dims, source_id, dataflow_id)
                    if record:
                        records.append(record)

        flat_obs = ds.get("observations")
        if isinstance(flat_obs, dict):
            for obs_key, obs in flat_obs.items():
                indices = str(obs_key).split(":")
                dims = {}
                period = None
                for i, idx in enumerate(indices):
                    if i >= len(obs_dims):
                        break
                    value = obs_lookup[i].get(idx, idx)
                    if i == time_pos:
                        period = value
                    else:
                        dims[str(obs_dims[i].get("id", f"DIM_{i}"))] = value
                record = _make_record(period, _obs_value(obs), dims, source_id, dataflow_id)
                if record:
                    records.append(record)

    return records


def _simplified_series(
    series: Dict[str, Any], source_id: str, dataflow_id: Optional[str]
) -> Optional[List[ObservationRecord]]:
    observations = series.get("observations")
    base_dims = series.get("dimensions") or {}
    if not isinstance(base_dims, dict):
        return None
    base_dims = {str(k): str(v) for k, v in base_dims.items()}

    records: List[ObservationRecord] = []
    if isinstance(observations, dict):
        for period, raw_value in observations.items():
            record = _make_record(period, raw_value, base_dims, source_id, dataflow_id)
            if record:
                records.append(record)
        return records

    if isinstance(observations, list):
        for obs in observations:
            if not isinstance(obs, dict):
                return None
            has_time, period = _first_present(obs, TIME_KEYS)
            has_value, raw_value = _first_present(obs, VALUE_KEYS)
            if not (has_time and has_value):
                return None
            dims = dict(base_dims)
            extra = obs.get("dimensions")
            if isinstance(extra, dict):
                dims.update({str(k): str(v) for k, v in extra.items()})
            record = _make_record(period, raw_value, dims, source_id, dataflow_id)
            if record:
                records.append(record)
        return records

    return None


def parse_simplified(
    payload: Any, source_id: str, dataflow_id: Optional[str] = None
) -> Optional[List[ObservationRecord]]:
    """Parse a single time-dimension structure."""
    if not isinstance(payload, dict):
        return None

    if "observations" in payload:
        return _simplified_series(payload, source_id, dataflow_id)

    series_list = payload.get("series")
    if isinstance(series_list, list):
        records: List[ObservationRecord] = []
        for series in series_list:
            if not isinstance(series, dict) or "observations" not in series:
                return None
            parsed = _simplified_series(series, source_id, dataflow_id)
            if parsed is None:
                return None
            records.extend(parsed)
        return records

    return None


Parser = Callable[[Any, str, Optional[str]], Optional[List[ObservationRecord]]]

PARSERS: List[Tuple[PayloadVariant, Parser]] = [
    (PayloadVariant.COMPACT, parse_compact),
    (PayloadVariant.COMPLEX, parse_complex),
    (PayloadVariant.SIMPLIFIED, parse_simplified),
]


# =============================================================================
# Entry points
# =============================================================================


def is_empty_payload(payload: Any) -> bool:
    return payload is None or payload == "" or payload == {} or payload == []


def detect_variant(payload: Any) -> Optional[PayloadVariant]:
    """
    Cheap shape check used to tag a payload right after the HTTP call.

    Returns None for shapes no parser knows.
    """
    if is_empty_payload(payload):
        return PayloadVariant.EMPTY
    if isinstance(payload, dict):
        if "CompactData" in payload:
            return PayloadVariant.COMPACT
        container = payload.get("data", payload)
        if isinstance(container, dict) and "dataSets" in container:
            return PayloadVariant.COMPLEX
        if "observations" in payload or isinstance(payload.get("series"), list):
            return PayloadVariant.SIMPLIFIED
        return None
    if isinstance(payload, list) and all(isinstance(p, dict) for p in payload):
        return PayloadVariant.COMPACT
    return None


def classify_payload(payload: Any, fallback: PayloadVariant) -> RawProviderResult:
    """
    Tag a freshly fetched payload.

    Unrecognized shapes are tagged with `fallback`; normalization then
    tries every parser and reports the payload as malformed if none fits.
    """
    variant = detect_variant(payload)
    if variant == PayloadVariant.EMPTY:
        return RawProviderResult.empty()
    return RawProviderResult(variant or fallback, payload)


def sort_records(records: Sequence[ObservationRecord]) -> Tuple[ObservationRecord, ...]:
    """Newest period first; ties ordered by raw period then dimensions."""
    return tuple(
        sorted(
            records,
            key=lambda r: (period_sort_key(r.time_period), tuple(r.dimensions.items())),
            reverse=True,
        )
    )


def normalize_payload(
    payload: Any,
    source_id: str,
    dataflow_id: Optional[str] = None,
    variant: Optional[PayloadVariant] = None,
) -> NormalizedDataset:
    """
    Parse a raw payload into canonical observation records.

    The hinted variant is tried first, then the remaining parsers in
    order (compact, complex, simplified). The first parser that
    recognizes the structure wins.

    Raises:
        MalformedResponseError: No parser recognized the payload
    """
    if variant == PayloadVariant.EMPTY or is_empty_payload(payload):
        return NormalizedDataset(variant=PayloadVariant.EMPTY)
    if variant == PayloadVariant.ERROR:
        raise ValueError("Error results carry no observations")

    ordered = list(PARSERS)
    if variant is not None:
        ordered.sort(key=lambda item: item[0] != variant)

    for parser_variant, parser in ordered:
        records = parser(payload, source_id, dataflow_id)
        if records is None:
            continue
        if not records:
            return NormalizedDataset(variant=PayloadVariant.EMPTY)
        logger.debug(
            f"[{source_id}] Parsed {len(records)} observations as {parser_variant.value}"
        )
        return NormalizedDataset(variant=parser_variant, records=sort_records(records))

    raise MalformedResponseError(
        "Response matched no known structure",
        source=source_id,
        structure_summary=summarize_structure(payload),
    )


def normalize(raw: RawProviderResult, source_id: str, dataflow_id: Optional[str] = None) -> NormalizedDataset:
    """Normalize a tagged result. ERROR results must be handled by the caller."""
    if raw.variant == PayloadVariant.ERROR:
        raise ValueError("Error results carry no observations")
    if raw.variant == PayloadVariant.EMPTY:
        return NormalizedDataset(variant=PayloadVariant.EMPTY)
    return normalize_payload(raw.payload, source_id, dataflow_id, variant=raw.variant)
