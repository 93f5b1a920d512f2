"""
Unit tests for market_intel/normalization/sdmx.py

Payload fixtures mirror the shapes returned by IMF CompactData, OECD
SDMX-JSON and simplified single-series endpoints.
"""
import pytest

from market_intel.core.api_errors import MalformedResponseError
from market_intel.core.schemas import ErrorCode, SourceError
from market_intel.normalization.sdmx import (
    PayloadVariant,
    RawProviderResult,
    classify_payload,
    coerce_value,
    detect_variant,
    normalize,
    normalize_payload,
    parse_compact,
    summarize_structure,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def compact_payload():
    return {
        "CompactData": {
            "DataSet": {
                "Series": {
                    "@FREQ": "A",
                    "@REF_AREA": "US",
                    "@INDICATOR": "AIPMA_IX",
                    "@UNIT_MULT": "0",
                    "Obs": [
                        {"@TIME_PERIOD": "2021", "@OBS_VALUE": "98.2"},
                        {"@TIME_PERIOD": "2022", "@OBS_VALUE": "NaN"},
                        {"@TIME_PERIOD": "2023", "@OBS_VALUE": "101.7"},
                    ],
                }
            }
        }
    }


@pytest.fixture
def complex_payload():
    return {
        "data": {
            "dataSets": [
                {
                    "series": {
                        "0:0": {"observations": {"0": [101.5], "1": [103.0]}},
                    }
                }
            ],
            "structure": {
                "dimensions": {
                    "series": [
                        {"id": "REF_AREA", "values": [{"id": "USA"}]},
                        {"id": "MEASURE", "values": [{"id": "PRVM"}]},
                    ],
                    "observation": [
                        {
                            "id": "TIME_PERIOD",
                            "values": [{"id": "2023-01"}, {"id": "2023-02"}],
                        }
                    ],
                }
            },
        }
    }


# =============================================================================
# Value coercion
# =============================================================================


class TestCoerceValue:
    """Tests for coerce_value."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("1,234", 1234.0),
            ("  2.5 ", 2.5),
            (7, 7.0),
            (".", None),
            ("NaN", None),
            ("(NA)", None),
            ("abc", None),
            (None, None),
            (True, None),
            (float("inf"), None),
        ],
    )
    def test_coercion(self, raw, expected):
        assert coerce_value(raw) == expected


# =============================================================================
# Structural variants
# =============================================================================


class TestCompact:
    """Tests for IMF CompactData and flat observation lists."""

    @pytest.mark.unit
    def test_compact_series(self, compact_payload):
        dataset = normalize_payload(compact_payload, "imf", "IFS")

        assert dataset.variant == PayloadVariant.COMPACT
        assert [r.time_period for r in dataset.records] == ["2023", "2022", "2021"]
        assert dataset.records[1].value is None
        assert dataset.records[0].dimensions == {
            "FREQ": "A",
            "REF_AREA": "US",
            "INDICATOR": "AIPMA_IX",
        }
        assert dataset.records[0].dataflow_id == "IFS"

    @pytest.mark.unit
    def test_single_obs_object_is_accepted(self, compact_payload):
        series = compact_payload["CompactData"]["DataSet"]["Series"]
        series["Obs"] = {"@TIME_PERIOD": "2020", "@OBS_VALUE": "5"}

        dataset = normalize_payload(compact_payload, "imf")
        assert len(dataset.records) == 1
        assert dataset.records[0].value == 5.0

    @pytest.mark.unit
    def test_missing_dataset_is_empty(self):
        dataset = normalize_payload({"CompactData": {"DataSet": None}}, "imf")
        assert dataset.variant == PayloadVariant.EMPTY
        assert dataset.is_empty

    @pytest.mark.unit
    def test_flat_list(self):
        payload = [
            {"TIME_PERIOD": "2023", "OBS_VALUE": "1,234", "REF_AREA": "US", "OBS_STATUS": "E"},
        ]
        records = parse_compact(payload, "oecd")
        assert records[0].value == 1234.0
        assert records[0].dimensions == {"REF_AREA": "US"}

    @pytest.mark.unit
    def test_unparseable_period_dropped(self, compact_payload):
        compact_payload["CompactData"]["DataSet"]["Series"]["Obs"].append(
            {"@TIME_PERIOD": "someday", "@OBS_VALUE": "1"}
        )
        dataset = normalize_payload(compact_payload, "imf")
        assert len(dataset.records) == 3


class TestComplex:
    """Tests for SDMX-JSON dataSets."""

    @pytest.mark.unit
    def test_series_keyed(self, complex_payload):
        dataset = normalize_payload(complex_payload, "oecd", "DF_KEI")

        assert dataset.variant == PayloadVariant.COMPLEX
        assert [r.time_period for r in dataset.records] == ["2023-02", "2023-01"]
        assert dataset.records[0].value == 103.0
        assert dataset.records[0].dimensions == {"REF_AREA": "USA", "MEASURE": "PRVM"}

    @pytest.mark.unit
    def test_all_dimensions_observations(self):
        payload = {
            "dataSets": [{"observations": {"0:0": [5.0], "0:1": [6.0]}}],
            "structure": {
                "dimensions": {
                    "observation": [
                        {"id": "REF_AREA", "values": [{"id": "USA"}]},
                        {"id": "TIME_PERIOD", "values": [{"id": "2021"}, {"id": "2022"}]},
                    ]
                }
            },
        }
        dataset = normalize_payload(payload, "oecd")

        assert [(r.time_period, r.value) for r in dataset.records] == [("2022", 6.0), ("2021", 5.0)]
        assert dataset.records[0].dimensions == {"REF_AREA": "USA"}

    @pytest.mark.unit
    def test_structures_list_form(self, complex_payload):
        data = complex_payload["data"]
        data["structures"] = [data.pop("structure")]
        dataset = normalize_payload(complex_payload, "oecd")
        assert len(dataset.records) == 2


class TestSimplified:
    """Tests for single time-dimension payloads."""

    @pytest.mark.unit
    def test_observation_mapping(self):
        payload = {"dimensions": {"REF_AREA": "US"}, "observations": {"2022": "1.5", "2023": "2.0"}}
        dataset = normalize_payload(payload, "world_bank")

        assert dataset.variant == PayloadVariant.SIMPLIFIED
        assert dataset.records[0].time_period == "2023"
        assert dataset.records[0].dimensions == {"REF_AREA": "US"}

    @pytest.mark.unit
    def test_series_list(self):
        payload = {
            "series": [
                {"dimensions": {"AREA": "US"}, "observations": [{"date": "2023", "value": 1}]},
                {"dimensions": {"AREA": "CA"}, "observations": [{"date": "2023", "value": 2}]},
            ]
        }
        dataset = normalize_payload(payload, "world_bank")
        assert len(dataset.records) == 2
        assert {r.dimensions["AREA"] for r in dataset.records} == {"US", "CA"}


# =============================================================================
# Entry points
# =============================================================================


class TestNormalize:
    """Tests for variant detection and the normalize entry points."""

    @pytest.mark.unit
    def test_detect_variant(self, compact_payload, complex_payload):
        assert detect_variant(compact_payload) == PayloadVariant.COMPACT
        assert detect_variant(complex_payload) == PayloadVariant.COMPLEX
        assert detect_variant({"observations": {}}) == PayloadVariant.SIMPLIFIED
        assert detect_variant([]) == PayloadVariant.EMPTY
        assert detect_variant({"foo": 1}) is None
        assert detect_variant("text") is None

    @pytest.mark.unit
    def test_unknown_structure_is_malformed(self):
        with pytest.raises(MalformedResponseError) as exc_info:
            normalize_payload({"foo": 1, "bar": [1]}, "oecd")
        assert "object with keys [bar, foo]" in exc_info.value.message
        assert exc_info.value.source == "oecd"

    @pytest.mark.unit
    def test_wrong_hint_falls_back_to_other_parsers(self, compact_payload):
        dataset = normalize_payload(compact_payload, "imf", variant=PayloadVariant.COMPLEX)
        assert dataset.variant == PayloadVariant.COMPACT

    @pytest.mark.unit
    def test_parsing_is_deterministic(self, complex_payload):
        assert normalize_payload(complex_payload, "oecd") == normalize_payload(complex_payload, "oecd")

    @pytest.mark.unit
    def test_tagged_results(self, compact_payload):
        raw = RawProviderResult(variant=PayloadVariant.COMPACT, payload=compact_payload)
        assert len(normalize(raw, "imf").records) == 3
        assert normalize(RawProviderResult.empty(), "imf").is_empty

        failed = RawProviderResult.failed(
            SourceError(source_name="imf", error_code=ErrorCode.TIMEOUT, message="slow")
        )
        with pytest.raises(ValueError):
            normalize(failed, "imf")

    @pytest.mark.unit
    def test_summarize_structure(self):
        assert summarize_structure([]) == "empty list"
        assert summarize_structure([1, 2]) == "list[2] of int"
        assert summarize_structure(None) == "NoneType"

    @pytest.mark.unit
    def test_classify_payload(self, compact_payload):
        tagged = classify_payload(compact_payload, PayloadVariant.COMPLEX)
        assert tagged.variant == PayloadVariant.COMPACT
        assert tagged.payload is compact_payload

        assert classify_payload([], PayloadVariant.COMPLEX).variant == PayloadVariant.EMPTY
        assert classify_payload({"foo": 1}, PayloadVariant.COMPLEX).variant == PayloadVariant.COMPLEX
