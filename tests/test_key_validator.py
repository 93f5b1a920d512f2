"""
Unit tests for dimension key validation.

Hard failures (delimiters, segment count) must be caught before any
network call; code-format problems only produce warnings.
"""
import pytest

from market_intel.normalization.key_validator import (
    KNOWN_DATAFLOWS,
    lookup_dataflow,
    validate_key,
)


class TestLookupDataflow:
    """Tests for lookup_dataflow."""

    @pytest.mark.unit
    @pytest.mark.parametrize("dataflow_id", ["IFS", "ifs", " IFS "])
    def test_bare_ids(self, dataflow_id):
        assert lookup_dataflow(dataflow_id).dataflow_id == "IFS"

    @pytest.mark.unit
    def test_sdmx_rest_reference(self):
        assert lookup_dataflow("OECD.SDD.STES,DSD_KEI@DF_KEI,4.0").dataflow_id == "DF_KEI"
        assert lookup_dataflow("OECD.SDD.STES,DSD_STES@DF_CLI,4.1").dataflow_id == "DF_CLI"

    @pytest.mark.unit
    def test_unknown(self):
        assert lookup_dataflow("NOT_A_FLOW") is None
        assert lookup_dataflow("") is None

    @pytest.mark.unit
    def test_examples_validate_cleanly(self):
        for dataflow_id, pattern in KNOWN_DATAFLOWS.items():
            result = validate_key(dataflow_id, pattern.example)
            assert result.is_valid, dataflow_id
            assert not result.issues, dataflow_id


# =============================================================================
# Hard failures
# =============================================================================


class TestHardFailures:
    """Tests for keys rejected before any request."""

    @pytest.mark.unit
    def test_missing_frequency_segment(self):
        result = validate_key("IFS", "US.NGDP_R_XDC")

        assert not result.is_valid
        assert result.pattern == "FREQ.REF_AREA.INDICATOR"
        assert "Expected 3 segments" in result.issues[0]
        assert "frequency code" in result.suggestions[0]
        assert "'A.US.NGDP_R_XDC'" in result.suggestions[0]

    @pytest.mark.unit
    def test_trailing_frequency_dimension(self):
        result = validate_key("QNA", "USA.B1_GE.CQRSA")
        assert not result.is_valid
        assert "'USA.B1_GE.CQRSA.A'" in result.suggestions[0]

    @pytest.mark.unit
    def test_too_many_segments(self):
        result = validate_key("IFS", "A.US.NGDP_R_XDC.EXTRA")
        assert not result.is_valid
        assert result.suggestions[0].startswith("Remove 1 extra segment(s)")
        assert result.suggestions[-1] == "Example key for IFS: A.US.NGDP_R_XDC"

    @pytest.mark.unit
    @pytest.mark.parametrize("key", ["A/US/NGDP_R_XDC", "A,US,NGDP_R_XDC"])
    def test_wrong_delimiter(self, key):
        result = validate_key("IFS", key)
        assert not result.is_valid
        assert "'A.US.NGDP_R_XDC'" in result.suggestions[0]

    @pytest.mark.unit
    def test_illegal_characters(self):
        result = validate_key("IFS", "A.US.NGDP R_XDC!")
        assert not result.is_valid
        assert "'A.US.NGDPR_XDC'" in result.suggestions[0]

    @pytest.mark.unit
    def test_delimiter_failure_on_unknown_dataflow(self):
        result = validate_key("SOMETHING", "A/B")
        assert not result.is_valid
        assert result.pattern is None


# =============================================================================
# Soft results
# =============================================================================


class TestValidKeys:
    """Tests for keys that pass, with or without warnings."""

    @pytest.mark.unit
    @pytest.mark.parametrize("key", ["", "all", "ALL", None])
    def test_empty_and_all(self, key):
        result = validate_key("IFS", key)
        assert result.is_valid
        assert not result.has_warnings

    @pytest.mark.unit
    def test_wildcard_and_multi_code_segments(self):
        assert not validate_key("IFS", "A..NGDP_R_XDC").issues
        assert not validate_key("IFS", "A.US+CA.NGDP_R_XDC").issues

    @pytest.mark.unit
    def test_unknown_dataflow_is_not_checked(self):
        result = validate_key("MYFLOW", "X.Y.Z.W")
        assert result.is_valid
        assert result.pattern is None
        assert not result.issues

    @pytest.mark.unit
    def test_lower_case_codes_warn(self):
        result = validate_key("IFS", "a.us.NGDP_R_XDC")

        assert result.is_valid
        assert result.has_warnings
        assert any("upper-case" in s for s in result.suggestions)
        assert "'A' instead of 'a'" in result.suggestions[0]

    @pytest.mark.unit
    def test_bad_frequency_lists_codes(self):
        result = validate_key("IFS", "X.US.NGDP_R_XDC")
        assert result.is_valid
        assert "A=annual" in result.suggestions[0]

    @pytest.mark.unit
    def test_to_dict(self):
        data = validate_key("IFS", "US.X").to_dict()
        assert data["dataflow_id"] == "IFS"
        assert data["is_valid"] is False
        assert isinstance(data["suggestions"], list)
