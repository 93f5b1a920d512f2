"""
Unit tests for the industry catalog, the industry name matcher and
country code normalization.
"""
import pytest

from market_intel.core.geography import is_global, to_alpha2, to_alpha3
from market_intel.core.industry_catalog import IndustryCatalog, sector_for_naics
from market_intel.normalization.name_matcher import (
    IndustryNameMatcher,
    levenshtein_distance,
    similarity_ratio,
)

# =============================================================================
# Name matching
# =============================================================================


class TestLevenshtein:
    """Tests for the edit distance helpers."""

    @pytest.mark.unit
    def test_distance(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("same", "same") == 0

    @pytest.mark.unit
    def test_ratio_edges(self):
        assert similarity_ratio("", "") == 1.0
        assert similarity_ratio("a", "") == 0.0
        assert similarity_ratio("abcd", "abcx") == 0.75


class TestIndustryNameMatcher:
    """Tests for IndustryNameMatcher."""

    @pytest.fixture
    def matcher(self):
        return IndustryNameMatcher()

    @pytest.mark.unit
    def test_abbreviations_and_connectives(self, matcher):
        assert matcher.similarity(
            "Pharmaceutical & Medicine Mfg",
            "Pharmaceutical and Medicine Manufacturing",
        ) == 1.0
        assert matcher.normalize("Pharmaceutical & Medicine Mfg") == "pharmaceutical medicine manufacturing"

    @pytest.mark.unit
    def test_plurals(self, matcher):
        assert matcher.similarity("Semiconductor Manufacturing", "Semiconductors Manufacturing") == 1.0
        assert matcher.tokens("Batteries") == ["battery"]
        assert matcher.tokens("Glass") == ["glass"]

    @pytest.mark.unit
    def test_stopwords_removed(self, matcher):
        assert matcher.tokens("Computer Systems Design and Related Services") == [
            "computer",
            "system",
            "design",
            "service",
        ]
        assert matcher.tokens("") == []

    @pytest.mark.unit
    def test_different_industries(self, matcher):
        assert matcher.similarity("Software Publishers", "Motor Vehicle Manufacturing") < 0.5


# =============================================================================
# Catalog resolution
# =============================================================================


class TestIndustryCatalog:
    """Tests for IndustryCatalog.resolve."""

    @pytest.fixture
    def catalog(self):
        return IndustryCatalog()

    @pytest.mark.unit
    def test_keyword_abbreviation_matches_industry(self, catalog):
        matches = catalog.resolve("pharmaceutical")

        assert matches[0].industry.naics == "3254"
        assert matches[0].strength == 1.0
        assert matches[0].matched_on == "keyword"

    @pytest.mark.unit
    def test_detail_industries_need_exact_code(self, catalog):
        naics = [m.industry.naics for m in catalog.resolve("pharmaceutical")]
        assert "325412" not in naics
        assert "325414" not in naics

    @pytest.mark.unit
    def test_naics_code_in_text(self, catalog):
        matches = catalog.resolve("3254")

        assert [m.industry.naics for m in matches] == ["3254"]
        assert matches[0].strength == 1.0
        assert matches[0].matched_on == "classification_code"

    @pytest.mark.unit
    def test_sic_code_ranks_exact_then_parent(self, catalog):
        matches = catalog.resolve(codes=["2834"])

        assert [(m.industry.naics, m.strength) for m in matches] == [
            ("325412", 0.95),
            ("3254", 0.85),
        ]

    @pytest.mark.unit
    def test_sub_industries_added_at_reduced_strength(self, catalog):
        matches = {m.industry.naics: m.strength for m in catalog.resolve("pharmaceutical", include_sub_industries=True)}

        assert matches["3254"] == 1.0
        assert matches["325412"] == 0.9
        assert matches["325414"] == 0.8

    @pytest.mark.unit
    def test_shared_generic_word_is_not_enough(self, catalog):
        matches = catalog.resolve("pharmaceutical manufacturing")

        assert [(m.industry.naics, m.strength) for m in matches] == [("3254", 0.9)]

    @pytest.mark.unit
    def test_misspelled_keyword_still_matches(self, catalog):
        matches = catalog.resolve("pharmaceutcal")

        assert [m.industry.naics for m in matches] == ["3254"]
        assert 0.85 < matches[0].strength < 0.9

    @pytest.mark.unit
    def test_unrelated_query_resolves_nothing(self, catalog):
        assert catalog.resolve("zzzzqqq") == []
        assert catalog.resolve("") == []

    @pytest.mark.unit
    def test_resolution_is_deterministic(self, catalog):
        assert catalog.resolve("software") == catalog.resolve("software")

    @pytest.mark.unit
    def test_industry_reference_fields(self, catalog):
        pharma = catalog.get("3254")

        assert pharma.industry_id == "naics-3254"
        assert [(c.system, c.code) for c in pharma.classification_codes()] == [
            ("NAICS", "3254"),
            ("SIC", "283"),
        ]
        assert [i.naics for i in catalog.sub_industries("3254")] == ["325412", "325414"]

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "naics,indicator",
        [
            ("3254", "NV.IND.MANF.CD"),
            ("2111", "NV.IND.TOTL.CD"),
            ("5415", "NV.SRV.TOTL.CD"),
            ("1111", "NV.AGR.TOTL.CD"),
        ],
    )
    def test_sector_hints(self, naics, indicator):
        assert sector_for_naics(naics).world_bank_indicator == indicator


# =============================================================================
# Geography
# =============================================================================


class TestGeography:
    """Tests for country code normalization."""

    @pytest.mark.unit
    @pytest.mark.parametrize("geo", [None, "", "global", "World", " all "])
    def test_global(self, geo):
        assert is_global(geo)
        assert to_alpha2(geo) is None

    @pytest.mark.unit
    @pytest.mark.parametrize("geo", ["US", "us", "USA", "United States", "america"])
    def test_united_states_forms(self, geo):
        assert to_alpha2(geo) == "US"
        assert to_alpha3(geo) == "USA"

    @pytest.mark.unit
    def test_unknown_country(self):
        assert not is_global("Atlantis")
        assert to_alpha2("Atlantis") is None
        assert to_alpha3("Atlantis") is None
