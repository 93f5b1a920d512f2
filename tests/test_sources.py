"""
Unit tests for the provider adapters.

Every adapter is driven through httpx.MockTransport; no network access.
Covers the dataset contract (validation, cache, error values) and each
source's request shape and response reshaping.
"""
import json
from datetime import datetime, timezone

import httpx
import pytest

from market_intel.core.industry_catalog import IndustryCatalog, IndustryMatch
from market_intel.core.schemas import ErrorCode, SearchQuery, SourceError
from market_intel.sources import ADAPTER_CLASSES, build_adapters
from market_intel.sources.alpha_vantage.client import AlphaVantageClient
from market_intel.sources.bls.client import BLSClient
from market_intel.sources.census.client import CensusClient
from market_intel.sources.fred.client import FREDClient
from market_intel.sources.imf.client import IMFClient
from market_intel.sources.nasdaq_data_link.client import NasdaqDataLinkClient
from market_intel.sources.oecd.client import OECDClient
from market_intel.sources.world_bank.client import WorldBankClient


class RecordingHandler:
    """MockTransport handler that records requests and delegates to `respond`."""

    def __init__(self, respond):
        self.respond = respond
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)


def json_handler(payload, status_code=200):
    return RecordingHandler(lambda request: httpx.Response(status_code, json=payload))


@pytest.fixture
def pharma_match():
    industry = IndustryCatalog().get("3254")
    return IndustryMatch(industry, 1.0, "classification_code")


@pytest.fixture
def search_query():
    return SearchQuery(free_text_query="pharmaceutical")


IMF_PAYLOAD = {
    "CompactData": {
        "DataSet": {
            "Series": {
                "@FREQ": "A",
                "@REF_AREA": "US",
                "@INDICATOR": "AIPMA_IX",
                "Obs": [
                    {"@TIME_PERIOD": "2021", "@OBS_VALUE": "97.0"},
                    {"@TIME_PERIOD": "2023", "@OBS_VALUE": "102.0"},
                    {"@TIME_PERIOD": "2022", "@OBS_VALUE": "100.0"},
                ],
            }
        }
    }
}

# =============================================================================
# Dataset contract (shared by every adapter)
# =============================================================================


class TestDatasetContract:
    """Tests for ProviderAdapter.fetch via the IMF adapter."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_latest_value_is_max_period(self, make_adapter):
        handler = json_handler(IMF_PAYLOAD)
        imf = make_adapter(IMFClient, handler)

        latest = await imf.fetch_latest_value("IFS", "A.US.AIPMA_IX", "2020", "2023")

        assert latest.time_period == "2023"
        assert latest.value == 102.0
        assert latest.dimensions["REF_AREA"] == "US"
        request = handler.requests[0]
        assert request.url.path.endswith("/CompactData/IFS/A.US.AIPMA_IX")
        assert request.url.params["startPeriod"] == "2020"
        assert request.url.params["endPeriod"] == "2023"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_fetch_served_from_cache(self, make_adapter):
        handler = json_handler(IMF_PAYLOAD)
        imf = make_adapter(IMFClient, handler)

        first = await imf.fetch_dataset("IFS", "A.US.AIPMA_IX")
        second = await imf.fetch_dataset("IFS", "A.US.AIPMA_IX")

        assert first == second
        assert len(handler.requests) == 1
        assert imf.data_freshness() is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_hard_validation_failure_skips_network_and_cache(self, make_adapter, cache_manager):
        handler = json_handler(IMF_PAYLOAD)
        imf = make_adapter(IMFClient, handler)

        result = await imf.fetch_dataset("IFS", "US.NGDP_R_XDC")

        assert isinstance(result, SourceError)
        assert result.error_code == ErrorCode.VALIDATION_ERROR
        assert any("'A.US.NGDP_R_XDC'" in s for s in result.suggestions)
        assert handler.requests == []
        assert (await cache_manager.status()).sets == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_dataflow_id(self, make_adapter):
        imf = make_adapter(IMFClient, json_handler(IMF_PAYLOAD))
        result = await imf.fetch_dataset("  ")
        assert result.error_code == ErrorCode.VALIDATION_ERROR

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_result_is_empty_list(self, make_adapter):
        imf = make_adapter(IMFClient, json_handler({"CompactData": {"DataSet": None}}))
        assert await imf.fetch_dataset("IFS", "A.US.NGDP_R_XDC") == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_soft_warning_and_no_data_reports_hints(self, make_adapter):
        imf = make_adapter(IMFClient, json_handler({"CompactData": {"DataSet": None}}))

        result = await imf.fetch_dataset("IFS", "a.US.NGDP_R_XDC")

        assert isinstance(result, SourceError)
        assert result.error_code == ErrorCode.NO_DATA
        assert any("upper-case" in s for s in result.suggestions)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_latest_keeps_null_newest_observation(self, make_adapter):
        payload = json.loads(json.dumps(IMF_PAYLOAD))
        payload["CompactData"]["DataSet"]["Series"]["Obs"][1]["@OBS_VALUE"] = ""
        imf = make_adapter(IMFClient, json_handler(payload))

        latest = await imf.fetch_latest_value("IFS", "A.US.AIPMA_IX")

        assert latest.time_period == "2023"
        assert latest.value is None
        assert latest.dimensions["REF_AREA"] == "US"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_latest_of_empty_dataset_is_no_data(self, make_adapter):
        imf = make_adapter(IMFClient, json_handler({"CompactData": {"DataSet": None}}))

        result = await imf.fetch_latest_value("IFS", "A.US.AIPMA_IX")

        assert isinstance(result, SourceError)
        assert result.error_code == ErrorCode.NO_DATA

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_errors_cached_with_short_ttl(self, make_adapter, fake_clock):
        handler = json_handler({"error": "down"}, status_code=500)
        imf = make_adapter(IMFClient, handler)

        first = await imf.fetch_dataset("IFS", "A.US.AIPMA_IX")
        second = await imf.fetch_dataset("IFS", "A.US.AIPMA_IX")
        assert first.error_code == ErrorCode.SERVER_ERROR
        assert second == first
        assert len(handler.requests) == 1

        fake_clock.advance(61)
        await imf.fetch_dataset("IFS", "A.US.AIPMA_IX")
        assert len(handler.requests) == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unrecognized_payload_is_malformed(self, make_adapter):
        imf = make_adapter(IMFClient, json_handler({"unexpected": True}))

        result = await imf.fetch_dataset("IFS", "A.US.AIPMA_IX")

        assert result.error_code == ErrorCode.MALFORMED_RESPONSE
        assert any("unexpected" in s for s in result.suggestions)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_network_failure_is_value_not_exception(self, make_adapter):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        imf = make_adapter(IMFClient, RecordingHandler(refuse))
        result = await imf.fetch_dataset("IFS", "A.US.AIPMA_IX")
        assert result.error_code == ErrorCode.NETWORK_ERROR


class TestAvailability:
    """Tests for key requirements and the adapter registry."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_required_key(self, make_adapter):
        handler = json_handler({})
        fred = make_adapter(FREDClient, handler, api_key="")

        result = await fred.fetch_dataset("IPG3254S")

        assert not fred.is_available()
        assert result.error_code == ErrorCode.MISSING_CREDENTIALS
        assert any("FRED_API_KEY" in s for s in result.suggestions)
        assert handler.requests == []

    @pytest.mark.unit
    def test_build_adapters(self, settings, cache_manager):
        adapters = build_adapters(cache_manager, settings)

        assert list(adapters) == sorted(ADAPTER_CLASSES)
        assert len(adapters) == 8
        assert all(a.is_available() for a in adapters.values())

    @pytest.mark.unit
    def test_coverage(self, make_adapter):
        fred = make_adapter(FREDClient, json_handler({}))
        imf = make_adapter(IMFClient, json_handler({}))

        assert fred.covers("USA")
        assert fred.covers(None)
        assert not fred.covers("DE")
        assert imf.covers("DE")


# =============================================================================
# Per-source request shape and reshaping
# =============================================================================


class TestFRED:
    """Tests for the FRED adapter."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_observations(self, make_adapter):
        handler = json_handler({
            "observations": [
                {"date": "2023-01-01", "value": "101.2"},
                {"date": "2023-02-01", "value": "."},
            ]
        })
        fred = make_adapter(FREDClient, handler)

        records = await fred.fetch_dataset("IPG3254S", start_period="2021")

        assert [(r.time_period, r.value) for r in records] == [("2023-02", None), ("2023-01", 101.2)]
        params = handler.requests[0].url.params
        assert handler.requests[0].url.path == "/fred/series/observations"
        assert params["series_id"] == "IPG3254S"
        assert params["file_type"] == "json"
        assert params["api_key"] == "test-fred-key"
        assert params["observation_start"] == "2021-01-01"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_series_is_not_found(self, make_adapter):
        handler = json_handler(
            {"error_code": 400, "error_message": "Bad Request. The series does not exist."},
            status_code=400,
        )
        fred = make_adapter(FREDClient, handler)

        result = await fred.fetch_dataset("NOPE")

        assert result.error_code == ErrorCode.NOT_FOUND

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_dimension_key_rejected(self, make_adapter):
        handler = json_handler({})
        fred = make_adapter(FREDClient, handler)
        result = await fred.fetch_dataset("GDP", key="A.US")
        assert result.error_code == ErrorCode.VALIDATION_ERROR
        assert handler.requests == []


class TestBLS:
    """Tests for the BLS adapter."""

    RESPONSE = {
        "status": "REQUEST_SUCCEEDED",
        "message": [],
        "Results": {
            "series": [
                {
                    "seriesID": "CES3232540001",
                    "data": [
                        {"year": "2024", "period": "M05", "value": "330.5"},
                        {"year": "2023", "period": "M05", "value": "320.0"},
                        {"year": "2023", "period": "M13", "value": "318.0"},
                    ],
                }
            ]
        },
    }

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fragment_from_employment_series(self, make_adapter, pharma_match, search_query):
        handler = json_handler(self.RESPONSE)
        bls = make_adapter(BLSClient, handler)

        fragments = await bls.search_fragments(search_query, [pharma_match])

        request = handler.requests[0]
        body = json.loads(request.content)
        assert request.method == "POST"
        assert body == {"seriesid": ["CES3232540001"], "startyear": "2022", "endyear": "2024"}

        fragment = fragments[0]
        assert fragment.industry_id == "naics-3254"
        assert fragment.key_metrics["employees"] == 330500.0
        assert fragment.key_metrics["employment_growth"] == pytest.approx(0.0328, abs=1e-3)
        assert fragment.last_updated.isoformat() == "2024-05-31"
        assert fragment.directness == 0.9
        assert fragment.match_strength == 1.0
        assert fragment.contributing_sources[0].raw_excerpt_ref == "bls:CES3232540001"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_registration_key_goes_in_body(self, make_adapter):
        handler = json_handler(self.RESPONSE)
        bls = make_adapter(BLSClient, handler, api_key="bls-key")

        await bls.fetch_dataset("CES3232540001", start_period="2020", end_period="2024")

        body = json.loads(handler.requests[0].content)
        assert body["registrationkey"] == "bls-key"
        assert "registrationkey" not in handler.requests[0].url.params

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_threshold_message_is_rate_limited(self, make_adapter):
        handler = json_handler({
            "status": "REQUEST_NOT_PROCESSED",
            "message": ["daily threshold for total number of requests allocated has been reached"],
        })
        bls = make_adapter(BLSClient, handler)

        result = await bls.fetch_dataset("CES3232540001")

        assert result.error_code == ErrorCode.RATE_LIMITED


class TestCensus:
    """Tests for the Census adapter."""

    TABLES = {
        "/data/2021/cbp": [
            ["ESTAB", "EMP", "PAYANN", "NAICS2017", "us"],
            ["1842", "309126", "35127453", "3254", "1"],
        ],
        "/data/2017/ecnbasic": [
            ["RCPTOT", "ESTAB", "NAICS2017", "us"],
            ["250000000", "1700", "3254", "1"],
        ],
    }

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fragment_merges_cbp_and_economic_census(self, make_adapter, pharma_match, search_query):
        handler = RecordingHandler(
            lambda request: httpx.Response(200, json=self.TABLES[request.url.path])
        )
        census = make_adapter(CensusClient, handler)

        fragments = await census.search_fragments(search_query, [pharma_match])

        fragment = fragments[0]
        assert fragment.market_size_estimate == 250_000_000_000.0
        assert fragment.key_metrics["establishments"] == 1842.0
        assert fragment.key_metrics["employees"] == 309126.0
        assert fragment.key_metrics["annual_payroll_usd"] == 35_127_453_000.0
        assert fragment.last_updated.isoformat() == "2021-12-31"
        assert fragment.directness == 1.0

        cbp = next(r for r in handler.requests if r.url.path == "/data/2021/cbp")
        assert cbp.url.params["get"] == "ESTAB,EMP,PAYANN"
        assert cbp.url.params["for"] == "us:*"
        assert cbp.url.params["NAICS2017"] == "3254"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_key_without_geography_rejected(self, make_adapter):
        handler = json_handler([])
        census = make_adapter(CensusClient, handler)

        result = await census.fetch_dataset("2021/cbp", "ESTAB")

        assert result.error_code == ErrorCode.VALIDATION_ERROR
        assert "Add a geography: 'ESTAB.us:*'" in result.suggestions
        assert handler.requests == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_content_is_empty(self, make_adapter):
        census = make_adapter(CensusClient, RecordingHandler(lambda r: httpx.Response(204)))
        assert await census.fetch_dataset("2021/cbp", "ESTAB.us:*.NAICS2017=9999") == []


class TestWorldBank:
    """Tests for the World Bank adapter."""

    @staticmethod
    def page(number, pages, year, value):
        return [
            {"page": number, "pages": pages, "per_page": 1000, "total": pages},
            [
                {
                    "indicator": {"id": "NV.IND.MANF.CD"},
                    "country": {"id": "US"},
                    "countryiso3code": "USA",
                    "date": year,
                    "value": value,
                }
            ],
        ]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_follows_pagination(self, make_adapter):
        pages = {"1": self.page(1, 2, "2022", 2.5e12), "2": self.page(2, 2, "2021", 2.3e12)}
        handler = RecordingHandler(
            lambda request: httpx.Response(200, json=pages[request.url.params["page"]])
        )
        wb = make_adapter(WorldBankClient, handler)

        records = await wb.fetch_dataset("NV.IND.MANF.CD", "USA", "2019", "2023")

        assert [r.time_period for r in records] == ["2022", "2021"]
        assert records[0].dimensions == {"INDICATOR": "NV.IND.MANF.CD", "REF_AREA": "USA"}
        assert len(handler.requests) == 2
        first = handler.requests[0]
        assert first.url.path == "/v2/country/USA/indicator/NV.IND.MANF.CD"
        assert first.url.params["date"] == "2019:2023"
        assert first.url.params["format"] == "json"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_error_envelope(self, make_adapter):
        handler = json_handler([
            {"message": [{"id": "120", "key": "Invalid value", "value": "The provided parameter value is not valid"}]}
        ])
        wb = make_adapter(WorldBankClient, handler)

        result = await wb.fetch_dataset("NV.IND.MANF.CD", "XXX")

        assert result.error_code == ErrorCode.NOT_FOUND

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unexpected_shape_is_malformed(self, make_adapter):
        wb = make_adapter(WorldBankClient, json_handler({"rows": []}))
        result = await wb.fetch_dataset("NV.IND.MANF.CD", "USA")
        assert result.error_code == ErrorCode.MALFORMED_RESPONSE

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fragment_uses_query_geography(self, make_adapter, pharma_match):
        handler = json_handler(self.page(1, 1, "2022", 2.5e12))
        wb = make_adapter(WorldBankClient, handler)
        query = SearchQuery(free_text_query="pharmaceutical", geography="United States")

        fragments = await wb.search_fragments(query, [pharma_match])

        assert fragments[0].geography == "US"
        assert fragments[0].key_metrics["sector_value_added_usd"] == 2.5e12
        assert fragments[0].directness == 0.4
        assert handler.requests[0].url.params["date"] == "2019:2024"


class TestOECD:
    """Tests for the OECD adapter."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_results_404_is_empty(self, make_adapter):
        handler = RecordingHandler(lambda request: httpx.Response(404, text="NoResultsFound"))
        oecd = make_adapter(OECDClient, handler)

        result = await oecd.fetch_dataset("OECD.SDD.STES,DSD_KEI@DF_KEI,4.0", "USA.M.PRVM.IX.C.Y._Z")

        assert result == []
        request = handler.requests[0]
        assert request.url.path.endswith("/OECD.SDD.STES,DSD_KEI@DF_KEI,4.0/USA.M.PRVM.IX.C.Y._Z")
        assert request.url.params["format"] == "jsondata"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_other_404_is_not_found(self, make_adapter):
        oecd = make_adapter(OECDClient, RecordingHandler(lambda r: httpx.Response(404, text="Dataflow unknown")))
        result = await oecd.fetch_dataset("OECD.SDD.STES,DSD_KEI@DF_KEI,4.0", "USA.M.PRVM.IX.C.Y._Z")
        assert result.error_code == ErrorCode.NOT_FOUND

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sdmx_json(self, make_adapter):
        payload = {
            "data": {
                "dataSets": [{"series": {"0": {"observations": {"0": [103.1], "1": [104.2]}}}}],
                "structure": {
                    "dimensions": {
                        "series": [{"id": "REF_AREA", "values": [{"id": "USA"}]}],
                        "observation": [
                            {"id": "TIME_PERIOD", "values": [{"id": "2024-03"}, {"id": "2024-04"}]}
                        ],
                    }
                },
            }
        }
        oecd = make_adapter(OECDClient, json_handler(payload))

        latest = await oecd.fetch_latest_value(
            "OECD.SDD.STES,DSD_KEI@DF_KEI,4.0", "USA.M.PRVM.IX.C.Y._Z"
        )

        assert (latest.time_period, latest.value) == ("2024-04", 104.2)


class TestNasdaqDataLink:
    """Tests for the Nasdaq Data Link adapter."""

    RESPONSE = {
        "dataset_data": {
            "column_names": ["Date", "Value"],
            "frequency": "monthly",
            "data": [["2024-03-01", 104.9], ["2024-02-01", 104.1]],
        }
    }

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_monthly_dataset(self, make_adapter):
        handler = json_handler(self.RESPONSE)
        nasdaq = make_adapter(NasdaqDataLinkClient, handler)

        records = await nasdaq.fetch_dataset("FRED/IPG3254S")

        assert [r.time_period for r in records] == ["2024-03", "2024-02"]
        assert records[0].dimensions == {"DATASET": "FRED/IPG3254S", "COLUMN": "Value"}
        assert handler.requests[0].url.path == "/api/v3/datasets/FRED/IPG3254S/data.json"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_column(self, make_adapter):
        nasdaq = make_adapter(NasdaqDataLinkClient, json_handler(self.RESPONSE))
        result = await nasdaq.fetch_dataset("FRED/IPG3254S", "Close")
        assert result.error_code == ErrorCode.BAD_REQUEST
        assert "Value" in result.message


class TestAlphaVantage:
    """Tests for the Alpha Vantage adapter."""

    OVERVIEWS = {
        "PFE": {
            "Symbol": "PFE",
            "Name": "Pfizer Inc",
            "LatestQuarter": "2024-03-31",
            "MarketCapitalization": "165700000000",
            "RevenueTTM": "54900000000",
        },
        "LLY": {
            "Symbol": "LLY",
            "Name": "Eli Lilly and Company",
            "LatestQuarter": "2024-03-31",
            "MarketCapitalization": "700000000000",
            "RevenueTTM": "36000000000",
        },
        "MRK": {"Error Message": "Invalid API call."},
    }

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_partial_failure_keeps_other_tickers(self, make_adapter, pharma_match, search_query):
        handler = RecordingHandler(
            lambda request: httpx.Response(200, json=self.OVERVIEWS[request.url.params["symbol"]])
        )
        av = make_adapter(AlphaVantageClient, handler)

        fragments = await av.search_fragments(search_query, [pharma_match])

        assert len(handler.requests) == 3
        assert all(r.url.params["apikey"] == "test-av-key" for r in handler.requests)
        assert all(r.url.params["function"] == "OVERVIEW" for r in handler.requests)

        fragment = fragments[0]
        assert fragment.key_metrics["representative_company_count"] == 2.0
        assert fragment.key_metrics["representative_market_cap_usd"] == 865_700_000_000.0
        assert fragment.geography is None
        assert fragment.last_updated.isoformat() == "2024-03-31"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retrieved_at_is_when_lookups_were_stored(
        self, make_adapter, fake_clock, pharma_match, search_query
    ):
        overviews = dict(self.OVERVIEWS, HCA={
            "Symbol": "HCA", "Name": "HCA Healthcare", "LatestQuarter": "2024-03-31",
            "MarketCapitalization": "85000000000",
        })
        handler = RecordingHandler(
            lambda request: httpx.Response(200, json=overviews[request.url.params["symbol"]])
        )
        av = make_adapter(AlphaVantageClient, handler)
        first_fetch = fake_clock()
        await av.search_fragments(search_query, [pharma_match])

        fake_clock.advance(100)
        await av.fetch_dataset("OVERVIEW", "HCA")
        fragments = await av.search_fragments(search_query, [pharma_match])

        retrieved = fragments[0].contributing_sources[0].retrieved_at
        assert retrieved == datetime.fromtimestamp(first_fetch, tz=timezone.utc)
        assert av.data_freshness() == datetime.fromtimestamp(first_fetch + 100, tz=timezone.utc)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_all_lookups_failing_returns_error(self, make_adapter, pharma_match, search_query):
        handler = json_handler({"Note": "Our standard API call frequency is 5 calls per minute."})
        av = make_adapter(AlphaVantageClient, handler)

        result = await av.search_fragments(search_query, [pharma_match])

        assert isinstance(result, SourceError)
        assert result.error_code == ErrorCode.RATE_LIMITED
        assert result.suggestions[0].startswith("Wait 60s")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_symbol_required(self, make_adapter):
        handler = json_handler({})
        av = make_adapter(AlphaVantageClient, handler)
        result = await av.fetch_dataset("OVERVIEW")
        assert result.error_code == ErrorCode.VALIDATION_ERROR
        assert handler.requests == []
