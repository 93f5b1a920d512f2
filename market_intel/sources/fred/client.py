"""
FRED adapter.

Official FRED API documentation:
https://fred.stlouisfed.org/docs/api/fred/

dataflow_id is a FRED series id (e.g. IPG3254S); FRED series have no
dimension key. In aggregated search FRED contributes the industrial
production index of the matched industry and its year-over-year growth.

Rate limits:
- API key required (free): 120 requests per minute
"""
import logging
from typing import Dict, List, Optional

from market_intel.core.api_errors import APIError, AuthenticationError, NotFoundError
from market_intel.core.industry_catalog import IndustryMatch
from market_intel.core.schemas import (
    DatasetQuery,
    IndustryFragment,
    ObservationRecord,
    QueryKind,
    SearchQuery,
)
from market_intel.normalization.key_validator import KeyValidationResult
from market_intel.normalization.sdmx import PayloadVariant, RawProviderResult
from market_intel.normalization.series import latest_with_value, year_over_year
from market_intel.sources.base import ProviderAdapter, SeriesLookup
from market_intel.sources.fred import metadata

logger = logging.getLogger(__name__)


class FREDClient(ProviderAdapter):
    """Federal Reserve Economic Data series observations."""

    SOURCE_NAME = "fred"
    BASE_URL = "https://api.stlouisfed.org/fred"

    capabilities = frozenset({QueryKind.KEYWORD, QueryKind.CLASSIFICATION_CODE})
    coverage = frozenset({"US"})
    directness = 0.8

    def validate_query(self, query: DatasetQuery) -> Optional[KeyValidationResult]:
        return metadata.validate_series_id(query.dataflow_id, query.dimension_key)

    def _classify_http_error(self, status_code: int, response_text: str) -> APIError:
        # FRED answers 400 for unknown series and bad keys alike
        if status_code == 400:
            text = response_text.lower()
            if "does not exist" in text:
                return NotFoundError(
                    message=f"Series not found: {response_text[:200]}", source=self.SOURCE_NAME
                )
            if "api_key" in text:
                return AuthenticationError(
                    message=f"API key rejected: {response_text[:200]}", source=self.SOURCE_NAME
                )
        return super()._classify_http_error(status_code, response_text)

    async def _fetch_raw(self, query: DatasetQuery) -> RawProviderResult:
        params = {
            "series_id": query.dataflow_id.upper(),
            "file_type": "json",
        }
        start = metadata.to_fred_date(query.start_period)
        end = metadata.to_fred_date(query.end_period, end=True)
        if start:
            params["observation_start"] = start
        if end:
            params["observation_end"] = end

        data = await self.get("series/observations", params=params, resource_id=query.dataflow_id)
        if not data:
            return RawProviderResult.empty()
        return RawProviderResult(
            PayloadVariant.SIMPLIFIED,
            metadata.parse_observations(query.dataflow_id, data),
        )

    def lookups_for(self, match: IndustryMatch, query: SearchQuery) -> List[SeriesLookup]:
        series_id = match.industry.fred_series
        if not series_id:
            return []
        window = self.search_window(years=3)
        return [SeriesLookup("production", series_id, start_period=window["start"])]

    def build_fragment(
        self,
        match: IndustryMatch,
        query: SearchQuery,
        results: Dict[str, List[ObservationRecord]],
    ) -> Optional[IndustryFragment]:
        records = results.get("production")
        latest = latest_with_value(records or [])
        if latest is None:
            return None
        growth = year_over_year(records)
        description = (
            f"{match.industry.name}: industrial production index "
            f"{latest.value:.1f} ({latest.time_period}, "
            f"{metadata.INDEX_BASE_YEAR}=100)"
        )
        return self.make_fragment(
            match,
            records,
            ref=match.industry.fred_series,
            description=description,
            growth_rate=growth,
            key_metrics={"industrial_production_index": latest.value},
        )
