"""
Nasdaq Data Link adapter.

API documentation:
https://docs.data.nasdaq.com/docs/time-series

Time-series datasets under /datasets/{DATABASE}/{DATASET}/data.json.
In aggregated search it reads the FRED mirror of the matched industry's
production index, a second route to the same series when FRED itself
is unavailable.

Rate limits:
- Anonymous: 50 calls/day
- With key (free): 300 calls per 10 seconds, 50,000 calls/day
"""
import logging
from typing import Any, Dict, List, Optional

from market_intel.core.api_errors import APIError, RateLimitError, ValidationError
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
from market_intel.sources.nasdaq_data_link import metadata

logger = logging.getLogger(__name__)


class NasdaqDataLinkClient(ProviderAdapter):
    """Nasdaq Data Link time-series datasets."""

    SOURCE_NAME = "nasdaq_data_link"
    BASE_URL = "https://data.nasdaq.com/api/v3"

    capabilities = frozenset({QueryKind.KEYWORD, QueryKind.CLASSIFICATION_CODE})
    coverage = frozenset({"US"})
    directness = 0.6

    def validate_query(self, query: DatasetQuery) -> Optional[KeyValidationResult]:
        return metadata.validate_code(query.dataflow_id, query.dimension_key)

    def _check_api_error(self, data: Any, resource_id: str) -> Optional[APIError]:
        if not isinstance(data, dict) or "quandl_error" not in data:
            return None
        error = data["quandl_error"] or {}
        code = str(error.get("code", ""))
        message = f"{code}: {error.get('message', '')}"
        if code.startswith("QEL"):
            return RateLimitError(message=message, source=self.SOURCE_NAME, response_data=data)
        return ValidationError(message=message, source=self.SOURCE_NAME)

    async def _fetch_raw(self, query: DatasetQuery) -> RawProviderResult:
        code = query.dataflow_id.upper()
        params: Dict[str, Any] = {}
        if query.start_period:
            params["start_date"] = query.start_period
        if query.end_period:
            params["end_date"] = query.end_period

        data = await self.get(f"datasets/{code}/data.json", params=params, resource_id=code)
        if not data:
            return RawProviderResult.empty()

        column_names = (data.get("dataset_data") or {}).get("column_names") or []
        index = metadata.select_column(column_names, query.dimension_key)
        if index is None:
            raise ValidationError(
                message=(
                    f"Column {query.dimension_key!r} not in {code}; "
                    f"available: {', '.join(map(str, column_names[1:]))}"
                ),
                source=self.SOURCE_NAME,
                invalid_params={"key": query.dimension_key},
            )
        return RawProviderResult(
            PayloadVariant.SIMPLIFIED,
            metadata.parse_dataset_data(code, data, index),
        )

    def lookups_for(self, match: IndustryMatch, query: SearchQuery) -> List[SeriesLookup]:
        series_id = match.industry.fred_series
        if not series_id:
            return []
        window = self.search_window(years=3)
        return [SeriesLookup("production", f"FRED/{series_id}", start_period=f"{window['start']}-01-01")]

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
        return self.make_fragment(
            match,
            records,
            ref=f"FRED/{match.industry.fred_series}",
            description=(
                f"{match.industry.name}: production index {latest.value:.1f} "
                f"({latest.time_period})"
            ),
            growth_rate=year_over_year(records),
            key_metrics={"industrial_production_index": latest.value},
        )
