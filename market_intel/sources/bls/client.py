"""
BLS adapter.

Official BLS API documentation:
https://www.bls.gov/developers/

dataflow_id is one series id, or several joined with '+'
(e.g. CES3232540001+CES6054150001). BLS requires a year range; without
one the adapter requests the most recent window the key tier allows.

In aggregated search BLS contributes CES "all employees" levels for the
matched industry.

Rate limits:
- Without key: 25 queries/day, 10 years per query, 25 series per query
- With key (free): 500 queries/day, 20 years per query, 50 series per query
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from market_intel.core.api_errors import (
    APIError,
    FatalError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from market_intel.core.industry_catalog import IndustryMatch
from market_intel.core.schemas import (
    DatasetQuery,
    IndustryFragment,
    ObservationRecord,
    QueryKind,
    SearchQuery,
)
from market_intel.normalization.key_validator import KeyValidationResult
from market_intel.normalization.periods import period_end, period_start
from market_intel.normalization.sdmx import PayloadVariant, RawProviderResult
from market_intel.normalization.series import latest_with_value, year_over_year
from market_intel.sources.base import ProviderAdapter, SeriesLookup
from market_intel.sources.bls import metadata

logger = logging.getLogger(__name__)


class BLSClient(ProviderAdapter):
    """Bureau of Labor Statistics timeseries (CES, CPS, JOLTS, ...)."""

    SOURCE_NAME = "bls"
    BASE_URL = "https://api.bls.gov/publicAPI/v2/timeseries/data/"

    capabilities = frozenset({QueryKind.KEYWORD, QueryKind.CLASSIFICATION_CODE})
    coverage = frozenset({"US"})
    directness = 0.9

    @property
    def max_years(self) -> int:
        return metadata.MAX_YEARS_REGISTERED if self.api_key else metadata.MAX_YEARS_ANONYMOUS

    def validate_query(self, query: DatasetQuery) -> Optional[KeyValidationResult]:
        return metadata.validate_series_ids(
            query.dataflow_id, query.dimension_key, registered=bool(self.api_key)
        )

    def _check_api_error(self, data: Any, resource_id: str) -> Optional[APIError]:
        """Check for BLS-specific API errors."""
        if not isinstance(data, dict):
            return None
        status = data.get("status")

        if status == "REQUEST_SUCCEEDED":
            return None

        if status in ("REQUEST_FAILED", "REQUEST_NOT_PROCESSED"):
            message = data.get("message", [])
            if isinstance(message, list):
                message = "; ".join(str(m) for m in message)

            # Check for known error types
            message_lower = str(message).lower()

            if "threshold" in message_lower or "rate limit" in message_lower:
                return RateLimitError(
                    message=f"Rate limited by BLS: {message}",
                    source=self.SOURCE_NAME,
                    retry_after=30,
                    response_data=data,
                )

            if "invalid series" in message_lower:
                return ValidationError(
                    message=f"Invalid series ID: {message}",
                    source=self.SOURCE_NAME,
                    response_data=data,
                )

            return FatalError(
                message=f"BLS API error: {message}",
                source=self.SOURCE_NAME,
                response_data=data,
            )

        # Unknown status - log but don't fail
        if status:
            logger.warning(f"Unexpected BLS status: {status}")

        return None

    def _year_range(self, query: DatasetQuery) -> Dict[str, str]:
        end = period_end(query.end_period)
        start = period_start(query.start_period)
        end_year = end.year if end else datetime.fromtimestamp(self.clock(), tz=timezone.utc).year
        start_year = start.year if start else end_year - self.max_years + 1
        # Clamp to the tier's window, keeping the most recent years
        start_year = max(start_year, end_year - self.max_years + 1)
        return {"startyear": str(start_year), "endyear": str(end_year)}

    async def _fetch_raw(self, query: DatasetQuery) -> RawProviderResult:
        series_ids = [s.upper() for s in metadata.split_series_ids(query.dataflow_id)]
        payload: Dict[str, Any] = {"seriesid": series_ids, **self._year_range(query)}

        data = await self.post(self.base_url, json_body=payload, resource_id=f"series:{query.dataflow_id}")
        if not data:
            return RawProviderResult.empty()

        reshaped = metadata.parse_bls_series_response(data)
        has_data = any(s["observations"] for s in reshaped["series"])
        if not has_data:
            messages = " ".join(str(m) for m in data.get("message") or [])
            if "does not exist" in messages.lower():
                raise NotFoundError(
                    message=f"Series does not exist: {messages}",
                    source=self.SOURCE_NAME,
                    resource_id=query.dataflow_id,
                )
            return RawProviderResult.empty()
        return RawProviderResult(PayloadVariant.SIMPLIFIED, reshaped)

    def lookups_for(self, match: IndustryMatch, query: SearchQuery) -> List[SeriesLookup]:
        series_id = match.industry.bls_series
        if not series_id:
            return []
        window = self.search_window(years=2)
        return [SeriesLookup("employment", series_id, start_period=window["start"], end_period=window["end"])]

    def build_fragment(
        self,
        match: IndustryMatch,
        query: SearchQuery,
        results: Dict[str, List[ObservationRecord]],
    ) -> Optional[IndustryFragment]:
        records = results.get("employment")
        latest = latest_with_value(records or [])
        if latest is None:
            return None
        # CES levels are in thousands of employees
        employees = latest.value * 1000
        growth = year_over_year(records)
        metrics = {"employees": employees}
        if growth is not None:
            metrics["employment_growth"] = growth
        return self.make_fragment(
            match,
            records,
            ref=match.industry.bls_series,
            description=(
                f"{match.industry.name}: {employees:,.0f} employees ({latest.time_period})"
            ),
            key_metrics=metrics,
        )
