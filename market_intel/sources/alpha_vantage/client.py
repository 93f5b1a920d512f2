"""
Alpha Vantage adapter.

API documentation:
https://www.alphavantage.co/documentation/

Company fundamentals and price series, keyed by ticker. In aggregated
search it reads the company overview of each representative ticker of
the matched industry; market capitalization stands in for the size of
the listed segment.

Alpha Vantage reports errors and throttling inside HTTP 200 bodies:
- "Note" / "Information": call frequency exceeded (or premium endpoint)
- "Error Message": invalid function or symbol
- {}: unknown symbol for OVERVIEW

Rate limits:
- Free key: 5 requests/min, 25 requests/day
"""
import logging
from typing import Any, Dict, List, Optional

from market_intel.core.api_errors import APIError, FatalError, RateLimitError, ValidationError
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
from market_intel.sources.alpha_vantage import metadata
from market_intel.sources.base import ProviderAdapter, SeriesLookup

logger = logging.getLogger(__name__)

# Overviews fetched per industry in a search (free tier allows 25 calls/day)
MAX_TICKERS_PER_INDUSTRY = 3


class AlphaVantageClient(ProviderAdapter):
    """Alpha Vantage company fundamentals and prices."""

    SOURCE_NAME = "alpha_vantage"
    BASE_URL = "https://www.alphavantage.co/query"

    capabilities = frozenset({QueryKind.KEYWORD})
    directness = 0.5

    def validate_query(self, query: DatasetQuery) -> Optional[KeyValidationResult]:
        return metadata.validate_request(query.dataflow_id, query.dimension_key)

    def _check_api_error(self, data: Any, resource_id: str) -> Optional[APIError]:
        """Check for Alpha Vantage errors reported in 200 responses."""
        if not isinstance(data, dict):
            return None

        note = data.get("Note") or data.get("Information")
        if note:
            if "premium" in str(note).lower() and "frequency" not in str(note).lower():
                return FatalError(
                    message=f"Premium endpoint: {note}",
                    source=self.SOURCE_NAME,
                    status_code=403,
                )
            return RateLimitError(
                message=f"Alpha Vantage call frequency exceeded: {note}",
                source=self.SOURCE_NAME,
                retry_after=60,
                response_data=data,
            )

        if "Error Message" in data:
            return ValidationError(
                message=f"Alpha Vantage rejected {resource_id}: {data['Error Message']}",
                source=self.SOURCE_NAME,
            )
        return None

    async def _fetch_raw(self, query: DatasetQuery) -> RawProviderResult:
        function = query.dataflow_id.upper()
        symbol = query.dimension_key.upper()
        data = await self.get(
            self.base_url,
            params={"function": function, "symbol": symbol},
            resource_id=f"{function}:{symbol}",
        )
        if not data:
            return RawProviderResult.empty()

        if function == metadata.OVERVIEW:
            payload = metadata.parse_overview(data)
        elif function == metadata.GLOBAL_QUOTE:
            payload = metadata.parse_global_quote(data)
        else:
            payload = metadata.parse_time_series(data, symbol)
            payload["observations"] = self._within(query, payload["observations"])
        return RawProviderResult(PayloadVariant.SIMPLIFIED, payload)

    @staticmethod
    def _within(query: DatasetQuery, observations: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        # The API has no range parameters; trim client-side
        start = period_start(query.start_period)
        end = period_end(query.end_period)
        if not start and not end:
            return observations
        kept = []
        for obs in observations:
            day = period_end(obs["period"])
            if day is None:
                continue
            if start and day < start:
                continue
            if end and day > end:
                continue
            kept.append(obs)
        return kept

    def lookups_for(self, match: IndustryMatch, query: SearchQuery) -> List[SeriesLookup]:
        return [
            SeriesLookup(f"overview:{ticker}", metadata.OVERVIEW, ticker)
            for ticker in match.industry.tickers[:MAX_TICKERS_PER_INDUSTRY]
        ]

    def build_fragment(
        self,
        match: IndustryMatch,
        query: SearchQuery,
        results: Dict[str, List[ObservationRecord]],
    ) -> Optional[IndustryFragment]:
        market_cap = 0.0
        revenue = 0.0
        companies = []
        records: List[ObservationRecord] = []
        for label in sorted(results):
            overview = results[label]
            records.extend(overview)
            by_metric = {r.dimensions.get("METRIC"): r for r in overview}
            cap = by_metric.get("MarketCapitalization")
            if cap is None or cap.value is None:
                continue
            market_cap += cap.value
            rev = by_metric.get("RevenueTTM")
            if rev is not None and rev.value is not None:
                revenue += rev.value
            name = cap.dimensions.get("NAME") or cap.dimensions.get("SYMBOL", "")
            companies.append(f"{name} ({cap.dimensions.get('SYMBOL', label.split(':')[-1])})")

        if not companies:
            return None
        metrics = {
            "representative_market_cap_usd": market_cap,
            "representative_company_count": float(len(companies)),
        }
        if revenue:
            metrics["representative_revenue_ttm_usd"] = revenue
        return self.make_fragment(
            match,
            records,
            ref=f"OVERVIEW/{'+'.join(l.split(':')[-1] for l in sorted(results))}",
            geography=None,
            description=f"Representative public companies: {', '.join(companies)}",
            key_metrics=metrics,
        )
