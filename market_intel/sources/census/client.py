"""
Census Bureau adapter.

Official Census Data API documentation:
https://www.census.gov/data/developers/guidance/api-user-guide.html

Serves any dataset path under https://api.census.gov/data. In aggregated
search it contributes establishment counts, employment and payroll from
County Business Patterns and receipts (market size) from the Economic
Census for the matched NAICS industry.

Rate limits:
- Without key: 500 queries/day per IP
- With key (free): no published daily cap
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from market_intel.core.api_errors import AuthenticationError
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
from market_intel.normalization.series import latest_with_value
from market_intel.sources.base import ProviderAdapter, SeriesLookup
from market_intel.sources.census import metadata

logger = logging.getLogger(__name__)


def _variable(records: List[ObservationRecord], name: str) -> Optional[ObservationRecord]:
    # Several rows can match one industry (e.g. by type of operation); the
    # largest value is the all-establishments total
    candidates = [r for r in records if r.dimensions.get("VARIABLE") == name and r.value is not None]
    if not candidates:
        return None
    return max(candidates, key=lambda r: r.value)


class CensusClient(ProviderAdapter):
    """U.S. Census Bureau data API."""

    SOURCE_NAME = "census"
    BASE_URL = "https://api.census.gov/data"

    capabilities = frozenset({
        QueryKind.KEYWORD,
        QueryKind.CLASSIFICATION_CODE,
        QueryKind.GEOGRAPHY,
    })
    coverage = frozenset({"US"})
    directness = 1.0

    def validate_query(self, query: DatasetQuery) -> Optional[KeyValidationResult]:
        return metadata.validate_key(query.dataflow_id, query.dimension_key)

    def _decode(self, response: httpx.Response, resource_id: str) -> Any:
        # An invalid key is answered with an HTML page, not an HTTP error
        if "invalid key" in response.text[:500].lower():
            raise AuthenticationError(
                message="Census rejected the API key", source=self.SOURCE_NAME
            )
        return super()._decode(response, resource_id)

    async def _fetch_raw(self, query: DatasetQuery) -> RawProviderResult:
        census_key = metadata.parse_key(query.dimension_key)
        rows = await self.get(
            query.dataflow_id,
            params=census_key.to_params(),
            resource_id=f"{query.dataflow_id}:{query.dimension_key}",
        )
        if not rows:
            return RawProviderResult.empty()
        return RawProviderResult(
            PayloadVariant.SIMPLIFIED,
            metadata.parse_table(query.dataflow_id, census_key, rows),
        )

    def lookups_for(self, match: IndustryMatch, query: SearchQuery) -> List[SeriesLookup]:
        naics = match.industry.naics
        return [
            SeriesLookup(
                "cbp",
                metadata.CBP_DATASET,
                metadata.industry_key("ESTAB,EMP,PAYANN", naics),
            ),
            SeriesLookup(
                "ecn",
                metadata.ECONOMIC_CENSUS_DATASET,
                metadata.industry_key("RCPTOT,ESTAB", naics),
            ),
        ]

    def build_fragment(
        self,
        match: IndustryMatch,
        query: SearchQuery,
        results: Dict[str, List[ObservationRecord]],
    ) -> Optional[IndustryFragment]:
        cbp = results.get("cbp") or []
        ecn = results.get("ecn") or []
        metrics: Dict[str, float] = {}

        for name, metric in (("ESTAB", "establishments"), ("EMP", "employees"), ("PAYANN", "annual_payroll_usd")):
            record = _variable(cbp, name)
            if record is not None:
                scale = 1000 if name in metadata.THOUSANDS_VARIABLES else 1
                metrics[metric] = record.value * scale

        receipts = _variable(ecn, "RCPTOT")
        market_size = receipts.value * 1000 if receipts is not None else None

        if not metrics and market_size is None:
            return None

        parts = []
        if market_size is not None:
            parts.append(f"receipts ${market_size:,.0f} ({receipts.time_period})")
        if "establishments" in metrics:
            parts.append(f"{metrics['establishments']:,.0f} establishments")
        refs = [l.ref for l in self.lookups_for(match, query) if results.get(l.label)]
        # Recency follows the newest vintage that answered
        basis = cbp if latest_with_value(cbp) is not None else ecn
        return self.make_fragment(
            match,
            basis,
            ref=" | ".join(refs),
            description=f"{match.industry.name}: {', '.join(parts)}" if parts else None,
            market_size_estimate=market_size,
            key_metrics=metrics,
        )
