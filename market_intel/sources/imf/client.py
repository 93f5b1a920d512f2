"""
IMF adapter.

SDMX JSON REST service:
https://dataservices.imf.org/REST/SDMX_JSON.svc

dataflow_id is an IMF dataflow (IFS, BOP, CPI, DOT, PCPS, GFSR, ...);
the dimension key follows the dataflow's SDMX layout, e.g.
IFS "A.US.NGDP_R_XDC" (FREQ.REF_AREA.INDICATOR). Payloads arrive in
the compact variant.

No API key; the service throttles at roughly 10 requests per 5 seconds.
"""
import logging
from typing import Dict, List, Optional

from market_intel.core.geography import to_alpha2
from market_intel.core.industry_catalog import IndustryMatch
from market_intel.core.schemas import (
    DatasetQuery,
    IndustryFragment,
    ObservationRecord,
    QueryKind,
    SearchQuery,
)
from market_intel.normalization.key_validator import KeyValidationResult, validate_key
from market_intel.normalization.sdmx import PayloadVariant, RawProviderResult, classify_payload
from market_intel.normalization.series import latest_with_value, year_over_year
from market_intel.sources.base import ProviderAdapter, SeriesLookup

logger = logging.getLogger(__name__)


class IMFClient(ProviderAdapter):
    """International Monetary Fund SDMX data."""

    SOURCE_NAME = "imf"
    BASE_URL = "https://dataservices.imf.org/REST/SDMX_JSON.svc"

    capabilities = frozenset({QueryKind.KEYWORD, QueryKind.GEOGRAPHY})
    directness = 0.3
    payload_variant = PayloadVariant.COMPACT

    def validate_query(self, query: DatasetQuery) -> Optional[KeyValidationResult]:
        return validate_key(query.dataflow_id, query.dimension_key)

    async def _fetch_raw(self, query: DatasetQuery) -> RawProviderResult:
        key = "" if query.dimension_key.lower() == "all" else query.dimension_key
        path = f"CompactData/{query.dataflow_id}/{key}"
        params = {}
        if query.start_period:
            params["startPeriod"] = query.start_period
        if query.end_period:
            params["endPeriod"] = query.end_period

        data = await self.get(path, params=params, resource_id=f"{query.dataflow_id}/{key}")
        return classify_payload(data, self.payload_variant)

    def lookups_for(self, match: IndustryMatch, query: SearchQuery) -> List[SeriesLookup]:
        indicator = match.industry.sector.imf_indicator
        if not indicator:
            return []
        country = to_alpha2(query.geography) or "US"
        window = self.search_window(years=5)
        return [
            SeriesLookup(
                "production",
                "IFS",
                f"A.{country}.{indicator}",
                start_period=window["start"],
                end_period=window["end"],
            )
        ]

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
        sector = match.industry.sector
        country = latest.dimensions.get("REF_AREA") or to_alpha2(query.geography) or "US"
        metrics = {"sector_production_index": latest.value}
        growth = year_over_year(records)
        if growth is not None:
            metrics["sector_production_growth"] = growth
        return self.make_fragment(
            match,
            records,
            ref=f"IFS/A.{country}.{sector.imf_indicator}",
            geography=country,
            description=(
                f"{sector.name} production index for {country}: "
                f"{latest.value:.1f} ({latest.time_period})"
            ),
            key_metrics=metrics,
        )
