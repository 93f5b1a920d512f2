"""
OECD adapter.

SDMX REST API:
https://sdmx.oecd.org/public/rest/data/{agency},{dataflow},{version}/{key}

dataflow_id is the full agency-qualified flow reference, e.g.
"OECD.SDD.STES,DSD_KEI@DF_KEI,4.0"; the key follows the flow's layout,
e.g. "USA.M.PRVM.IX.C.Y._Z". Responses are SDMX-JSON (complex variant).

No API key; 20 data queries per minute per IP.
"""
import logging
from typing import Dict, List, Optional

from market_intel.core.api_errors import NotFoundError
from market_intel.core.geography import to_alpha2, to_alpha3
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

KEI_DATAFLOW = "OECD.SDD.STES,DSD_KEI@DF_KEI,4.0"

# 404 bodies that mean "valid query, no observations"
NO_RESULTS_MARKERS = ("noresultsfound", "norecordsfound", "no results found")


class OECDClient(ProviderAdapter):
    """OECD Data Explorer SDMX REST API."""

    SOURCE_NAME = "oecd"
    BASE_URL = "https://sdmx.oecd.org/public/rest/data"

    capabilities = frozenset({QueryKind.KEYWORD, QueryKind.GEOGRAPHY})
    directness = 0.35
    payload_variant = PayloadVariant.COMPLEX

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        headers["Accept"] = "application/vnd.sdmx.data+json; charset=utf-8; version=1.0"
        return headers

    def validate_query(self, query: DatasetQuery) -> Optional[KeyValidationResult]:
        return validate_key(query.dataflow_id, query.dimension_key)

    async def _fetch_raw(self, query: DatasetQuery) -> RawProviderResult:
        key = "all" if not query.dimension_key else query.dimension_key
        path = f"{query.dataflow_id}/{key}"
        params = {"format": "jsondata", "dimensionAtObservation": "TIME_PERIOD"}
        if query.start_period:
            params["startPeriod"] = query.start_period
        if query.end_period:
            params["endPeriod"] = query.end_period

        try:
            data = await self.get(path, params=params, resource_id=path)
        except NotFoundError as e:
            if any(marker in e.message.lower() for marker in NO_RESULTS_MARKERS):
                logger.info(f"[{self.SOURCE_NAME}] No observations for {path}")
                return RawProviderResult.empty()
            raise

        return classify_payload(data, self.payload_variant)

    def lookups_for(self, match: IndustryMatch, query: SearchQuery) -> List[SeriesLookup]:
        activity = match.industry.sector.oecd_activity
        if not activity:
            return []
        country = to_alpha3(query.geography) or "USA"
        window = self.search_window(years=2)
        return [
            SeriesLookup(
                "production",
                KEI_DATAFLOW,
                f"{country}.M.PRVM.IX.{activity}.Y._Z",
                start_period=f"{window['start']}-01",
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
        country = latest.dimensions.get("REF_AREA") or to_alpha3(query.geography) or "USA"
        metrics = {"sector_production_index": latest.value}
        growth = year_over_year(records)
        if growth is not None:
            metrics["sector_production_growth"] = growth
        return self.make_fragment(
            match,
            records,
            ref=f"DF_KEI/{country}.M.PRVM.IX.{sector.oecd_activity}.Y._Z",
            geography=to_alpha2(country) or country,
            description=(
                f"{sector.name} production index for {country}: "
                f"{latest.value:.1f} ({latest.time_period})"
            ),
            key_metrics=metrics,
        )
