"""
World Bank adapter.

Official API documentation:
https://datahelpdesk.worldbank.org/knowledgebase/topics/125589

No API key. Responses are paginated; the adapter follows pages up to
MAX_PAGES. In aggregated search it contributes sector value added for
the requested country, which is context for (not a measure of) the
matched industry.
"""
import logging
from typing import Any, Dict, List, Optional

from market_intel.core.api_errors import APIError, NotFoundError, ValidationError
from market_intel.core.geography import to_alpha2, to_alpha3
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
from market_intel.sources.world_bank import metadata

logger = logging.getLogger(__name__)


class WorldBankClient(ProviderAdapter):
    """World Bank World Development Indicators."""

    SOURCE_NAME = "world_bank"
    BASE_URL = "https://api.worldbank.org/v2"

    capabilities = frozenset({QueryKind.KEYWORD, QueryKind.GEOGRAPHY})
    directness = 0.4

    def validate_query(self, query: DatasetQuery) -> Optional[KeyValidationResult]:
        return metadata.validate_key(query.dataflow_id, query.dimension_key)

    def _check_api_error(self, data: Any, resource_id: str) -> Optional[APIError]:
        message = metadata.error_message(data)
        if message is None:
            return None
        message_id, text = message
        if message_id in metadata.NOT_FOUND_MESSAGE_IDS:
            return NotFoundError(
                message=f"World Bank: {text}", source=self.SOURCE_NAME, resource_id=resource_id
            )
        return ValidationError(message=f"World Bank: {text}", source=self.SOURCE_NAME)

    def _date_param(self, query: DatasetQuery) -> Optional[str]:
        start = period_start(query.start_period)
        end = period_end(query.end_period)
        if not start and not end:
            return None
        return f"{start.year if start else 1960}:{end.year if end else 2100}"

    async def _fetch_raw(self, query: DatasetQuery) -> RawProviderResult:
        countries = metadata.countries_of(query.dimension_key)
        path = f"country/{';'.join(countries) or 'all'}/indicator/{query.dataflow_id}"
        params: Dict[str, Any] = {"format": "json", "per_page": metadata.PER_PAGE}
        date_param = self._date_param(query)
        if date_param:
            params["date"] = date_param

        rows: List[Dict[str, Any]] = []
        page = 1
        while True:
            data = await self.get(
                path, params={**params, "page": page}, resource_id=f"{path}?page={page}"
            )
            if not data:
                break
            meta, page_rows = metadata.split_response(data)
            rows.extend(page_rows)
            pages = int(meta.get("pages") or 1)
            if page >= pages:
                break
            if page >= metadata.MAX_PAGES:
                logger.warning(
                    f"[{self.SOURCE_NAME}] Stopping at page {page} of {pages} for {path}"
                )
                break
            page += 1

        if not rows:
            return RawProviderResult.empty()
        return RawProviderResult(PayloadVariant.SIMPLIFIED, metadata.parse_rows(rows))

    def lookups_for(self, match: IndustryMatch, query: SearchQuery) -> List[SeriesLookup]:
        country = to_alpha3(query.geography) or "USA"
        window = self.search_window(years=5)
        return [
            SeriesLookup(
                "value_added",
                match.industry.sector.world_bank_indicator,
                country,
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
        records = results.get("value_added")
        latest = latest_with_value(records or [])
        if latest is None:
            return None
        sector = match.industry.sector
        growth = year_over_year(records)
        metrics = {"sector_value_added_usd": latest.value}
        if growth is not None:
            metrics["sector_value_added_growth"] = growth
        country = latest.dimensions.get("REF_AREA", "")
        return self.make_fragment(
            match,
            records,
            ref=f"{sector.world_bank_indicator}/{country}",
            geography=to_alpha2(country) or country or None,
            description=(
                f"{sector.name} value added in {country}: "
                f"${latest.value:,.0f} ({latest.time_period})"
            ),
            key_metrics=metrics,
        )
