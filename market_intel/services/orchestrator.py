"""
Aggregation orchestrator.

Fans one search out to the relevant adapters, tolerates per-source
failure, consolidates the fragments that come back and ranks the result.

Flow:
    1. classify the query (keyword / classification code / geography)
    2. resolve candidate industries from the catalog
    3. pick candidate adapters by capability and coverage
    4. fan out with a concurrency bound, a per-call timeout and an
       overall deadline; stragglers are cancelled
    5. consolidate, score, sort, filter, truncate
"""
import asyncio
import logging
import re
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

from market_intel.core.api_errors import AggregateFailureError, APIError
from market_intel.core.api_registry import get_all_sources
from market_intel.core.config import Settings, get_settings
from market_intel.core.geography import is_global
from market_intel.core.industry_catalog import SEARCH_TIPS, IndustryCatalog, IndustryMatch
from market_intel.core.schemas import (
    ErrorCode,
    IndustryDTO,
    IndustryFragment,
    QueryKind,
    SearchQuery,
    SearchResponse,
    SourceError,
)
from market_intel.services.consolidation import FragmentConsolidator
from market_intel.services.scoring import reference_year_of, score_industry
from market_intel.sources.base import ProviderAdapter, source_error_from_exception

logger = logging.getLogger(__name__)

CODE_TOKEN = re.compile(r"^\d{2,6}$")
ALPHA_TOKEN = re.compile(r"[A-Za-z]")

AdapterOutcome = Union[List[IndustryFragment], SourceError]


def query_kinds(query: SearchQuery) -> Set[QueryKind]:
    """Which query shapes a search exercises."""
    kinds: Set[QueryKind] = set()
    tokens = query.free_text_query.split()
    if query.classification_codes or any(CODE_TOKEN.match(t) for t in tokens):
        kinds.add(QueryKind.CLASSIFICATION_CODE)
    if not is_global(query.geography):
        kinds.add(QueryKind.GEOGRAPHY)
    if any(ALPHA_TOKEN.search(t) for t in tokens if not CODE_TOKEN.match(t)):
        kinds.add(QueryKind.KEYWORD)
    return kinds


def sort_industries(industries: Sequence[IndustryDTO]) -> List[IndustryDTO]:
    """Score descending, then most recent data, then industry id."""
    def sort_key(dto: IndustryDTO):
        updated = dto.last_updated.toordinal() if dto.last_updated else -1
        return (-dto.relevance_score, -updated, dto.industry_id)

    return sorted(industries, key=sort_key)


class AggregationOrchestrator:
    """
    Runs aggregated industry searches across provider adapters.

    Adapter failures are collected as SourceErrors; a search only fails
    outright when every candidate adapter failed.
    """

    def __init__(
        self,
        adapters: Dict[str, ProviderAdapter],
        catalog: Optional[IndustryCatalog] = None,
        settings: Optional[Settings] = None,
    ):
        self.adapters = dict(sorted(adapters.items()))
        self.catalog = catalog or IndustryCatalog()
        self.settings = settings or get_settings()
        self.consolidator = FragmentConsolidator(self.settings.dedup_similarity_threshold)

    def select_adapters(
        self, query: SearchQuery, kinds: Set[QueryKind]
    ) -> Tuple[List[ProviderAdapter], List[SourceError]]:
        """Candidate adapters for a query, plus errors for unusable named sources."""
        errors: List[SourceError] = []

        if query.sources:
            selected: List[ProviderAdapter] = []
            for name in dict.fromkeys(s.strip().lower() for s in query.sources if s.strip()):
                adapter = self.adapters.get(name)
                if adapter is None:
                    errors.append(SourceError(
                        source_name=name,
                        error_code=ErrorCode.VALIDATION_ERROR,
                        message=f"Unknown source '{name}'",
                        suggestions=[f"Available sources: {', '.join(get_all_sources())}"],
                    ))
                elif not adapter.is_available():
                    errors.append(adapter._missing_credentials())
                else:
                    selected.append(adapter)
            return selected, errors

        selected = [
            adapter for adapter in self.adapters.values()
            if adapter.is_available()
            and adapter.capabilities & kinds
            and adapter.covers(query.geography)
        ]
        return selected, errors

    async def _call_adapter(
        self,
        adapter: ProviderAdapter,
        query: SearchQuery,
        matches: List[IndustryMatch],
        semaphore: asyncio.Semaphore,
    ) -> AdapterOutcome:
        timeout = self.settings.search_call_timeout_seconds
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    adapter.search_fragments(query, matches), timeout=timeout
                )
            except asyncio.TimeoutError:
                logger.warning(f"[{adapter.SOURCE_NAME}] Search call timed out after {timeout}s")
                return SourceError(
                    source_name=adapter.SOURCE_NAME,
                    error_code=ErrorCode.TIMEOUT,
                    message=f"No response within {timeout:g}s",
                    suggestions=["Retry later; cached sources answer immediately"],
                )
            except APIError as e:
                return source_error_from_exception(e, adapter.config)

    async def _fan_out(
        self,
        adapters: List[ProviderAdapter],
        query: SearchQuery,
        matches: List[IndustryMatch],
    ) -> List[AdapterOutcome]:
        semaphore = asyncio.Semaphore(self.settings.search_max_concurrency)
        tasks = [
            asyncio.create_task(self._call_adapter(adapter, query, matches, semaphore))
            for adapter in adapters
        ]
        deadline = self.settings.search_deadline_seconds
        done, pending = await asyncio.wait(tasks, timeout=deadline)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: List[AdapterOutcome] = []
        for adapter, task in zip(adapters, tasks):
            name = adapter.SOURCE_NAME
            if task in pending:
                logger.warning(f"[{name}] Abandoned at the {deadline:g}s search deadline")
                outcomes.append(SourceError(
                    source_name=name,
                    error_code=ErrorCode.TIMEOUT,
                    message=f"Search deadline of {deadline:g}s passed",
                    suggestions=["Retry later; cached sources answer immediately"],
                ))
                continue
            error = task.exception()
            if error is not None:
                logger.error(f"[{name}] Search task failed", exc_info=error)
                outcomes.append(SourceError(
                    source_name=name,
                    error_code=ErrorCode.UPSTREAM_ERROR,
                    message=f"{error.__class__.__name__}: {error}",
                    suggestions=["Retry the search"],
                ))
                continue
            outcomes.append(task.result())
        return outcomes

    async def search(self, query: SearchQuery) -> SearchResponse:
        """
        Run one aggregated search.

        Raises:
            AggregateFailureError: Every candidate adapter failed
        """
        kinds = query_kinds(query)
        matches = self.catalog.resolve(
            query.free_text_query,
            codes=query.classification_codes,
            include_sub_industries=query.include_sub_industries,
        )
        adapters, errors = self.select_adapters(query, kinds)

        if not adapters:
            if errors:
                raise AggregateFailureError("No requested source is usable", errors=errors)
            logger.info(f"No adapters serve {query.free_text_query!r} (kinds={sorted(k.value for k in kinds)})")
            return SearchResponse(results=[], errors=[], search_tips=list(SEARCH_TIPS))

        if not matches:
            logger.info(f"No catalog industry matches {query.free_text_query!r}")
            return SearchResponse(results=[], errors=errors, search_tips=list(SEARCH_TIPS))

        outcomes = await self._fan_out(adapters, query, matches)

        fragments: List[IndustryFragment] = []
        failed = 0
        for outcome in outcomes:
            if isinstance(outcome, SourceError):
                errors.append(outcome)
                failed += 1
            else:
                fragments.extend(outcome)

        if failed == len(adapters):
            raise AggregateFailureError(
                f"All {failed} candidate sources failed", errors=errors
            )

        reference_year = reference_year_of(fragments)
        scored = [
            score_industry(group, reference_year)
            for group in self.consolidator.consolidate(fragments)
        ]
        ranked = [
            dto for dto in sort_industries(scored)
            if dto.relevance_score >= query.min_relevance_score
        ][:query.limit]

        logger.info(
            f"Search {query.free_text_query!r}: {len(adapters)} sources, "
            f"{len(fragments)} fragments, {len(ranked)} results, {len(errors)} errors"
        )
        return SearchResponse(
            results=ranked,
            errors=errors,
            search_tips=[] if ranked else list(SEARCH_TIPS),
        )
