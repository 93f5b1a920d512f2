"""
Provider adapter contract.

Every source adapter extends ProviderAdapter, which layers the uniform
dataset contract on top of BaseAPIClient:

- availability check against the key requirement
- dimension key validation (hard failures never reach the network)
- cache lookup keyed by (source, dataflow, key, periods)
- raw fetch, tagging and normalization into ObservationRecords
- conversion of every failure into a SourceError value

Subclasses implement _fetch_raw() and, for aggregated search,
lookups_for() / build_fragment().
"""
import asyncio
import logging
import time
from abc import abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple, Union

import httpx

from market_intel.core.api_errors import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    FatalError,
    KeyValidationError,
    MalformedResponseError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    RetryableError,
    ValidationError,
)
from market_intel.core.api_registry import APIConfig, APIKeyRequirement, AuthStyle, get_api_config
from market_intel.core.cache import CacheManager, build_cache_key
from market_intel.core.config import Settings, get_settings
from market_intel.core.geography import to_alpha2
from market_intel.core.http_client import BaseAPIClient
from market_intel.core.industry_catalog import IndustryMatch
from market_intel.core.schemas import (
    ContributingSource,
    DatasetQuery,
    ErrorCode,
    IndustryFragment,
    ObservationRecord,
    OutcomeKind,
    QueryKind,
    SearchQuery,
    SourceError,
)
from market_intel.normalization.key_validator import KeyValidationResult
from market_intel.normalization.periods import period_end
from market_intel.normalization.sdmx import PayloadVariant, RawProviderResult, normalize
from market_intel.normalization.series import latest_record, latest_with_value

logger = logging.getLogger(__name__)

DatasetResult = Union[List[ObservationRecord], SourceError]
LatestResult = Union[ObservationRecord, SourceError]
FragmentResult = Union[List[IndustryFragment], SourceError]

# Errors raised while reshaping a payload whose structure drifted
_SHAPE_ERRORS = (KeyError, TypeError, ValueError, AttributeError, IndexError)


def source_error_from_exception(exc: Exception, config: APIConfig) -> SourceError:
    """
    Convert a client exception into a SourceError with remediation hints.

    Args:
        exc: Exception raised below the adapter boundary
        config: Registry entry of the adapter that raised it
    """
    name = config.source_name
    env_var = config.config_key.upper()

    def err(code: ErrorCode, suggestions: List[str]) -> SourceError:
        message = exc.message if isinstance(exc, APIError) else str(exc)
        if isinstance(exc, APIError) and exc.status_code:
            message = f"{message} (HTTP {exc.status_code})"
        return SourceError(
            source_name=name,
            error_code=code,
            message=message or exc.__class__.__name__,
            suggestions=[s for s in suggestions if s],
        )

    if isinstance(exc, KeyValidationError):
        return err(ErrorCode.VALIDATION_ERROR, list(exc.suggestions))
    if isinstance(exc, ConfigurationError):
        return err(ErrorCode.MISSING_CREDENTIALS, [
            f"Set {env_var} in the environment or .env file",
            f"Get a free key at {config.signup_url}" if config.signup_url else "",
        ])
    if isinstance(exc, RateLimitError):
        return err(ErrorCode.RATE_LIMITED, [
            f"Wait {exc.retry_after}s before retrying {config.display_name}",
            config.notes or "",
        ])
    if isinstance(exc, AuthenticationError):
        return err(ErrorCode.AUTHENTICATION_FAILED, [
            f"Check that {env_var} holds a valid, active key",
            f"Request a new key at {config.signup_url}" if config.signup_url else "",
        ])
    if isinstance(exc, NotFoundError):
        return err(ErrorCode.NOT_FOUND, [
            "Check the dataflow id and dimension key",
            "Widen the start/end period range",
        ])
    if isinstance(exc, ValidationError):
        return err(ErrorCode.BAD_REQUEST, [
            f"Check the request parameters accepted by {config.display_name}",
        ])
    if isinstance(exc, FatalError) and exc.status_code == 403:
        return err(ErrorCode.FORBIDDEN, [
            f"The key in {env_var} may lack access to this dataset",
        ])
    if isinstance(exc, RequestTimeoutError):
        return err(ErrorCode.TIMEOUT, [
            f"{config.display_name} is slow to respond; retry later or narrow the period range",
        ])
    if isinstance(exc, MalformedResponseError):
        hints = [f"{config.display_name} returned an unexpected structure"]
        if exc.structure_summary:
            hints.append(f"Received: {exc.structure_summary}")
        return err(ErrorCode.MALFORMED_RESPONSE, hints)
    if isinstance(exc, RetryableError):
        if exc.status_code:
            return err(ErrorCode.SERVER_ERROR, [
                f"{config.display_name} is having problems; retry in a few minutes",
            ])
        return err(ErrorCode.NETWORK_ERROR, [
            f"Check network connectivity to {config.base_url}",
        ])
    return err(ErrorCode.UPSTREAM_ERROR, [f"Retry the request to {config.display_name}"])


@dataclass(frozen=True)
class SeriesLookup:
    """One dataset fetch an adapter makes on behalf of a search."""
    label: str
    dataflow_id: str
    key: str = ""
    start_period: Optional[str] = None
    end_period: Optional[str] = None

    @property
    def ref(self) -> str:
        return f"{self.dataflow_id}/{self.key}" if self.key else self.dataflow_id


class ProviderAdapter(BaseAPIClient):
    """
    Uniform dataset contract over one external source.

    Class attributes describe the adapter to the orchestrator:
        capabilities: query kinds the adapter can serve in a search
        coverage: ISO alpha-2 codes covered, None for any geography
        directness: how directly the source measures an industry (0-1)
        payload_variant: structural variant of normalized payloads
        LOOKUP_BUDGET_SHARE: share of the search call timeout given to lookups
    """

    capabilities: FrozenSet[QueryKind] = frozenset({QueryKind.KEYWORD})
    coverage: Optional[FrozenSet[str]] = None
    directness: float = 0.5
    payload_variant: Optional[PayloadVariant] = PayloadVariant.SIMPLIFIED
    LOOKUP_BUDGET_SHARE: float = 0.8

    def __init__(
        self,
        cache: CacheManager,
        config: Optional[APIConfig] = None,
        api_key: Optional[str] = None,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            cache: Shared cache manager
            config: Registry entry (default: API_REGISTRY[SOURCE_NAME])
            api_key: Overrides the key from settings
            settings: Application settings (default: get_settings())
            http_client: Injected transport (tests)
            clock: Epoch-seconds clock, shared with the cache in tests
        """
        self.config = config or get_api_config(self.SOURCE_NAME)
        self.settings = settings or get_settings()
        if api_key is None:
            api_key = self.settings.get_api_key(self.SOURCE_NAME)
        super().__init__(
            api_key=api_key or None,
            base_url=self.config.base_url,
            max_concurrency=min(self.config.max_concurrency, self.settings.max_concurrency),
            max_retries=min(self.config.max_retries, self.settings.max_retries),
            backoff_factor=self.settings.retry_backoff_factor,
            timeout=self.config.timeout_seconds,
            connect_timeout=self.config.connect_timeout_seconds,
            rate_limit_interval=self.config.get_rate_limit_interval(),
            http_client=http_client,
        )
        self.cache = cache
        self.clock = clock
        self._last_success_at: Optional[float] = None

        if (
            not self.api_key
            and self.config.api_key_requirement == APIKeyRequirement.RECOMMENDED
        ):
            logger.warning(
                f"[{self.SOURCE_NAME}] No API key configured; running with "
                f"anonymous limits. {self.config.notes or ''}".strip()
            )

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _add_auth_to_params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if self.config.auth_style == AuthStyle.QUERY_PARAM and self.api_key:
            params[self.config.auth_param] = self.api_key
        return params

    def _add_auth_to_body(self, body: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if (
            body is not None
            and self.config.auth_style == AuthStyle.REQUEST_BODY
            and self.api_key
        ):
            body[self.config.auth_param] = self.api_key
        return body

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def is_available(self) -> bool:
        """False only when the source requires a key and none is configured."""
        if self.config.api_key_requirement == APIKeyRequirement.REQUIRED:
            return bool(self.api_key)
        return True

    def data_freshness(self) -> Optional[datetime]:
        """When data was last obtained, fresh or from cache."""
        if self._last_success_at is None:
            return None
        return datetime.fromtimestamp(self._last_success_at, tz=timezone.utc)

    def covers(self, geography: Optional[str]) -> bool:
        if self.coverage is None:
            return True
        alpha2 = to_alpha2(geography)
        return alpha2 is None or alpha2 in self.coverage

    def _error(
        self, code: ErrorCode, message: str, suggestions: Optional[List[str]] = None
    ) -> SourceError:
        return SourceError(
            source_name=self.SOURCE_NAME,
            error_code=code,
            message=message,
            suggestions=suggestions or [],
        )

    def _missing_credentials(self) -> SourceError:
        return source_error_from_exception(
            ConfigurationError(
                f"{self.config.display_name} requires an API key",
                source=self.SOURCE_NAME,
                missing_config=self.config.config_key.upper(),
            ),
            self.config,
        )

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    def validate_query(self, query: DatasetQuery) -> Optional[KeyValidationResult]:
        """Validate the dimension key. None means the source has no key grammar."""
        return None

    @abstractmethod
    async def _fetch_raw(self, query: DatasetQuery) -> RawProviderResult:
        """Fetch and tag one payload. May raise APIError subclasses."""

    def lookups_for(self, match: IndustryMatch, query: SearchQuery) -> List[SeriesLookup]:
        """Datasets to fetch for one candidate industry during a search."""
        return []

    def build_fragment(
        self,
        match: IndustryMatch,
        query: SearchQuery,
        results: Dict[str, List[ObservationRecord]],
    ) -> Optional[IndustryFragment]:
        """Turn fetched datasets (by lookup label) into a fragment."""
        return None

    # ------------------------------------------------------------------
    # Dataset contract
    # ------------------------------------------------------------------

    def cache_key(self, query: DatasetQuery) -> str:
        return build_cache_key(
            self.SOURCE_NAME,
            query.dataflow_id,
            query.dimension_key,
            query.start_period,
            query.end_period,
        )

    async def fetch_dataset(
        self,
        dataflow_id: str,
        key: str = "",
        start_period: Optional[str] = None,
        end_period: Optional[str] = None,
    ) -> DatasetResult:
        """
        Fetch a dataset as normalized observation records.

        Never raises for source-side problems: failures come back as a
        SourceError. An empty list means the source answered with no data.
        """
        result, _ = await self._fetch_stamped(dataflow_id, key, start_period, end_period)
        return result

    async def fetch(self, query: DatasetQuery) -> DatasetResult:
        result, _ = await self._fetch_query(query)
        return result

    async def _fetch_stamped(
        self,
        dataflow_id: str,
        key: str = "",
        start_period: Optional[str] = None,
        end_period: Optional[str] = None,
    ) -> Tuple[DatasetResult, Optional[float]]:
        if not dataflow_id or not dataflow_id.strip():
            error = self._error(
                ErrorCode.VALIDATION_ERROR,
                "dataflow_id must not be empty",
                ["Pass the source's dataset or series identifier"],
            )
            return error, None
        query = DatasetQuery(
            source_id=self.SOURCE_NAME,
            dataflow_id=dataflow_id.strip(),
            dimension_key=(key or "").strip(),
            start_period=start_period or None,
            end_period=end_period or None,
        )
        return await self._fetch_query(query)

    async def _fetch_query(self, query: DatasetQuery) -> Tuple[DatasetResult, Optional[float]]:
        """
        Run the dataset contract for one query.

        Returns the result with the epoch time its records were stored in
        the cache (None when no records came back).
        """
        if not self.is_available():
            return self._missing_credentials(), None

        validation = self.validate_query(query)
        if validation is not None and not validation.is_valid:
            logger.info(
                f"[{self.SOURCE_NAME}] Rejected key {query.dimension_key!r} "
                f"for {query.dataflow_id}: {'; '.join(validation.issues)}"
            )
            error = self._error(
                ErrorCode.VALIDATION_ERROR,
                f"Invalid dimension key {query.dimension_key!r} for "
                f"{query.dataflow_id}: {'; '.join(validation.issues)}",
                list(validation.suggestions),
            )
            return error, None

        cache_key = self.cache_key(query)
        entry = await self.cache.get(cache_key)
        if entry is not None:
            cached = self._from_cache(entry.outcome_kind, entry.data, entry.stored_at, query, validation)
            return cached, entry.stored_at if entry.outcome_kind == OutcomeKind.SUCCESS else None

        error: Optional[SourceError] = None
        records: List[ObservationRecord] = []
        try:
            raw = await self._fetch_raw(query)
            if raw.variant == PayloadVariant.ERROR:
                error = raw.error
            else:
                records = list(normalize(raw, self.SOURCE_NAME, query.dataflow_id).records)
        except APIError as e:
            logger.warning(f"[{self.SOURCE_NAME}] Fetch failed for {query.dataflow_id}: {e}")
            error = source_error_from_exception(e, self.config)
        except _SHAPE_ERRORS as e:
            logger.warning(
                f"[{self.SOURCE_NAME}] Could not reshape payload for {query.dataflow_id}: "
                f"{e.__class__.__name__}: {e}"
            )
            error = source_error_from_exception(
                MalformedResponseError(
                    f"Unexpected payload structure: {e}", source=self.SOURCE_NAME
                ),
                self.config,
            )

        if error is not None:
            await self.cache.set(cache_key, error.model_dump(mode="json"), outcome_kind=OutcomeKind.ERROR)
            return error, None

        if not records:
            await self.cache.set(cache_key, [], outcome_kind=OutcomeKind.EMPTY)
            return self._empty_result(query, validation), None

        stored = await self.cache.set(
            cache_key,
            [r.model_dump(mode="json") for r in records],
            outcome_kind=OutcomeKind.SUCCESS,
        )
        self._last_success_at = stored.stored_at
        logger.info(
            f"[{self.SOURCE_NAME}] Fetched {len(records)} observations for "
            f"{query.dataflow_id} key={query.dimension_key!r}"
        )
        return records, stored.stored_at

    def _from_cache(
        self,
        outcome_kind: OutcomeKind,
        data: Any,
        stored_at: float,
        query: DatasetQuery,
        validation: Optional[KeyValidationResult],
    ) -> DatasetResult:
        if outcome_kind == OutcomeKind.ERROR:
            return SourceError.model_validate(data)
        if outcome_kind == OutcomeKind.EMPTY:
            return self._empty_result(query, validation)
        records = [ObservationRecord.model_validate(d) for d in data]
        if self._last_success_at is None or stored_at > self._last_success_at:
            self._last_success_at = stored_at
        return records

    def _empty_result(
        self, query: DatasetQuery, validation: Optional[KeyValidationResult]
    ) -> DatasetResult:
        # A soft-invalid key that yields nothing is reported with its hints
        if validation is not None and validation.has_warnings:
            return self._error(
                ErrorCode.NO_DATA,
                f"No observations for {query.dataflow_id} key {query.dimension_key!r}: "
                f"{'; '.join(validation.issues)}",
                list(validation.suggestions),
            )
        return []

    async def fetch_latest_value(
        self,
        dataflow_id: str,
        key: str = "",
        start_period: Optional[str] = None,
        end_period: Optional[str] = None,
    ) -> LatestResult:
        """
        Observation with the maximum parseable time period, or a SourceError.

        The record comes back even when its value is null; NO_DATA only
        when no observation has a period that parses.
        """
        result = await self.fetch_dataset(dataflow_id, key, start_period, end_period)
        if isinstance(result, SourceError):
            return result
        latest = latest_record(result)
        if latest is None:
            return self._error(
                ErrorCode.NO_DATA,
                f"No dated observations for {dataflow_id} key {key!r}",
                ["Widen the start/end period range", "Check the dimension key"],
            )
        return latest

    # ------------------------------------------------------------------
    # Aggregated search
    # ------------------------------------------------------------------

    async def search_fragments(
        self, query: SearchQuery, matches: List[IndustryMatch]
    ) -> FragmentResult:
        """
        Fetch this source's view of each candidate industry.

        Lookups run against a budget of LOOKUP_BUDGET_SHARE of the search
        call timeout. Lookups still waiting on pacing or the network when
        it runs out are cancelled and fragments are built from the rest.
        Returns a SourceError only when every lookup failed or was cut off.
        """
        plan = [(match, lookup) for match in matches for lookup in self.lookups_for(match, query)]
        if not plan:
            return []

        tasks = [
            asyncio.create_task(
                self._fetch_stamped(l.dataflow_id, l.key, l.start_period, l.end_period)
            )
            for _, l in plan
        ]
        budget = self.settings.search_call_timeout_seconds * self.LOOKUP_BUDGET_SHARE
        try:
            _, pending = await asyncio.wait(tasks, timeout=budget)
        finally:
            unfinished = [t for t in tasks if not t.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)

        by_industry: Dict[str, Dict[str, List[ObservationRecord]]] = {}
        stamps: Dict[str, float] = {}
        errors: List[SourceError] = []
        for (match, lookup), task in zip(plan, tasks):
            if task in pending:
                logger.info(
                    f"[{self.SOURCE_NAME}] Lookup {lookup.ref} cut off after {budget:g}s"
                )
                continue
            result, stored_at = task.result()
            naics = match.industry.naics
            if isinstance(result, SourceError):
                if result.error_code != ErrorCode.NO_DATA:
                    errors.append(result)
                    logger.debug(
                        f"[{self.SOURCE_NAME}] Lookup {lookup.ref} failed: {result.message}"
                    )
                continue
            if result:
                by_industry.setdefault(naics, {})[lookup.label] = result
                if stored_at is not None:
                    stamps[naics] = max(stamps.get(naics, stored_at), stored_at)

        if len(errors) + len(pending) == len(plan):
            if errors:
                return errors[0]
            return self._error(
                ErrorCode.TIMEOUT,
                f"No lookup finished within {budget:g}s",
                [f"{self.config.display_name} is slow or paced; cached lookups answer immediately"],
            )

        fragments: List[IndustryFragment] = []
        for match in matches:
            naics = match.industry.naics
            fetched = by_industry.get(naics)
            if not fetched:
                continue
            fragment = self.build_fragment(match, query, fetched)
            if fragment is None:
                continue
            if naics in stamps:
                fragment = self._stamp_retrieval(fragment, stamps[naics])
            fragments.append(fragment)
        return fragments

    def _stamp_retrieval(self, fragment: IndustryFragment, stored_at: float) -> IndustryFragment:
        retrieved_at = datetime.fromtimestamp(stored_at, tz=timezone.utc)
        sources = [
            s.model_copy(update={"retrieved_at": retrieved_at})
            if s.source_name == self.SOURCE_NAME else s
            for s in fragment.contributing_sources
        ]
        return fragment.model_copy(update={"contributing_sources": sources})

    def make_fragment(
        self,
        match: IndustryMatch,
        records: List[ObservationRecord],
        ref: str,
        geography: Optional[str] = "US",
        description: Optional[str] = None,
        market_size_estimate: Optional[float] = None,
        growth_rate: Optional[float] = None,
        key_metrics: Optional[Dict[str, float]] = None,
        directness: Optional[float] = None,
    ) -> IndustryFragment:
        """Fragment for a catalog industry with provenance from `records`."""
        industry = match.industry
        latest = latest_with_value(records)
        last_updated: Optional[date] = period_end(latest.time_period) if latest else None
        retrieved_at = self.data_freshness() or datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        return IndustryFragment(
            industry_id=industry.industry_id,
            name=industry.name,
            description=description or industry.description,
            classification_codes=industry.classification_codes(),
            market_size_estimate=market_size_estimate,
            growth_rate=growth_rate,
            key_metrics={k: v for k, v in (key_metrics or {}).items() if v is not None},
            geography=geography,
            contributing_sources=[
                ContributingSource(
                    source_name=self.SOURCE_NAME,
                    raw_excerpt_ref=f"{self.SOURCE_NAME}:{ref}",
                    retrieved_at=retrieved_at,
                )
            ],
            last_updated=last_updated,
            match_strength=match.strength,
            directness=self.directness if directness is None else directness,
        )

    def search_window(self, years: int = 3) -> Dict[str, str]:
        """Start and end years for search lookups, derived from the clock."""
        current = datetime.fromtimestamp(self.clock(), tz=timezone.utc).year
        return {"start": str(current - years), "end": str(current)}
