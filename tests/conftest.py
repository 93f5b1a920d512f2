"""
Pytest configuration and shared fixtures.

All fixtures are offline: HTTP goes through httpx.MockTransport and the
durable cache tier is an in-memory SQLite database.
"""
import dataclasses
from datetime import datetime, timezone

import httpx
import pytest

from market_intel.core.api_registry import get_api_config
from market_intel.core.cache import CacheManager
from market_intel.core.cache_store import CacheStore
from market_intel.core.config import Settings, reset_settings
from market_intel.core.schemas import ClassificationCode, ContributingSource, IndustryFragment

# 2024-06-15 00:00:00 UTC
FIXED_NOW = datetime(2024, 6, 15, tzinfo=timezone.utc).timestamp()


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, now: float = FIXED_NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="function")
def clean_env(monkeypatch):
    """
    Clean environment for testing.

    Removes all app-related env vars to ensure clean state.
    """
    env_vars = [
        "ALPHA_VANTAGE_API_KEY",
        "BLS_API_KEY",
        "CENSUS_API_KEY",
        "FRED_API_KEY",
        "NASDAQ_DATA_LINK_API_KEY",
        "CACHE_DATABASE_URL",
        "CACHE_TTL_SUCCESS_SECONDS",
        "CACHE_TTL_EMPTY_SECONDS",
        "CACHE_TTL_ERROR_SECONDS",
        "CACHE_SWEEP_INTERVAL_SECONDS",
        "SEARCH_CALL_TIMEOUT_SECONDS",
        "SEARCH_DEADLINE_SECONDS",
        "SEARCH_MAX_CONCURRENCY",
        "DEDUP_SIMILARITY_THRESHOLD",
        "MAX_CONCURRENCY",
        "LOG_LEVEL",
        "MAX_RETRIES",
        "RETRY_BACKOFF_FACTOR",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)

    # Reset settings singleton
    reset_settings()

    yield

    # Reset again after test
    reset_settings()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def settings(clean_env):
    """Settings with keys for the key-required sources and no durable cache."""
    return Settings(
        _env_file=None,
        cache_database_url="",
        fred_api_key="test-fred-key",
        alpha_vantage_api_key="test-av-key",
        max_retries=1,
        retry_backoff_factor=1.0,
    )


@pytest.fixture
def cache_manager(fake_clock):
    """Memory-only cache driven by the fake clock."""
    return CacheManager(
        ttl_success=3600.0,
        ttl_empty=300.0,
        ttl_error=60.0,
        clock=fake_clock,
    )


@pytest.fixture
def sqlite_store():
    """Durable cache tier on a private in-memory SQLite database."""
    store = CacheStore("sqlite:///:memory:")
    yield store
    store.close()


def fast_config(source: str):
    """Registry config with pacing and retries disabled."""
    return dataclasses.replace(
        get_api_config(source),
        rate_limit_interval=None,
        rate_limit_per_minute=None,
        max_retries=1,
    )


@pytest.fixture
def make_adapter(settings, cache_manager, fake_clock):
    """
    Build an adapter whose HTTP calls go to `handler`.

    handler(request: httpx.Request) -> httpx.Response
    """
    def factory(cls, handler, api_key=None, cache=None):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return cls(
            cache=cache or cache_manager,
            config=fast_config(cls.SOURCE_NAME),
            api_key=api_key,
            settings=settings,
            http_client=client,
            clock=fake_clock,
        )

    return factory


@pytest.fixture
def make_fragment():
    """
    Build an IndustryFragment for one source.

    make_fragment("census", "3254", "Pharmaceutical ...", key_metrics={...})
    """
    def factory(source, naics, name, codes=None, retrieved=None, **fields):
        if codes is None:
            codes = [ClassificationCode(system="NAICS", code=naics)] if naics else []
        fields.setdefault("match_strength", 1.0)
        fields.setdefault("directness", 0.5)
        return IndustryFragment(
            industry_id=f"naics-{naics}" if naics else f"{source}-{name.lower()}",
            name=name,
            classification_codes=codes,
            contributing_sources=[
                ContributingSource(
                    source_name=source,
                    raw_excerpt_ref=f"{source}:{naics or name}",
                    retrieved_at=retrieved or datetime(2024, 6, 1, tzinfo=timezone.utc),
                )
            ],
            **fields,
        )

    return factory
