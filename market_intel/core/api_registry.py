"""
Centralized provider configuration registry.

Consolidates all source-specific settings in one place:
- Base URLs
- Rate limits
- Required vs optional keys and how the key is sent
- Default concurrency settings

Adapters receive their APIConfig at construction; nothing source-specific
is hard-coded in the adapter framework.
"""

from dataclasses import dataclass
from typing import Optional, Dict, List
from enum import Enum


class APIKeyRequirement(Enum):
    """Whether an API key is required, recommended, or not needed."""

    REQUIRED = "required"
    RECOMMENDED = "recommended"
    OPTIONAL = "optional"


class AuthStyle(Enum):
    """Where the API key travels on each request."""

    QUERY_PARAM = "query_param"
    REQUEST_BODY = "request_body"
    NONE = "none"


@dataclass(frozen=True)
class APIConfig:
    """Configuration for a single external API."""

    source_name: str
    display_name: str
    base_url: str
    api_key_requirement: APIKeyRequirement
    auth_style: AuthStyle
    signup_url: Optional[str] = None
    auth_param: Optional[str] = None  # e.g. "api_key", "apikey", "registrationkey"

    # Rate limiting
    max_concurrency: int = 2
    rate_limit_per_minute: Optional[int] = None  # None = no specific limit
    rate_limit_interval: Optional[float] = None  # Seconds between requests

    # Request settings
    timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0
    max_retries: int = 3

    # Source-specific notes (surfaced in rate-limit suggestions)
    notes: Optional[str] = None

    @property
    def config_key(self) -> str:
        """Settings field holding this source's key."""
        return f"{self.source_name}_api_key"

    def get_rate_limit_interval(self) -> Optional[float]:
        """Calculate rate limit interval from per-minute limit."""
        if self.rate_limit_interval is not None:
            return self.rate_limit_interval
        if self.rate_limit_per_minute is not None:
            return 60.0 / self.rate_limit_per_minute
        return None


# =============================================================================
# API REGISTRY - All provider configurations
# =============================================================================

API_REGISTRY: Dict[str, APIConfig] = {
    # -------------------------------------------------------------------------
    # MARKET DATA
    # -------------------------------------------------------------------------
    "alpha_vantage": APIConfig(
        source_name="alpha_vantage",
        display_name="Alpha Vantage",
        base_url="https://www.alphavantage.co/query",
        api_key_requirement=APIKeyRequirement.REQUIRED,
        auth_style=AuthStyle.QUERY_PARAM,
        auth_param="apikey",
        signup_url="https://www.alphavantage.co/support/#api-key",
        max_concurrency=1,
        rate_limit_per_minute=5,
        notes="Free tier: 5 requests/min and 25 requests/day.",
    ),
    "nasdaq_data_link": APIConfig(
        source_name="nasdaq_data_link",
        display_name="Nasdaq Data Link",
        base_url="https://data.nasdaq.com/api/v3",
        api_key_requirement=APIKeyRequirement.RECOMMENDED,
        auth_style=AuthStyle.QUERY_PARAM,
        auth_param="api_key",
        signup_url="https://data.nasdaq.com/sign-up",
        max_concurrency=2,
        notes="Anonymous: 50 calls/day. With key: 50,000 calls/day.",
    ),
    # -------------------------------------------------------------------------
    # US STATISTICAL AGENCIES
    # -------------------------------------------------------------------------
    "bls": APIConfig(
        source_name="bls",
        display_name="Bureau of Labor Statistics",
        base_url="https://api.bls.gov/publicAPI/v2/timeseries/data/",
        api_key_requirement=APIKeyRequirement.RECOMMENDED,
        auth_style=AuthStyle.REQUEST_BODY,
        auth_param="registrationkey",
        signup_url="https://data.bls.gov/registrationEngine/",
        max_concurrency=2,
        rate_limit_interval=0.5,  # 2 req/sec to be safe
        timeout_seconds=60.0,
        connect_timeout_seconds=15.0,
        notes="Without key: 25 queries/day, 10 years. With key: 500/day, 20 years.",
    ),
    "census": APIConfig(
        source_name="census",
        display_name="U.S. Census Bureau",
        base_url="https://api.census.gov/data",
        api_key_requirement=APIKeyRequirement.RECOMMENDED,
        auth_style=AuthStyle.QUERY_PARAM,
        auth_param="key",
        signup_url="https://api.census.gov/data/key_signup.html",
        max_concurrency=4,
        rate_limit_interval=0.2,  # 5 req/sec
        notes="Without key: 500 queries/day per IP.",
    ),
    "fred": APIConfig(
        source_name="fred",
        display_name="Federal Reserve Economic Data",
        base_url="https://api.stlouisfed.org/fred",
        api_key_requirement=APIKeyRequirement.REQUIRED,
        auth_style=AuthStyle.QUERY_PARAM,
        auth_param="api_key",
        signup_url="https://fred.stlouisfed.org/docs/api/api_key.html",
        max_concurrency=2,
        rate_limit_per_minute=120,
        notes="120 requests/min per key.",
    ),
    # -------------------------------------------------------------------------
    # MULTILATERAL / SDMX
    # -------------------------------------------------------------------------
    "imf": APIConfig(
        source_name="imf",
        display_name="International Monetary Fund",
        base_url="https://dataservices.imf.org/REST/SDMX_JSON.svc",
        api_key_requirement=APIKeyRequirement.OPTIONAL,
        auth_style=AuthStyle.NONE,
        signup_url=None,
        max_concurrency=2,
        timeout_seconds=120.0,
        connect_timeout_seconds=30.0,
        notes="No key; roughly 10 requests per 5 seconds per IP.",
    ),
    "oecd": APIConfig(
        source_name="oecd",
        display_name="OECD",
        base_url="https://sdmx.oecd.org/public/rest/data",
        api_key_requirement=APIKeyRequirement.OPTIONAL,
        auth_style=AuthStyle.NONE,
        signup_url=None,
        max_concurrency=2,
        rate_limit_per_minute=20,
        timeout_seconds=120.0,
        connect_timeout_seconds=30.0,
        notes="No key; 20 data queries/min per IP.",
    ),
    "world_bank": APIConfig(
        source_name="world_bank",
        display_name="World Bank",
        base_url="https://api.worldbank.org/v2",
        api_key_requirement=APIKeyRequirement.OPTIONAL,
        auth_style=AuthStyle.NONE,
        signup_url=None,
        max_concurrency=2,
        timeout_seconds=60.0,
        connect_timeout_seconds=15.0,
        notes="No key and no published rate limit.",
    ),
}


def get_api_config(source: str) -> APIConfig:
    """
    Get API configuration for a source.

    Args:
        source: Source id (e.g., 'fred', 'imf')

    Returns:
        APIConfig for the source

    Raises:
        KeyError: If source not found in registry
    """
    source_lower = source.lower()
    if source_lower not in API_REGISTRY:
        available = ", ".join(sorted(API_REGISTRY.keys()))
        raise KeyError(
            f"Unknown API source: {source}. " f"Available sources: {available}"
        )
    return API_REGISTRY[source_lower]


def get_all_sources() -> List[str]:
    """Get list of all registered sources."""
    return sorted(API_REGISTRY.keys())
