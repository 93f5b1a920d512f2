"""
Configuration module with strict validation.

Key principles:
- Startup never requires an API key; each adapter reports availability
- Sources with a REQUIRED key refuse to fetch without it (clear error)
- Cache TTLs, timeouts and concurrency are configurable
- Safe defaults for all optional settings
"""
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from market_intel.core.api_errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings with validation.

    Loads from environment variables and .env file.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Provider credentials (all optional for startup)
    alpha_vantage_api_key: Optional[str] = Field(
        default=None,
        description="Alpha Vantage API key - required for Alpha Vantage operations"
    )
    bls_api_key: Optional[str] = Field(
        default=None,
        description="BLS API key - optional but recommended for higher rate limits"
    )
    census_api_key: Optional[str] = Field(
        default=None,
        description="Census API key - optional but recommended"
    )
    fred_api_key: Optional[str] = Field(
        default=None,
        description="FRED API key - required for FRED operations"
    )
    nasdaq_data_link_api_key: Optional[str] = Field(
        default=None,
        description="Nasdaq Data Link API key - optional but recommended"
    )

    # Cache
    cache_database_url: Optional[str] = Field(
        default="sqlite:///.cache_data/market_intel_cache.db",
        description="SQLAlchemy URL for the durable cache tier (empty disables it)"
    )
    cache_ttl_success_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="TTL for responses that returned data"
    )
    cache_ttl_empty_seconds: float = Field(
        default=300.0,
        gt=0,
        description="TTL for well-formed responses with zero observations"
    )
    cache_ttl_error_seconds: float = Field(
        default=60.0,
        gt=0,
        description="TTL for failed fetches"
    )
    cache_sweep_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Seconds between sweeps of expired cache entries"
    )

    # Aggregated search
    search_call_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Timeout for a single adapter call during search"
    )
    search_deadline_seconds: float = Field(
        default=45.0,
        gt=0,
        description="Overall deadline for one search request"
    )
    search_max_concurrency: int = Field(
        default=8,
        ge=1,
        le=32,
        description="Maximum adapters queried concurrently by one search"
    )
    dedup_similarity_threshold: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Minimum normalized-name similarity for merging industries"
    )

    # Rate Limiting and Concurrency
    max_concurrency: int = Field(
        default=4,
        ge=1,
        le=50,
        description="Maximum concurrent requests per external API"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # Retry Configuration
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of attempts for failed API requests"
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Exponential backoff factor for retries"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @field_validator("cache_database_url")
    @classmethod
    def empty_url_disables_store(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    def get_api_key(self, source_id: str) -> Optional[str]:
        """
        Get the API key configured for a source, if any.

        Sources without a credential field (IMF, OECD, World Bank)
        always return None.
        """
        return getattr(self, f"{source_id}_api_key", None)

    def require_api_key(self, source_id: str) -> str:
        """
        Get a source's API key, raising clear error if missing.

        Raises:
            ConfigurationError: If the key is not configured
        """
        key = self.get_api_key(source_id)
        if not key:
            env_var = f"{source_id}_api_key".upper()
            raise ConfigurationError(
                f"{env_var} is required for {source_id} operations. "
                "Please set it in your .env file or environment variables.",
                source=source_id,
                missing_config=env_var,
            )
        return key


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or create the global settings instance.

    This pattern allows:
    - Easy testing (can reset settings between tests)
    - Lazy loading (only loads when first accessed)
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """
    Reset the global settings instance.

    Useful for testing to ensure clean state between tests.
    """
    global _settings
    _settings = None
