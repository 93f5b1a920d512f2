"""
Pydantic models shared by adapters, the orchestrator and the HTTP layer.
"""
import enum
from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OutcomeKind(str, enum.Enum):
    """Cache outcome classes - each has its own TTL policy."""
    SUCCESS = "success"
    EMPTY = "empty"
    ERROR = "error"


class ErrorCode(str, enum.Enum):
    """Error classes reported in SourceError.error_code."""
    VALIDATION_ERROR = "validation_error"
    MISSING_CREDENTIALS = "missing_credentials"
    RATE_LIMITED = "rate_limited"
    AUTHENTICATION_FAILED = "authentication_failed"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"
    NO_DATA = "no_data"
    UPSTREAM_ERROR = "upstream_error"


class QueryKind(str, enum.Enum):
    """Query shapes an adapter can serve during aggregated search."""
    KEYWORD = "keyword"
    CLASSIFICATION_CODE = "classification_code"
    GEOGRAPHY = "geography"


class SourceError(BaseModel):
    """A per-source failure, collected rather than raised."""
    model_config = ConfigDict(frozen=True)

    source_name: str
    error_code: ErrorCode
    message: str
    suggestions: List[str] = Field(default_factory=list)


class DatasetQuery(BaseModel):
    """A single-source dataset request. Immutable per request."""
    model_config = ConfigDict(frozen=True)

    source_id: Optional[str] = None
    dataflow_id: str = Field(..., min_length=1)
    dimension_key: str = Field(
        default="", description="Ordered dot-delimited dimension codes"
    )
    start_period: Optional[str] = None
    end_period: Optional[str] = None
    free_text_query: Optional[str] = None


class ObservationRecord(BaseModel):
    """One time-stamped observation in canonical shape."""
    model_config = ConfigDict(frozen=True)

    time_period: str
    value: Optional[float] = None
    dimensions: Dict[str, str] = Field(default_factory=dict)
    source_id: str
    dataflow_id: Optional[str] = None


class ClassificationCode(BaseModel):
    """An industry classification code, e.g. NAICS 3254."""
    model_config = ConfigDict(frozen=True)

    system: str = Field(..., description="NAICS, SIC or another scheme")
    code: str

    @field_validator("system")
    @classmethod
    def upper_system(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()

    def sort_key(self):
        return (self.system, self.code)


class ContributingSource(BaseModel):
    """Provenance of one fragment that fed a consolidated industry."""
    model_config = ConfigDict(frozen=True)

    source_name: str
    raw_excerpt_ref: str = Field(
        ..., description="Reference to the raw series/record the data came from"
    )
    retrieved_at: datetime


class IndustryBase(BaseModel):
    """Fields shared by single-source fragments and consolidated industries."""
    model_config = ConfigDict(frozen=True)

    industry_id: str
    name: str
    description: Optional[str] = None
    classification_codes: List[ClassificationCode] = Field(default_factory=list)
    market_size_estimate: Optional[float] = None
    growth_rate: Optional[float] = None
    key_metrics: Dict[str, float] = Field(default_factory=dict)
    geography: Optional[str] = None
    contributing_sources: List[ContributingSource] = Field(default_factory=list)
    last_updated: Optional[date] = None

    @field_validator("classification_codes")
    @classmethod
    def dedupe_codes(cls, v: List[ClassificationCode]) -> List[ClassificationCode]:
        return sorted(set(v), key=ClassificationCode.sort_key)

    def codes_of(self, system: str) -> List[str]:
        return [c.code for c in self.classification_codes if c.system == system.upper()]


class IndustryFragment(IndustryBase):
    """One adapter's view of an industry, before consolidation."""
    match_strength: float = Field(
        default=0.0, ge=0.0, le=1.0,
        description="How well the industry matched the query"
    )
    directness: float = Field(
        default=0.0, ge=0.0, le=1.0,
        description="How directly the source measures this industry"
    )


class IndustryDTO(IndustryBase):
    """Consolidated, scored industry. Never mutated after scoring."""
    relevance_score: float = Field(..., ge=0.0, le=1.0)


class SearchQuery(BaseModel):
    """Aggregated search request."""
    model_config = ConfigDict(frozen=True)

    free_text_query: str = Field(..., min_length=1)
    sources: Optional[List[str]] = None
    limit: int = Field(default=10, ge=1, le=100)
    min_relevance_score: float = Field(default=0.0, ge=0.0, le=1.0)
    geography: Optional[str] = None
    classification_codes: Optional[List[str]] = None
    include_sub_industries: bool = False


class SearchResponse(BaseModel):
    """Consolidated results plus the per-source errors met on the way."""
    results: List[IndustryDTO] = Field(default_factory=list)
    errors: List[SourceError] = Field(default_factory=list)
    search_tips: List[str] = Field(default_factory=list)


class CacheStatus(BaseModel):
    """Cache counters for observability."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    size: int = 0
    durable_size: Optional[int] = None
    last_refreshed: Optional[datetime] = None


class SourceStatus(BaseModel):
    """Availability report for one adapter."""
    source_id: str
    display_name: str
    available: bool
    api_key_requirement: str
    api_key_configured: bool
    signup_url: Optional[str] = None
    capabilities: List[QueryKind] = Field(default_factory=list)
    data_freshness: Optional[datetime] = None
    notes: Optional[str] = None
