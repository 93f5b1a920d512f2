"""
Shared FastAPI dependencies and error mapping for the v1 routers.

The cache, the adapters and the orchestrator are built once in the
application lifespan and kept on app.state.
"""
from typing import Dict

from fastapi import HTTPException, Request

from market_intel.core.cache import CacheManager
from market_intel.core.schemas import ErrorCode, SourceError
from market_intel.services.orchestrator import AggregationOrchestrator
from market_intel.sources.base import ProviderAdapter

ERROR_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.NO_DATA: 404,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.AUTHENTICATION_FAILED: 502,
    ErrorCode.SERVER_ERROR: 502,
    ErrorCode.NETWORK_ERROR: 502,
    ErrorCode.MALFORMED_RESPONSE: 502,
    ErrorCode.UPSTREAM_ERROR: 502,
    ErrorCode.MISSING_CREDENTIALS: 503,
    ErrorCode.TIMEOUT: 504,
}


def source_error_exception(error: SourceError) -> HTTPException:
    """HTTP error for a SourceError returned by a pass-through call."""
    return HTTPException(
        status_code=ERROR_STATUS.get(error.error_code, 502),
        detail=error.model_dump(mode="json"),
    )


def get_cache(request: Request) -> CacheManager:
    return request.app.state.cache


def get_adapters(request: Request) -> Dict[str, ProviderAdapter]:
    return request.app.state.adapters


def get_orchestrator(request: Request) -> AggregationOrchestrator:
    return request.app.state.orchestrator


def get_adapter(source_id: str, request: Request) -> ProviderAdapter:
    """Path dependency resolving {source_id} to its adapter."""
    adapters = get_adapters(request)
    adapter = adapters.get(source_id.lower())
    if adapter is None:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown source '{source_id}'. Available: {', '.join(sorted(adapters))}",
        )
    return adapter
