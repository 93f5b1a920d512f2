"""
Cache administration endpoints.
"""
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from market_intel.api.deps import get_adapters, get_cache
from market_intel.core.cache import CacheManager
from market_intel.core.schemas import CacheStatus
from market_intel.sources.base import ProviderAdapter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cache"])


@router.get("/cache/status", response_model=CacheStatus)
async def cache_status(cache: CacheManager = Depends(get_cache)):
    """Hit/miss counters, entry counts and the time of the last write."""
    return await cache.status()


@router.delete("/cache")
async def clear_cache(
    source_id: Optional[str] = Query(None, description="Only clear this source's entries"),
    cache: CacheManager = Depends(get_cache),
    adapters: Dict[str, ProviderAdapter] = Depends(get_adapters),
):
    """
    Invalidate cached responses, for every source or one of them.

    Entries otherwise expire only by TTL.
    """
    namespace = source_id.lower() if source_id else None
    if namespace and namespace not in adapters:
        raise HTTPException(status_code=404, detail=f"Unknown source '{source_id}'")
    cleared = await cache.clear(namespace)
    logger.info(f"Cache invalidated via API (source_id={namespace}, entries={cleared})")
    return {"cleared": cleared, "source_id": namespace}
