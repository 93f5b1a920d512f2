"""
Aggregated industry search endpoint.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from market_intel.api.deps import get_orchestrator
from market_intel.core.api_errors import AggregateFailureError
from market_intel.core.schemas import SearchQuery, SearchResponse
from market_intel.services.orchestrator import AggregationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["search"])


def _split(value: Optional[str]):
    if not value:
        return None
    items = [v.strip() for v in value.split(",") if v.strip()]
    return items or None


@router.get("/search", response_model=SearchResponse)
async def search_industries(
    q: str = Query(..., min_length=1, description="Free text or a NAICS code, e.g. 'pharmaceutical' or '3254'"),
    limit: int = Query(10, ge=1, le=100),
    min_score: float = Query(0.0, ge=0.0, le=1.0, description="Drop results scoring below this"),
    sources: Optional[str] = Query(None, description="Comma-separated source ids (default: all that apply)"),
    geography: Optional[str] = Query(None, description="ISO country code; empty means global"),
    codes: Optional[str] = Query(None, description="Comma-separated NAICS codes"),
    include_sub_industries: bool = Query(False),
    orchestrator: AggregationOrchestrator = Depends(get_orchestrator),
):
    """
    Search all applicable sources for an industry and return consolidated,
    ranked results.

    Per-source failures are listed in `errors`; the request only fails
    (HTTP 502) when every candidate source failed.

    **Examples:**
    - `/search?q=pharmaceutical`
    - `/search?q=3254&include_sub_industries=true`
    - `/search?q=software&sources=census,bls`
    """
    query = SearchQuery(
        free_text_query=q,
        sources=_split(sources),
        limit=limit,
        min_relevance_score=min_score,
        geography=geography or None,
        classification_codes=_split(codes),
        include_sub_industries=include_sub_industries,
    )
    try:
        return await orchestrator.search(query)
    except AggregateFailureError as e:
        logger.warning(f"Search {q!r} failed on every source: {e}")
        raise HTTPException(status_code=502, detail=e.to_dict())
