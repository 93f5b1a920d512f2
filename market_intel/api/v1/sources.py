"""
Per-source endpoints.

Raw pass-through access to one adapter: availability, dataset fetch,
latest value and dimension key validation.
"""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from market_intel.api.deps import get_adapter, get_adapters, source_error_exception
from market_intel.core.schemas import DatasetQuery, ObservationRecord, SourceError, SourceStatus
from market_intel.normalization.key_validator import validate_key
from market_intel.sources.base import ProviderAdapter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sources"])


def _status(adapter: ProviderAdapter) -> SourceStatus:
    config = adapter.config
    return SourceStatus(
        source_id=adapter.SOURCE_NAME,
        display_name=config.display_name,
        available=adapter.is_available(),
        api_key_requirement=config.api_key_requirement.value,
        api_key_configured=bool(adapter.api_key),
        signup_url=config.signup_url,
        capabilities=sorted(adapter.capabilities, key=lambda k: k.value),
        data_freshness=adapter.data_freshness(),
        notes=config.notes,
    )


@router.get("/sources", response_model=List[SourceStatus])
def list_sources(adapters: Dict[str, ProviderAdapter] = Depends(get_adapters)):
    """
    List every source with its availability and key requirement.

    Sources that need a key you haven't configured show `available: false`
    and the URL where a key can be requested.
    """
    return [_status(adapter) for adapter in adapters.values()]


@router.get(
    "/sources/{source_id}/datasets/{dataflow_id:path}/latest",
    response_model=ObservationRecord,
)
async def get_latest_value(
    dataflow_id: str,
    key: str = Query("", description="Dot-delimited dimension key"),
    start_period: Optional[str] = Query(None),
    end_period: Optional[str] = Query(None),
    adapter: ProviderAdapter = Depends(get_adapter),
):
    """Observation with the latest time period (its value may be null)."""
    result = await adapter.fetch_latest_value(dataflow_id, key, start_period, end_period)
    if isinstance(result, SourceError):
        raise source_error_exception(result)
    return result


@router.get(
    "/sources/{source_id}/datasets/{dataflow_id:path}",
    response_model=List[ObservationRecord],
)
async def get_dataset(
    dataflow_id: str,
    key: str = Query("", description="Dot-delimited dimension key"),
    start_period: Optional[str] = Query(None),
    end_period: Optional[str] = Query(None),
    adapter: ProviderAdapter = Depends(get_adapter),
):
    """
    Fetch one dataset from one source as normalized observation records.

    **Examples:**
    - `/sources/fred/datasets/IPG3254S`
    - `/sources/imf/datasets/IFS?key=A.US.PMP_IX&start_period=2019`
    - `/sources/census/datasets/2021/cbp?key=ESTAB,EMP.us:*.NAICS2017=3254`

    An empty list means the source answered with no observations.
    """
    result = await adapter.fetch_dataset(dataflow_id, key, start_period, end_period)
    if isinstance(result, SourceError):
        raise source_error_exception(result)
    return result


@router.get("/sources/{source_id}/validate-key")
def validate_dimension_key(
    dataflow_id: str = Query(..., min_length=1),
    key: str = Query(""),
    adapter: ProviderAdapter = Depends(get_adapter),
):
    """
    Check a dimension key before fetching.

    Returns the issues found and ranked suggestions. No network call is made.
    """
    query = DatasetQuery(
        source_id=adapter.SOURCE_NAME,
        dataflow_id=dataflow_id.strip(),
        dimension_key=key.strip(),
    )
    result = adapter.validate_query(query)
    if result is None:
        result = validate_key(query.dataflow_id, query.dimension_key)
    return result.to_dict()
