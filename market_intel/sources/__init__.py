"""
Provider adapters.

Each subpackage wraps one external source behind the ProviderAdapter
contract (see base.py). ADAPTER_CLASSES is the adapter set the
orchestrator and HTTP layer are built from.
"""
from typing import Dict, Optional, Type

import httpx

from market_intel.core.cache import CacheManager
from market_intel.core.config import Settings, get_settings
from market_intel.sources.alpha_vantage.client import AlphaVantageClient
from market_intel.sources.base import ProviderAdapter, source_error_from_exception
from market_intel.sources.bls.client import BLSClient
from market_intel.sources.census.client import CensusClient
from market_intel.sources.fred.client import FREDClient
from market_intel.sources.imf.client import IMFClient
from market_intel.sources.nasdaq_data_link.client import NasdaqDataLinkClient
from market_intel.sources.oecd.client import OECDClient
from market_intel.sources.world_bank.client import WorldBankClient

ADAPTER_CLASSES: Dict[str, Type[ProviderAdapter]] = {
    cls.SOURCE_NAME: cls
    for cls in (
        AlphaVantageClient,
        BLSClient,
        CensusClient,
        FREDClient,
        IMFClient,
        NasdaqDataLinkClient,
        OECDClient,
        WorldBankClient,
    )
}


def build_adapters(
    cache: CacheManager,
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, ProviderAdapter]:
    """
    Instantiate every registered adapter against one cache.

    Args:
        cache: Shared cache manager
        settings: Application settings (default: get_settings())
        http_client: Shared transport; each adapter owns its own if None
    """
    settings = settings or get_settings()
    return {
        name: cls(cache=cache, settings=settings, http_client=http_client)
        for name, cls in sorted(ADAPTER_CLASSES.items())
    }


__all__ = [
    "ADAPTER_CLASSES",
    "ProviderAdapter",
    "build_adapters",
    "source_error_from_exception",
]
